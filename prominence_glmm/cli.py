#!/usr/bin/env python
"""
Run the full prominence analysis.

Run with something like:
    python -m prominence_glmm \
        --prominence-csv data/prominence_data.csv \
        --scores-csv data/prominence_scores.csv \
        --outdir results

Steps
-----
1. Load both datasets and report identifier overlap.
2. Build uid = Speaker_Sentence_Word and left-join the prominence columns
   onto the reference scores.
3. Audit missing values in the acoustic variables.
4. z-score the acoustic variables (z_<variable> columns).
5. One formula per z-scored variable:
       Prominence ~ 1 + z_x + (1 + z_x | Speaker) + (1 | Sentence) + (1 | Word)
6. Fit each formula, save its trace and PPC plot, collect results.

Outputs (under --outdir)
------------------------
    merged_data.csv          merged + standardized data
    missing_audit.csv        missing values per acoustic variable
    fixed_effects.csv        b_<z_x> summary, one row per variable
    random_slopes.csv        sd_Speaker__<z_x> summary, one row per variable
    posterior_samples.csv    posterior draws of b_<z_x>, one column per variable
    models/model_<z_x>.nc    compressed posterior trace per variable
    plots/ppc_<z_x>.png      posterior predictive check per variable
"""

import argparse
from pathlib import Path

from .config import (
    ACOUSTIC_VARIABLES,
    MERGED_DATA_FILE,
    MISSING_AUDIT_FILE,
    MODELS_SUBDIR,
    PLOTS_SUBDIR,
    PROMINENCE_CSV,
    RESPONSE_COL,
    RESULTS_DIR,
    SAMPLER_SETTINGS,
    SCORES_CSV,
)
from .data import (
    audit_missing,
    check_identifier_overlap,
    load_table,
    merge_datasets,
    require_columns,
    standardize,
)
from .formulas import build_formulas
from .pipeline import run_model_loop, write_results


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Bayesian mixed-effects logistic models of word prominence, "
            "one per standardized acoustic predictor."
        )
    )
    parser.add_argument(
        "--prominence-csv", type=str, default=str(PROMINENCE_CSV),
        help="Prominence dataset (Speaker, Sentence, Word, Prominence, acoustic measures).",
    )
    parser.add_argument(
        "--scores-csv", type=str, default=str(SCORES_CSV),
        help="Reference prominence-score dataset (Speaker, Sentence, Word, legacy measures).",
    )
    parser.add_argument(
        "--outdir", type=str, default=str(RESULTS_DIR),
        help="Directory for tables, traces and plots.",
    )
    parser.add_argument(
        "--variables", nargs="+", default=list(ACOUSTIC_VARIABLES),
        help="Acoustic variables to standardize and model (default: all eight).",
    )
    parser.add_argument(
        "--iter", type=int, default=SAMPLER_SETTINGS["iter"],
        help="Total iterations per chain, warmup included.",
    )
    parser.add_argument(
        "--warmup", type=int, default=SAMPLER_SETTINGS["warmup"],
        help="Warmup (tuning) iterations per chain, discarded.",
    )
    parser.add_argument(
        "--chains", type=int, default=SAMPLER_SETTINGS["chains"],
        help="Number of MCMC chains.",
    )
    parser.add_argument(
        "--target-accept", type=float, default=SAMPLER_SETTINGS["target_accept"],
        help="Target acceptance probability for NUTS.",
    )
    parser.add_argument(
        "--max-treedepth", type=int, default=SAMPLER_SETTINGS["max_treedepth"],
        help="Maximum NUTS tree depth.",
    )
    parser.add_argument(
        "--seed", type=int, default=SAMPLER_SETTINGS["random_seed"],
        help="Random seed for reproducibility.",
    )
    parser.add_argument(
        "--sampler", choices=["pymc", "nutpie"], default=SAMPLER_SETTINGS["nuts_sampler"],
        help="NUTS implementation.",
    )
    parser.add_argument(
        "--reuse-traces", action="store_true",
        help="Load models/model_<variable>.nc instead of refitting when it exists.",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    unknown = [v for v in args.variables if v not in ACOUSTIC_VARIABLES]
    if unknown:
        raise ValueError(f"Unknown acoustic variables {unknown}; choose from {ACOUSTIC_VARIABLES}")

    repeated = sorted({v for v in args.variables if args.variables.count(v) > 1})
    if repeated:
        raise ValueError(f"Acoustic variables listed more than once: {repeated}")

    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    settings = {
        **SAMPLER_SETTINGS,
        "iter": args.iter,
        "warmup": args.warmup,
        "chains": args.chains,
        "target_accept": args.target_accept,
        "max_treedepth": args.max_treedepth,
        "random_seed": args.seed,
        "nuts_sampler": args.sampler,
    }

    print("==============================================")
    print("      prominence_glmm: per-variable models")
    print("==============================================")
    print(f"Prominence CSV: {Path(args.prominence_csv).resolve()}")
    print(f"Scores CSV: {Path(args.scores_csv).resolve()}")
    print(f"Output directory: {outdir.resolve()}")
    print("")

    prominence = load_table(args.prominence_csv)
    scores = load_table(args.scores_csv)
    require_columns(prominence, [RESPONSE_COL], what="prominence dataset")

    print("\nChecking identifier overlap...")
    check_identifier_overlap(prominence, scores)

    print("\nMerging datasets...")
    merged = merge_datasets(scores, prominence)

    print("\nAuditing missing values...")
    audit, _ = audit_missing(merged, args.variables)
    audit.to_csv(outdir / MISSING_AUDIT_FILE, index=False)

    print("\nStandardizing variables...")
    merged, z_cols = standardize(merged, args.variables)
    merged.to_csv(outdir / MERGED_DATA_FILE, index=False)

    print("\nModel formulas:")
    formulas = build_formulas(z_cols)

    fixed_effects, random_slopes, posterior_samples = run_model_loop(
        merged,
        formulas,
        settings=settings,
        models_dir=outdir / MODELS_SUBDIR,
        plots_dir=outdir / PLOTS_SUBDIR,
        reuse_traces=args.reuse_traces,
    )

    print("")
    write_results(fixed_effects, random_slopes, posterior_samples, outdir)

    print("\n==============================================")
    print("      prominence_glmm COMPLETED")
    print("==============================================")


if __name__ == "__main__":
    main()
