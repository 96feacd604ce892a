"""
Per-predictor fitting loop and result bookkeeping.

For every formula the loop fits (or reloads) a model, stores its trace, and
collects three things:

- the fixed-effect summary of b_<predictor>       -> fixed_effects.csv
- the by-speaker slope SD summary                  -> random_slopes.csv
- all posterior draws of b_<predictor>             -> posterior_samples.csv

A PPC plot is written per predictor as well. Nothing is retried; an error
aborts the loop, and whatever earlier iterations wrote stays on disk.
"""

from pathlib import Path

import numpy as np
import pandas as pd
import arviz as az

from .config import (
    FIXED_EFFECTS_FILE,
    HDI_PROB,
    POSTERIOR_SAMPLES_FILE,
    RANDOM_SLOPES_FILE,
    RHAT_WARN,
    SAMPLER_SETTINGS,
    SLOPE_GROUP,
)
from .model import coef_name, fit_model, load_trace, save_trace, sd_name
from .plots import plot_ppc

SUMMARY_COLUMNS = ["mean", "sd", "hdi_2.5%", "hdi_97.5%", "ess_bulk", "r_hat"]


def _summary_row(idata: az.InferenceData, predictor: str, parameter: str) -> dict:
    if parameter not in idata.posterior.data_vars:
        raise KeyError(f"Parameter '{parameter}' not found in the posterior.")

    summary = az.summary(idata, var_names=[parameter], hdi_prob=HDI_PROB)
    hdi_low = f"hdi_{(1 - HDI_PROB) / 2:.1%}"
    hdi_high = f"hdi_{1 - (1 - HDI_PROB) / 2:.1%}"
    stats = summary.loc[parameter]

    row = {
        "variable": predictor,
        "parameter": parameter,
        "mean": float(stats["mean"]),
        "sd": float(stats["sd"]),
        "hdi_2.5%": float(stats[hdi_low]),
        "hdi_97.5%": float(stats[hdi_high]),
        "ess_bulk": float(stats["ess_bulk"]),
        "r_hat": float(stats["r_hat"]),
    }
    if np.isfinite(row["r_hat"]) and row["r_hat"] > RHAT_WARN:
        print(f"[WARN] {parameter}: r_hat = {row['r_hat']:.3f} (> {RHAT_WARN})")
    return row


def summarize_fixed_effect(idata: az.InferenceData, predictor: str) -> dict:
    return _summary_row(idata, predictor, coef_name(predictor))


def summarize_random_slope(idata: az.InferenceData, predictor: str, group: str = SLOPE_GROUP) -> dict:
    return _summary_row(idata, predictor, sd_name(group, predictor))


def extract_posterior_samples(idata: az.InferenceData, predictor: str) -> np.ndarray:
    """All chains x draws of the predictor's coefficient, flattened."""
    post = idata.posterior.stack(sample=("chain", "draw"))
    return np.asarray(post[coef_name(predictor)].values).reshape(-1)


def run_model_loop(
    df: pd.DataFrame,
    formulas,
    settings: dict = None,
    models_dir=Path("results/models"),
    plots_dir=Path("results/plots"),
    reuse_traces: bool = False,
):
    """
    Fit one model per formula, sequentially.

    Returns (fixed_effects, random_slopes, posterior_samples) DataFrames:
    one row per formula in the first two, one column per predictor in the last.
    """
    settings = {**SAMPLER_SETTINGS, **(settings or {})}
    models_dir = Path(models_dir)
    plots_dir = Path(plots_dir)
    models_dir.mkdir(parents=True, exist_ok=True)
    plots_dir.mkdir(parents=True, exist_ok=True)

    fixed_rows = []
    slope_rows = []
    samples = {}

    for i, formula in enumerate(formulas, start=1):
        predictor = formula.predictor
        print(f"\n[{i}/{len(formulas)}] {formula}")

        trace_path = models_dir / f"model_{predictor}.nc"
        if reuse_traces and trace_path.exists():
            idata = load_trace(trace_path)
        else:
            idata = fit_model(df, formula, settings)
            save_trace(idata, trace_path)

        fixed = summarize_fixed_effect(idata, predictor)
        fixed["formula"] = str(formula)
        fixed_rows.append(fixed)
        slope_rows.append(summarize_random_slope(idata, predictor, group=formula.slope_group))
        samples[predictor] = pd.Series(extract_posterior_samples(idata, predictor))

        print(
            f"  {coef_name(predictor)}: mean={fixed['mean']:.3f} "
            f"[{fixed['hdi_2.5%']:.3f}, {fixed['hdi_97.5%']:.3f}]"
        )

        plot_ppc(
            idata,
            response=formula.response,
            path=plots_dir / f"ppc_{predictor}.png",
            title=f"PPC: {formula.response} ~ {predictor}",
            random_seed=int(settings["random_seed"]),
        )

    fixed_effects = pd.DataFrame(fixed_rows, columns=["variable", "parameter"] + SUMMARY_COLUMNS + ["formula"])
    random_slopes = pd.DataFrame(slope_rows, columns=["variable", "parameter"] + SUMMARY_COLUMNS)
    posterior_samples = pd.DataFrame(samples)
    return fixed_effects, random_slopes, posterior_samples


def write_results(fixed_effects: pd.DataFrame, random_slopes: pd.DataFrame,
                  posterior_samples: pd.DataFrame, outdir) -> dict:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    paths = {
        "fixed_effects": outdir / FIXED_EFFECTS_FILE,
        "posterior_samples": outdir / POSTERIOR_SAMPLES_FILE,
        "random_slopes": outdir / RANDOM_SLOPES_FILE,
    }
    print(f"Saving fixed-effect coefficients to: {paths['fixed_effects']}")
    fixed_effects.to_csv(paths["fixed_effects"], index=False)
    print(f"Saving posterior samples to: {paths['posterior_samples']}")
    posterior_samples.to_csv(paths["posterior_samples"], index=False)
    print(f"Saving random slopes to: {paths['random_slopes']}")
    random_slopes.to_csv(paths["random_slopes"], index=False)
    return paths
