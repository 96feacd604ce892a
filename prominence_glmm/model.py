"""
Bayesian hierarchical logistic regression for one acoustic predictor.

For word i with speaker s, sentence j and word type w:

    Prominence_i ~ Bernoulli(p_i)
    logit(p_i) = Intercept + b * x_i
                 + r_Speaker[s, 0] + r_Speaker[s, 1] * x_i
                 + r_Sentence[j] + r_Word[w]

with

    Intercept              ~ StudentT(3, 0, 2.5)
    b                      ~ Normal(0, prior_sd)          (prior_sd = 1)
    r_Speaker[s, :]        ~ MvNormal(0, diag(sd) R diag(sd))
    sd_Speaker             ~ HalfStudentT(3, 2.5)
    R                      ~ LKJ(1)
    r_Sentence, r_Word     ~ Normal(0, sd_<group>),  sd_<group> ~ HalfStudentT(3, 2.5)

Variable names in the trace:

    Intercept, b_<predictor>,
    sd_Speaker__Intercept, sd_Speaker__<predictor>, cor_Speaker,
    sd_<group>__Intercept for every intercept-only group.
"""

import os
import sys
from pathlib import Path

import pytensor

# Disable C compilation on Windows to avoid linker issues
if sys.platform == "win32":
    pytensor.config.cxx = ""
    pytensor.config.mode = "FAST_COMPILE"
    pytensor.config.exception_verbosity = "high"

import numpy as np
import pandas as pd
import arviz as az
import pymc as pm
import pytensor.tensor as pt

from .config import SAMPLER_SETTINGS


def coef_name(predictor: str) -> str:
    return f"b_{predictor}"


def sd_name(group: str, term: str) -> str:
    return f"sd_{group}__{term}"


def complete_cases(df: pd.DataFrame, formula) -> pd.DataFrame:
    """Drop rows with a missing response, predictor or grouping value."""
    cols = [formula.response, formula.predictor] + list(formula.groups)
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise ValueError(f"Columns {missing} needed by '{formula}' are not in the data.")

    out = df.dropna(subset=cols)
    n_dropped = len(df) - len(out)
    if n_dropped:
        print(f"[INFO] {formula.predictor}: dropping {n_dropped} rows with missing values")
    if out.empty:
        raise ValueError(f"No complete rows left for '{formula}'.")
    return out


def build_model(df: pd.DataFrame, formula, prior_sd: float = 1.0) -> pm.Model:
    data = complete_cases(df, formula)

    y = data[formula.response].to_numpy()
    if not np.isin(y, [0, 1]).all():
        raise ValueError(
            f"Response '{formula.response}' must be coded 0/1; "
            f"found {sorted(pd.unique(y).tolist())}"
        )
    y = y.astype("int64")
    x = data[formula.predictor].to_numpy().astype(float)

    group_idx = {}
    coords = {
        "obs_id": np.arange(len(data)),
        "effect": ["Intercept", formula.predictor],
    }
    for g in formula.groups:
        idx, levels = pd.factorize(data[g].astype(str), sort=True)
        group_idx[g] = idx.astype("int64")
        coords[g] = list(levels)

    slope_group = formula.slope_group
    s_idx = group_idx[slope_group]

    with pm.Model(coords=coords) as model:
        x_data = pm.Data("x", x, dims="obs_id")

        intercept = pm.StudentT("Intercept", nu=3, mu=0.0, sigma=2.5)
        beta = pm.Normal(coef_name(formula.predictor), mu=0.0, sigma=prior_sd)

        # Correlated by-speaker intercept and slope (non-centered)
        chol, corr, sds = pm.LKJCholeskyCov(
            f"chol_{slope_group}",
            n=2,
            eta=1.0,
            sd_dist=pm.HalfStudentT.dist(nu=3, sigma=2.5, shape=2),
            compute_corr=True,
        )
        z_slope = pm.Normal(f"z_{slope_group}", 0.0, 1.0, dims=("effect", slope_group))
        r_slope = pm.Deterministic(
            f"r_{slope_group}", pt.dot(chol, z_slope).T, dims=(slope_group, "effect")
        )
        pm.Deterministic(sd_name(slope_group, "Intercept"), sds[0])
        pm.Deterministic(sd_name(slope_group, formula.predictor), sds[1])
        pm.Deterministic(f"cor_{slope_group}", corr[0, 1])

        eta = (
            intercept
            + beta * x_data
            + r_slope[s_idx, 0]
            + r_slope[s_idx, 1] * x_data
        )

        # Random intercepts
        for g in formula.intercept_groups:
            sigma_g = pm.HalfStudentT(sd_name(g, "Intercept"), nu=3, sigma=2.5)
            z_g = pm.Normal(f"z_{g}", 0.0, 1.0, dims=g)
            r_g = pm.Deterministic(f"r_{g}", z_g * sigma_g, dims=g)
            eta = eta + r_g[group_idx[g]]

        pm.Bernoulli(formula.response, logit_p=eta, observed=y, dims="obs_id")

    return model


def sampler_kwargs(settings: dict) -> dict:
    """Translate iter/warmup style settings into pm.sample arguments."""
    draws = int(settings["iter"]) - int(settings["warmup"])
    if draws <= 0:
        raise ValueError(
            f"iter ({settings['iter']}) must exceed warmup ({settings['warmup']})"
        )

    chains = int(settings["chains"])
    cores = min(chains, os.cpu_count() or 1)
    sampler = settings.get("nuts_sampler", "pymc")

    kwargs = dict(
        draws=draws,
        tune=int(settings["warmup"]),
        chains=chains,
        cores=cores,
        target_accept=float(settings["target_accept"]),
        random_seed=int(settings["random_seed"]),
        nuts_sampler=sampler,
        return_inferencedata=True,
    )
    if sampler == "pymc":
        kwargs["nuts"] = {"max_treedepth": int(settings["max_treedepth"])}
    elif sampler == "nutpie":
        kwargs["nuts_sampler_kwargs"] = {"maxdepth": int(settings["max_treedepth"])}
    else:
        raise ValueError(f"Unsupported NUTS sampler: {sampler!r}. Use 'pymc' or 'nutpie'.")
    return kwargs


def fit_model(df: pd.DataFrame, formula, settings: dict = None) -> az.InferenceData:
    """
    Fit one formula and draw the posterior predictive into the same InferenceData.

    No retries and no convergence gating: a failing fit raises.
    """
    settings = {**SAMPLER_SETTINGS, **(settings or {})}
    kwargs = sampler_kwargs(settings)

    model = build_model(df, formula, prior_sd=float(settings["prior_sd"]))

    print(
        f"[INFO] Sampling '{formula}' with {kwargs['nuts_sampler']} NUTS: "
        f"{kwargs['chains']} chains x ({kwargs['tune']} warmup + {kwargs['draws']} draws), "
        f"target_accept={kwargs['target_accept']}, max_treedepth={settings['max_treedepth']}"
    )
    with model:
        idata = pm.sample(**kwargs)
        pm.sample_posterior_predictive(
            idata,
            extend_inferencedata=True,
            random_seed=kwargs["random_seed"],
        )

    idata.posterior.attrs["formula"] = str(formula)
    return idata


def save_trace(idata: az.InferenceData, path) -> Path:
    """Write the InferenceData as compressed netCDF."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    print(f"Saving posterior trace to: {path}")
    idata.to_netcdf(str(path), compress=True)
    return path


def load_trace(path) -> az.InferenceData:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Trace not found: {path}")
    print(f"Loading existing posterior trace: {path}")
    return az.from_netcdf(str(path))
