import arviz as az
import numpy as np
import pandas as pd
import pytest

import prominence_glmm.pipeline as pipeline
from prominence_glmm.formulas import build_formulas
from prominence_glmm.model import build_model, sampler_kwargs


def fake_fit(df, formula, settings=None, n_chains=2, n_draws=50):
    """Stand-in for fit_model returning an InferenceData with the real variable names."""
    rng = np.random.default_rng(len(formula.predictor))
    data = df.dropna(subset=[formula.predictor])
    y = data[formula.response].to_numpy().astype("int64")
    pp = rng.integers(0, 2, size=(n_chains, n_draws, len(y)))
    return az.from_dict(
        posterior={
            "Intercept": rng.normal(size=(n_chains, n_draws)),
            f"b_{formula.predictor}": rng.normal(0.5, 0.1, size=(n_chains, n_draws)),
            f"sd_Speaker__{formula.predictor}": np.abs(rng.normal(0.3, 0.05, size=(n_chains, n_draws))),
            "sd_Speaker__Intercept": np.abs(rng.normal(0.5, 0.05, size=(n_chains, n_draws))),
        },
        posterior_predictive={formula.response: pp},
        observed_data={formula.response: y},
    )


def test_loop_over_two_predictors(synthetic_merged, tmp_path, monkeypatch):
    monkeypatch.setattr(pipeline, "fit_model", fake_fit)
    formulas = build_formulas(["z_a", "z_b"])

    fixed, slopes, samples = pipeline.run_model_loop(
        synthetic_merged,
        formulas,
        models_dir=tmp_path / "models",
        plots_dir=tmp_path / "plots",
    )

    assert len(fixed) == 2
    assert len(slopes) == 2
    assert samples.shape == (100, 2)
    assert list(samples.columns) == ["z_a", "z_b"]
    assert fixed["parameter"].tolist() == ["b_z_a", "b_z_b"]
    assert slopes["parameter"].tolist() == ["sd_Speaker__z_a", "sd_Speaker__z_b"]
    assert (fixed["hdi_2.5%"] < fixed["mean"]).all()
    assert (fixed["mean"] < fixed["hdi_97.5%"]).all()

    for p in ["z_a", "z_b"]:
        assert (tmp_path / "models" / f"model_{p}.nc").exists()
        assert (tmp_path / "plots" / f"ppc_{p}.png").exists()


def test_loop_reuses_existing_traces(synthetic_merged, tmp_path, monkeypatch):
    monkeypatch.setattr(pipeline, "fit_model", fake_fit)
    formulas = build_formulas(["z_a"])
    first = pipeline.run_model_loop(
        synthetic_merged, formulas,
        models_dir=tmp_path / "models", plots_dir=tmp_path / "plots",
    )

    def fail(*args, **kwargs):
        raise AssertionError("should not refit")

    monkeypatch.setattr(pipeline, "fit_model", fail)
    second = pipeline.run_model_loop(
        synthetic_merged, formulas,
        models_dir=tmp_path / "models", plots_dir=tmp_path / "plots",
        reuse_traces=True,
    )
    np.testing.assert_allclose(first[2]["z_a"], second[2]["z_a"])


def test_loop_error_keeps_earlier_artifacts(synthetic_merged, tmp_path, monkeypatch):
    def fit_then_fail(df, formula, settings=None):
        if formula.predictor == "z_b":
            raise RuntimeError("sampler blew up")
        return fake_fit(df, formula, settings)

    monkeypatch.setattr(pipeline, "fit_model", fit_then_fail)
    with pytest.raises(RuntimeError):
        pipeline.run_model_loop(
            synthetic_merged, build_formulas(["z_a", "z_b"]),
            models_dir=tmp_path / "models", plots_dir=tmp_path / "plots",
        )
    assert (tmp_path / "models" / "model_z_a.nc").exists()
    assert not (tmp_path / "models" / "model_z_b.nc").exists()


def test_write_results(tmp_path):
    fixed = pd.DataFrame({"variable": ["z_a"], "mean": [0.1]})
    slopes = pd.DataFrame({"variable": ["z_a"], "mean": [0.2]})
    samples = pd.DataFrame({"z_a": [0.1, 0.2, 0.3]})

    paths = pipeline.write_results(fixed, slopes, samples, tmp_path)

    assert pd.read_csv(paths["fixed_effects"]).shape == (1, 2)
    assert pd.read_csv(paths["random_slopes"]).shape == (1, 2)
    assert pd.read_csv(paths["posterior_samples"]).shape == (3, 1)


def test_build_model_names_and_complete_cases(synthetic_merged):
    formula = build_formulas(["z_b"])[0]
    model = build_model(synthetic_merged, formula)

    names = set(model.named_vars)
    assert {"Intercept", "b_z_b", "sd_Speaker__Intercept", "sd_Speaker__z_b",
            "cor_Speaker", "sd_Sentence__Intercept", "sd_Word__Intercept"} <= names
    # two rows with missing z_b are dropped
    assert len(model.coords["obs_id"]) == len(synthetic_merged) - 2


def test_build_model_rejects_non_binary_response(synthetic_merged):
    df = synthetic_merged.assign(Prominence=synthetic_merged["Prominence"] * 2)
    df.loc[0, "Prominence"] = 2
    with pytest.raises(ValueError, match="0/1"):
        build_model(df, build_formulas(["z_a"])[0])


def test_sampler_kwargs():
    kw = sampler_kwargs(dict(iter=4000, warmup=2000, chains=4, target_accept=0.99,
                             max_treedepth=15, random_seed=123, nuts_sampler="pymc"))
    assert kw["draws"] == 2000
    assert kw["tune"] == 2000
    assert kw["chains"] == 4
    assert 1 <= kw["cores"] <= 4
    assert kw["nuts"] == {"max_treedepth": 15}

    kw = sampler_kwargs(dict(iter=100, warmup=50, chains=2, target_accept=0.9,
                             max_treedepth=12, random_seed=1, nuts_sampler="nutpie"))
    assert kw["nuts_sampler_kwargs"] == {"maxdepth": 12}

    with pytest.raises(ValueError):
        sampler_kwargs(dict(iter=100, warmup=100, chains=1, target_accept=0.9,
                            max_treedepth=10, random_seed=1, nuts_sampler="pymc"))


@pytest.mark.slow
def test_loop_with_real_sampler(synthetic_merged, tmp_path):
    settings = dict(iter=120, warmup=60, chains=1, random_seed=7)
    fixed, slopes, samples = pipeline.run_model_loop(
        synthetic_merged,
        build_formulas(["z_a", "z_b"]),
        settings=settings,
        models_dir=tmp_path / "models",
        plots_dir=tmp_path / "plots",
    )

    assert len(fixed) == 2
    assert len(slopes) == 2
    assert samples.shape == (60, 2)
    assert (slopes["mean"] > 0).all()
    assert np.isfinite(samples.to_numpy()).all()
    assert (tmp_path / "plots" / "ppc_z_b.png").exists()


def test_ppc_plot_logs_before_writing(synthetic_merged, tmp_path, monkeypatch, capsys):
    from matplotlib.figure import Figure

    from prominence_glmm.plots import plot_ppc

    idata = fake_fit(synthetic_merged, build_formulas(["z_a"])[0])

    def broken_savefig(self, *args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(Figure, "savefig", broken_savefig)
    path = tmp_path / "plots" / "ppc_z_a.png"
    with pytest.raises(OSError):
        plot_ppc(idata, response="Prominence", path=path)

    assert f"Saving posterior predictive check to: {path}" in capsys.readouterr().out
    assert not path.exists()
