import numpy as np
import pandas as pd
import pytest


def _ids(n_speakers, n_sentences, n_words):
    rows = []
    for s in range(1, n_speakers + 1):
        for j in range(1, n_sentences + 1):
            for w in range(1, n_words + 1):
                rows.append({"Speaker": f"S{s}", "Sentence": j, "Word": f"w{w}"})
    return pd.DataFrame(rows)


@pytest.fixture
def toy_datasets():
    """3 speakers x 2 sentences x 2 words, identical identifiers in both tables."""
    rng = np.random.default_rng(0)
    ids = _ids(3, 2, 2)
    n = len(ids)

    prominence = ids.copy()
    prominence["Prominence"] = rng.integers(0, 2, size=n)
    for col in ["max_ewf0", "mean_ewf0", "max_sync", "mean_sync", "max_scale", "mean_scale"]:
        prominence[col] = rng.normal(size=n)

    scores = ids.sample(frac=1.0, random_state=1).reset_index(drop=True)
    scores["mean_f0"] = rng.normal(200, 20, size=n)
    scores["rms_norm"] = rng.uniform(0, 1, size=n)
    return prominence, scores


@pytest.fixture
def synthetic_merged():
    """Merged-style data with two standardized predictors and a real signal in one."""
    rng = np.random.default_rng(42)
    df = _ids(6, 5, 4)
    n = len(df)
    df["z_a"] = rng.normal(size=n)
    df["z_b"] = rng.normal(size=n)
    p = 1.0 / (1.0 + np.exp(-(-0.3 + 1.2 * df["z_a"])))
    df["Prominence"] = rng.binomial(1, p)
    df.loc[[3, 17], "z_b"] = np.nan
    return df
