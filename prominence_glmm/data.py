"""
Loading, joining and preparing the prominence datasets.

The unit of analysis is the reference score dataset, left-joined with the
non-key columns of the prominence dataset on a composite word identifier
(Speaker, Sentence, Word).
"""

from pathlib import Path

import numpy as np
import pandas as pd

from .config import (
    CSV_SEP,
    ID_COLS,
    MISSING_RATE_THRESHOLD,
    UID_COL,
    UID_SEP,
    Z_PREFIX,
)


def load_table(path, sep: str = CSV_SEP) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input table not found: {path}")

    print(f"Reading data from: {path.resolve()}")
    df = pd.read_csv(path, sep=sep)
    print(f"  {len(df)} rows, {len(df.columns)} columns")
    return df


def require_columns(df: pd.DataFrame, columns, what: str = "table") -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(
            f"{what} is missing required columns {missing}; "
            f"found: {list(df.columns)}"
        )


# ---------- Identifier ----------

def id_text(series: pd.Series) -> pd.Series:
    """
    Identifier values as text, missing entries left as NaN.

    Float columns holding whole numbers (an integer column with a gap) are
    written without the trailing ".0", so 1.0 and 1 give the same uid part.
    """
    if pd.api.types.is_float_dtype(series):
        present = series.dropna()
        if (present == np.floor(present)).all():
            series = series.astype("Int64")
    return series.astype(str).where(series.notna())


def add_unique_id(df: pd.DataFrame, id_cols=ID_COLS, sep: str = UID_SEP) -> pd.DataFrame:
    """
    Append the composite word identifier.

    uid = Speaker + sep + Sentence + sep + Word. A missing part makes the
    whole uid missing.
    """
    require_columns(df, id_cols, what="dataset")
    df = df.copy()
    parts = [id_text(df[c]) for c in id_cols]
    df[UID_COL] = parts[0].str.cat(parts[1:], sep=sep)
    return df


def check_identifier_overlap(prominence: pd.DataFrame, scores: pd.DataFrame) -> dict:
    """
    Report how well the two datasets line up on their identifiers.

    Purely informational: nothing is dropped or enforced here. Returns a dict
    with the shared identifier columns and the number of uids present in one
    dataset but not the other.
    """
    shared = [c for c in ID_COLS if c in prominence.columns and c in scores.columns]
    print(f"Identifier columns present in both datasets: {shared}")

    for col in shared:
        prom_values = set(id_text(prominence[col]).dropna())
        score_values = set(id_text(scores[col]).dropna())
        only_prom = prom_values - score_values
        only_scores = score_values - prom_values
        if only_prom or only_scores:
            print(
                f"[WARN] {col}: {len(only_prom)} values only in prominence data, "
                f"{len(only_scores)} only in score data"
            )

    report = {
        "shared_id_cols": shared,
        "only_in_prominence": 0,
        "only_in_scores": 0,
    }
    if len(shared) < len(ID_COLS):
        print(f"[WARN] Not all identifier columns {ID_COLS} are shared; skipping uid overlap.")
        return report

    prom_ids = set(add_unique_id(prominence)[UID_COL].dropna())
    score_ids = set(add_unique_id(scores)[UID_COL].dropna())
    report["only_in_prominence"] = len(prom_ids - score_ids)
    report["only_in_scores"] = len(score_ids - prom_ids)

    print(
        f"uids: {len(prom_ids)} in prominence data, {len(score_ids)} in score data, "
        f"{len(prom_ids & score_ids)} shared"
    )
    if report["only_in_prominence"] or report["only_in_scores"]:
        print(
            f"[WARN] {report['only_in_scores']} score uids have no prominence row "
            f"(they will carry missing values after the join), "
            f"{report['only_in_prominence']} prominence uids have no score row"
        )
    return report


def merge_datasets(scores: pd.DataFrame, prominence: pd.DataFrame) -> pd.DataFrame:
    """
    Left join of the score dataset with the prominence dataset's non-key columns.

    The result has exactly one row per score row, in the score dataset's order.
    Prominence columns that already exist in the score dataset are not brought
    over again.
    """
    scores = add_unique_id(scores)
    prominence = add_unique_id(prominence)

    no_id = prominence[UID_COL].isna()
    if no_id.any():
        print(f"[WARN] {int(no_id.sum())} prominence rows have a missing identifier and cannot be joined")
    prominence = prominence[~no_id]

    dup = prominence[UID_COL].duplicated(keep=False)
    if dup.any():
        examples = prominence.loc[dup, UID_COL].unique()[:5].tolist()
        raise ValueError(
            f"Prominence data has {int(dup.sum())} rows with duplicated uids "
            f"(e.g. {examples}); the join would multiply score rows."
        )

    extra_cols = [
        c for c in prominence.columns
        if c not in ID_COLS and c != UID_COL and c not in scores.columns
    ]
    right = prominence[[UID_COL] + extra_cols]

    merged = scores.merge(right, on=UID_COL, how="left", validate="many_to_one")
    n_no_id = int(merged[UID_COL].isna().sum())
    if n_no_id:
        print(f"[WARN] {n_no_id} score rows have a missing identifier; their joined columns are empty")
    print(f"Merged dataset: {len(merged)} rows ({len(extra_cols)} columns joined)")
    return merged


# ---------- Missing values ----------

def audit_missing(df: pd.DataFrame, variables, threshold: float = MISSING_RATE_THRESHOLD):
    """
    Count missing values per variable.

    Returns (table, rate) where table has one row per variable
    (variable, n_missing, prop_missing) and rate is the share of rows with at
    least one missing value among the variables.
    """
    variables = list(variables)
    require_columns(df, variables, what="merged dataset")

    n = len(df)
    counts = df[variables].isna().sum()
    table = pd.DataFrame(
        {
            "variable": variables,
            "n_missing": [int(counts[v]) for v in variables],
            "prop_missing": [float(counts[v]) / n if n else np.nan for v in variables],
        }
    )

    any_missing = df[variables].isna().any(axis=1)
    rate = float(any_missing.mean()) if n else 0.0

    print("Missing values per variable:")
    print(table.to_string(index=False))
    print(f"Rows with any missing acoustic value: {int(any_missing.sum())}/{n} ({rate:.2%})")
    if rate > threshold:
        print(f"[WARN] Missing-value rate {rate:.2%} exceeds accepted {threshold:.0%}")

    return table, rate


# ---------- Standardization ----------

def zscore(series: pd.Series) -> pd.Series:
    """(x - mean) / sd over non-missing values; missing entries stay missing."""
    values = pd.to_numeric(series, errors="raise").astype(float)
    mean = values.mean(skipna=True)
    sd = values.std(skipna=True, ddof=1)
    if not np.isfinite(sd) or sd == 0:
        raise ValueError(
            f"Cannot standardize '{series.name}': standard deviation is {sd}"
        )
    return (values - mean) / sd


def standardize(df: pd.DataFrame, variables, prefix: str = Z_PREFIX):
    """
    Append one z-scored column per variable.

    Applied per column over the whole frame, no grouping.
    Returns (new_df, z_columns).
    """
    variables = list(variables)
    require_columns(df, variables, what="merged dataset")

    df = df.copy()
    z_cols = []
    for var in variables:
        z_col = f"{prefix}{var}"
        df[z_col] = zscore(df[var])
        z_cols.append(z_col)

    return df, z_cols
