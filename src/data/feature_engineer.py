# src/data/feature_engineer.py
"""
Feature construction for the county suicide-rate model.

Steps (each returns a new frame):
 1. Select the modeling covariates + target; rows with a missing value in any
    of them are recorded (MissingDataError) and dropped.
 2. log_target = log1p(suicide_rate).
 3. State -> treatment-coded dummy (first level dropped), then every base
    feature plus every pairwise product ("a:b"). k base columns give
    k + C(k, 2) model columns.
 4. Evaluation / training split: a fixed fraction drawn uniformly without
    replacement from a seeded generator; the rest is training.
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, NamedTuple, Optional

import numpy as np
import pandas as pd
from sklearn.preprocessing import PolynomialFeatures

from src.data.errors import DataQualityLog, InsufficientDataError, MissingDataError

LOG = logging.getLogger(__name__)

NUMERIC_COVARIATES: List[str] = [
    "max_aqi", "days_pm25", "days_ozone", "days_no2", "days_co", "median_aqi", "poverty_rate",
]
CATEGORICAL_COVARIATES: List[str] = ["state"]
BASE_COVARIATES: List[str] = NUMERIC_COVARIATES + CATEGORICAL_COVARIATES
TARGET = "suicide_rate"
LOG_TARGET = "log_target"


class Split(NamedTuple):
    train: np.ndarray
    eval: np.ndarray


class FeatureSet(NamedTuple):
    X_train: pd.DataFrame
    y_train: pd.Series
    X_eval: pd.DataFrame
    y_eval: pd.Series
    rate_eval: pd.Series
    feature_names: List[str]
    split: Split
    model_frame: pd.DataFrame


def select_model_frame(df: pd.DataFrame, quality: Optional[DataQualityLog] = None) -> pd.DataFrame:
    """Keep covariates + target, coerce numerics, drop incomplete rows, add log_target."""
    quality = quality if quality is not None else DataQualityLog()
    cols = ["county"] + BASE_COVARIATES + [TARGET]
    out = df[cols].copy()

    bad = pd.Series(False, index=out.index)
    for c in NUMERIC_COVARIATES + [TARGET]:
        raw = out[c].map(lambda v: v.replace(",", "") if isinstance(v, str) else v)
        num = pd.to_numeric(raw, errors="coerce").astype(float)
        miss = num.isna() | ~np.isfinite(num)
        for idx in out.index[miss]:
            quality.record("features", MissingDataError(out.at[idx, "county"], out.at[idx, "state"], c, out.at[idx, c]))
        out[c] = num
        bad |= miss
    state_miss = out["state"].isna()
    for idx in out.index[state_miss]:
        quality.record("features", MissingDataError(out.at[idx, "county"], None, "state"))
    bad |= state_miss

    if bad.any():
        LOG.warning("features: dropping %d row(s) with missing covariates", int(bad.sum()))
    out = out.loc[~bad].reset_index(drop=True)
    out[LOG_TARGET] = np.log1p(out[TARGET])
    LOG.info("features: %d complete rows for modeling", len(out))
    return out


def expand_interactions(df: pd.DataFrame) -> pd.DataFrame:
    """Base covariates (state as dummies) plus all pairwise interaction terms."""
    dummies = pd.get_dummies(df["state"].astype(str), prefix="state", drop_first=True).astype(float)
    base = pd.concat([df[NUMERIC_COVARIATES].astype(float), dummies], axis=1)

    poly = PolynomialFeatures(degree=2, interaction_only=True, include_bias=False)
    values = poly.fit_transform(base.to_numpy(dtype=float))
    names = [n.replace(" ", ":") for n in poly.get_feature_names_out(base.columns.tolist())]
    out = pd.DataFrame(values, columns=names, index=df.index)
    LOG.info("Expanded %d base columns to %d model columns", base.shape[1], out.shape[1])
    return out


def split_train_eval(n_rows: int, eval_fraction: float = 0.1, seed: int = 2025) -> Split:
    """
    Draw floor(eval_fraction * n_rows) evaluation rows (at least one) uniformly
    without replacement; all other rows are training. Positions refer to the
    input row order.
    """
    if not 0 < eval_fraction < 1:
        raise ValueError(f"eval_fraction must be in (0, 1), got {eval_fraction}")
    if n_rows < 2:
        raise InsufficientDataError(f"Need at least 2 rows to split, got {n_rows}")
    n_eval = max(1, int(np.floor(eval_fraction * n_rows)))
    rng = np.random.default_rng(seed)
    eval_idx = np.sort(rng.choice(n_rows, size=n_eval, replace=False))
    train_idx = np.setdiff1d(np.arange(n_rows), eval_idx)
    return Split(train=train_idx, eval=eval_idx)


def build_features(
    merged: pd.DataFrame,
    eval_fraction: float = 0.1,
    seed: int = 2025,
    quality: Optional[DataQualityLog] = None,
) -> FeatureSet:
    """Run selection, log transform, interaction expansion and the split."""
    frame = select_model_frame(merged, quality)
    X = expand_interactions(frame)
    split = split_train_eval(len(frame), eval_fraction=eval_fraction, seed=seed)
    LOG.info("Split: %d training rows, %d evaluation rows (seed=%s)", len(split.train), len(split.eval), seed)
    return FeatureSet(
        X_train=X.iloc[split.train],
        y_train=frame[LOG_TARGET].iloc[split.train],
        X_eval=X.iloc[split.eval],
        y_eval=frame[LOG_TARGET].iloc[split.eval],
        rate_eval=frame[TARGET].iloc[split.eval],
        feature_names=list(X.columns),
        split=split,
        model_frame=frame,
    )


def _cli():
    p = argparse.ArgumentParser(description="Build the interaction design matrix from a merged county table")
    p.add_argument("--in", dest="infile", required=True, help="Merged county CSV (with suicide_rate)")
    p.add_argument("--out", dest="outfile", required=True, help="Output CSV for the expanded design matrix")
    p.add_argument("--seed", type=int, default=2025)
    args = p.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    merged = pd.read_csv(args.infile, low_memory=False)
    fs = build_features(merged, seed=args.seed)
    design = pd.concat([fs.X_train, fs.X_eval]).sort_index()
    design.insert(0, LOG_TARGET, pd.concat([fs.y_train, fs.y_eval]).sort_index())
    design.insert(0, "partition", np.where(design.index.isin(fs.X_eval.index), "eval", "train"))
    out_path = Path(args.outfile)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    design.to_csv(out_path, index=False)
    LOG.info("Saved design matrix -> %s (rows=%s, cols=%s)", out_path, f"{len(design):,}", len(design.columns))


if __name__ == "__main__":
    _cli()
