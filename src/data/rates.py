# src/data/rates.py
"""
Suicide rate per 100,000 residents, plus presentation-only grouping columns.
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import pandas as pd

from src.data.errors import DataQualityLog, MissingDataError, NonFiniteValueError

LOG = logging.getLogger(__name__)

PER_CAPITA = 100000
GROUP_LABELS = ["Low", "Medium", "High"]
NUMERIC_FIELDS = ["days_pm25", "days_ozone", "days_no2", "days_co", "max_aqi", "median_aqi", "poverty_rate"]


def _coerce_numeric(df: pd.DataFrame, cols, stage: str, quality: DataQualityLog) -> pd.DataFrame:
    """Coerce cols to float; rows with a missing/non-numeric value are logged and dropped."""
    out = df.copy()
    bad = pd.Series(False, index=out.index)
    for c in cols:
        raw = out[c].map(lambda v: v.replace(",", "") if isinstance(v, str) else v)
        num = pd.to_numeric(raw, errors="coerce")
        miss = num.isna()
        for idx in out.index[miss]:
            quality.record(stage, MissingDataError(out.at[idx, "county"], out.at[idx, "state"], c, df.at[idx, c]))
        out[c] = num.astype(float)
        bad |= miss
    if bad.any():
        LOG.warning("%s: dropping %d row(s) with missing/non-numeric values in %s", stage, int(bad.sum()), list(cols))
    return out.loc[~bad]


def add_suicide_rate(df: pd.DataFrame, quality: Optional[DataQualityLog] = None) -> pd.DataFrame:
    """
    Return a copy of df with suicide_rate = deaths / population * 100000.

    Rows whose rate is not finite (population of zero) are recorded as
    NonFiniteValueError and excluded instead of being passed on as inf/NaN.
    """
    quality = quality if quality is not None else DataQualityLog()
    out = _coerce_numeric(df, ["deaths", "population"], "rate", quality)

    with np.errstate(divide="ignore", invalid="ignore"):
        rate = out["deaths"].to_numpy(dtype=float) / out["population"].to_numpy(dtype=float) * PER_CAPITA
    out["suicide_rate"] = rate

    finite = np.isfinite(rate)
    if not finite.all():
        for idx in out.index[~finite]:
            quality.record("rate", NonFiniteValueError(
                out.at[idx, "county"], out.at[idx, "state"], "suicide_rate", out.at[idx, "suicide_rate"]))
        LOG.warning("rate: excluding %d row(s) with non-finite suicide_rate", int((~finite).sum()))
    out = out.loc[finite].reset_index(drop=True)
    LOG.info("rate: %d counties with a finite suicide_rate", len(out))
    return out


def _tertiles(s: pd.Series) -> pd.Series:
    num = pd.to_numeric(s, errors="coerce")
    if num.notna().sum() < len(GROUP_LABELS):
        return pd.Series(pd.NA, index=s.index, dtype="object")
    # rank first so tied values cannot collapse the bin edges
    return pd.qcut(num.rank(method="first"), q=len(GROUP_LABELS), labels=GROUP_LABELS)


def add_presentation_columns(df: pd.DataFrame) -> pd.DataFrame:
    """log_rate, poverty_group and pollution_group for the descriptive plots only."""
    out = df.copy()
    for c in NUMERIC_FIELDS:
        if c in out.columns:
            out[c] = pd.to_numeric(out[c], errors="coerce")
    out["log_rate"] = np.log1p(out["suicide_rate"].astype(float))
    out["poverty_group"] = _tertiles(out["poverty_rate"])
    out["pollution_group"] = _tertiles(out["median_aqi"])
    return out
