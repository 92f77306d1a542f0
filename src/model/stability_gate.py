# src/model/stability_gate.py
"""
Stability gate: stops the modeling step when the usable sample is too small
to cross-validate.

Checks:
  - n_rows >= n_folds (every fold gets at least one held-out row)
  - n_rows >= min_rows
  - no predictor column is entirely constant NaN

Raises InsufficientDataError (fatal) if violated.
"""

from __future__ import annotations

import logging
from typing import Dict

import pandas as pd

from src.data.errors import InsufficientDataError

LOG = logging.getLogger(__name__)

MIN_ROWS = 10


def coverage(X: pd.DataFrame) -> Dict[str, float]:
    """Percent non-null per column."""
    if len(X) == 0:
        return {c: 0.0 for c in X.columns}
    return {c: float(X[c].notna().mean() * 100.0) for c in X.columns}


def check_sample(X: pd.DataFrame, n_folds: int = 10, min_rows: int = MIN_ROWS) -> int:
    """Return the number of usable rows or raise InsufficientDataError."""
    n = int(len(X))
    if n_folds < 2:
        raise InsufficientDataError(f"n_folds must be >= 2, got {n_folds}")
    if n < max(n_folds, min_rows):
        raise InsufficientDataError(
            f"Effective sample collapsed: got {n} training rows, "
            f"required >= {max(n_folds, min_rows)} for {n_folds}-fold cross-validation."
        )
    cov = coverage(X)
    empty = [c for c, pct in cov.items() if pct == 0.0]
    if empty:
        raise InsufficientDataError(f"Predictors with no observed values: {empty}")
    LOG.info("Stability gate passed: %d training rows, %d predictors, %d folds", n, X.shape[1], n_folds)
    return n
