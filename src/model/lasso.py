# src/model/lasso.py
"""
Cross-validated lasso for log1p(suicide rate).

 - explicit, seeded k-fold assignment (fold sizes differ by at most one)
 - a log-spaced penalty grid from alpha_max down to alpha_max * eps
 - for every fold, StandardScaler -> Lasso is fitted on the other k-1 folds
   only, at every penalty on the grid, and scored on the held-out fold
 - selection is the minimizer of CV error (lambda.min, no one-SE rule)
 - final refit of the same pipeline on all training rows at that penalty

Each (fold, alpha) fit is independent and uses selection="cyclic", so the
fold MSEs are identical whether folds run sequentially or in parallel (n_jobs).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.linear_model import Lasso
from sklearn.metrics import mean_squared_error
from sklearn.model_selection import KFold
from sklearn.pipeline import Pipeline, make_pipeline
from sklearn.preprocessing import StandardScaler

from src.data.errors import InsufficientDataError
from src.model.stability_gate import check_sample

LOG = logging.getLogger(__name__)

Folds = List[Tuple[np.ndarray, np.ndarray]]


@dataclass
class LassoFit:
    pipeline: Pipeline
    alpha: float
    alphas: np.ndarray
    cv_rmse: np.ndarray
    fold_mse: np.ndarray
    feature_names: List[str]
    coef: np.ndarray
    intercept: float
    n_obs: int
    folds: Folds = field(repr=False, default_factory=list)

    @property
    def n_selected(self) -> int:
        return int(np.count_nonzero(self.coef))


def make_folds(n_rows: int, n_folds: int = 10, seed: int = 2025) -> Folds:
    """Shuffled k-fold split of range(n_rows) as (train_idx, test_idx) pairs."""
    if n_rows < n_folds:
        raise InsufficientDataError(f"Cannot build {n_folds} folds from {n_rows} rows")
    kf = KFold(n_splits=n_folds, shuffle=True, random_state=seed)
    return [(train, test) for train, test in kf.split(np.arange(n_rows))]


def alpha_grid(X: np.ndarray, y: np.ndarray, n_alphas: int = 100, eps: float = 1e-4) -> np.ndarray:
    """Geometric grid, largest first; alpha_max is the smallest penalty that zeroes every coefficient."""
    Xs = StandardScaler().fit_transform(X)
    yc = y - y.mean()
    alpha_max = float(np.max(np.abs(Xs.T @ yc))) / len(y)
    if not np.isfinite(alpha_max) or alpha_max <= 0:
        LOG.warning("Degenerate alpha_max (%s); target has no variance explained by X", alpha_max)
        alpha_max = 1.0
    return np.geomspace(alpha_max, alpha_max * eps, num=n_alphas)


def _lasso_pipeline(alpha: float, max_iter: int = 10000) -> Pipeline:
    return make_pipeline(StandardScaler(), Lasso(alpha=alpha, max_iter=max_iter, selection="cyclic"))


def fold_path_mse(
    X: np.ndarray,
    y: np.ndarray,
    train: np.ndarray,
    test: np.ndarray,
    alphas: Sequence[float],
    max_iter: int = 10000,
) -> np.ndarray:
    """
    Held-out MSE at every alpha for one fold. The scaler and the lasso only
    see the training rows of the fold.
    """
    out = np.empty(len(alphas))
    for i, a in enumerate(alphas):
        model = _lasso_pipeline(float(a), max_iter).fit(X[train], y[train])
        out[i] = mean_squared_error(y[test], model.predict(X[test]))
    return out


def fit_lasso_cv(
    X: pd.DataFrame,
    y: Sequence[float],
    n_folds: int = 10,
    n_alphas: int = 100,
    eps: float = 1e-4,
    seed: int = 2025,
    n_jobs: Optional[int] = None,
    max_iter: int = 10000,
) -> LassoFit:
    """Fit the penalty path by k-fold CV and refit at the CV-RMSE minimizer."""
    check_sample(X, n_folds=n_folds)
    Xa = X.to_numpy(dtype=float)
    ya = np.asarray(y, dtype=float)
    if not (np.isfinite(Xa).all() and np.isfinite(ya).all()):
        raise ValueError("fit_lasso_cv: design matrix or target contains non-finite values")

    folds = make_folds(len(ya), n_folds=n_folds, seed=seed)
    grid = alpha_grid(Xa, ya, n_alphas=n_alphas, eps=eps)

    LOG.info("Running lasso CV (folds=%d, alphas=%d, n_obs=%d, n_features=%d)", n_folds, len(grid), len(ya), Xa.shape[1])
    per_fold = Parallel(n_jobs=n_jobs)(
        delayed(fold_path_mse)(Xa, ya, train, test, grid, max_iter) for train, test in folds
    )
    fold_mse = np.column_stack(per_fold)
    cv_rmse = np.sqrt(fold_mse.mean(axis=1))
    best = float(grid[int(np.argmin(cv_rmse))])

    pipeline = _lasso_pipeline(best, max_iter).fit(Xa, ya)
    scaler: StandardScaler = pipeline.named_steps["standardscaler"]
    model: Lasso = pipeline.named_steps["lasso"]

    # coefficients back on the original feature scale
    coef = np.asarray(model.coef_).ravel() / scaler.scale_
    intercept = float(model.intercept_ - np.dot(coef, scaler.mean_))

    fit = LassoFit(
        pipeline=pipeline,
        alpha=best,
        alphas=grid,
        cv_rmse=cv_rmse,
        fold_mse=fold_mse,
        feature_names=list(X.columns),
        coef=coef,
        intercept=intercept,
        n_obs=int(len(ya)),
        folds=folds,
    )
    LOG.info("Lasso CV selected alpha=%.6g (min CV-RMSE=%.4f); %d of %d coefficients non-zero",
             fit.alpha, float(cv_rmse.min()), fit.n_selected, len(coef))
    return fit


def predict_log_rate(fit: LassoFit, X: pd.DataFrame) -> np.ndarray:
    return fit.pipeline.predict(X[fit.feature_names].to_numpy(dtype=float))


def predict_rate(fit: LassoFit, X: pd.DataFrame) -> np.ndarray:
    """Back-transform predicted log1p(rate) to a rate per 100,000."""
    return np.expm1(predict_log_rate(fit, X))


def evaluate_rmse(fit: LassoFit, X_eval: pd.DataFrame, rate_eval: Sequence[float]) -> float:
    """RMSE of back-transformed predictions against the observed (non-log) rates."""
    pred = predict_rate(fit, X_eval)
    return float(np.sqrt(mean_squared_error(np.asarray(rate_eval, dtype=float), pred)))


def coefficient_table(fit: LassoFit) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = [{
        "model": "lasso_cv",
        "term": "const",
        "coef": fit.intercept,
        "selected": True,
        "alpha": fit.alpha,
        "n_obs": fit.n_obs,
    }]
    for name, c in zip(fit.feature_names, fit.coef):
        rows.append({
            "model": "lasso_cv",
            "term": name,
            "coef": float(c),
            "selected": bool(c != 0),
            "alpha": fit.alpha,
            "n_obs": fit.n_obs,
        })
    return pd.DataFrame(rows)


def cv_path_table(fit: LassoFit) -> pd.DataFrame:
    out = pd.DataFrame({"alpha": fit.alphas, "cv_rmse": fit.cv_rmse})
    for j in range(fit.fold_mse.shape[1]):
        out[f"fold_{j + 1}_mse"] = fit.fold_mse[:, j]
    out["selected"] = out["alpha"] == fit.alpha
    return out
