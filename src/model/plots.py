# src/model/plots.py
"""
Descriptive plots of the merged county table and the lasso CV curve.

Every function returns a matplotlib Figure and writes nothing; the
orchestrator saves figures once the run has completed.
"""
from __future__ import annotations

import logging
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from statsmodels.nonparametric.smoothers_lowess import lowess

from src.model.lasso import LassoFit

LOG = logging.getLogger(__name__)

sns.set_style("whitegrid")


def plot_rate_vs_covariate(df: pd.DataFrame, x: str, y: str = "suicide_rate", frac: float = 0.6):
    """Scatter of y vs x with a lowess smoother."""
    if x not in df.columns or y not in df.columns:
        raise ValueError(f"Columns not found in df: {x}, {y}")
    sub = df[[x, y]].apply(pd.to_numeric, errors="coerce").dropna()

    fig, ax = plt.subplots(figsize=(6, 4))
    ax.scatter(sub[x], sub[y], s=14, alpha=0.55)
    if len(sub) >= 3 and sub[x].nunique() > 1:
        lo = lowess(sub[y].to_numpy(), sub[x].to_numpy(), frac=frac, return_sorted=True)
        ax.plot(lo[:, 0], lo[:, 1], color="C1", linewidth=1.8, label="lowess")
        ax.legend(frameon=False, fontsize=8)
    else:
        LOG.warning("Too few points (%d) for a lowess curve of %s vs %s", len(sub), y, x)
    ax.set_xlabel(x)
    ax.set_ylabel(y)
    ax.set_title(f"{y} ~ {x}")
    fig.tight_layout()
    return fig


def plot_faceted_scatter(df: pd.DataFrame, x: str, y: str = "suicide_rate", col: str = "state"):
    """One scatter panel per state with a linear trend."""
    grid = sns.lmplot(data=df, x=x, y=y, col=col, height=3.5, aspect=1.1,
                      scatter_kws={"s": 14, "alpha": 0.55}, line_kws={"linewidth": 1.6}, ci=None)
    grid.set_titles("{col_name}")
    grid.figure.tight_layout()
    return grid.figure


def plot_grouped_boxplot(df: pd.DataFrame, y: str = "suicide_rate",
                         group: str = "poverty_group", hue: Optional[str] = "pollution_group"):
    """Rate by poverty tertile, split by pollution tertile."""
    fig, ax = plt.subplots(figsize=(7, 4))
    sub = df.dropna(subset=[c for c in (group, hue) if c])
    if sub.empty:
        ax.text(0.5, 0.5, "Not enough data for grouped boxplot", ha="center", va="center")
        return fig
    sns.boxplot(data=sub, x=group, y=y, hue=hue, ax=ax)
    ax.set_xlabel(group.replace("_", " "))
    ax.set_ylabel(y)
    if hue:
        ax.legend(title=hue.replace("_", " "), frameon=False, fontsize=8)
    fig.tight_layout()
    return fig


def plot_cv_curve(fit: LassoFit):
    """CV-RMSE (log scale) along the penalty path with the selected alpha marked."""
    fold_rmse = np.sqrt(fit.fold_mse)
    spread = fold_rmse.std(axis=1) / np.sqrt(fold_rmse.shape[1])

    fig, ax = plt.subplots(figsize=(7, 4))
    ax.plot(fit.alphas, fit.cv_rmse, lw=2, color="#1f78b4", label="Mean CV RMSE")
    ax.fill_between(fit.alphas, fit.cv_rmse - spread, fit.cv_rmse + spread, color="#1f78b4", alpha=0.2)
    ax.axvline(fit.alpha, color="#e31a1c", linestyle="--", linewidth=1.6, label=f"alpha = {fit.alpha:.4g}")
    ax.set_xscale("log")
    ax.invert_xaxis()
    ax.set_xlabel("alpha (log scale)")
    ax.set_ylabel("CV RMSE, log1p(rate)")
    ax.set_title(f"Lasso {fit.fold_mse.shape[1]}-fold cross-validation")
    ax.legend(frameon=False)
    fig.tight_layout()
    return fig
