# src/pipeline/build_pipeline.py
"""
Pipeline orchestrator.

Runs the county analysis end to end:
  load -> merge -> rate -> features -> lasso (10-fold CV) -> evaluate -> plots

Usage:
  python -m src.pipeline.build_pipeline --config config/pipeline.yml
  python -m src.pipeline.build_pipeline --config config/pipeline.yml --out-dir reports/run1 --no-plots

Design:
  - Conservative: any fatal error (FormatError, UnknownStateError,
    InsufficientDataError, missing file) stops the run before anything is written;
    artifacts are staged in a temporary directory and only moved into place
    once all of them were written
  - Row-scoped defects (missing values, zero population) drop the row and are
    listed in data_quality.csv; surviving row counts are logged at every step
  - Writes run_manifest.json listing every produced artifact (sha256 + size)
    and the sha256 of each input file
"""

from __future__ import annotations

import argparse
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from src.data.errors import DataQualityLog
from src.data.feature_engineer import FeatureSet, build_features
from src.data.loaders import load_sources
from src.data.merge_counties import merge_tables
from src.data.rates import add_presentation_columns, add_suicide_rate
from src.model import lasso
from src.model import plots
from src.model import utils as mutils
from src.utils.config import load_config

LOG = logging.getLogger(__name__)

RMSE_LINE = "Evaluation RMSE (suicides per 100,000): {rmse:.4f}"


@dataclass
class PipelineResult:
    merged: pd.DataFrame
    features: FeatureSet
    fit: lasso.LassoFit
    rmse: float
    quality: DataQualityLog
    row_counts: Dict[str, int]
    figures: Dict[str, Any] = field(default_factory=dict)
    artifacts: List[Path] = field(default_factory=list)


def run_analysis(cfg: Dict[str, Any], make_plots: bool = True) -> PipelineResult:
    """Run every step in memory; nothing is written to disk here."""
    quality = DataQualityLog()
    seed = int(cfg["seed"])
    mcfg = cfg["model"]

    LOG.info("=== Step: load ===")
    tables = load_sources(cfg)

    LOG.info("=== Step: merge ===")
    merged, counts = merge_tables(tables, first_join_on=cfg["merge"]["first_join_on"])

    LOG.info("=== Step: rate ===")
    rated = add_suicide_rate(merged, quality)
    counts["rated_rows"] = len(rated)

    LOG.info("=== Step: features ===")
    features = build_features(rated, eval_fraction=float(mcfg["eval_fraction"]), seed=seed, quality=quality)
    counts["model_rows"] = len(features.model_frame)
    counts["train_rows"] = len(features.split.train)
    counts["eval_rows"] = len(features.split.eval)

    LOG.info("=== Step: lasso ===")
    fit = lasso.fit_lasso_cv(
        features.X_train, features.y_train,
        n_folds=int(mcfg["n_folds"]), n_alphas=int(mcfg["n_alphas"]), eps=float(mcfg["eps"]),
        seed=seed, n_jobs=mcfg.get("n_jobs"), max_iter=int(mcfg["max_iter"]),
    )

    LOG.info("=== Step: evaluate ===")
    rmse = lasso.evaluate_rmse(fit, features.X_eval, features.rate_eval)

    result = PipelineResult(merged=rated, features=features, fit=fit, rmse=rmse, quality=quality, row_counts=counts)

    if make_plots:
        LOG.info("=== Step: plots ===")
        described = add_presentation_columns(rated)
        for x in cfg["plots"]["covariates"]:
            result.figures[f"rate_vs_{x}"] = plots.plot_rate_vs_covariate(described, x)
        result.figures["rate_by_state_median_aqi"] = plots.plot_faceted_scatter(described, "median_aqi")
        result.figures["rate_by_poverty_pollution_group"] = plots.plot_grouped_boxplot(described)
        result.figures["lasso_cv_curve"] = plots.plot_cv_curve(fit)

    LOG.info("Rows: %s", counts)
    if len(quality):
        LOG.warning("Excluded %d row-scoped defect(s): %s", len(quality), quality.summary())
    return result


def _is_under(path: Path, root: Path) -> bool:
    return root == path or root in path.parents


def _write_staged(result: PipelineResult, cfg: Dict[str, Any], reports_dir: Path, models_dir: Path,
                  final_name: Callable[[Path], Path]) -> List[Path]:
    written: List[Path] = []
    written.append(mutils.save_frame(add_presentation_columns(result.merged), reports_dir / "merged_counties.csv"))
    written.append(mutils.save_frame(result.quality.to_frame(), reports_dir / "data_quality.csv"))
    written.append(mutils.save_frame(lasso.coefficient_table(result.fit), reports_dir / "model_table.csv"))
    written.append(mutils.save_frame(lasso.cv_path_table(result.fit), reports_dir / "cv_path.csv"))
    written.append(mutils.save_json({
        "rmse": result.rmse,
        "alpha": result.fit.alpha,
        "min_cv_rmse": float(result.fit.cv_rmse.min()),
        "n_features": len(result.fit.feature_names),
        "n_selected": result.fit.n_selected,
        "row_counts": result.row_counts,
        "data_quality": result.quality.summary(),
    }, reports_dir / "metrics.json"))
    written.append(mutils.save_config_snapshot(cfg, reports_dir / "run_config.json"))
    for name, fig in result.figures.items():
        written.append(mutils.save_figure(fig, reports_dir / "figs" / f"{name}.png"))
    model_path = models_dir / "lasso_cv.joblib"
    mutils.save_model_with_summary(result.fit.pipeline, model_path, summary_extra={
        "artifact_path": str(final_name(model_path)),
        "alpha": result.fit.alpha,
        "feature_names": result.fit.feature_names,
    })
    written.append(model_path)

    files = mutils.file_manifest(written)
    manifest = {
        "generated_at": mutils.now_iso(),
        "inputs": mutils.file_manifest(Path(p) for p in cfg["data"].values()),
        "files": {str(final_name(Path(k))): v for k, v in files.items()},
    }
    written.append(mutils.save_json(manifest, reports_dir / "run_manifest.json"))
    return written


def write_artifacts(result: PipelineResult, cfg: Dict[str, Any], reports_dir: Path, models_dir: Path) -> List[Path]:
    """
    Write every artifact into a staging directory next to reports_dir, then
    move the files into place. A failure while writing removes the staging
    directory and leaves reports_dir / models_dir untouched.
    """
    reports_dir, models_dir = Path(reports_dir), Path(models_dir)
    reports_dir.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=reports_dir.parent))
    roots = {staging / "reports": reports_dir, staging / "models": models_dir}

    def final_name(p: Path) -> Path:
        for staged_root, final_root in roots.items():
            if _is_under(p, staged_root):
                return final_root / p.relative_to(staged_root)
        return p

    try:
        staged = _write_staged(result, cfg, staging / "reports", staging / "models", final_name)
        for staged_root, final_root in roots.items():
            for src in sorted(staged_root.rglob("*")):
                if src.is_file():
                    dest = final_root / src.relative_to(staged_root)
                    dest.parent.mkdir(parents=True, exist_ok=True)
                    shutil.move(str(src), str(dest))
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    return [final_name(p) for p in staged]


def run_pipeline(cfg: Dict[str, Any], out_dir: Optional[Path] = None, make_plots: Optional[bool] = None) -> PipelineResult:
    """Full run: analysis in memory, then artifacts, then the RMSE line on stdout."""
    if make_plots is None:
        make_plots = bool(cfg["plots"]["enabled"])
    reports_dir = Path(out_dir) if out_dir else Path(cfg["outputs"]["reports_dir"])
    models_dir = Path(out_dir) / "models" if out_dir else Path(cfg["outputs"]["models_dir"])

    result = run_analysis(cfg, make_plots=make_plots)
    result.artifacts = write_artifacts(result, cfg, reports_dir, models_dir)
    print(RMSE_LINE.format(rmse=result.rmse))
    LOG.info("Pipeline finished successfully. Artifacts written to %s", reports_dir)
    return result


def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog="build_pipeline", description="Run the county suicide-rate pipeline")
    parser.add_argument("--config", type=str, default="config/pipeline.yml", help="Path to YAML config")
    parser.add_argument("--out-dir", type=str, default=None, help="Write reports (and models/) here instead of the configured dirs")
    parser.add_argument("--no-plots", action="store_true", help="Skip the descriptive plots")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args(argv)
    try:
        cfg = load_config(Path(args.config))
        run_pipeline(cfg, out_dir=Path(args.out_dir) if args.out_dir else None,
                     make_plots=False if args.no_plots else None)
    except Exception as e:
        LOG.exception("Pipeline failed: %s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
