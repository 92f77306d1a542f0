# src/model/utils.py
"""
Writers for the run artifacts: tables, JSON, figures, the fitted model and
the checksum manifest.

The orchestrator only calls these once the analysis has finished in memory,
so a failed run leaves no partial outputs behind.
"""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import joblib
import matplotlib.pyplot as plt
import pandas as pd

LOG = logging.getLogger(__name__)

_CHUNK = 1 << 16


def ensure_parent(path: Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    return out


def now_iso() -> str:
    """UTC timestamp, e.g. 2025-01-31T12:00:00Z."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def sha256sum(path: Path) -> str:
    digest = hashlib.sha256()
    with Path(path).open("rb") as fh:
        while True:
            block = fh.read(_CHUNK)
            if not block:
                break
            digest.update(block)
    return digest.hexdigest()


def save_json(obj: Any, out_path: Path) -> Path:
    """Pretty-printed JSON; numpy scalars and paths fall back to str()."""
    target = ensure_parent(out_path)
    target.write_text(json.dumps(obj, indent=2, ensure_ascii=False, default=str), encoding="utf8")
    LOG.info("Wrote %s", target)
    return target


def save_frame(df: pd.DataFrame, out_path: Path) -> Path:
    target = ensure_parent(out_path)
    df.to_csv(target, index=False)
    LOG.info("Wrote %s (rows=%s, cols=%s)", target, f"{len(df):,}", len(df.columns))
    return target


def save_figure(fig, out_path: Path, dpi: int = 200) -> Path:
    """Write a matplotlib Figure as PNG and close it."""
    target = ensure_parent(out_path)
    fig.savefig(str(target), dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    LOG.info("Wrote figure %s", target)
    return target


def save_config_snapshot(cfg: Dict[str, Any], out_path: Path) -> Path:
    """The effective config (defaults merged with the YAML file) for this run."""
    return save_json({"saved_at": now_iso(), "config": cfg}, out_path)


def save_model_with_summary(obj: Any, out_path: Path, summary_extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    joblib-dump the fitted pipeline and write `<out_path>.summary.json` next
    to it (checksum, size, timestamp, class name plus `summary_extra`).
    """
    target = ensure_parent(out_path)
    joblib.dump(obj, str(target))
    summary: Dict[str, Any] = {
        "artifact_path": str(target),
        "sha256": sha256sum(target),
        "size_bytes": target.stat().st_size,
        "saved_at": now_iso(),
        "type": type(obj).__name__,
        **(summary_extra or {}),
    }
    save_json(summary, target.with_name(target.name + ".summary.json"))
    return summary


def file_manifest(paths: Iterable[Path]) -> Dict[str, Dict[str, Any]]:
    """{path: {sha256, size}} for every path that exists."""
    out: Dict[str, Dict[str, Any]] = {}
    for p in map(Path, paths):
        if not p.is_file():
            LOG.warning("Manifest: skipping missing file %s", p)
            continue
        out[str(p)] = {"sha256": sha256sum(p), "size": p.stat().st_size}
    return out
