# src/utils/config.py
"""
Pipeline configuration: YAML file merged over built-in defaults.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

LOG = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "seed": 2025,
    "states": ["California", "Texas"],
    "data": {
        "air_quality": "data/raw/annual_aqi_by_county_2022.csv",
        "mortality": "data/raw/suicide_deaths_by_county_2022.txt",
        "poverty": "data/raw/acs_s1701_poverty_2022.csv",
        "population": "data/raw/co-est2022-alldata.csv",
    },
    "poverty": {
        "rate_column": "Estimate!!Percent below poverty level!!Population for whom poverty status is determined",
    },
    "population": {"column": "POPESTIMATE2022"},
    "merge": {"first_join_on": "county_state"},
    "model": {
        "eval_fraction": 0.1,
        "n_folds": 10,
        "n_alphas": 100,
        "eps": 1e-4,
        "max_iter": 10000,
        "n_jobs": None,
    },
    "plots": {"enabled": True, "covariates": ["median_aqi", "poverty_rate"]},
    "outputs": {"reports_dir": "reports", "models_dir": "models"},
}


def _merge(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(defaults)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: Path) -> Dict[str, Any]:
    """Read YAML config and fill in defaults for anything it leaves out."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf8") as fh:
        cfg = yaml.safe_load(fh) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config root must be a mapping: {path}")
    merged = _merge(DEFAULT_CONFIG, cfg)
    LOG.info("Loaded config %s (states=%s, seed=%s)", path, merged["states"], merged["seed"])
    return merged

