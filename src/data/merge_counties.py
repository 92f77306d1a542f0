# src/data/merge_counties.py
"""
Inner-join the four normalized county tables into one county-level table.

Join order is fixed: air quality -> mortality -> poverty -> population.
A county missing from any source is dropped (inner join); unmatched rows are
not errors, only counted in the merge report.

first_join_on:
  "county_state"  join every step on (county, state)  [default]
  "county"        join air quality and mortality on county only, as the
                  original analysis did. Counties whose name exists in more
                  than one target state get conflated; they are logged.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import pandas as pd

from src.data.loaders import SourceTables

LOG = logging.getLogger(__name__)

KEY = ["county", "state"]
FIRST_JOIN_MODES = ("county_state", "county")


def _inner(left: pd.DataFrame, right: pd.DataFrame, on: List[str], step: str, report: Dict[str, int]) -> pd.DataFrame:
    out = left.merge(right, on=on, how="inner", suffixes=("", f"_{step}"))
    report[f"{step}_left"] = int(len(left))
    report[f"{step}_right"] = int(len(right))
    report[f"{step}_out"] = int(len(out))
    LOG.info("join %-10s on %s: %d x %d -> %d rows", step, on, len(left), len(right), len(out))
    return out


def conflated_counties(air: pd.DataFrame, mortality: pd.DataFrame) -> List[str]:
    """County names present in more than one state in either table."""
    names = pd.concat([air[KEY], mortality[KEY]]).drop_duplicates()
    counts = names.groupby("county")["state"].nunique()
    return sorted(counts[counts > 1].index.tolist())


def merge_sources(
    air_quality: pd.DataFrame,
    mortality: pd.DataFrame,
    poverty: pd.DataFrame,
    population: pd.DataFrame,
    first_join_on: str = "county_state",
    report: Optional[Dict[str, int]] = None,
) -> pd.DataFrame:
    """
    Chain the inner joins and return a new merged frame (inputs untouched).

    Raises ValueError on an unknown `first_join_on` or, in county_state mode,
    if a (county, state) key is duplicated in the result.
    """
    if first_join_on not in FIRST_JOIN_MODES:
        raise ValueError(f"first_join_on must be one of {FIRST_JOIN_MODES}, got {first_join_on!r}")
    report = report if report is not None else {}

    if first_join_on == "county":
        shared = conflated_counties(air_quality, mortality)
        if shared:
            LOG.warning("County-only join conflates counties present in several states: %s", shared)
        # the air-quality state wins; mortality's state is discarded
        merged = _inner(air_quality, mortality.drop(columns=["state"]), ["county"], "mortality", report)
    else:
        merged = _inner(air_quality, mortality, KEY, "mortality", report)

    merged = _inner(merged, poverty, KEY, "poverty", report)
    merged = _inner(merged, population, KEY, "population", report)

    dupes = merged.duplicated(subset=KEY, keep=False)
    if dupes.any():
        keys = sorted(set(map(tuple, merged.loc[dupes, KEY].to_numpy().tolist())))
        if first_join_on == "county_state":
            raise ValueError(f"Duplicate (county, state) keys after merge: {keys}")
        LOG.warning("Merged table holds %d rows for conflated keys: %s", int(dupes.sum()), keys)
    report["merged_rows"] = int(len(merged))

    lead = KEY + [c for c in merged.columns if c not in KEY]
    return merged[lead].sort_values(KEY).reset_index(drop=True)


def merge_tables(tables: SourceTables, first_join_on: str = "county_state") -> Tuple[pd.DataFrame, Dict[str, int]]:
    report: Dict[str, int] = {}
    merged = merge_sources(
        tables.air_quality, tables.mortality, tables.poverty, tables.population,
        first_join_on=first_join_on, report=report,
    )
    return merged, report
