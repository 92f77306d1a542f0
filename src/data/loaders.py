# src/data/loaders.py
"""
Loaders for the four raw county tables.

Each loader:
  - reads the file (CSV, or tab-delimited CDC WONDER export)
  - checks the expected columns are present (FormatError otherwise, fatal)
  - keeps only rows for the target states
  - renames to canonical snake_case columns with a normalized (county, state) key

Numeric fields are kept as read. Coercion happens downstream so that values
like "N/A" or "Suppressed" drop a single row instead of failing the load.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

import pandas as pd

from src.data.errors import FormatError
from src.data.normalize import split_label_column, normalize_key_columns, state_to_code, STATE_CODES

LOG = logging.getLogger(__name__)

AIR_QUALITY_COLUMNS: Dict[str, str] = {
    "State": "state",
    "County": "county",
    "Days PM2.5": "days_pm25",
    "Days Ozone": "days_ozone",
    "Days NO2": "days_no2",
    "Days CO": "days_co",
    "Max AQI": "max_aqi",
    "Median AQI": "median_aqi",
}

MORTALITY_COLUMNS: Dict[str, str] = {
    "Occurrence County": "label",
    "Occurrence County Code": "county_code",
    "Deaths": "deaths",
}

POVERTY_LABEL_COLUMN = "Geographic Area Name"
DEFAULT_POVERTY_RATE_COLUMN = "Estimate!!Percent below poverty level!!Population for whom poverty status is determined"

POPULATION_STATE_COLUMN = "STNAME"
POPULATION_COUNTY_COLUMN = "CTYNAME"
DEFAULT_POPULATION_COLUMN = "POPESTIMATE2022"

# CDC WONDER appends a notes block after this marker
_WONDER_NOTES_MARKER = "---"


class SourceTables(NamedTuple):
    air_quality: pd.DataFrame
    mortality: pd.DataFrame
    poverty: pd.DataFrame
    population: pd.DataFrame


def read_table(path: Path, **kwargs) -> pd.DataFrame:
    """Read CSV / tab-delimited text as strings; fall back to latin-1 for Census files."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    sep = "\t" if path.suffix.lower() in (".txt", ".tsv") else ","
    try:
        df = pd.read_csv(path, sep=sep, dtype=str, low_memory=False, **kwargs)
    except UnicodeDecodeError:
        LOG.info("utf-8 decode failed for %s, retrying as latin-1", path.name)
        df = pd.read_csv(path, sep=sep, dtype=str, low_memory=False, encoding="latin-1", **kwargs)
    df.columns = [str(c).strip() for c in df.columns]
    return df


def require_columns(df: pd.DataFrame, columns: Iterable[str], source: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        LOG.error("%s is missing expected columns %s (found: %s)", source, missing, list(df.columns))
        raise FormatError(source, missing)


def target_state_codes(states: Sequence[str]) -> List[str]:
    """Resolve configured state names/codes; an unknown name is fatal."""
    return [state_to_code(s, source="config.states") for s in states]


def _raw_state_matches(series: pd.Series, codes: Sequence[str]) -> pd.Series:
    """True where a raw state value (full name or code) is one of `codes`."""
    names = {name for name, code in STATE_CODES.items() if code in codes}
    tokens = series.fillna("").astype(str).str.split().str.join(" ").str.lower()
    return tokens.isin(names) | tokens.str.upper().isin(codes)


def _strip_strings(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    for c in out.columns:
        out[c] = out[c].str.strip()
    return out


def load_air_quality(path: Path, states: Sequence[str]) -> pd.DataFrame:
    """EPA annual AQI by county -> county, state, pollutant day counts, AQI summaries."""
    source = f"air quality ({Path(path).name})"
    df = read_table(path)
    require_columns(df, AIR_QUALITY_COLUMNS, source)
    codes = target_state_codes(states)
    df = _strip_strings(df[list(AIR_QUALITY_COLUMNS)])
    df = df.loc[_raw_state_matches(df["State"], codes)]
    df = normalize_key_columns(df.rename(columns=AIR_QUALITY_COLUMNS), "county", "state", source)
    LOG.info("Loaded %s: %d rows for %s", source, len(df), codes)
    return df[list(AIR_QUALITY_COLUMNS.values())].reset_index(drop=True)


def load_mortality(path: Path, states: Sequence[str]) -> pd.DataFrame:
    """CDC WONDER export: 'Occurrence County' is '<County> County, XX'."""
    source = f"mortality ({Path(path).name})"
    df = read_table(path)
    require_columns(df, MORTALITY_COLUMNS, source)
    codes = target_state_codes(states)

    # drop the WONDER notes footer and any blank/total rows
    if "Notes" in df.columns:
        notes = df["Notes"].fillna("").str.strip()
        marker = notes.eq(_WONDER_NOTES_MARKER)
        if marker.any():
            df = df.loc[: marker.idxmax()].iloc[:-1]
    df = _strip_strings(df[list(MORTALITY_COLUMNS)])
    df = df.loc[df["Occurrence County"].notna() & (df["Occurrence County"] != "")]

    tail = df["Occurrence County"].str.extract(r",\s*([A-Z]{2})$", expand=False)
    df = df.loc[tail.isin(codes)]
    df = split_label_column(df.rename(columns=MORTALITY_COLUMNS), "label", source)
    LOG.info("Loaded %s: %d rows for %s", source, len(df), codes)
    return df[["county", "state", "deaths", "county_code"]].reset_index(drop=True)


def load_poverty(path: Path, states: Sequence[str], rate_column: Optional[str] = None) -> pd.DataFrame:
    """ACS poverty table: 'Geographic Area Name' is '<County> County, <State Name>'."""
    source = f"poverty ({Path(path).name})"
    rate_column = rate_column or DEFAULT_POVERTY_RATE_COLUMN
    df = read_table(path)

    # data.census.gov exports carry coded headers (NAME, S1701_C03_001E) and
    # the human-readable labels in the first data row
    if POVERTY_LABEL_COLUMN not in df.columns and len(df) > 0:
        labels = [str(v).strip() for v in df.iloc[0].tolist()]
        if POVERTY_LABEL_COLUMN in labels:
            LOG.info("%s: promoting label row to header", source)
            df = df.iloc[1:].copy()
            df.columns = labels

    require_columns(df, [POVERTY_LABEL_COLUMN, rate_column], source)
    codes = target_state_codes(states)
    df = _strip_strings(df[[POVERTY_LABEL_COLUMN, rate_column]])
    state_part = df[POVERTY_LABEL_COLUMN].str.extract(r",\s*([^,]+)$", expand=False)
    df = df.loc[_raw_state_matches(state_part, codes)]
    df = split_label_column(df, POVERTY_LABEL_COLUMN, source).rename(columns={rate_column: "poverty_rate"})
    LOG.info("Loaded %s: %d rows for %s", source, len(df), codes)
    return df[["county", "state", "poverty_rate"]].reset_index(drop=True)


def load_population(path: Path, states: Sequence[str], population_column: Optional[str] = None) -> pd.DataFrame:
    """Census county population estimates (co-est file): STNAME, CTYNAME, POPESTIMATE<year>."""
    source = f"population ({Path(path).name})"
    population_column = population_column or DEFAULT_POPULATION_COLUMN
    df = read_table(path)
    require_columns(df, [POPULATION_STATE_COLUMN, POPULATION_COUNTY_COLUMN, population_column], source)
    codes = target_state_codes(states)
    df = _strip_strings(df[[POPULATION_STATE_COLUMN, POPULATION_COUNTY_COLUMN, population_column]])
    df = df.loc[_raw_state_matches(df[POPULATION_STATE_COLUMN], codes)]
    # state total rows repeat the state name in CTYNAME
    df = df.loc[df[POPULATION_COUNTY_COLUMN] != df[POPULATION_STATE_COLUMN]]
    df = normalize_key_columns(df, POPULATION_COUNTY_COLUMN, POPULATION_STATE_COLUMN, source)
    df = df.rename(columns={population_column: "population"})
    LOG.info("Loaded %s: %d rows for %s", source, len(df), codes)
    return df[["county", "state", "population"]].reset_index(drop=True)


def load_sources(cfg: dict) -> SourceTables:
    """Load all four sources from the `data` section of the pipeline config."""
    data = cfg["data"]
    states = cfg["states"]
    return SourceTables(
        air_quality=load_air_quality(Path(data["air_quality"]), states),
        mortality=load_mortality(Path(data["mortality"]), states),
        poverty=load_poverty(Path(data["poverty"]), states, rate_column=cfg.get("poverty", {}).get("rate_column")),
        population=load_population(Path(data["population"]), states, population_column=cfg.get("population", {}).get("column")),
    )
