# src/data/normalize.py
"""
County / state key harmonization shared by all four sources.

Every source spells the join key differently:
  - AQI:        State="California", County="Sacramento"
  - mortality:  "Sacramento County, CA"
  - poverty:    "Sacramento County, California"
  - population: STNAME="California", CTYNAME="Sacramento County"

All of them are reduced to NormalizedKey(county="Sacramento", state="CA").
Normalization is idempotent.
"""
from __future__ import annotations

import re
from typing import NamedTuple, Optional, Tuple

import pandas as pd

from src.data.errors import FormatError, UnknownStateError

STATE_CODES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "hawaii": "HI",
    "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME",
    "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM",
    "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI",
    "south carolina": "SC", "south dakota": "SD", "tennessee": "TN", "texas": "TX",
    "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}
_KNOWN_CODES = frozenset(STATE_CODES.values())

_COUNTY_SUFFIX = re.compile(r"[\s,.]*\bCounty\b[\s,.]*$")
_LABEL = re.compile(r"^(?P<county>.*\S)\s*,\s*(?P<state>[^,]+?)\s*$")


class NormalizedKey(NamedTuple):
    county: str
    state: str


def state_to_code(value: object, source: Optional[str] = None) -> str:
    """Map a full state name (or an existing two-letter code) to its code."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        raise UnknownStateError(value, source)
    s = " ".join(str(value).split())
    if s.upper() in _KNOWN_CODES and len(s) == 2:
        return s.upper()
    code = STATE_CODES.get(s.lower())
    if code is None:
        raise UnknownStateError(value, source)
    return code


def strip_county_suffix(name: object) -> str:
    """Drop a trailing literal 'County' token (and stray punctuation)."""
    s = " ".join(str(name).split())
    return _COUNTY_SUFFIX.sub("", s).strip()


def split_county_state(label: object, source: Optional[str] = None) -> Tuple[str, str]:
    """
    Split '<County> County, XX' (or '<County> County, <State Name>') into
    (county, state_code).
    """
    m = _LABEL.match(" ".join(str(label).split()))
    if not m:
        raise FormatError(source or "county label", ["<County>, <State>"], detail=f"cannot parse {label!r}")
    state = state_to_code(m.group("state"), source)
    return strip_county_suffix(m.group("county")), state


def normalize_key(county: object, state: object, source: Optional[str] = None) -> NormalizedKey:
    return NormalizedKey(strip_county_suffix(county), state_to_code(state, source))


def normalize_key_columns(df: pd.DataFrame, county_col: str, state_col: str, source: Optional[str] = None) -> pd.DataFrame:
    """Return a copy of df with canonical `county` and `state` columns."""
    out = df.copy()
    states = out[state_col].map(lambda v: state_to_code(v, source))
    counties = out[county_col].map(strip_county_suffix)
    out = out.drop(columns=[c for c in (county_col, state_col) if c not in ("county", "state")])
    out["county"] = counties
    out["state"] = states
    return out


def split_label_column(df: pd.DataFrame, label_col: str, source: Optional[str] = None) -> pd.DataFrame:
    """Return a copy of df with `county`/`state` parsed out of a combined label column."""
    out = df.copy()
    parts = out[label_col].map(lambda v: split_county_state(v, source))
    out["county"] = parts.map(lambda p: p[0])
    out["state"] = parts.map(lambda p: p[1])
    return out.drop(columns=[label_col])
