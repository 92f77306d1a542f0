import logging

import pandas as pd
import pytest

from src.data.loaders import load_sources
from src.data.merge_counties import conflated_counties, merge_sources, merge_tables


def _tables(rows):
    """rows: list of (county, state) keys present in every source."""
    air = pd.DataFrame([{"county": c, "state": s, "median_aqi": "40"} for c, s in rows])
    mort = pd.DataFrame([{"county": c, "state": s, "deaths": "10"} for c, s in rows])
    pov = pd.DataFrame([{"county": c, "state": s, "poverty_rate": "12.0"} for c, s in rows])
    pop = pd.DataFrame([{"county": c, "state": s, "population": "100000"} for c, s in rows])
    return air, mort, pov, pop


def test_county_missing_from_poverty_is_dropped():
    air, mort, pov, pop = _tables([("Alameda", "CA"), ("Kern", "CA"), ("Harris", "TX")])
    pov = pov[pov["county"] != "Kern"]
    report = {}
    merged = merge_sources(air, mort, pov, pop, report=report)
    assert set(merged["county"]) == {"Alameda", "Harris"}
    assert report["poverty_out"] == 2
    assert report["merged_rows"] == 2


@pytest.mark.parametrize("source", ["air_quality", "mortality", "poverty", "population"])
@pytest.mark.parametrize("first_join_on", ["county_state", "county"])
def test_county_missing_from_any_source_is_dropped(source, first_join_on):
    tables = dict(zip(["air_quality", "mortality", "poverty", "population"],
                      _tables([("Alameda", "CA"), ("Kern", "CA"), ("Harris", "TX")])))
    t = tables[source]
    tables[source] = t[~((t["county"] == "Kern") & (t["state"] == "CA"))]
    merged = merge_sources(**tables, first_join_on=first_join_on)
    assert "Kern" not in set(merged["county"])
    assert set(zip(merged["county"], merged["state"])) == {("Alameda", "CA"), ("Harris", "TX")}


def test_merged_row_carries_every_source():
    air, mort, pov, pop = _tables([("Alameda", "CA"), ("Harris", "TX")])
    merged = merge_sources(air, mort, pov, pop)
    assert list(merged.columns[:2]) == ["county", "state"]
    for col in ("median_aqi", "deaths", "poverty_rate", "population"):
        assert merged[col].notna().all()
    assert list(merged["county"]) == ["Alameda", "Harris"]


def test_shared_county_name_kept_apart_by_default():
    air, mort, pov, pop = _tables([("Orange", "CA"), ("Orange", "TX"), ("Kern", "CA")])
    merged = merge_sources(air, mort, pov, pop)
    assert len(merged) == 3
    assert sorted(merged.loc[merged["county"] == "Orange", "state"]) == ["CA", "TX"]


def test_county_only_join_conflates_and_warns(caplog):
    air, mort, pov, pop = _tables([("Orange", "CA"), ("Orange", "TX"), ("Kern", "CA")])
    with caplog.at_level(logging.WARNING, logger="src.data.merge_counties"):
        merged = merge_sources(air, mort, pov, pop, first_join_on="county")
    # each Orange air row matches both Orange mortality rows
    assert (merged["county"] == "Orange").sum() == 4
    assert "conflates" in caplog.text
    assert "Orange" in caplog.text


def test_conflated_counties():
    air, mort, _, _ = _tables([("Orange", "CA"), ("Orange", "TX"), ("Kern", "CA")])
    assert conflated_counties(air, mort) == ["Orange"]


def test_invalid_join_mode():
    air, mort, pov, pop = _tables([("Kern", "CA")])
    with pytest.raises(ValueError):
        merge_sources(air, mort, pov, pop, first_join_on="fips")


def test_duplicate_keys_rejected():
    air, mort, pov, pop = _tables([("Kern", "CA")])
    pop = pd.concat([pop, pop], ignore_index=True)
    with pytest.raises(ValueError, match="Duplicate"):
        merge_sources(air, mort, pov, pop)


def test_inputs_not_mutated():
    air, mort, pov, pop = _tables([("Alameda", "CA"), ("Harris", "TX")])
    before = [t.copy() for t in (air, mort, pov, pop)]
    merge_sources(air, mort, pov, pop)
    for original, after in zip(before, (air, mort, pov, pop)):
        pd.testing.assert_frame_equal(original, after)


def test_merge_tables_from_raw_files(pipeline_config, counties):
    merged, report = merge_tables(load_sources(pipeline_config))
    assert len(merged) == len(counties)
    assert report["merged_rows"] == len(counties)
    assert not merged.duplicated(subset=["county", "state"]).any()
