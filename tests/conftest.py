import copy
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from src.utils.config import DEFAULT_CONFIG

STATES = {"California": "CA", "Texas": "TX"}


def county_frame(n_per_state: int = 30, seed: int = 7) -> pd.DataFrame:
    """Canonical per-county values the raw files are generated from."""
    rng = np.random.default_rng(seed)
    rows = []
    for state, code in STATES.items():
        prefix = "Pacific" if code == "CA" else "Lone"
        for i in range(n_per_state):
            median_aqi = float(rng.integers(20, 80))
            poverty = round(float(rng.uniform(6, 25)), 1)
            population = int(rng.integers(20_000, 2_000_000))
            rate = 8 + 0.05 * median_aqi + 0.4 * poverty + (2.0 if code == "TX" else 0.0) + rng.normal(0, 1.0)
            rows.append({
                "county": f"{prefix} {i}",
                "state_name": state,
                "state": code,
                "days_pm25": int(rng.integers(0, 200)),
                "days_ozone": int(rng.integers(0, 200)),
                "days_no2": int(rng.integers(0, 30)),
                "days_co": int(rng.integers(0, 10)),
                "max_aqi": int(median_aqi + rng.integers(30, 150)),
                "median_aqi": int(median_aqi),
                "poverty_rate": poverty,
                "population": population,
                "deaths": max(1, int(round(population * rate / 100000))),
            })
    return pd.DataFrame(rows)


def air_quality_raw(counties: pd.DataFrame) -> pd.DataFrame:
    df = pd.DataFrame({
        "State": counties["state_name"],
        "County": counties["county"],
        "Year": 2022,
        "Days with AQI": 365,
        "Days CO": counties["days_co"],
        "Days NO2": counties["days_no2"],
        "Days Ozone": counties["days_ozone"],
        "Days PM2.5": counties["days_pm25"],
        "Days PM10": 0,
        "Max AQI": counties["max_aqi"],
        "Median AQI": counties["median_aqi"],
    })
    extra = pd.DataFrame([
        {"State": "Country Of Mexico", "County": "Tijuana", "Year": 2022, "Days with AQI": 300,
         "Days CO": 0, "Days NO2": 1, "Days Ozone": 10, "Days PM2.5": 200, "Days PM10": 5,
         "Max AQI": 180, "Median AQI": 60},
        {"State": "Alabama", "County": "Baldwin", "Year": 2022, "Days with AQI": 280,
         "Days CO": 0, "Days NO2": 0, "Days Ozone": 150, "Days PM2.5": 120, "Days PM10": 0,
         "Max AQI": 90, "Median AQI": 35},
    ])
    return pd.concat([df, extra], ignore_index=True)


def write_mortality(counties: pd.DataFrame, path: Path) -> Path:
    """CDC WONDER style tab-delimited export with a Total row and a notes footer."""
    lines = ["\t".join(['"Notes"', '"Occurrence County"', '"Occurrence County Code"', '"Deaths"'])]
    for i, r in enumerate(counties.itertuples()):
        code = f"{6 if r.state == 'CA' else 48:02d}{2 * i + 1:03d}"
        lines.append(f'\t"{r.county} County, {r.state}"\t"{code}"\t{r.deaths}')
    lines.append('"Total"\t\t\t999999')
    lines.append('\t"Baldwin County, AL"\t"01003"\t12')
    lines.append('"---"')
    lines.append('"Dataset: Multiple Cause of Death, 2018-2022, Single Race"')
    lines.append('"Query Parameters:"')
    path.write_text("\n".join(lines) + "\n", encoding="utf8")
    return path


def poverty_raw(counties: pd.DataFrame) -> pd.DataFrame:
    """data.census.gov export: coded header, label row, then data."""
    label_row = {"GEO_ID": "Geography", "NAME": "Geographic Area Name",
                 "S1701_C03_001E": "Estimate!!Percent below poverty level!!Population for whom poverty status is determined"}
    rows = [label_row]
    for i, r in enumerate(counties.itertuples()):
        rows.append({"GEO_ID": f"0500000US{i:05d}", "NAME": f"{r.county} County, {r.state_name}",
                     "S1701_C03_001E": r.poverty_rate})
    return pd.DataFrame(rows, columns=["GEO_ID", "NAME", "S1701_C03_001E"])


def population_raw(counties: pd.DataFrame) -> pd.DataFrame:
    rows = []
    for state in STATES:
        sub = counties[counties["state_name"] == state]
        rows.append({"SUMLEV": "040", "STNAME": state, "CTYNAME": state, "POPESTIMATE2022": int(sub["population"].sum())})
        for r in sub.itertuples():
            rows.append({"SUMLEV": "050", "STNAME": state, "CTYNAME": f"{r.county} County", "POPESTIMATE2022": r.population})
    rows.append({"SUMLEV": "050", "STNAME": "Alabama", "CTYNAME": "Baldwin County", "POPESTIMATE2022": 246435})
    return pd.DataFrame(rows)


def write_sources(root: Path, counties: pd.DataFrame, poverty_override=None, population_override=None) -> dict:
    """Write all four raw files under root and return the `data` config section."""
    root.mkdir(parents=True, exist_ok=True)
    aq_path = root / "annual_aqi_by_county_2022.csv"
    air_quality_raw(counties).to_csv(aq_path, index=False)
    mort_path = write_mortality(counties, root / "suicide_deaths_by_county_2022.txt")
    pov = poverty_raw(counties)
    if poverty_override is not None:
        pov = poverty_override(pov)
    pov_path = root / "acs_s1701_poverty_2022.csv"
    pov.to_csv(pov_path, index=False)
    pop = population_raw(counties)
    if population_override is not None:
        pop = population_override(pop)
    pop_path = root / "co-est2022-alldata.csv"
    pop.to_csv(pop_path, index=False)
    return {"air_quality": str(aq_path), "mortality": str(mort_path),
            "poverty": str(pov_path), "population": str(pop_path)}


@pytest.fixture
def counties():
    return county_frame()


@pytest.fixture
def source_paths(tmp_path, counties):
    return write_sources(tmp_path / "raw", counties)


@pytest.fixture
def pipeline_config(source_paths, tmp_path):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["data"] = source_paths
    cfg["outputs"] = {"reports_dir": str(tmp_path / "reports"), "models_dir": str(tmp_path / "models")}
    return cfg


@pytest.fixture
def write_raw(tmp_path):
    """Factory: write_raw(counties, poverty_override=..., population_override=...) -> data paths."""
    def _write(counties, name="raw", **overrides):
        return write_sources(tmp_path / name, counties, **overrides)
    return _write
