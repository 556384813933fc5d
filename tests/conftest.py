import pandas as pd
import pytest

from cause_taxonomy import AGE_IDS
from fact_store import FACT_COLUMNS, FactStore

GEO = {
    "Numberland": ("Europe", "Western Europe", "Europe & Central Asia", "High income"),
    "Testonia": ("Africa", "Eastern Africa", "Sub-Saharan Africa", "Low income"),
    "O'Brienland": ("Oceania", "Melanesia", "East Asia & Pacific", "Lower middle income"),
}


def obs(location, cause, measure, val, year=2019, age="All ages", sex="Both",
        metric="Number", location_id=None):
    continent, subregion, region, income = GEO.get(
        location, ("Asia", "Southern Asia", "South Asia", "Lower middle income"))
    return {
        "location_name": location,
        "location_id": location_id if location_id is not None else sum(map(ord, location)),
        "year_id": year,
        "age_group_name": age,
        "age_id": AGE_IDS[age],
        "sex_label": sex,
        "cause_name": cause,
        "measure_name": measure,
        "metric_name": metric,
        "val": float(val),
        "income_group": income,
        "continent": continent,
        "subregion": subregion,
        "region_wb": region,
    }


def frame(rows):
    return pd.DataFrame(rows, columns=FACT_COLUMNS)


def ranking_rows():
    """25 locations with distinct Diabetes prevalence rates in 2019."""
    return [
        obs(f"Country {i:02d}", "Diabetes mellitus", "Prevalence", 10.0 * (i + 1),
            age="Age-standardized", metric="Rate")
        for i in range(25)
    ]


def base_rows():
    rows = [
        # the worked HIV/AIDS example
        obs("Numberland", "HIV/AIDS", "Prevalence", 300),
        obs("Numberland", "HIV/AIDS", "Prevalence", 30, metric="Rate"),
        obs("Numberland", "HIV/AIDS", "Deaths", 12),
        # time series for two countries
        obs("Numberland", "Ischemic stroke", "Deaths", 90, year=2000),
        obs("Numberland", "Ischemic stroke", "Deaths", 180, year=2010),
        obs("Numberland", "Ischemic stroke", "Deaths", 270, year=2019),
        obs("Testonia", "Ischemic stroke", "Deaths", 9, year=2000),
        obs("Testonia", "Ischemic stroke", "Deaths", 18, year=2010),
        obs("Testonia", "Ischemic stroke", "Deaths", 27, year=2019),
        obs("Testonia", "Ischemic stroke", "Deaths", 1.23456, year=2019, metric="Rate"),
        obs("Testonia", "Ischemic stroke", "Deaths", 3, year=2019, age="Age-standardized", metric="Rate"),
        obs("O'Brienland", "Tetanus", "Deaths", 60),
    ]
    return rows + ranking_rows()


@pytest.fixture
def fact_frame():
    return frame(base_rows())


@pytest.fixture
def store(fact_frame):
    s = FactStore.from_frame(fact_frame, pool_size=2, acquire_timeout=0.5)
    yield s
    s.close()
