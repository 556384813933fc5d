import numpy as np
import pandas as pd
import pytest

import geo_reference
from geo_reference import GEO_COLUMNS, GeoReference, build_geo_reference


def map_props():
    return pd.DataFrame([
        {"name": "Germany", "iso2": "DE", "iso3": "DEU", "lat": 51.1, "lon": 10.4,
         "continent": "Europe", "subregion": "Western Europe",
         "region_wb": "Europe & Central Asia"},
        {"name": "Namibia", "iso2": "NA", "iso3": "NAM", "lat": np.nan, "lon": np.nan,
         "continent": "Africa", "subregion": "Southern Africa",
         "region_wb": "Sub-Saharan Africa"},
        {"name": "Brazil", "iso2": "BR", "iso3": "BRA", "lat": -10.8, "lon": -52.9,
         "continent": "South America", "subregion": "South America",
         "region_wb": "Latin America & Caribbean"},
        {"name": "Germany", "iso2": "DE", "iso3": "DEU", "lat": 0.0, "lon": 0.0,
         "continent": "Europe", "subregion": "Western Europe",
         "region_wb": "Europe & Central Asia"},
    ])


def wb_countries():
    return pd.DataFrame([
        {"iso3": "DEU", "income_group": "High income", "wb_lat": 52.5, "wb_lon": 13.4},
        {"iso3": "NAM", "income_group": "Upper middle income", "wb_lat": -22.6, "wb_lon": 17.1},
    ])


@pytest.fixture
def geo():
    return GeoReference(build_geo_reference(map_props(), wb_countries()))


def test_build_merges_and_fills_capital_coordinates():
    df = build_geo_reference(map_props(), wb_countries())
    assert list(df.columns) == GEO_COLUMNS
    assert df["name"].tolist() == ["Brazil", "Germany", "Namibia"]
    namibia = df.set_index("name").loc["Namibia"]
    assert (namibia["lat"], namibia["lon"]) == (-22.6, 17.1)
    assert namibia["income_group"] == "Upper middle income"
    germany = df.set_index("name").loc["Germany"]
    # the first map feature wins; the map centroid beats the capital
    assert germany["lat"] == 51.1
    assert pd.isna(df.set_index("name").loc["Brazil", "income_group"])


def test_lookups(geo):
    assert "Germany" in geo
    assert "Atlantis" not in geo
    assert geo.iso3_for("Germany") == "DEU"
    assert geo.iso2_for("Namibia") == "NA"
    assert geo.iso3_for("Atlantis") is None
    out = geo.with_iso3(pd.DataFrame({"location_name": ["Brazil", "Atlantis"]}))
    assert out["iso3"].iloc[0] == "BRA"
    assert pd.isna(out["iso3"].iloc[1])


def test_cache_round_trip_keeps_namibia_code(geo, tmp_path):
    path = tmp_path / "geo.csv"
    geo.df.to_csv(path, index=False)
    loaded = GeoReference.load(path, rebuild=False)
    assert loaded.iso2_for("Namibia") == "NA"
    assert loaded.iso3_for("Namibia") == "NAM"


def test_load_without_cache_and_rebuild_disabled(tmp_path):
    with pytest.raises(FileNotFoundError):
        GeoReference.load(tmp_path / "geo.csv", rebuild=False)


def test_load_rebuilds_and_writes_cache(tmp_path, monkeypatch):
    monkeypatch.setattr(geo_reference, "fetch_map_properties", map_props)
    monkeypatch.setattr(geo_reference, "fetch_world_bank_countries", wb_countries)
    path = tmp_path / "geo.csv"
    geo = GeoReference.load(path)
    assert path.exists()
    assert geo.iso3_for("Germany") == "DEU"
    assert GeoReference.load(path).df["name"].tolist() == ["Brazil", "Germany", "Namibia"]


def test_missing_columns_are_rejected():
    with pytest.raises(ValueError, match="Missing columns"):
        GeoReference(pd.DataFrame({"name": ["Germany"]}))


@pytest.mark.parametrize("lat,lon,expected", [
    (48.1, 11.6, "Germany"),       # Munich
    (-22.5, 17.0, "Namibia"),      # Windhoek
    (-15.8, -47.9, "Brazil"),      # Brasilia
])
def test_nearest_location(geo, lat, lon, expected):
    assert geo.nearest_location(lat, lon) == expected


@pytest.mark.parametrize("lat,lon", [(None, 1), ("north", 1), (float("nan"), 0)])
def test_nearest_location_invalid_input(geo, lat, lon):
    assert geo.nearest_location(lat, lon) is None
