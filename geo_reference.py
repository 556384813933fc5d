# geo_reference.py
# Country names -> ISO codes, centroids and groupings, cached as a CSV.

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import requests

import shs_settings as CFG

log = logging.getLogger(__name__)

MAPDATA_URL = "https://code.highcharts.com/mapdata/custom/world-highres.geo.json"

GEO_COLUMNS = ["name", "iso2", "iso3", "lat", "lon",
               "continent", "subregion", "region_wb", "income_group"]

# Highcharts map properties -> our columns
_MAP_PROPS = {
    "name": "name",
    "iso-a2": "iso2",
    "iso-a3": "iso3",
    "hc-middle-lat": "lat",
    "hc-middle-lon": "lon",
    "continent": "continent",
    "subregion": "subregion",
    "region-wb": "region_wb",
}


def fetch_map_properties(url=MAPDATA_URL, timeout=60):
    """Feature properties of the Highcharts world map as a DataFrame."""
    log.info("Fetching map data %s", url)
    resp = requests.get(url, timeout=timeout)
    resp.raise_for_status()
    features = resp.json().get("features", [])
    rows = [f.get("properties", {}) for f in features]
    df = pd.DataFrame(rows)
    keep = [c for c in _MAP_PROPS if c in df.columns]
    return df[keep].rename(columns=_MAP_PROPS)


def fetch_world_bank_countries():
    """WB country table (income level, capital coordinates); aggregates dropped."""
    from pandas_datareader import wb

    c = wb.get_countries()
    c = c[c["region"] != "Aggregates"]
    c = c.rename(columns={"iso3c": "iso3", "incomeLevel": "income_group",
                          "latitude": "wb_lat", "longitude": "wb_lon"})
    return c[["iso3", "income_group", "wb_lat", "wb_lon"]]


def build_geo_reference(map_props, wb_countries):
    """
    Merge map properties with World Bank metadata.

    Map centroids win; capital coordinates fill the gaps.
    """
    geo = map_props.copy()
    for col in ("lat", "lon", "continent", "subregion", "region_wb", "iso2", "iso3"):
        if col not in geo.columns:
            geo[col] = np.nan
    geo = geo.dropna(subset=["name"])
    geo = geo.merge(wb_countries, on="iso3", how="left")
    geo["lat"] = pd.to_numeric(geo["lat"], errors="coerce").fillna(
        pd.to_numeric(geo["wb_lat"], errors="coerce"))
    geo["lon"] = pd.to_numeric(geo["lon"], errors="coerce").fillna(
        pd.to_numeric(geo["wb_lon"], errors="coerce"))
    geo = geo.drop_duplicates(subset=["name"]).sort_values("name").reset_index(drop=True)
    return geo[GEO_COLUMNS]


class GeoReference:
    """Immutable lookups over the cached reference table."""

    def __init__(self, df):
        missing = set(GEO_COLUMNS) - set(df.columns)
        if missing:
            raise ValueError(f"Missing columns in geo reference: {sorted(missing)}")
        self.df = df[GEO_COLUMNS].reset_index(drop=True)
        self._by_name = self.df.set_index("name")
        located = self.df.dropna(subset=["lat", "lon"])
        self._names = located["name"].to_numpy()
        self._lat = np.radians(located["lat"].to_numpy(dtype=float))
        self._lon = np.radians(located["lon"].to_numpy(dtype=float))

    @classmethod
    def load(cls, path=CFG.GEO_CACHE_PATH, rebuild=True):
        """Read the cached CSV; rebuild it from the remote sources if absent."""
        path = Path(path)
        if path.exists():
            return cls(pd.read_csv(path, keep_default_na=False, na_values=[""]))
        if not rebuild:
            raise FileNotFoundError(f"{path} not found")
        log.info("Geo cache %s missing, rebuilding", path)
        df = build_geo_reference(fetch_map_properties(), fetch_world_bank_countries())
        df.to_csv(path, index=False)
        log.info("Wrote %s (%d locations)", path, len(df))
        return cls(df)

    def __contains__(self, name):
        return name in self._by_name.index

    def _lookup(self, name, col):
        if name not in self._by_name.index:
            return None
        v = self._by_name.at[name, col]
        return None if pd.isna(v) else v

    def iso3_for(self, name):
        return self._lookup(name, "iso3")

    def iso2_for(self, name):
        return self._lookup(name, "iso2")

    def with_iso3(self, df, name_col="location_name"):
        """Adds an iso3 column (NaN for names the map does not know)."""
        out = df.copy()
        out["iso3"] = out[name_col].map(self._by_name["iso3"])
        return out

    def nearest_location(self, lat, lon):
        """Location whose centroid is closest (great-circle) to lat/lon."""
        try:
            lat = float(lat)
            lon = float(lon)
        except (TypeError, ValueError):
            return None
        if not np.isfinite(lat) or not np.isfinite(lon) or len(self._names) == 0:
            return None
        phi, lam = np.radians(lat), np.radians(lon)
        a = (np.sin((self._lat - phi) / 2) ** 2
             + np.cos(phi) * np.cos(self._lat) * np.sin((self._lon - lam) / 2) ** 2)
        return str(self._names[int(np.argmin(a))])
