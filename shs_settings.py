# shs_settings.py
# Dashboard settings hook: labels, visual defaults and deployment overrides.
# Values on the right hand side can be changed freely; environment variables
# (SHS_*) win over the literals below.

import os
from pathlib import Path


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name, default):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


APP_TITLE = "Serious Health-Related Suffering"

# ----- Data locations -----
DB_PATH = Path(os.environ.get("SHS_DB_PATH", "ihme_data.duckdb"))
GEO_CACHE_PATH = Path(os.environ.get("SHS_GEO_CACHE", "geo_reference.csv"))
FACT_VIEW = "ihme_data_geo"

# ----- Store / cache sizing -----
POOL_SIZE = _env_int("SHS_POOL_SIZE", 4)
POOL_IDLE_SECONDS = _env_float("SHS_POOL_IDLE_SECONDS", 300.0)
POOL_TIMEOUT_SECONDS = _env_float("SHS_POOL_TIMEOUT_SECONDS", 10.0)
QUERY_CACHE_SIZE = _env_int("SHS_QUERY_CACHE_SIZE", 256)

# ----- Server -----
LOG_LEVEL = os.environ.get("SHS_LOG_LEVEL", "INFO").upper()
DEBUG = os.environ.get("SHS_DEBUG", "0") not in ("0", "", "false", "False")
HOST = os.environ.get("SHS_HOST", "127.0.0.1")
PORT = _env_int("SHS_PORT", 8050)

# Used for the historical chart until the visitor clicks a country (or the
# browser reports a position we can map to one).
DEFAULT_LOCATION = os.environ.get("SHS_DEFAULT_LOCATION", "Germany")

# Friendly labels for the UI
LABELS = {
    "Deaths": "Deaths",
    "Prevalence": "Prevalence",
    "Incidence": "Incidence",
    "SHS": "SHS",
    "Rate": "Cases per 100,000 people",
    "Number": "Absolute number of cases",
    "continent": "Continents",
    "region_wb": "Regions",
    "subregion": "Subregions",
    "income_group": "Income",
}

# Default visualisation settings
DEFAULT_COLOR_SCALE = "Viridis"
DEFAULT_MAP_SCALE = "linear"      # "linear" or "log"
MAP_PROJECTION = "natural earth"  # Try: "orthographic", "equirectangular", "mercator", "miller"

COLOR_SCALES = [
    "Viridis", "Plasma", "Cividis", "Turbo", "Inferno", "Magma",
    "Blues", "Greens", "Oranges", "Purples", "Reds", "Greys",
    "YlOrRd", "YlGnBu", "PuBuGn",
]

# Legend order for the income breakdown (low to high)
INCOME_ORDER = [
    "Low income",
    "Lower middle income",
    "Upper middle income",
    "High income",
]
