# queries.py
# The six aggregation queries behind the dashboard visuals.

"""
Query layer
===========

Each operation filters `ihme_data_geo` by the active selection, groups by the
dimension its visual needs and sums `val` inside DuckDB, so only a few hundred
rows ever reach Python.

- Standard mode sums one measure (Deaths, Prevalence or Incidence).
- SHS mode sums deaths / prevalence / incidence per cause and age band and
  weights them with the table in shs_formula.py.

An empty result is a normal, zero-row DataFrame with the documented columns.
Store failures raise QueryError subclasses (see fact_store.py).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import List, Optional, Sequence, Tuple

import pandas as pd

import shs_settings as CFG
from cause_taxonomy import (AGE_IDS, AGE_STANDARDIZED, ALL_AGES, ALL_SHS_CAUSES,
                            expand_cause_selection)
from fact_store import FilterError, quote_literal, sql_in_list, validate_year
from shs_formula import measure_sums_sql, shs_value_sql

log = logging.getLogger(__name__)

SEXES = ("Both", "Male", "Female")
MEASURES = ("Deaths", "Prevalence", "Incidence")
METRICS = ("Rate", "Number")
ORDERS = ("top_20", "bottom_20")
BREAKDOWNS = ("continent", "region_wb", "subregion", "income_group")
RANKING_LIMIT = 20

LOCATION_COLUMNS = ["location_name", "value"]
HISTORICAL_COLUMNS = ["year", "location_name", "value"]
HIERARCHY_COLUMNS = ["continent", "subregion", "location_name", "value"]
BREAKDOWN_COLUMNS = ["location_name", "breakdown_value", "value"]


@dataclass(frozen=True)
class Filters:
    """The active selection; hashable so query results can be memoised on it."""
    causes: Tuple[str, ...]
    sex: str = "Both"
    year: Optional[int] = None
    age_group: str = AGE_STANDARDIZED
    measure: str = "Prevalence"
    metric: str = "Rate"
    shs: bool = False

    def __post_init__(self):
        causes = (self.causes,) if isinstance(self.causes, str) else tuple(self.causes)
        if not causes or any(not isinstance(c, str) or not c.strip() for c in causes):
            raise FilterError(f"Invalid cause list: {self.causes!r}")
        object.__setattr__(self, "causes", causes)
        if self.year is not None:
            object.__setattr__(self, "year", validate_year(self.year))
        if self.sex not in SEXES:
            raise FilterError(f"Unknown sex: {self.sex!r}")
        if self.age_group not in AGE_IDS:
            raise FilterError(f"Unknown age group: {self.age_group!r}")
        if self.measure not in MEASURES:
            raise FilterError(f"Unknown measure: {self.measure!r}")
        if self.metric not in METRICS:
            raise FilterError(f"Unknown metric: {self.metric!r}")
        object.__setattr__(self, "shs", bool(self.shs))

    @classmethod
    def from_selection(cls, health_condition, shs=False, **kwargs):
        return cls(causes=expand_cause_selection(health_condition, shs), shs=shs, **kwargs)

    def query_causes(self) -> List[str]:
        """Causes that reach the WHERE clause; SHS only weighs eligible causes."""
        if self.shs:
            return [c for c in self.causes if c in ALL_SHS_CAUSES]
        return list(self.causes)


def effective_age_group(age_group, metric):
    """Age-standardisation only exists for rates; counts use All ages instead."""
    if metric == "Number" and age_group == AGE_STANDARDIZED:
        return ALL_AGES
    return age_group


def where_sql(filters: Filters, metric, with_year=True, extra=()):
    clauses = [
        f"cause_name IN ({sql_in_list(filters.query_causes())})",
        f"sex_label = {quote_literal(filters.sex)}",
        f"age_group_name = {quote_literal(effective_age_group(filters.age_group, metric))}",
        f"metric_name = {quote_literal(metric)}",
    ]
    if with_year:
        if filters.year is None:
            raise FilterError("A year is required for this query")
        clauses.append(f"year_id = {filters.year}")
    if not filters.shs:
        clauses.append(f"measure_name = {quote_literal(filters.measure)}")
    clauses.extend(extra)
    return "\n      AND ".join(clauses)


def aggregate_sql(table, filters: Filters, metric, dims: Sequence[str], order_by,
                  with_year=True, extra=(), limit=None):
    """
    SELECT <dims>, SUM(...) AS value ... GROUP BY <dims> for either mode.

    `dims` are column names from the whitelists in this module, never user text.
    """
    where = where_sql(filters, metric, with_year=with_year, extra=extra)
    cols = ", ".join(dims)
    tail = f"ORDER BY {order_by}" + (f"\n    LIMIT {int(limit)}" if limit is not None else "")

    if not filters.shs:
        return f"""
    SELECT {cols}, SUM(val) AS value
    FROM {table}
    WHERE {where}
    GROUP BY {cols}
    {tail}
    """

    return f"""
    WITH per_cause AS (
      SELECT {cols}, cause_name, age_id,
      {measure_sums_sql()}
      FROM {table}
      WHERE {where}
      GROUP BY {cols}, cause_name, age_id
    )
    SELECT {cols}, SUM({shs_value_sql()}) AS value
    FROM per_cause
    GROUP BY {cols}
    {tail}
    """


def _aggregate(store, filters, metric, dims, order_by, columns, rename=None, **kwargs):
    if not filters.query_causes():
        return pd.DataFrame(columns=columns)
    df = store.execute(aggregate_sql(store.table, filters, metric, dims, order_by, **kwargs))
    if rename:
        df = df.rename(columns=rename)
    if df.empty:
        return pd.DataFrame(columns=columns)
    return df[columns].reset_index(drop=True)


# -----------------------------
# Operations
# -----------------------------

def compute_shs(store, causes: Sequence[str], sex: str, year, age_group: str,
                metric: str = "Rate") -> pd.Series:
    """
    SHS per location for one sex / year / age band / metric, indexed by
    location_name. Causes outside the SHS list contribute nothing.
    """
    causes = tuple(c for c in causes if c)
    if not causes:
        return pd.Series(dtype=float, name="value")
    filters = Filters(causes=causes, sex=sex, year=year, age_group=age_group,
                      metric=metric, shs=True)
    df = _aggregate(store, filters, metric, ["location_name"],
                    "location_name", LOCATION_COLUMNS)
    return pd.Series(df["value"].to_numpy(dtype=float),
                     index=pd.Index(df["location_name"], name="location_name"),
                     name="value")


def map_data(store, filters: Filters) -> pd.DataFrame:
    """Per-location value for the choropleth (always per-100k rates)."""
    if filters.shs:
        shs = compute_shs(store, filters.query_causes(), filters.sex, filters.year,
                          filters.age_group, "Rate")
        if shs.empty:
            return pd.DataFrame(columns=LOCATION_COLUMNS)
        return shs.reset_index()[LOCATION_COLUMNS]
    return _aggregate(store, filters, "Rate", ["location_name"],
                      "location_name", LOCATION_COLUMNS)


def historical_data(store, filters: Filters, locations: Sequence[str]) -> pd.DataFrame:
    """Every available year for the selected locations, by location then year."""
    locations = [loc for loc in dict.fromkeys(locations or ()) if loc]
    if not locations:
        return pd.DataFrame(columns=HISTORICAL_COLUMNS)
    df = _aggregate(store, filters, filters.metric, ["year_id", "location_name"],
                    "location_name, year_id", HISTORICAL_COLUMNS,
                    rename={"year_id": "year"},
                    with_year=False,
                    extra=[f"location_name IN ({sql_in_list(locations)})"])
    if not df.empty:
        df["year"] = df["year"].astype(int)
    return df


def ranking_data(store, filters: Filters, order="top_20") -> pd.DataFrame:
    """The 20 highest (top_20) or lowest (bottom_20) locations."""
    if order not in ORDERS:
        raise FilterError(f"Unknown ranking order: {order!r}")
    direction = "DESC" if order == "top_20" else "ASC"
    return _aggregate(store, filters, filters.metric, ["location_name"],
                      f"value {direction}, location_name", LOCATION_COLUMNS,
                      limit=RANKING_LIMIT)


def hierarchical_data(store, filters: Filters) -> pd.DataFrame:
    """continent > subregion > location counts for the sunburst / treemap."""
    return _aggregate(store, filters, "Number",
                      ["continent", "subregion", "location_name"],
                      "continent, subregion, location_name", HIERARCHY_COLUMNS)


def breakdown_data(store, filters: Filters, dimension="continent") -> pd.DataFrame:
    """Location counts tagged with a categorical dimension (bubble chart)."""
    if dimension not in BREAKDOWNS:
        raise FilterError(f"Unknown breakdown dimension: {dimension!r}")
    return _aggregate(store, filters, "Number", ["location_name", dimension],
                      f"location_name, {dimension}", BREAKDOWN_COLUMNS,
                      rename={dimension: "breakdown_value"})


def table_data(store, filters: Filters) -> pd.DataFrame:
    """Per-location values in the chosen metric, rounded to 3 decimals."""
    df = _aggregate(store, filters, filters.metric, ["location_name"],
                    "location_name", LOCATION_COLUMNS)
    if not df.empty:
        df["value"] = df["value"].round(3)
    return df


# -----------------------------
# Memoised facade
# -----------------------------

class QueryLayer:
    """
    Query operations memoised on their argument tuple.

    The store is read-only at runtime, so a cached result stays valid until
    invalidate() is called (e.g. after the database file was rebuilt).
    Exceptions are not cached. Callers get copies and may mutate them.
    """

    def __init__(self, store, cache_size=CFG.QUERY_CACHE_SIZE):
        self.store = store
        cached = lru_cache(maxsize=cache_size)
        self._caches = {
            "map": cached(lambda f: map_data(store, f)),
            "historical": cached(lambda f, locs: historical_data(store, f, locs)),
            "ranking": cached(lambda f, order: ranking_data(store, f, order)),
            "hierarchical": cached(lambda f: hierarchical_data(store, f)),
            "breakdown": cached(lambda f, dim: breakdown_data(store, f, dim)),
            "table": cached(lambda f: table_data(store, f)),
        }

    def map_data(self, filters):
        return self._caches["map"](filters).copy()

    def historical_data(self, filters, locations):
        # every year is returned, so the selected year is not part of the key
        key = replace(filters, year=None)
        return self._caches["historical"](key, tuple(locations or ())).copy()

    def ranking_data(self, filters, order="top_20"):
        return self._caches["ranking"](filters, order).copy()

    def hierarchical_data(self, filters):
        return self._caches["hierarchical"](filters).copy()

    def breakdown_data(self, filters, dimension="continent"):
        return self._caches["breakdown"](filters, dimension).copy()

    def table_data(self, filters):
        return self._caches["table"](filters).copy()

    def cache_info(self):
        return {name: fn.cache_info() for name, fn in self._caches.items()}

    def invalidate(self):
        for fn in self._caches.values():
            fn.cache_clear()
        log.info("Query caches cleared")
