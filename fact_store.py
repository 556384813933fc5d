# fact_store.py
# Read-only access to the IHME fact table in DuckDB: pooled connections,
# literal quoting and the typed failures the query layer surfaces.

import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from pathlib import Path

import duckdb
import pandas as pd

import shs_settings as CFG

log = logging.getLogger(__name__)

# Columns every fact row carries (see prepare_ihme_dataset.py)
FACT_COLUMNS = [
    "location_name", "location_id", "year_id", "age_group_name", "age_id",
    "sex_label", "cause_name", "measure_name", "metric_name", "val",
    "income_group", "continent", "subregion", "region_wb",
]


class QueryError(RuntimeError):
    """A query layer operation could not produce a result."""


class StoreUnavailableError(QueryError):
    """The fact store cannot be reached (missing file, pool exhausted, IO)."""


class StoreQueryError(QueryError):
    """DuckDB rejected a generated query."""


class FilterError(ValueError):
    """Filter input that must not reach a generated query."""


# -----------------------------
# Literal helpers
# -----------------------------

def quote_literal(value) -> str:
    """Render a string as a SQL literal, doubling embedded single quotes."""
    if value is None:
        raise FilterError("NULL is not a valid filter value")
    return "'" + str(value).replace("'", "''") + "'"


def sql_in_list(values) -> str:
    values = list(values)
    if not values:
        raise FilterError("IN list needs at least one value")
    return ", ".join(quote_literal(v) for v in values)


def validate_year(year) -> int:
    """Years must be real integers (bools and '2019abc' are rejected)."""
    if isinstance(year, bool):
        raise FilterError(f"Invalid year: {year!r}")
    if isinstance(year, int):
        return year
    if isinstance(year, float) and year.is_integer():
        return int(year)
    if isinstance(year, str) and year.strip().lstrip("-").isdigit():
        return int(year.strip())
    raise FilterError(f"Invalid year: {year!r}")


# -----------------------------
# Connection pool
# -----------------------------

class ConnectionPool:
    """
    Bounded pool of DuckDB cursors on one database.

    At most `max_size` connections are checked out at a time; callers wait up
    to `acquire_timeout` seconds for a free slot. Connections idle for longer
    than `idle_timeout` are closed instead of being reused.
    """

    def __init__(self, connect, max_size=4, idle_timeout=300.0, acquire_timeout=10.0):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._connect = connect
        self.max_size = max_size
        self.idle_timeout = idle_timeout
        self.acquire_timeout = acquire_timeout
        self._slots = threading.BoundedSemaphore(max_size)
        self._idle = deque()  # (connection, released_at)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def idle_count(self):
        with self._lock:
            return len(self._idle)

    def _evict_stale(self, now):
        stale = []
        with self._lock:
            while self._idle and now - self._idle[0][1] > self.idle_timeout:
                stale.append(self._idle.popleft()[0])
        for con in stale:
            log.debug("Closing idle DuckDB connection")
            con.close()

    def _checkout(self):
        self._evict_stale(time.monotonic())
        with self._lock:
            if self._idle:
                return self._idle.pop()[0]
        return self._connect()

    def _checkin(self, con):
        with self._lock:
            if not self._closed:
                self._idle.append((con, time.monotonic()))
                return
        con.close()

    @contextmanager
    def connection(self):
        if self._closed:
            raise StoreUnavailableError("Connection pool is closed")
        if not self._slots.acquire(timeout=self.acquire_timeout):
            raise StoreUnavailableError(
                f"Connection pool exhausted ({self.max_size} in use)"
            )
        try:
            try:
                con = self._checkout()
            except duckdb.Error as e:
                raise StoreUnavailableError(f"Cannot open connection: {e}") from e
            try:
                yield con
            finally:
                self._checkin(con)
        finally:
            self._slots.release()

    def close(self):
        with self._lock:
            self._closed = True
            idle = [c for c, _ in self._idle]
            self._idle.clear()
        for con in idle:
            con.close()


# -----------------------------
# Fact store
# -----------------------------

class FactStore:
    """Shared read-only view over `ihme_data_geo`."""

    def __init__(self, root, table=CFG.FACT_VIEW, pool_size=CFG.POOL_SIZE,
                 idle_timeout=CFG.POOL_IDLE_SECONDS, acquire_timeout=CFG.POOL_TIMEOUT_SECONDS):
        self._root = root
        self.table = table
        self.pool = ConnectionPool(root.cursor, max_size=pool_size,
                                   idle_timeout=idle_timeout,
                                   acquire_timeout=acquire_timeout)

    @classmethod
    def open(cls, path=CFG.DB_PATH, **kwargs):
        path = Path(path)
        if not path.exists():
            raise StoreUnavailableError(
                f"{path} not found. Build it first with prepare_ihme_dataset.py."
            )
        try:
            root = duckdb.connect(str(path), read_only=True)
        except duckdb.Error as e:
            raise StoreUnavailableError(f"Cannot open {path}: {e}") from e
        log.info("Opened fact store %s", path)
        return cls(root, **kwargs)

    @classmethod
    def from_frame(cls, df, **kwargs):
        """In-memory store over a DataFrame with the FACT_COLUMNS layout."""
        missing = set(FACT_COLUMNS) - set(df.columns)
        if missing:
            raise ValueError(f"Missing columns in fact frame: {sorted(missing)}")
        root = duckdb.connect(":memory:")
        root.register("fact_frame", df[FACT_COLUMNS])
        table = kwargs.pop("table", CFG.FACT_VIEW)
        root.execute(f"CREATE TABLE {table} AS SELECT * FROM fact_frame")
        root.unregister("fact_frame")
        return cls(root, table=table, **kwargs)

    def execute(self, sql) -> pd.DataFrame:
        """Run one query and return its rows as a DataFrame."""
        log.debug("SQL: %s", " ".join(sql.split()))
        t0 = time.perf_counter()
        with self.pool.connection() as con:
            try:
                out = con.execute(sql).df()
            except (duckdb.IOException, duckdb.ConnectionException) as e:
                log.error("Fact store unavailable: %s", e)
                raise StoreUnavailableError(str(e)) from e
            except duckdb.Error as e:
                log.error("Query failed: %s", e)
                raise StoreQueryError(str(e)) from e
        log.debug("%d rows in %.1f ms", len(out), (time.perf_counter() - t0) * 1000)
        return out

    # ---- option lists for the controls ----

    def distinct_values(self, column):
        if column not in FACT_COLUMNS:
            raise FilterError(f"Unknown column: {column!r}")
        df = self.execute(
            f"SELECT DISTINCT {column} FROM {self.table} "
            f"WHERE {column} IS NOT NULL ORDER BY {column}"
        )
        return df[column].tolist()

    def max_year(self):
        df = self.execute(f"SELECT MAX(year_id) AS y FROM {self.table}")
        y = df["y"].iloc[0] if not df.empty else None
        return None if pd.isna(y) else int(y)

    def close(self):
        self.pool.close()
        self._root.close()
