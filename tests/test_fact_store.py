import threading

import duckdb
import pytest

from fact_store import (ConnectionPool, FactStore, FilterError, StoreQueryError,
                        StoreUnavailableError, quote_literal, sql_in_list, validate_year)


def test_quote_literal_doubles_single_quotes():
    assert quote_literal("O'Brienland") == "'O''Brienland'"
    assert quote_literal("plain") == "'plain'"
    with pytest.raises(FilterError):
        quote_literal(None)


def test_sql_in_list():
    assert sql_in_list(["a", "b'c"]) == "'a', 'b''c'"
    with pytest.raises(FilterError):
        sql_in_list([])


@pytest.mark.parametrize("value,expected", [(2019, 2019), (2019.0, 2019), ("2019", 2019), (" 1990 ", 1990)])
def test_validate_year_accepts_integers(value, expected):
    assert validate_year(value) == expected


@pytest.mark.parametrize("value", [True, 2019.5, "2019abc", "", None, [2019]])
def test_validate_year_rejects_other_input(value):
    with pytest.raises(FilterError):
        validate_year(value)


# -----------------------------
# Pool
# -----------------------------

class FakeConnection:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


def test_pool_reuses_released_connections():
    made = []

    def connect():
        made.append(FakeConnection())
        return made[-1]

    pool = ConnectionPool(connect, max_size=2)
    with pool.connection() as a:
        pass
    with pool.connection() as b:
        pass
    assert a is b
    assert len(made) == 1
    assert pool.idle_count == 1


def test_pool_exhaustion_raises_store_unavailable():
    pool = ConnectionPool(FakeConnection, max_size=1, acquire_timeout=0.05)
    with pool.connection():
        with pytest.raises(StoreUnavailableError, match="exhausted"):
            with pool.connection():
                pass
    # the slot is free again
    with pool.connection():
        pass


def test_pool_waits_for_a_released_slot():
    pool = ConnectionPool(FakeConnection, max_size=1, acquire_timeout=5)
    held = threading.Event()
    release = threading.Event()

    def hold():
        with pool.connection():
            held.set()
            release.wait(5)

    t = threading.Thread(target=hold)
    t.start()
    held.wait(5)
    release.set()
    with pool.connection() as con:
        assert isinstance(con, FakeConnection)
    t.join()


def test_pool_closes_idle_connections():
    pool = ConnectionPool(FakeConnection, max_size=2, idle_timeout=0.0)
    with pool.connection() as first:
        pass
    # any positive idle time is too long
    pool._evict_stale(float("inf"))
    assert first.closed
    assert pool.idle_count == 0
    with pool.connection() as second:
        assert second is not first


def test_closed_pool_refuses_connections():
    pool = ConnectionPool(FakeConnection, max_size=1)
    with pool.connection() as con:
        pass
    pool.close()
    assert con.closed
    with pytest.raises(StoreUnavailableError):
        with pool.connection():
            pass


def test_pool_size_must_be_positive():
    with pytest.raises(ValueError):
        ConnectionPool(FakeConnection, max_size=0)


# -----------------------------
# Store
# -----------------------------

def test_open_missing_database(tmp_path):
    with pytest.raises(StoreUnavailableError, match="not found"):
        FactStore.open(tmp_path / "missing.duckdb")


def test_open_existing_database(tmp_path, fact_frame):
    path = tmp_path / "facts.duckdb"
    con = duckdb.connect(str(path))
    con.register("f", fact_frame)
    con.execute("CREATE TABLE ihme_data_geo AS SELECT * FROM f")
    con.close()

    store = FactStore.open(path)
    try:
        assert store.max_year() == 2019
    finally:
        store.close()


def test_bad_sql_raises_store_query_error(store):
    with pytest.raises(StoreQueryError):
        store.execute("SELECT no_such_column FROM ihme_data_geo")


def test_query_errors_share_a_base_class():
    from fact_store import QueryError
    assert issubclass(StoreQueryError, QueryError)
    assert issubclass(StoreUnavailableError, QueryError)
    assert not issubclass(FilterError, QueryError)


def test_distinct_values_and_max_year(store):
    assert store.distinct_values("sex_label") == ["Both"]
    assert store.distinct_values("year_id") == [2000, 2010, 2019]
    assert store.max_year() == 2019


def test_distinct_values_only_for_known_columns(store):
    with pytest.raises(FilterError):
        store.distinct_values("1; DROP TABLE ihme_data_geo")


def test_from_frame_requires_fact_columns(fact_frame):
    with pytest.raises(ValueError, match="Missing columns"):
        FactStore.from_frame(fact_frame.drop(columns=["val"]))


def test_store_serves_concurrent_readers(store):
    results, errors = [], []

    def read():
        try:
            results.append(len(store.execute("SELECT * FROM ihme_data_geo")))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=read) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert not errors
    assert len(set(results)) == 1
