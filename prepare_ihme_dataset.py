# prepare_ihme_dataset.py
# Build ihme_data.duckdb from IHME GBD results-tool CSV exports.
#
#   python prepare_ihme_dataset.py IHME-GBD_2019_DATA-*.csv \
#       --population wpp_population.csv --out ihme_data.duckdb

import argparse
import logging
from pathlib import Path

import duckdb
import numpy as np
import pandas as pd

import shs_settings as CFG
from cause_taxonomy import AGE_IDS
from geo_reference import GeoReference

log = logging.getLogger(__name__)

RATE_PER = 100_000

# GBD export column names differ between tool versions
COLUMN_ALIASES = {
    "sex_name": "sex_label",
    "sex": "sex_label",
    "age_name": "age_group_name",
    "age": "age_group_name",
    "year": "year_id",
    "measure": "measure_name",
    "metric": "metric_name",
    "cause": "cause_name",
    "location": "location_name",
    "value": "val",
}

FACT_KEY = ["location_name", "year_id", "age_group_name", "sex_label",
            "cause_name", "measure_name", "metric_name"]
FACT_TABLE_COLUMNS = ["location_name", "location_id", "year_id", "age_group_name", "age_id",
                      "sex_label", "cause_name", "measure_name", "metric_name", "val"]


def normalize_export(df):
    """Rename to our schema, coerce types and fill age_id from the band name."""
    df = df.rename(columns={k: v for k, v in COLUMN_ALIASES.items()
                            if k in df.columns and v not in df.columns})
    need = {"location_name", "year_id", "age_group_name", "sex_label",
            "cause_name", "measure_name", "metric_name", "val"}
    missing = need - set(df.columns)
    if missing:
        raise ValueError(f"Missing columns in export: {sorted(missing)}")

    if "age_id" not in df.columns:
        df["age_id"] = df["age_group_name"].map(AGE_IDS)
    if "location_id" not in df.columns:
        df["location_id"] = pd.NA

    df["year_id"] = pd.to_numeric(df["year_id"], errors="coerce").astype("Int64")
    df["age_id"] = pd.to_numeric(df["age_id"], errors="coerce").astype("Int64")
    df["location_id"] = pd.to_numeric(df["location_id"], errors="coerce").astype("Int64")
    df["val"] = pd.to_numeric(df["val"], errors="coerce")
    df = df.dropna(subset=["year_id", "val"])
    return df[FACT_TABLE_COLUMNS]


def derive_rates(df, population):
    """
    Rate rows (per 100,000) from Number rows and a population table with
    location_name, year_id, sex_label, age_group_name, population.
    A population of 0 gives a rate of 0. Existing Rate rows are kept.
    """
    keys = ["location_name", "year_id", "sex_label", "age_group_name"]
    pop = population[keys + ["population"]].copy()
    pop["year_id"] = pd.to_numeric(pop["year_id"], errors="coerce").astype("Int64")
    pop = pop.groupby(keys, as_index=False)["population"].sum()

    counts = df[df["metric_name"] == "Number"].merge(pop, on=keys, how="inner")
    if counts.empty:
        return df
    p = counts["population"].to_numpy(dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        rate = np.where(p == 0, 0.0, counts["val"].to_numpy(dtype=float) / p * RATE_PER)
    counts["val"] = rate
    counts["metric_name"] = "Rate"
    counts = counts[FACT_TABLE_COLUMNS]

    out = pd.concat([df, counts], ignore_index=True)
    # keep an exported Rate over a derived one
    return out.drop_duplicates(subset=FACT_KEY, keep="first").reset_index(drop=True)


def enforce_unique(df):
    dup = df.duplicated(subset=FACT_KEY, keep="first")
    if dup.any():
        log.warning("Dropping %d duplicate observations", int(dup.sum()))
    return df[~dup].reset_index(drop=True)


def write_database(facts, geo, out_path):
    """(Re)create ihme_data, geo_reference and the joined ihme_data_geo view."""
    out_path = Path(out_path)
    tmp = out_path.with_suffix(out_path.suffix + ".tmp")
    if tmp.exists():
        tmp.unlink()
    con = duckdb.connect(str(tmp))
    try:
        con.register("facts_df", facts)
        con.register("geo_df", geo)
        con.execute("CREATE TABLE ihme_data AS SELECT * FROM facts_df")
        con.execute("CREATE TABLE geo_reference AS SELECT * FROM geo_df")
        con.execute(f"""
            CREATE VIEW {CFG.FACT_VIEW} AS
            SELECT f.*, g.income_group, g.continent, g.subregion, g.region_wb
            FROM ihme_data f
            LEFT JOIN geo_reference g ON f.location_name = g.name
        """)
        n = con.execute("SELECT COUNT(*) FROM ihme_data").fetchone()[0]
    finally:
        con.close()
    tmp.replace(out_path)
    return n


def main(argv=None):
    parser = argparse.ArgumentParser(description="Build the SHS DuckDB database from IHME exports.")
    parser.add_argument("exports", nargs="+", help="IHME GBD results CSV files")
    parser.add_argument("--population", help="CSV used to derive per-100k rates")
    parser.add_argument("--geo-cache", default=str(CFG.GEO_CACHE_PATH))
    parser.add_argument("--out", default=str(CFG.DB_PATH))
    args = parser.parse_args(argv)

    logging.basicConfig(level=CFG.LOG_LEVEL,
                        format="%(asctime)s | %(levelname)s | %(message)s",
                        datefmt="%H:%M:%S")

    frames = []
    for path in args.exports:
        log.info("Reading %s", path)
        frames.append(normalize_export(pd.read_csv(path)))
    if not frames:
        raise RuntimeError("No exports given.")
    facts = pd.concat(frames, ignore_index=True)

    if args.population:
        log.info("Deriving rates from %s", args.population)
        facts = derive_rates(facts, pd.read_csv(args.population))

    facts = enforce_unique(facts)

    geo = GeoReference.load(args.geo_cache)
    unmatched = sorted(set(facts["location_name"]) - set(geo.df["name"]))
    if unmatched:
        log.warning("Locations without geo reference: %s", ", ".join(unmatched))

    n = write_database(facts, geo.df, args.out)
    log.info("Wrote %s: %d observations, %d locations, years %s-%s",
             args.out, n, facts["location_name"].nunique(),
             facts["year_id"].min(), facts["year_id"].max())


if __name__ == "__main__":
    main()
