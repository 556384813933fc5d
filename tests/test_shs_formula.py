import pytest

from cause_taxonomy import ALL_SHS_CAUSES
from conftest import frame, obs
from fact_store import FactStore
from queries import compute_shs
from shs_formula import COEFFICIENTS, shs_contribution, shs_value_sql

# One synthetic cell per cause: deaths=900, prevalence=300, incidence=600.
# Expected contribution at <1 year (age_id 28) and at 20-24 years (age_id 9).
DEATHS, PREVALENCE, INCIDENCE = 900.0, 300.0, 600.0

EXPECTED = {
    "Acute glomerulonephritis": (450.0, 135.0),
    "Alzheimer's disease and other dementias": (10.0, 10.0),
    "Chronic kidney disease": (450.0, 135.0),
    "Cirrhosis and other chronic liver diseases": (47.5, 77.5),
    "Congenital birth defects": (180.0, 180.0),
    "Diabetes mellitus": (10.0, 10.0),
    "Extensively drug-resistant tuberculosis": (450.0, 450.0),
    "HIV/AIDS": (25.0, 25.0),
    "Injuries": (180.0, 180.0),
    "Intracerebral hemorrhage": (150.0, 150.0),
    "Ischemic stroke": (150.0, 150.0),
    "Leukemia": (0.0, 0.0),
    "Multidrug-resistant tuberculosis without extensive drug resistance": (225.0, 225.0),
    "Multiple sclerosis": (1.7, 1.7),
    "Musculoskeletal disorders": (420.0, 420.0),
    "Neonatal encephalopathy due to birth asphyxia and trauma": (20.0, 100.0),
    "Neonatal preterm birth": (1.0, 1.0),
    "Neoplasms": (0.0, 0.0),
    "Other digestive diseases": (47.5, 77.5),
    "Other neglected tropical diseases": (15.0, 15.0),
    "Other neoplasms": (0.0, 0.0),
    "Parkinson's disease": (10.0, 10.0),
    "Schistosomiasis": (47.5, 77.5),
    "Sickle cell disorders": (70.0, 50.0),
    "Subarachnoid hemorrhage": (150.0, 150.0),
    "Tetanus": (150.0, 150.0),
    "Thalassemias": (70.0, 100.0),
}

BUCKETS = [("<1 year", 28, 0), ("20-24 years", 9, 1)]


def test_expected_table_covers_every_shs_cause():
    assert set(EXPECTED) == set(ALL_SHS_CAUSES)
    assert len(ALL_SHS_CAUSES) == 27


def test_coefficients_only_name_shs_causes():
    assert set(COEFFICIENTS) <= set(ALL_SHS_CAUSES)


@pytest.mark.parametrize("cause", ALL_SHS_CAUSES)
@pytest.mark.parametrize("age_name,age_id,idx", BUCKETS)
def test_contribution_per_cause_and_age_bucket(cause, age_name, age_id, idx):
    got = shs_contribution(cause, age_id, DEATHS, PREVALENCE, INCIDENCE)
    assert got == pytest.approx(EXPECTED[cause][idx])


@pytest.fixture
def one_cell_per_cause_store():
    rows = []
    for cause in ALL_SHS_CAUSES:
        for age_name, _, _ in BUCKETS:
            for measure, val in (("Deaths", DEATHS), ("Prevalence", PREVALENCE),
                                 ("Incidence", INCIDENCE)):
                rows.append(obs(cause, cause, measure, val, age=age_name))
    store = FactStore.from_frame(frame(rows))
    yield store
    store.close()


@pytest.mark.parametrize("age_name,age_id,idx", BUCKETS)
def test_sql_weighting_matches_table(one_cell_per_cause_store, age_name, age_id, idx):
    # each cause sits in a location named after it
    got = compute_shs(one_cell_per_cause_store, ALL_SHS_CAUSES, "Both", 2019, age_name, "Number")
    assert len(got) == 27
    for cause, values in EXPECTED.items():
        assert got[cause] == pytest.approx(values[idx]), cause


def test_unknown_cause_contributes_zero(one_cell_per_cause_store):
    assert shs_contribution("Common cold", 22, 1e6, 1e6, 1e6) == 0.0
    got = compute_shs(one_cell_per_cause_store, ["Common cold"], "Both", 2019, "<1 year", "Number")
    assert got.empty


def test_compute_shs_skips_blank_causes(store):
    assert compute_shs(store, ["", None], "Both", 2019, "All ages", "Number").empty


def test_aggregate_age_bands_take_tier_defaults():
    # All ages (22) and Age-standardized (27) are neither young nor adult
    assert shs_contribution("Sickle cell disorders", 22, prevalence=300) == pytest.approx(100.0)
    assert shs_contribution("Thalassemias", 27, prevalence=300) == pytest.approx(100.0)
    assert shs_contribution("Schistosomiasis", 22, deaths=900) == pytest.approx(77.5)
    assert shs_contribution("Chronic kidney disease", 27, deaths=900) == pytest.approx(135.0)


def test_sickle_cell_oldest_band_is_adult():
    assert shs_contribution("Sickle cell disorders", 235, prevalence=300) == pytest.approx(50.0)
    assert shs_contribution("Sickle cell disorders", 5, prevalence=300) == pytest.approx(70.0)


def test_tuberculosis_nets_deaths_out_of_incidence():
    got = shs_contribution("Extensively drug-resistant tuberculosis", 22,
                           deaths=60, incidence=100)
    assert got == pytest.approx(90.0)


def test_numberland_hiv_scenario(store):
    got = compute_shs(store, ["HIV/AIDS"], "Both", 2019, "All ages", "Number")
    # 300 / 3 * 0.5 * 0.5; the Deaths row is not part of the HIV rule
    assert got.to_dict() == {"Numberland": pytest.approx(25.0)}


def test_compute_shs_empty_when_nothing_matches(store):
    got = compute_shs(store, ["HIV/AIDS"], "Both", 1850, "All ages", "Number")
    assert got.empty


def test_cause_names_are_quoted_in_sql():
    sql = shs_value_sql()
    assert "'Alzheimer''s disease and other dementias'" in sql
    assert "'Parkinson''s disease'" in sql
