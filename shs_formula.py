# shs_formula.py
# Serious Health-related Suffering (SHS) weights per cause.

"""
SHS formula engine
==================

For every (location, cause, age band) the raw IHME sums of deaths,
prevalence and incidence are turned into an SHS contribution:

    contribution = base_value * level_1_factor * level_2_factor

`base_value` is one of deaths/3, prevalence/3, deaths/6, deaths/9 or
incidence - deaths/6, depending on the cause. The two factors are either
constants or depend on the age band (IHME age_id). Causes that are not in
COEFFICIENTS contribute 0.

The table below is the only place the weights live. It is applied two ways:

- shs_contribution(): one value, pure Python
- shs_value_sql():    one SQL expression, so DuckDB does the weighting inside
                      the aggregation queries of queries.py
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from fact_store import quote_literal

# ---------------- Age bands (IHME age_id ranges, inclusive) ----------------

AgeRanges = Tuple[Tuple[int, int], ...]

INFANT: AgeRanges = ((28, 28), (5, 5))               # <1 year, 1-4 years
CHILD: AgeRanges = ((6, 8),)                         # 5-19 years
YOUNG: AgeRanges = INFANT + CHILD
ADULT: AgeRanges = ((9, 20), (30, 235))              # 20-24 ... 95+ years


def in_ranges(age_id, ranges: AgeRanges) -> bool:
    return any(lo <= age_id <= hi for lo, hi in ranges)


def ranges_sql(column: str, ranges: AgeRanges) -> str:
    parts = []
    for lo, hi in ranges:
        parts.append(f"{column} = {lo}" if lo == hi else f"{column} BETWEEN {lo} AND {hi}")
    return "(" + " OR ".join(parts) + ")"


def _num(x: float) -> str:
    return f"CAST({float(x)!r} AS DOUBLE)"


@dataclass(frozen=True)
class AgeTiered:
    """A factor whose value depends on the age band; first matching tier wins."""
    tiers: Tuple[Tuple[AgeRanges, float], ...]
    default: float = 1.0

    def at(self, age_id) -> float:
        for ranges, value in self.tiers:
            if in_ranges(age_id, ranges):
                return value
        return self.default

    def to_sql(self, age_column: str = "age_id") -> str:
        whens = " ".join(
            f"WHEN {ranges_sql(age_column, ranges)} THEN {_num(value)}"
            for ranges, value in self.tiers
        )
        return f"(CASE {whens} ELSE {_num(self.default)} END)"


Factor = Union[float, AgeTiered]


def factor_at(factor: Factor, age_id) -> float:
    return factor.at(age_id) if isinstance(factor, AgeTiered) else float(factor)


def factor_sql(factor: Factor, age_column: str = "age_id") -> str:
    return factor.to_sql(age_column) if isinstance(factor, AgeTiered) else _num(factor)


# ---------------- Rules ----------------

DEATHS = "deaths"
PREVALENCE = "prevalence"
INCIDENCE_NET = "incidence_net"   # incidence minus a sixth of deaths

_BASE_COLUMN = {DEATHS: "deaths_val", PREVALENCE: "prev_val"}


@dataclass(frozen=True)
class CauseRule:
    source: str
    divisor: float = 3.0
    level_1: Factor = 1.0
    level_2: Factor = 1.0

    def base(self, deaths, prevalence, incidence):
        if self.source == DEATHS:
            return deaths / self.divisor
        if self.source == PREVALENCE:
            return prevalence / self.divisor
        if self.source == INCIDENCE_NET:
            return incidence - deaths / self.divisor
        raise ValueError(f"Unknown source measure: {self.source!r}")

    def base_sql(self) -> str:
        d = _num(self.divisor)
        if self.source == INCIDENCE_NET:
            return f"(inc_val - deaths_val / {d})"
        return f"({_BASE_COLUMN[self.source]} / {d})"


def _same(rule: CauseRule, *causes: str) -> Dict[str, CauseRule]:
    return {c: rule for c in causes}


_LIVER = CauseRule(DEATHS, 9, level_1=0.5, level_2=AgeTiered(((YOUNG, 0.95),), default=1.55))
_KIDNEY = CauseRule(DEATHS, 6, level_1=1.0, level_2=AgeTiered(((YOUNG, 3.0),), default=0.9))
_STROKE = CauseRule(DEATHS, 9, level_1=1.0, level_2=1.5)

COEFFICIENTS: Dict[str, CauseRule] = {
    "Other neglected tropical diseases": CauseRule(DEATHS, 3, level_1=0.05),
    "Multidrug-resistant tuberculosis without extensive drug resistance":
        CauseRule(INCIDENCE_NET, 6, level_1=1.0, level_2=0.5),
    "Extensively drug-resistant tuberculosis":
        CauseRule(INCIDENCE_NET, 6, level_1=1.0, level_2=1.0),
    "HIV/AIDS": CauseRule(PREVALENCE, 3, level_1=0.5, level_2=0.5),
    "Alzheimer's disease and other dementias": CauseRule(PREVALENCE, 3, level_1=0.1),
    "Tetanus": CauseRule(DEATHS, 3, level_1=0.5),
    "Parkinson's disease": CauseRule(PREVALENCE, 3, level_1=0.1),
    "Multiple sclerosis": CauseRule(PREVALENCE, 3, level_1=0.017),
    "Congenital birth defects": CauseRule(DEATHS, 3, level_1=0.6),
    "Injuries": CauseRule(DEATHS, 3, level_1=0.6),
    "Musculoskeletal disorders": CauseRule(DEATHS, 3, level_1=1.4),
    "Sickle cell disorders": CauseRule(
        PREVALENCE, 3, level_1=AgeTiered(((YOUNG, 0.7), (ADULT, 0.5)))),
    **_same(_LIVER,
            "Cirrhosis and other chronic liver diseases",
            "Other digestive diseases",
            "Schistosomiasis"),
    **_same(_KIDNEY, "Chronic kidney disease", "Acute glomerulonephritis"),
    **_same(_STROKE,
            "Intracerebral hemorrhage",
            "Ischemic stroke",
            "Subarachnoid hemorrhage"),
    "Diabetes mellitus": CauseRule(PREVALENCE, 3, level_1=0.1),
    "Thalassemias": CauseRule(
        PREVALENCE, 3, level_1=AgeTiered(((INFANT, 0.7), (CHILD, 0.1)))),
    "Neonatal preterm birth": CauseRule(PREVALENCE, 3, level_1=0.01),
    "Neonatal encephalopathy due to birth asphyxia and trauma": CauseRule(
        PREVALENCE, 3, level_1=AgeTiered(((INFANT, 0.2), (CHILD, 0.1)))),
}


def rule_for(cause: str) -> Optional[CauseRule]:
    return COEFFICIENTS.get(cause)


def shs_contribution(cause, age_id, deaths=0.0, prevalence=0.0, incidence=0.0) -> float:
    """SHS contribution of one (cause, age band) cell; 0 for causes without a rule."""
    rule = rule_for(cause)
    if rule is None:
        return 0.0
    base = rule.base(float(deaths), float(prevalence), float(incidence))
    return base * factor_at(rule.level_1, age_id) * factor_at(rule.level_2, age_id)


def shs_value_sql(cause_column: str = "cause_name", age_column: str = "age_id") -> str:
    """
    The coefficient table as one SQL CASE expression over the per-cause sums
    deaths_val, prev_val and inc_val.
    """
    whens = []
    for cause, rule in COEFFICIENTS.items():
        expr = (f"{rule.base_sql()} * {factor_sql(rule.level_1, age_column)}"
                f" * {factor_sql(rule.level_2, age_column)}")
        whens.append(f"WHEN {cause_column} = {quote_literal(cause)} THEN {expr}")
    return "(CASE " + "\n      ".join(whens) + f" ELSE {_num(0)} END)"


def measure_sums_sql(value_column: str = "val") -> str:
    return (
        f"SUM(CASE WHEN measure_name = 'Deaths' THEN {value_column} ELSE 0 END) AS deaths_val,\n"
        f"      SUM(CASE WHEN measure_name = 'Prevalence' THEN {value_column} ELSE 0 END) AS prev_val,\n"
        f"      SUM(CASE WHEN measure_name = 'Incidence' THEN {value_column} ELSE 0 END) AS inc_val"
    )
