# selection.py
# Per-session UI state: filter settings and the clicked-location selection.
# Everything here is immutable; transitions return new objects so the Dash
# callbacks can keep state in a session dcc.Store.

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Optional, Tuple

import shs_settings as CFG
from cause_taxonomy import (AGE_STANDARDIZED, ALL_CONDITIONS, age_for_condition,
                            condition_for_mode)

NO_SELECTION = "no_selection"
SINGLE_SELECTION = "single_selection"
MULTI_SELECTION = "multi_selection"


# -----------------------------
# Filter settings
# -----------------------------

@dataclass(frozen=True)
class DashboardSettings:
    measure: str = "Prevalence"
    health_condition: str = ALL_CONDITIONS
    age_group: str = AGE_STANDARDIZED
    sex: str = "Both"
    year: Optional[int] = None
    color_scale: str = CFG.DEFAULT_COLOR_SCALE
    map_scale: str = CFG.DEFAULT_MAP_SCALE
    shs: bool = False
    metric: str = "Rate"
    order: str = "top_20"
    breakdown: str = "continent"
    hierarchy_chart: str = "sunburst"

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        if not data:
            return cls()
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


def default_settings(year_max=None) -> DashboardSettings:
    """What "Reset to defaults" restores; the year is the latest one in the store."""
    return DashboardSettings(year=year_max)


def toggle_shs(settings: DashboardSettings, on: bool) -> DashboardSettings:
    """Switch SHS mode, keeping the condition and age valid for the new mode."""
    on = bool(on)
    condition = condition_for_mode(settings.health_condition, on)
    age = age_for_condition(settings.age_group, condition, on)
    return replace(settings, shs=on, health_condition=condition, age_group=age)


def choose_condition(settings: DashboardSettings, label) -> DashboardSettings:
    age = age_for_condition(settings.age_group, label, settings.shs)
    return replace(settings, health_condition=label, age_group=age)


# -----------------------------
# Location selection
# -----------------------------

@dataclass(frozen=True)
class SelectionState:
    """
    Locations picked on the map, in click order.

    `last_click` is the (location, shift) pair of the last processed click;
    a repeat of it is ignored so re-rendered maps do not re-fire dependents.
    """
    locations: Tuple[str, ...] = ()
    last_click: Optional[Tuple[str, bool]] = None

    @property
    def mode(self):
        if not self.locations:
            return NO_SELECTION
        if len(self.locations) == 1:
            return SINGLE_SELECTION
        return MULTI_SELECTION

    def to_dict(self):
        return {
            "locations": list(self.locations),
            "last_click": list(self.last_click) if self.last_click else None,
        }

    @classmethod
    def from_dict(cls, data):
        if not data:
            return cls()
        last = data.get("last_click")
        return cls(
            locations=tuple(data.get("locations") or ()),
            last_click=(str(last[0]), bool(last[1])) if last else None,
        )


def click(state: SelectionState, location, shift=False) -> SelectionState:
    """
    Plain click: select only `location`.
    Shift+click: add `location` to the current selection.
    """
    if not location:
        return state
    shift = bool(shift)
    if state.last_click == (location, shift):
        return state
    if shift and location in state.locations:
        locations = state.locations
    elif shift:
        locations = state.locations + (location,)
    else:
        locations = (location,)
    return SelectionState(locations=locations, last_click=(location, shift))


def reset_selection(state: Optional[SelectionState] = None) -> SelectionState:
    return SelectionState()


def effective_locations(state: SelectionState, default_location=CFG.DEFAULT_LOCATION):
    """Locations the dependent charts use; never empty while a default exists."""
    if state.locations:
        return state.locations
    return (default_location,) if default_location else ()
