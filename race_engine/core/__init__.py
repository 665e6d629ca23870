"""Core simulation modules for the endurance race engine."""

from race_engine.core.clock import advance_clock, is_complete, tick_seconds
from race_engine.core.driver import (
    Driver,
    LapHistoryEntry,
    PitPlan,
    PlannedPitStop,
    format_lap_time,
)
from race_engine.core.events import EventKind, RaceEvent
from race_engine.core.lap import LAP_HISTORY_WINDOW, draw_lap_time, record_lap
from race_engine.core.rotation import (
    RotationReason,
    needs_rotation,
    rotate,
    select_next_driver,
)
from race_engine.core.runner import RaceRunner
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.simulation import (
    TickResult,
    apply_pit_plan,
    can_cancel_pit_stop,
    cancel_pit_stop,
    new_grid_race,
    new_team_race,
    plan_pit_stop,
    run_ticks,
    step,
)
from race_engine.core.state import RaceMode, RaceState, SafetyCar, Weather
from race_engine.core.standings import StandingRow, focused_drivers, standings
from race_engine.core.team import Team, TeamMember
from race_engine.core.tyre import (
    DEFAULT_WEAR_RATES,
    TyreCompound,
    TyreStatus,
    advance_wear,
    consume_fuel,
    parse_compound,
)

__all__ = [
    "DEFAULT_WEAR_RATES",
    "Driver",
    "EventKind",
    "LAP_HISTORY_WINDOW",
    "LapHistoryEntry",
    "PitPlan",
    "PlannedPitStop",
    "RaceEvent",
    "RaceMode",
    "RaceRunner",
    "RaceState",
    "RotationReason",
    "SafetyCar",
    "SimulationConfig",
    "StandingRow",
    "Team",
    "TeamMember",
    "TickResult",
    "TyreCompound",
    "TyreStatus",
    "Weather",
    "advance_clock",
    "advance_wear",
    "apply_pit_plan",
    "can_cancel_pit_stop",
    "cancel_pit_stop",
    "consume_fuel",
    "draw_lap_time",
    "focused_drivers",
    "format_lap_time",
    "is_complete",
    "needs_rotation",
    "new_grid_race",
    "new_team_race",
    "parse_compound",
    "plan_pit_stop",
    "record_lap",
    "rotate",
    "run_ticks",
    "select_next_driver",
    "standings",
    "step",
    "tick_seconds",
]
