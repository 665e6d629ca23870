"""Request and response shapes exchanged with the advisory service.

Requests are flat records assembled from the current :class:`RaceState`.
Responses are parsed field by field: free-text fields are kept opaque,
and the only fields the simulation acts on are the structured
:class:`~race_engine.core.driver.PitPlan` values.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from race_engine.core.driver import PitPlan
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.state import RaceState, active_driver, driver_by_id
from race_engine.core.tyre import TyreCompound, parse_compound

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DriverPitRequest:
    """Single-driver pit-stop question."""

    driver_name: str
    current_lap: int
    tire_condition: str
    fuel_level: float
    race_position: int
    weather: str
    competitor_strategies: str = ""

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TeamDriverStatus:
    """Status of one team driver as sent to the advisory service."""

    driver_id: str
    name: str
    tire_compound: str
    tire_age_laps: int
    tire_wear: float
    fuel_level: float
    drive_time_s: float
    is_driving: bool
    current_lap: int


@dataclass(frozen=True)
class TeamStrategyRequest:
    """Team-mode strategy question covering every driver."""

    drivers: tuple[TeamDriverStatus, ...]
    current_lap: int
    total_laps: int
    elapsed_s: float
    total_duration_s: float
    weather: str
    safety_car: str
    track_name: str
    max_drive_time_s: float

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["drivers"] = [asdict(d) for d in self.drivers]
        return payload


@dataclass(frozen=True)
class CompetitorAnalysisRequest:
    competitor_name: str
    historical_data: str
    current_race_data: str

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StrategyAdvice:
    """Advice returned by the service.

    Attributes:
        suggested_action: Free text, displayed verbatim.
        reasoning: Free text, displayed verbatim.
        next_pit_lap: Optional lap estimate for the next stop.
        recommended_next_driver: Optional name of the next driver.
        plan: Optional structured pit instruction.
    """

    suggested_action: str
    reasoning: str
    next_pit_lap: int | None = None
    recommended_next_driver: str | None = None
    plan: PitPlan | None = None


@dataclass(frozen=True)
class RivalNote:
    name: str
    gap: str | None = None
    action: str | None = None


@dataclass(frozen=True)
class CompetitorAnalysis:
    strategy_summary: str
    tire_compound: TyreCompound = TyreCompound.MEDIUM
    tire_age_laps: int | None = None
    driver_in_front: RivalNote | None = None
    driver_behind: RivalNote | None = None
    notes: tuple[str, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_driver_request(
    state: RaceState,
    driver_id: str | None = None,
    competitor_notes: str = "",
) -> DriverPitRequest:
    """Assemble a pit-stop question for one driver.

    Defaults to the driver currently in the car.

    Raises:
        KeyError: If *driver_id* is unknown.
        ValueError: If no driver is given and nobody is driving.
    """
    if driver_id is None:
        drv = active_driver(state)
        if drv is None:
            raise ValueError("No driver is currently in the car.")
    else:
        drv = driver_by_id(state, driver_id)
    return DriverPitRequest(
        driver_name=drv.name,
        current_lap=state.current_lap,
        tire_condition=drv.tyres.describe(),
        fuel_level=round(drv.fuel, 1),
        race_position=drv.position,
        weather=state.weather.value,
        competitor_strategies=competitor_notes,
    )


def build_team_request(state: RaceState, config: SimulationConfig) -> TeamStrategyRequest:
    """Assemble a team-strategy question from the whole roster."""
    statuses = tuple(
        TeamDriverStatus(
            driver_id=d.driver_id,
            name=d.name,
            tire_compound=d.tyres.compound.label,
            tire_age_laps=d.tyres.age_laps,
            tire_wear=round(d.tyres.wear, 1),
            fuel_level=round(d.fuel, 1),
            drive_time_s=round(d.drive_time_s, 1),
            is_driving=d.is_driving,
            current_lap=state.current_lap,
        )
        for d in state.drivers
    )
    return TeamStrategyRequest(
        drivers=statuses,
        current_lap=state.current_lap,
        total_laps=state.total_laps,
        elapsed_s=round(state.elapsed_s, 1),
        total_duration_s=state.total_duration_s,
        weather=state.weather.value,
        safety_car=state.safety_car.value,
        track_name=state.track_name,
        max_drive_time_s=config.max_drive_time_s,
    )


def build_competitor_request(
    state: RaceState,
    driver_id: str,
    historical_data: str = "",
) -> CompetitorAnalysisRequest:
    """Describe *driver_id* and their neighbours for a competitor analysis."""
    drv = driver_by_id(state, driver_id)
    by_position = sorted(state.drivers, key=lambda d: d.position)
    lines = [
        f"Lap {state.current_lap}/{state.total_laps}, weather {state.weather.value}, "
        f"safety car {state.safety_car.value}."
    ]
    for other in by_position:
        last = f"{other.last_lap_time:.3f}s" if other.last_lap_time is not None else "n/a"
        lines.append(
            f"P{other.position} {other.name}: {other.tyres.describe()}, "
            f"fuel {other.fuel:.0f}%, pit stops {other.pit_stops}, last lap {last}"
        )
    return CompetitorAnalysisRequest(
        competitor_name=drv.name,
        historical_data=historical_data,
        current_race_data="\n".join(lines),
    )


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip()) or None
    return None


def _optional_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _plan_from_payload(value: Any) -> PitPlan | None:
    if not isinstance(value, dict):
        return None
    driver_id = _optional_text(value.get("driver_id"))
    target_lap = _optional_int(value.get("target_lap"))
    if driver_id is None or target_lap is None:
        return None
    return PitPlan(
        driver_id=driver_id,
        target_lap=target_lap,
        compound=parse_compound(value.get("compound")),
    )


def advice_from_payload(data: dict[str, Any]) -> StrategyAdvice:
    """Parse a strategy reply; missing or malformed fields get defaults."""
    return StrategyAdvice(
        suggested_action=_text(data, "suggested_action"),
        reasoning=_text(data, "reasoning"),
        next_pit_lap=_optional_int(data.get("next_pit_lap")),
        recommended_next_driver=_optional_text(data.get("recommended_next_driver")),
        plan=_plan_from_payload(data.get("plan")),
    )


def _rival_from_payload(value: Any) -> RivalNote | None:
    if not isinstance(value, dict):
        return None
    name = _optional_text(value.get("name"))
    if name is None:
        return None
    return RivalNote(
        name=name,
        gap=_optional_text(value.get("gap")),
        action=_optional_text(value.get("action")),
    )


def competitor_from_payload(data: dict[str, Any]) -> CompetitorAnalysis:
    """Parse a competitor-analysis reply."""
    notes = data.get("notes")
    return CompetitorAnalysis(
        strategy_summary=_text(data, "strategy_summary"),
        tire_compound=parse_compound(data.get("tire_compound")),
        tire_age_laps=_optional_int(data.get("tire_age_laps")),
        driver_in_front=_rival_from_payload(data.get("driver_in_front")),
        driver_behind=_rival_from_payload(data.get("driver_behind")),
        notes=tuple(n for n in notes if isinstance(n, str)) if isinstance(notes, list) else (),
    )
