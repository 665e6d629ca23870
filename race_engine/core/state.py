"""Race state record for the endurance race simulator."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from race_engine.core.driver import Driver


class Weather(Enum):
    """Track weather, ordered from driest to wettest."""

    SUNNY = "Sunny"
    CLOUDY = "Cloudy"
    RAINY = "Rainy"
    HEAVY_RAIN = "Heavy Rain"


class SafetyCar(Enum):
    """Race-control neutralisation status."""

    NONE = "None"
    DEPLOYED = "Deployed"
    VIRTUAL = "Virtual"


class RaceMode(Enum):
    """TEAM rotates drivers through one car; GRID runs every car at once."""

    TEAM = "team"
    GRID = "grid"


@dataclass(frozen=True)
class RaceState:
    """Immutable snapshot of the whole race.

    Attributes:
        current_lap: Laps completed by the race leader.
        total_laps: Planned race distance in laps.
        elapsed_s: Race time elapsed in seconds.
        total_duration_s: Race duration in seconds.
        weather: Current weather.
        safety_car: Current safety-car status.
        track_name: Circuit name.
        drivers: All drivers in rotation (TEAM) or grid (GRID) order.
        mode: Simulation mode.
        finished: Set once the completion notice has been emitted.
        tick: Number of ticks applied so far.
    """

    current_lap: int
    total_laps: int
    elapsed_s: float
    total_duration_s: float
    weather: Weather = Weather.SUNNY
    safety_car: SafetyCar = SafetyCar.NONE
    track_name: str = ""
    drivers: tuple[Driver, ...] = ()
    mode: RaceMode = RaceMode.TEAM
    finished: bool = False
    tick: int = 0

    def __post_init__(self) -> None:
        """Validate race-level invariants."""
        if self.total_laps < 1:
            raise ValueError("total_laps must be >= 1.")
        if not 0 <= self.current_lap <= self.total_laps:
            raise ValueError("current_lap must be between 0 and total_laps.")
        if self.total_duration_s <= 0.0:
            raise ValueError("total_duration_s must be > 0.0.")
        if not 0.0 <= self.elapsed_s <= self.total_duration_s:
            raise ValueError("elapsed_s must be between 0.0 and total_duration_s.")
        if self.mode is RaceMode.TEAM:
            driving = [d for d in self.drivers if d.is_driving]
            if len(driving) > 1:
                raise ValueError(
                    f"At most one driver may be driving, got "
                    f"{[d.name for d in driving]}."
                )

    @property
    def remaining_s(self) -> float:
        return self.total_duration_s - self.elapsed_s


def active_driver(state: RaceState) -> Driver | None:
    """Return the driver currently in the car (first one in GRID mode)."""
    for drv in state.drivers:
        if drv.is_driving:
            return drv
    return None


def active_index(state: RaceState) -> int | None:
    for idx, drv in enumerate(state.drivers):
        if drv.is_driving:
            return idx
    return None


def driver_by_id(state: RaceState, driver_id: str) -> Driver:
    """Look up a driver by id.

    Raises:
        KeyError: If no driver has *driver_id*.
    """
    for drv in state.drivers:
        if drv.driver_id == driver_id:
            return drv
    raise KeyError(f"Unknown driver id {driver_id!r}")


def replace_driver(state: RaceState, updated: Driver) -> RaceState:
    """Return a copy of *state* with the driver sharing *updated*'s id swapped in."""
    drivers = tuple(
        updated if d.driver_id == updated.driver_id else d for d in state.drivers
    )
    return replace(state, drivers=drivers)
