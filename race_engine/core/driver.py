"""Driver model for the endurance race simulator.

A driver carries its own tyres, fuel, cumulative drive time and a bounded
lap history.  Instances are immutable; the simulation produces updated
copies through :func:`dataclasses.replace`.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from race_engine.core.tyre import TyreCompound, TyreStatus


@dataclass(frozen=True)
class LapHistoryEntry:
    """One completed lap as shown in telemetry charts."""

    lap: int
    lap_time: float
    tyre_wear: float
    fuel: float
    position: int


@dataclass(frozen=True)
class PlannedPitStop:
    """A pit stop requested for a future lap.

    Attributes:
        target_lap: Lap on which the stop is taken.
        compound: Compound fitted at the stop.
    """

    target_lap: int
    compound: TyreCompound

    def __post_init__(self) -> None:
        if self.target_lap < 1:
            raise ValueError("target_lap must be >= 1.")


@dataclass(frozen=True)
class PitPlan:
    """Structured pit-stop instruction addressed to one driver.

    Control decisions are only ever taken from these fields, never from
    free-text advice.
    """

    driver_id: str
    target_lap: int
    compound: TyreCompound

    def __post_init__(self) -> None:
        if not self.driver_id:
            raise ValueError("driver_id must not be empty.")
        if self.target_lap < 1:
            raise ValueError("target_lap must be >= 1.")


@dataclass(frozen=True)
class Driver:
    """Immutable representation of a race driver.

    Attributes:
        driver_id: Unique identifier within the race.
        name: Full driver name.
        short_name: Three-letter acronym shown on cards.
        number: Car/driver number.
        team: Team the driver belongs to.
        color: Hex display colour.
        tyres: Tyres currently fitted.
        fuel: Fuel level percentage in [0, 100].
        drive_time_s: Cumulative time behind the wheel this race.
        is_driving: Whether the driver is currently in the car.
        position: Race position (1-based).
        pit_stops: Pit stops taken so far.
        lap_history: Most recent laps, oldest first.
        planned_pit_stop: Pending pit stop request, if any.
        last_lap_time: Time of the most recent lap in seconds.
        best_lap_time: Fastest lap so far in seconds.
    """

    driver_id: str
    name: str
    short_name: str = ""
    number: int = 0
    team: str = ""
    color: str = "#FFFFFF"
    tyres: TyreStatus = field(default_factory=TyreStatus)
    fuel: float = 100.0
    drive_time_s: float = 0.0
    is_driving: bool = False
    position: int = 1
    pit_stops: int = 0
    lap_history: tuple[LapHistoryEntry, ...] = ()
    planned_pit_stop: PlannedPitStop | None = None
    last_lap_time: float | None = None
    best_lap_time: float | None = None

    def __post_init__(self) -> None:
        """Validate driver parameters."""
        if not self.driver_id:
            raise ValueError("driver_id must not be empty.")
        if not self.name:
            raise ValueError("name must not be empty.")
        if not 0.0 <= self.fuel <= 100.0:
            raise ValueError("fuel must be between 0.0 and 100.0.")
        if self.drive_time_s < 0.0:
            raise ValueError("drive_time_s must be >= 0.0.")
        if self.pit_stops < 0:
            raise ValueError("pit_stops must be >= 0.")


def format_lap_time(seconds: float | None) -> str:
    """Format *seconds* as ``m:ss.sss``; ``None`` renders as ``"-"``."""
    if seconds is None:
        return "-"
    minutes, rest = divmod(seconds, 60.0)
    return f"{int(minutes)}:{rest:06.3f}"
