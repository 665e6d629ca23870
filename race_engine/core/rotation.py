"""Driver rotation state machine for team-mode races.

Each driver is either *Driving* or on *Standby*; exactly one team driver
is Driving.  The Driving driver is called in when their tyres reach the
stint length, or when one more tick would take their cumulative drive
time into the safety margin of the regulatory cap.  The outgoing
driver's tyres and fuel are renewed (the pit stop) and the next eligible
driver in roster order takes over.

Cap enforcement is best-effort: when no standby driver is under the
eligibility limit, the least-used one is chosen anyway and a
``DRIVE_TIME_ANOMALY`` event is reported instead of halting the race.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum

from race_engine.core.clock import tick_seconds
from race_engine.core.driver import Driver
from race_engine.core.events import EventKind, RaceEvent
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.tyre import TyreCompound, fresh_tyres

logger = logging.getLogger(__name__)


class RotationReason(Enum):
    STINT_LENGTH = "stint length reached"
    DRIVE_TIME = "drive time limit approaching"


@dataclass(frozen=True)
class RotationOutcome:
    """Result of a driver change.

    Attributes:
        drivers: Updated roster.
        incoming_index: Roster index of the new driver.
        events: Pit stop, swap and optional anomaly events.
    """

    drivers: tuple[Driver, ...]
    incoming_index: int
    events: tuple[RaceEvent, ...]


def needs_rotation(driver: Driver, config: SimulationConfig) -> RotationReason | None:
    """Return why *driver* must hand over the car, or ``None``."""
    if driver.tyres.age_laps >= config.stint_length_laps:
        return RotationReason.STINT_LENGTH
    if driver.drive_time_s + tick_seconds(config) > config.rotation_drive_limit_s:
        return RotationReason.DRIVE_TIME
    return None


def pit_driver(driver: Driver, compound: TyreCompound, lap: int) -> Driver:
    """Fit fresh *compound* tyres, refuel, and count the stop."""
    return replace(
        driver,
        tyres=fresh_tyres(compound, lap),
        fuel=100.0,
        pit_stops=driver.pit_stops + 1,
        planned_pit_stop=None,
    )


def is_eligible(driver: Driver, config: SimulationConfig) -> bool:
    """A standby driver may take over if one tick keeps them under the cap."""
    return (
        driver.drive_time_s < config.eligibility_limit_s
        and driver.drive_time_s + tick_seconds(config) <= config.max_drive_time_s
    )


def select_next_driver(
    drivers: tuple[Driver, ...],
    outgoing_index: int,
    config: SimulationConfig,
) -> tuple[int, bool]:
    """Choose who drives next.

    Walks the roster in rotation order starting after *outgoing_index*
    and returns the first eligible driver.  With a single-driver roster
    the outgoing driver continues.

    Returns:
        ``(index, anomaly)`` where *anomaly* is ``True`` when nobody was
        eligible and the least-used candidate was chosen as a fallback.
    """
    n = len(drivers)
    if n == 0:
        raise ValueError("drivers must not be empty.")
    if n == 1:
        return 0, not is_eligible(drivers[0], config)

    candidates = [(outgoing_index + step) % n for step in range(1, n)]
    for idx in candidates:
        if is_eligible(drivers[idx], config):
            return idx, False

    fallback = min(candidates, key=lambda i: drivers[i].drive_time_s)
    return fallback, True


def rotate(
    drivers: tuple[Driver, ...],
    outgoing_index: int,
    reason: RotationReason,
    config: SimulationConfig,
    lap: int,
) -> RotationOutcome:
    """Pit the Driving driver and hand the car to the next one."""
    outgoing = drivers[outgoing_index]
    pitted = replace(
        pit_driver(outgoing, config.default_compound, lap), is_driving=False
    )
    roster = list(drivers)
    roster[outgoing_index] = pitted

    incoming_index, anomaly = select_next_driver(tuple(roster), outgoing_index, config)
    incoming = replace(roster[incoming_index], is_driving=True)
    roster[incoming_index] = incoming

    events: list[RaceEvent] = [
        RaceEvent(
            kind=EventKind.PIT_STOP,
            lap=lap,
            message=(
                f"{outgoing.name} pits ({reason.value}): fresh "
                f"{config.default_compound.label} tyres and full fuel."
            ),
            driver_id=outgoing.driver_id,
        )
    ]
    if incoming_index != outgoing_index:
        events.append(
            RaceEvent(
                kind=EventKind.DRIVER_SWAP,
                lap=lap,
                message=f"{incoming.name} takes over from {outgoing.name}.",
                driver_id=incoming.driver_id,
            )
        )
    if anomaly:
        logger.warning(
            "No driver under the drive-time limit on lap %d; %s continues "
            "with %.0f s driven",
            lap,
            incoming.name,
            incoming.drive_time_s,
        )
        events.append(
            RaceEvent(
                kind=EventKind.DRIVE_TIME_ANOMALY,
                lap=lap,
                message=(
                    f"All drivers are at or near the drive-time cap; "
                    f"{incoming.name} was chosen as fallback."
                ),
                driver_id=incoming.driver_id,
                severity="warning",
            )
        )
    return RotationOutcome(
        drivers=tuple(roster),
        incoming_index=incoming_index,
        events=tuple(events),
    )
