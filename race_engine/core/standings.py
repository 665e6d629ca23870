"""Running order and driver focus helpers for the live views."""

from __future__ import annotations

from dataclasses import dataclass

from race_engine.core.driver import Driver, format_lap_time
from race_engine.core.state import RaceState

LEADER = "Leader"


@dataclass(frozen=True)
class StandingRow:
    """One line of the positions table.

    Attributes:
        position: Race position.
        driver_id: Driver identifier.
        name: Driver name.
        team: Team name.
        last_lap: Formatted last lap time, ``"N/A"`` before the first lap.
        tyre: Compound label.
        gap: ``"Leader"`` for the first row, ``"+x.xxxs"`` last-lap
            difference to the car ahead, or empty when either car has no
            lap time yet.
    """

    position: int
    driver_id: str
    name: str
    team: str
    last_lap: str
    tyre: str
    gap: str


def lap_time_gap(driver: Driver, ahead: Driver) -> str:
    """Absolute last-lap difference between *driver* and *ahead*."""
    if driver.last_lap_time is None or ahead.last_lap_time is None:
        return ""
    return f"+{abs(driver.last_lap_time - ahead.last_lap_time):.3f}s"


def standings(state: RaceState) -> list[StandingRow]:
    """Rows for every driver ordered by race position."""
    ordered = sorted(state.drivers, key=lambda d: d.position)
    rows: list[StandingRow] = []
    for idx, drv in enumerate(ordered):
        gap = LEADER if idx == 0 else lap_time_gap(drv, ordered[idx - 1])
        rows.append(
            StandingRow(
                position=drv.position,
                driver_id=drv.driver_id,
                name=drv.name,
                team=drv.team,
                last_lap=(
                    format_lap_time(drv.last_lap_time)
                    if drv.last_lap_time is not None
                    else "N/A"
                ),
                tyre=drv.tyres.compound.label,
                gap=gap,
            )
        )
    return rows


def focused_drivers(state: RaceState, driver_id: str | None) -> tuple[Driver, ...]:
    """Drivers shown when the view is focused on *driver_id*.

    ``None`` (or an id no longer in the race) shows everybody.
    """
    if driver_id is None:
        return state.drivers
    picked = tuple(d for d in state.drivers if d.driver_id == driver_id)
    return picked or state.drivers
