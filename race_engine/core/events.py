"""Race events and low-probability random race-control transitions.

The ``roll_*`` helpers draw from the injected generator exactly once per
call whatever the outcome, so a seeded run consumes the random stream in
the same order regardless of which branch fires.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from numpy.random import Generator

from race_engine.core.driver import Driver
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.state import SafetyCar, Weather


class EventKind(Enum):
    LAP_COMPLETED = "lap_completed"
    PIT_STOP = "pit_stop"
    DRIVER_SWAP = "driver_swap"
    DRIVE_TIME_ANOMALY = "drive_time_anomaly"
    WEATHER_CHANGE = "weather_change"
    SAFETY_CAR = "safety_car"
    POSITION_CHANGE = "position_change"
    RACE_FINISHED = "race_finished"


@dataclass(frozen=True)
class RaceEvent:
    """Notification emitted by a tick for the UI layer.

    Attributes:
        kind: Event category.
        lap: Race lap the event belongs to.
        message: Human-readable description.
        driver_id: Driver concerned, if any.
        severity: ``"info"`` or ``"warning"``.
    """

    kind: EventKind
    lap: int
    message: str
    driver_id: str | None = None
    severity: str = "info"


_WEATHER_ORDER: tuple[Weather, ...] = tuple(Weather)


def roll_weather(weather: Weather, config: SimulationConfig, rng: Generator) -> Weather:
    """Possibly move the weather one step drier or wetter."""
    draw: float = float(rng.random())
    if draw >= config.weather_change_probability:
        return weather
    idx = _WEATHER_ORDER.index(weather)
    # Lower half of the hit window dries, upper half wets.
    wetter = draw >= config.weather_change_probability / 2.0
    if idx == 0:
        wetter = True
    elif idx == len(_WEATHER_ORDER) - 1:
        wetter = False
    return _WEATHER_ORDER[idx + 1 if wetter else idx - 1]


def roll_safety_car(
    status: SafetyCar, config: SimulationConfig, rng: Generator
) -> SafetyCar:
    """Possibly deploy or withdraw the safety car."""
    draw: float = float(rng.random())
    if status is SafetyCar.NONE:
        if draw >= config.safety_car_probability:
            return status
        virtual = draw < config.safety_car_probability * config.virtual_safety_car_share
        return SafetyCar.VIRTUAL if virtual else SafetyCar.DEPLOYED
    if draw < config.safety_car_end_probability:
        return SafetyCar.NONE
    return status


def roll_position_swap(
    drivers: tuple[Driver, ...], config: SimulationConfig, rng: Generator
) -> tuple[tuple[Driver, ...], bool]:
    """Possibly swap the positions of the P1 and P2 drivers.

    Returns:
        The (possibly) updated drivers and whether a swap happened.
    """
    draw: float = float(rng.random())
    if draw >= config.position_swap_probability or len(drivers) < 2:
        return drivers, False
    leader = next((d for d in drivers if d.position == 1), None)
    second = next((d for d in drivers if d.position == 2), None)
    if leader is None or second is None:
        return drivers, False
    swapped = []
    for drv in drivers:
        if drv.driver_id == leader.driver_id:
            swapped.append(replace(drv, position=2))
        elif drv.driver_id == second.driver_id:
            swapped.append(replace(drv, position=1))
        else:
            swapped.append(drv)
    return tuple(swapped), True
