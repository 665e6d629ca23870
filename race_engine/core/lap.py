"""Lap advancement for the endurance race simulator."""

from __future__ import annotations

from dataclasses import replace

from numpy.random import Generator

from race_engine.core.driver import Driver, LapHistoryEntry
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.state import SafetyCar, Weather
from race_engine.core.tyre import advance_wear, consume_fuel

LAP_HISTORY_WINDOW: int = 20


def draw_lap_time(
    config: SimulationConfig,
    rng: Generator,
    weather: Weather = Weather.SUNNY,
    safety_car: SafetyCar = SafetyCar.NONE,
) -> float:
    """Draw a lap time for the current conditions.

    The raw time is uniform in ``[base - variation, base + variation]``
    and is then scaled by the weather and safety-car pace factors.
    """
    low: float = config.base_lap_time_s - config.lap_time_variation_s
    high: float = config.base_lap_time_s + config.lap_time_variation_s
    t: float = float(rng.uniform(low, high)) if high > low else low
    t *= config.weather_pace.get(weather, 1.0)
    t *= config.safety_car_pace.get(safety_car, 1.0)
    return t


def record_lap(
    driver: Driver,
    lap: int,
    lap_time: float,
    window: int = LAP_HISTORY_WINDOW,
) -> Driver:
    """Append a history entry and keep only the last *window* laps.

    Also refreshes the driver's last and best lap times.
    """
    entry = LapHistoryEntry(
        lap=lap,
        lap_time=lap_time,
        tyre_wear=driver.tyres.wear,
        fuel=driver.fuel,
        position=driver.position,
    )
    history = (driver.lap_history + (entry,))[-window:]
    best = lap_time if driver.best_lap_time is None else min(driver.best_lap_time, lap_time)
    return replace(
        driver,
        lap_history=history,
        last_lap_time=lap_time,
        best_lap_time=best,
    )


def drive_lap(
    driver: Driver,
    lap: int,
    lap_time: float,
    config: SimulationConfig,
) -> Driver:
    """Run one lap for *driver*: wear, fuel, then the history entry."""
    worn = replace(
        driver,
        tyres=advance_wear(driver.tyres, config.wear_rates),
        fuel=consume_fuel(driver.fuel, config.fuel_per_lap),
    )
    return record_lap(worn, lap, lap_time, config.history_window)
