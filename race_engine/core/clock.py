"""Race clock and termination checks."""

from __future__ import annotations

from race_engine.core.sim_config import SimulationConfig
from race_engine.core.state import RaceState


def tick_seconds(config: SimulationConfig) -> float:
    """Race seconds represented by one tick at the configured speed."""
    return config.tick_duration_s * config.speed_factor


def advance_clock(elapsed: float, dt: float, total: float) -> float:
    """Add *dt* to *elapsed*, never passing *total*."""
    if dt < 0.0:
        raise ValueError("dt must be >= 0.")
    return min(total, elapsed + dt)


def is_complete(state: RaceState) -> bool:
    """True once either the race distance or the race duration is reached."""
    return (
        state.current_lap >= state.total_laps
        or state.elapsed_s >= state.total_duration_s
    )
