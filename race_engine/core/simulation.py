"""Race-state reducer for the endurance race simulator.

:func:`step` is a pure transition ``(state, config, rng) -> TickResult``.
It never mutates its input; the only source of non-determinism is the
injected ``numpy.random.Generator``, so a seeded generator reproduces a
race exactly.

Per tick, in order:
    1. Termination guard.  A finished state is returned unchanged with no
       events.  A state that already sits on its lap or time limit is
       marked finished and a single ``RACE_FINISHED`` event is emitted.
    2. Pit lane.  Planned pit stops whose target lap has been completed
       are taken.  In team mode the Driving driver is then checked
       against the stint length and drive-time limits and rotated out if
       either is reached.
    3. Race control.  Weather and safety-car transitions are rolled; in
       grid mode a P1/P2 position swap is rolled too.
    4. Lap.  Every Driving driver completes one lap: a lap time is drawn,
       tyre wear and fuel are advanced, and the history entry is added.
    5. Clock.  Elapsed time advances by one tick (clamped at the race
       duration) and the same amount is credited to each Driving driver.
    6. Completion.  If the lap or time limit has now been reached the
       state is marked finished and ``RACE_FINISHED`` is emitted.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from numpy.random import Generator

from race_engine.core.clock import advance_clock, is_complete, tick_seconds
from race_engine.core.driver import Driver, PitPlan, PlannedPitStop
from race_engine.core.events import (
    EventKind,
    RaceEvent,
    roll_position_swap,
    roll_safety_car,
    roll_weather,
)
from race_engine.core.lap import draw_lap_time, drive_lap
from race_engine.core.rotation import needs_rotation, pit_driver, rotate
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.state import (
    RaceMode,
    RaceState,
    SafetyCar,
    Weather,
    active_index,
    driver_by_id,
    replace_driver,
)
from race_engine.core.team import Team, initial_team_drivers
from race_engine.core.tyre import TyreCompound

# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TickResult:
    """New state plus the events produced by one tick."""

    state: RaceState
    events: tuple[RaceEvent, ...] = ()


# ---------------------------------------------------------------------------
# State factories
# ---------------------------------------------------------------------------


def new_team_race(team: Team, config: SimulationConfig) -> RaceState:
    """Create the starting state of a team-mode endurance race."""
    return RaceState(
        current_lap=0,
        total_laps=config.total_laps,
        elapsed_s=0.0,
        total_duration_s=config.total_duration_s,
        track_name=config.track_name,
        drivers=initial_team_drivers(team, config),
        mode=RaceMode.TEAM,
    )


def new_grid_race(
    drivers: list[Driver] | tuple[Driver, ...],
    config: SimulationConfig,
    *,
    track_name: str | None = None,
    weather: Weather = Weather.SUNNY,
    safety_car: SafetyCar = SafetyCar.NONE,
    current_lap: int = 0,
) -> RaceState:
    """Create a grid-mode state in which every driver is on track."""
    if not drivers:
        raise ValueError("drivers must not be empty.")
    return RaceState(
        current_lap=min(current_lap, config.total_laps),
        total_laps=config.total_laps,
        elapsed_s=0.0,
        total_duration_s=config.total_duration_s,
        weather=weather,
        safety_car=safety_car,
        track_name=track_name or config.track_name,
        drivers=tuple(replace(d, is_driving=True) for d in drivers),
        mode=RaceMode.GRID,
    )


# ---------------------------------------------------------------------------
# Planned pit stops
# ---------------------------------------------------------------------------


def plan_pit_stop(
    state: RaceState,
    driver_id: str,
    target_lap: int,
    compound: TyreCompound,
) -> RaceState:
    """Schedule a pit stop for the Driving driver *driver_id*.

    The stop is taken at the start of the tick after *target_lap* is
    completed.

    Raises:
        KeyError: If *driver_id* is unknown.
        ValueError: If the driver is not in the car, or *target_lap* is
            not after the current lap or beyond the race distance.
    """
    drv = driver_by_id(state, driver_id)
    if not drv.is_driving:
        raise ValueError(f"{drv.name} is not driving; only the car on track can pit.")
    if target_lap <= state.current_lap:
        raise ValueError(
            f"target_lap {target_lap} must be after the current lap "
            f"{state.current_lap}."
        )
    if target_lap > state.total_laps:
        raise ValueError(
            f"target_lap {target_lap} is beyond the race distance "
            f"({state.total_laps} laps)."
        )
    planned = PlannedPitStop(target_lap=target_lap, compound=compound)
    return replace_driver(state, replace(drv, planned_pit_stop=planned))


def can_cancel_pit_stop(state: RaceState, driver: Driver) -> bool:
    """True while *driver* has a planned stop that is not yet imminent."""
    stop = driver.planned_pit_stop
    return stop is not None and state.current_lap + 1 < stop.target_lap


def cancel_pit_stop(state: RaceState, driver_id: str) -> RaceState:
    """Drop any pending pit stop for *driver_id*.

    Raises:
        KeyError: If *driver_id* is unknown.
        ValueError: If the stop is due within the next lap and the car is
            already committed to the pit lane.
    """
    drv = driver_by_id(state, driver_id)
    if drv.planned_pit_stop is None:
        return state
    if not can_cancel_pit_stop(state, drv):
        raise ValueError(
            f"Cannot cancel {drv.name}'s stop on lap "
            f"{drv.planned_pit_stop.target_lap}: the pit is approaching."
        )
    return replace_driver(state, replace(drv, planned_pit_stop=None))


def apply_pit_plan(state: RaceState, plan: PitPlan) -> RaceState:
    """Schedule the stop described by a structured advisory plan."""
    return plan_pit_stop(state, plan.driver_id, plan.target_lap, plan.compound)


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------


def _finish(state: RaceState) -> TickResult:
    finished = replace(state, finished=True)
    if state.elapsed_s >= state.total_duration_s:
        reason = "race time has expired"
    else:
        reason = "the chequered flag is out"
    event = RaceEvent(
        kind=EventKind.RACE_FINISHED,
        lap=state.current_lap,
        message=f"Race finished after {state.current_lap} laps: {reason}.",
    )
    return TickResult(state=finished, events=(event,))


def _pit_lane(
    drivers: tuple[Driver, ...],
    mode: RaceMode,
    config: SimulationConfig,
    lap: int,
) -> tuple[tuple[Driver, ...], list[RaceEvent]]:
    events: list[RaceEvent] = []
    roster = list(drivers)

    for idx, drv in enumerate(roster):
        plan = drv.planned_pit_stop
        if plan is None or not drv.is_driving or lap < plan.target_lap:
            continue
        roster[idx] = pit_driver(drv, plan.compound, lap)
        events.append(
            RaceEvent(
                kind=EventKind.PIT_STOP,
                lap=lap,
                message=(
                    f"{drv.name} takes the planned stop: fresh "
                    f"{plan.compound.label} tyres and full fuel."
                ),
                driver_id=drv.driver_id,
            )
        )

    if mode is RaceMode.TEAM:
        idx = next((i for i, d in enumerate(roster) if d.is_driving), None)
        if idx is not None:
            reason = needs_rotation(roster[idx], config)
            if reason is not None:
                outcome = rotate(tuple(roster), idx, reason, config, lap)
                roster = list(outcome.drivers)
                events.extend(outcome.events)

    return tuple(roster), events


def step(state: RaceState, config: SimulationConfig, rng: Generator) -> TickResult:
    """Advance *state* by one tick.  See the module docstring for the order."""
    if state.finished:
        return TickResult(state=state)
    if is_complete(state):
        return _finish(state)

    events: list[RaceEvent] = []

    # -- Pit lane ---------------------------------------------------------
    drivers, pit_events = _pit_lane(state.drivers, state.mode, config, state.current_lap)
    events.extend(pit_events)

    # -- Race control -----------------------------------------------------
    weather = roll_weather(state.weather, config, rng)
    if weather is not state.weather:
        events.append(
            RaceEvent(
                kind=EventKind.WEATHER_CHANGE,
                lap=state.current_lap,
                message=f"Weather changes from {state.weather.value} to {weather.value}.",
            )
        )
    safety_car = roll_safety_car(state.safety_car, config, rng)
    if safety_car is not state.safety_car:
        if safety_car is SafetyCar.NONE:
            message = "Safety car period ends, green flag."
        elif safety_car is SafetyCar.VIRTUAL:
            message = "Virtual safety car deployed."
        else:
            message = "Safety car deployed."
        events.append(
            RaceEvent(
                kind=EventKind.SAFETY_CAR,
                lap=state.current_lap,
                message=message,
                severity="info" if safety_car is SafetyCar.NONE else "warning",
            )
        )
    if state.mode is RaceMode.GRID:
        drivers, swapped = roll_position_swap(drivers, config, rng)
        if swapped:
            leader = next(d for d in drivers if d.position == 1)
            events.append(
                RaceEvent(
                    kind=EventKind.POSITION_CHANGE,
                    lap=state.current_lap,
                    message=f"{leader.name} takes the lead.",
                    driver_id=leader.driver_id,
                )
            )

    # -- Lap --------------------------------------------------------------
    lap = state.current_lap + 1
    roster = list(drivers)
    for idx, drv in enumerate(roster):
        if not drv.is_driving:
            continue
        lap_time = draw_lap_time(config, rng, weather, safety_car)
        roster[idx] = drive_lap(drv, lap, lap_time, config)

    # -- Clock ------------------------------------------------------------
    elapsed = advance_clock(
        state.elapsed_s, tick_seconds(config), state.total_duration_s
    )
    credited = elapsed - state.elapsed_s
    roster = [
        replace(d, drive_time_s=d.drive_time_s + credited) if d.is_driving else d
        for d in roster
    ]

    new_state = replace(
        state,
        current_lap=lap,
        elapsed_s=elapsed,
        weather=weather,
        safety_car=safety_car,
        drivers=tuple(roster),
        tick=state.tick + 1,
    )

    if state.mode is RaceMode.TEAM:
        idx = active_index(new_state)
        if idx is not None:
            drv = new_state.drivers[idx]
            events.append(
                RaceEvent(
                    kind=EventKind.LAP_COMPLETED,
                    lap=lap,
                    message=f"Lap {lap}: {drv.name} {drv.last_lap_time:.3f} s.",
                    driver_id=drv.driver_id,
                )
            )
    else:
        events.append(
            RaceEvent(kind=EventKind.LAP_COMPLETED, lap=lap, message=f"Lap {lap} completed.")
        )

    # -- Completion -------------------------------------------------------
    if is_complete(new_state):
        done = _finish(new_state)
        return TickResult(state=done.state, events=tuple(events) + done.events)
    return TickResult(state=new_state, events=tuple(events))


def run_ticks(
    state: RaceState,
    config: SimulationConfig,
    rng: Generator,
    ticks: int,
) -> tuple[RaceState, list[RaceEvent]]:
    """Apply up to *ticks* ticks, stopping early once the race has finished."""
    events: list[RaceEvent] = []
    for _ in range(ticks):
        if state.finished:
            break
        result = step(state, config, rng)
        state = result.state
        events.extend(result.events)
    return state, events
