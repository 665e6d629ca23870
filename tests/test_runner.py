"""Tests for the asyncio race runner."""

from __future__ import annotations

import asyncio
import logging

import numpy as np
import pytest

from race_engine.advisory.advisor import StrategyAdvisor
from race_engine.advisory.schemas import StrategyAdvice
from race_engine.core.driver import PitPlan
from race_engine.core.events import EventKind, RaceEvent
from race_engine.core.runner import RaceRunner
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.simulation import new_team_race
from race_engine.core.team import Team, TeamMember
from race_engine.core.tyre import TyreCompound

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _sample_team() -> Team:
    return Team(
        name="Test Team",
        members=[TeamMember("Driver A", "DRA"), TeamMember("Driver B", "DRB"), TeamMember("Driver C", "DRC")],
    )


def _config(**overrides: object) -> SimulationConfig:
    params: dict[str, object] = dict(
        tick_interval_s=0.0,
        weather_change_probability=0.0,
        safety_car_probability=0.0,
        seed=5,
    )
    params.update(overrides)
    return SimulationConfig(**params)  # type: ignore[arg-type]


def _runner(config: SimulationConfig, **kwargs: object) -> RaceRunner:
    return RaceRunner(new_team_race(_sample_team(), config), config, **kwargs)  # type: ignore[arg-type]


class _PlanningClient:
    """Advisory client that always proposes a stop in two laps."""

    def __init__(self) -> None:
        self.calls = 0

    async def suggest_team_strategy(self, request):
        self.calls += 1
        driving = next(d for d in request.drivers if d.is_driving)
        return StrategyAdvice(
            suggested_action="Box soon",
            reasoning="Tyres are fading.",
            plan=PitPlan(driving.driver_id, request.current_lap + 2, TyreCompound.HARD),
        )

    async def suggest_pit_stop(self, request):
        raise NotImplementedError

    async def analyze_competitor(self, request):
        raise NotImplementedError


class _BrokenAdvisor:
    """Advisor whose request itself blows up."""

    async def request_team_strategy(self, snapshot):
        raise RuntimeError("advisor exploded")


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_run_to_completion_notifies_once() -> None:
    """Listeners see exactly one completion notice."""
    config = _config(total_laps=6)
    runner = _runner(config)
    received: list[RaceEvent] = []
    runner.subscribe(received.append)

    state = asyncio.run(runner.run())
    assert state.finished
    assert state.current_lap == 6
    assert [e.kind for e in received].count(EventKind.RACE_FINISHED) == 1

    runner.tick()
    assert [e.kind for e in received].count(EventKind.RACE_FINISHED) == 1


def test_max_ticks_stops_early() -> None:
    config = _config()
    runner = _runner(config)
    state = asyncio.run(runner.run(max_ticks=4))
    assert state.current_lap == 4
    assert not state.finished


def test_start_and_stop() -> None:
    """start() schedules the loop; stop() cancels it cleanly."""
    config = _config(tick_interval_s=0.01)
    runner = _runner(config)

    async def scenario() -> None:
        runner.start()
        assert runner.running
        await asyncio.sleep(0.05)
        await runner.stop()

    asyncio.run(scenario())
    assert not runner.running
    assert runner.state.current_lap >= 1


def test_pit_stop_requests_go_through_runner() -> None:
    config = _config()
    runner = _runner(config)
    runner.plan_pit_stop("DRA", 2, TyreCompound.SOFT)
    assert runner.state.drivers[0].planned_pit_stop is not None
    runner.cancel_pit_stop("DRA")
    assert runner.state.drivers[0].planned_pit_stop is None


def test_invalid_plan_is_dropped() -> None:
    """A plan for a standby driver is logged and ignored."""
    config = _config()
    runner = _runner(config)
    assert not runner.apply_plan(PitPlan("DRB", 5, TyreCompound.HARD))
    assert not runner.apply_plan(PitPlan("NOPE", 5, TyreCompound.HARD))
    assert runner.apply_plan(PitPlan("DRA", 5, TyreCompound.HARD))


def test_advisor_plan_applied_when_enabled() -> None:
    config = _config()
    client = _PlanningClient()
    advisor = StrategyAdvisor(client, config)
    runner = _runner(config, advisor=advisor, auto_apply_plans=True)

    state = asyncio.run(runner.run(max_ticks=1))
    assert client.calls == 1
    planned = state.drivers[0].planned_pit_stop
    assert planned is not None
    assert planned.target_lap == 3
    assert planned.compound is TyreCompound.HARD


def test_advisor_plan_not_applied_by_default() -> None:
    config = _config()
    advisor = StrategyAdvisor(_PlanningClient(), config)
    runner = _runner(config, advisor=advisor)
    state = asyncio.run(runner.run(max_ticks=1))
    assert advisor.team.result is not None
    assert state.drivers[0].planned_pit_stop is None


def test_failed_advisory_task_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    """An exception escaping the advisor is logged instead of vanishing with the task."""
    config = _config()
    runner = _runner(config, advisor=_BrokenAdvisor())

    with caplog.at_level(logging.ERROR, logger="race_engine.core.runner"):
        state = asyncio.run(runner.run(max_ticks=1))

    assert state.current_lap == 1
    failures = [r for r in caplog.records if "Advisory task failed" in r.getMessage()]
    assert len(failures) == 1
    assert "advisor exploded" in failures[0].getMessage()
    assert failures[0].exc_info is not None
