"""Periodic driving loop for the race-state reducer.

:class:`RaceRunner` owns the current :class:`RaceState` and one seeded
``numpy.random.Generator``.  An asyncio task sleeps for the tick interval
and applies :func:`~race_engine.core.simulation.step`; every state change,
whether from a tick or from a pit-stop request, goes through
:meth:`RaceRunner._commit` so that each read-modify-write is atomic with
respect to the event loop.

Advisory calls run as separate tasks and write only to the advisor's own
state object.  A structured pit plan returned by the advisor is applied
through the same commit path as everything else.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable

import numpy as np
from numpy.random import Generator

from race_engine.core.driver import PitPlan
from race_engine.core.events import EventKind, RaceEvent
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.simulation import (
    apply_pit_plan,
    cancel_pit_stop,
    plan_pit_stop,
    step,
)
from race_engine.core.state import RaceState
from race_engine.core.tyre import TyreCompound

if TYPE_CHECKING:
    from race_engine.advisory.advisor import StrategyAdvisor

logger = logging.getLogger(__name__)

EventListener = Callable[[RaceEvent], None]


class RaceRunner:
    """Drives a race on a fixed wall-clock interval.

    Attributes:
        config: Simulation parameters.
        state: Current race state.  Read freely; never assign directly.
        advisor: Optional advisor consulted after each tick.
        auto_apply_plans: Apply structured pit plans from the advisor.
    """

    def __init__(
        self,
        state: RaceState,
        config: SimulationConfig,
        rng: Generator | None = None,
        advisor: StrategyAdvisor | None = None,
        auto_apply_plans: bool = False,
    ) -> None:
        self.config: SimulationConfig = config
        self.state: RaceState = state
        self._rng: Generator = rng if rng is not None else np.random.default_rng(config.seed)
        self.advisor: StrategyAdvisor | None = advisor
        self.auto_apply_plans: bool = auto_apply_plans
        self._listeners: list[EventListener] = []
        self._task: asyncio.Task[None] | None = None
        self._advisory_tasks: set[asyncio.Task[None]] = set()
        self._completion_sent: bool = False

    # -- Listeners ----------------------------------------------------------

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def _emit(self, events: tuple[RaceEvent, ...]) -> None:
        for event in events:
            if event.kind is EventKind.RACE_FINISHED:
                if self._completion_sent:
                    continue
                self._completion_sent = True
            log = logger.warning if event.severity == "warning" else logger.debug
            log("[lap %d] %s", event.lap, event.message)
            for listener in self._listeners:
                listener(event)

    # -- Single mutation path ----------------------------------------------

    def _commit(self, update: Callable[[RaceState], RaceState]) -> RaceState:
        self.state = update(self.state)
        return self.state

    def tick(self) -> tuple[RaceEvent, ...]:
        """Apply one tick synchronously and notify listeners."""
        events: tuple[RaceEvent, ...] = ()

        def _advance(current: RaceState) -> RaceState:
            nonlocal events
            result = step(current, self.config, self._rng)
            events = result.events
            return result.state

        self._commit(_advance)
        self._emit(events)
        return events

    def plan_pit_stop(
        self, driver_id: str, target_lap: int, compound: TyreCompound
    ) -> RaceState:
        return self._commit(lambda s: plan_pit_stop(s, driver_id, target_lap, compound))

    def cancel_pit_stop(self, driver_id: str) -> RaceState:
        return self._commit(lambda s: cancel_pit_stop(s, driver_id))

    def apply_plan(self, plan: PitPlan) -> bool:
        """Apply an advisory pit plan; invalid plans are logged and dropped."""
        try:
            self._commit(lambda s: apply_pit_plan(s, plan))
        except (KeyError, ValueError) as exc:
            logger.warning("Ignoring advisory pit plan %s: %s", plan, exc)
            return False
        return True

    # -- Loop ---------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Start the periodic loop on the running event loop."""
        if self.running:
            raise RuntimeError("Race runner is already running.")
        self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self, max_ticks: int | None = None) -> RaceState:
        """Tick every ``tick_interval_s`` until the race finishes.

        Args:
            max_ticks: Stop after this many ticks even if the race is not
                over.  ``None`` runs to completion.
        """
        ticks = 0
        while not self.state.finished:
            if max_ticks is not None and ticks >= max_ticks:
                break
            await asyncio.sleep(self.config.tick_interval_s)
            self.tick()
            ticks += 1
            self._consult_advisor()
        await self.drain_advisory()
        return self.state

    async def stop(self) -> None:
        """Cancel the loop and any in-flight advisory call."""
        tasks = list(self._advisory_tasks)
        if self._task is not None and not self._task.done():
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._advisory_tasks.clear()

    # -- Advisory -----------------------------------------------------------

    def _consult_advisor(self) -> None:
        if self.advisor is None or self.state.finished:
            return
        snapshot = self.state
        task = asyncio.create_task(self._advise(snapshot))
        self._advisory_tasks.add(task)
        task.add_done_callback(self._advisory_done)

    def _advisory_done(self, task: asyncio.Task[None]) -> None:
        self._advisory_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Advisory task failed: %s", exc, exc_info=exc)

    async def _advise(self, snapshot: RaceState) -> None:
        assert self.advisor is not None
        advice = await self.advisor.request_team_strategy(snapshot)
        if advice is not None and advice.plan is not None and self.auto_apply_plans:
            self.apply_plan(advice.plan)

    async def drain_advisory(self) -> None:
        """Wait for in-flight advisory calls to settle."""
        if self._advisory_tasks:
            await asyncio.gather(*list(self._advisory_tasks), return_exceptions=True)
