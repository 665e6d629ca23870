"""Cool-down and de-duplication around the advisory service.

Each advisory channel (team strategy, single-driver pit stop, competitor
analysis) keeps its own :class:`AdvisoryState`.  A call is skipped when:

* the channel is cooling down after a failure or timeout,
* a call on the channel is already in flight, or
* the inputs have not changed materially since the last successful call
  (lap moved by fewer than ``advisory_lap_step`` laps, no driver's wear
  or fuel moved by ``material_change_step`` points, and weather, safety
  car and the driver in the car are unchanged).

Every call is bounded by ``advisory_timeout_s``.  Failures are recorded on
the channel state and never raised to the caller, so the simulation keeps
running whatever the service does.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from race_engine.advisory.client import AdvisoryClient
from race_engine.advisory.schemas import (
    CompetitorAnalysis,
    StrategyAdvice,
    build_competitor_request,
    build_driver_request,
    build_team_request,
)
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.state import RaceState, active_driver

logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_TIMEOUT = "timeout"
ERROR_FAILURE = "failure"

SKIP_IN_FLIGHT = "a request is already in progress"
SKIP_COOLDOWN = "cooling down after a failed request"
SKIP_UNCHANGED = "race situation unchanged since the last advice"


@dataclass(frozen=True)
class AdvisoryInputs:
    """The race facts a piece of advice depends on."""

    lap: int
    weather: str
    safety_car: str
    driving: tuple[str, ...]
    wear_fuel: tuple[tuple[str, float, float], ...]

    @classmethod
    def from_state(cls, state: RaceState) -> AdvisoryInputs:
        return cls(
            lap=state.current_lap,
            weather=state.weather.value,
            safety_car=state.safety_car.value,
            driving=tuple(d.driver_id for d in state.drivers if d.is_driving),
            wear_fuel=tuple((d.driver_id, d.tyres.wear, d.fuel) for d in state.drivers),
        )

    def differs_materially(
        self, other: AdvisoryInputs, lap_step: int, value_step: float
    ) -> bool:
        if abs(self.lap - other.lap) >= lap_step:
            return True
        if (self.weather, self.safety_car, self.driving) != (
            other.weather,
            other.safety_car,
            other.driving,
        ):
            return True
        if [w[0] for w in self.wear_fuel] != [w[0] for w in other.wear_fuel]:
            return True
        for (_, wear, fuel), (_, prev_wear, prev_fuel) in zip(
            self.wear_fuel, other.wear_fuel
        ):
            if abs(wear - prev_wear) >= value_step or abs(fuel - prev_fuel) >= value_step:
                return True
        return False


class AdvisoryState:
    """Mutable bookkeeping for one advisory channel.

    Attributes:
        result: Latest successful reply.
        error: Message for the last failure, cleared on success.
        error_kind: ``"timeout"`` or ``"failure"``.
        cooldown_until: Clock reading before which no call is attempted.
        last_inputs: Inputs of the last successful call.
        in_flight: Whether a call is currently awaiting the service.
        calls: Number of calls actually sent.
        skipped: Why the latest request was not sent, or ``None`` if it was.
    """

    __slots__ = (
        "result",
        "error",
        "error_kind",
        "cooldown_until",
        "last_inputs",
        "in_flight",
        "calls",
        "skipped",
    )

    def __init__(self) -> None:
        self.result: object | None = None
        self.error: str | None = None
        self.error_kind: str | None = None
        self.cooldown_until: float = 0.0
        self.last_inputs: AdvisoryInputs | None = None
        self.in_flight: bool = False
        self.calls: int = 0
        self.skipped: str | None = None


class StrategyAdvisor:
    """Rate-limited front end to an :class:`AdvisoryClient`."""

    def __init__(
        self,
        client: AdvisoryClient,
        config: SimulationConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client: AdvisoryClient = client
        self.config: SimulationConfig = config
        self._clock = clock
        self.team = AdvisoryState()
        self.pit = AdvisoryState()
        self.competitor = AdvisoryState()
        self._pit_driver: str | None = None
        self._competitor_id: str | None = None

    def cooling_down(self, channel: AdvisoryState) -> bool:
        return self._clock() < channel.cooldown_until

    def _skip_reason(self, channel: AdvisoryState, inputs: AdvisoryInputs) -> str | None:
        """Why a call on *channel* would be skipped now, or ``None`` to send it."""
        if channel.in_flight:
            return SKIP_IN_FLIGHT
        if self.cooling_down(channel):
            return SKIP_COOLDOWN
        if channel.last_inputs is not None and not inputs.differs_materially(
            channel.last_inputs,
            self.config.advisory_lap_step,
            self.config.material_change_step,
        ):
            return SKIP_UNCHANGED
        return None

    async def _call(
        self,
        channel: AdvisoryState,
        inputs: AdvisoryInputs,
        label: str,
        send: Callable[[], Awaitable[T]],
    ) -> T | None:
        channel.skipped = self._skip_reason(channel, inputs)
        if channel.skipped is not None:
            logger.debug("%s skipped: %s", label, channel.skipped)
            return None

        timeout = self.config.advisory_timeout_s
        cooldown = self.config.advisory_cooldown_s
        channel.in_flight = True
        channel.calls += 1
        try:
            result = await asyncio.wait_for(send(), timeout=timeout)
        except asyncio.TimeoutError:
            channel.error = (
                f"{label} timed out after {timeout:.0f} s; "
                f"next attempt in {cooldown:.0f} s."
            )
            channel.error_kind = ERROR_TIMEOUT
            channel.cooldown_until = self._clock() + cooldown
            logger.warning("%s timed out after %.1f s", label, timeout)
            return None
        except Exception as exc:
            channel.error = (
                f"{label} is temporarily unavailable ({exc}); "
                f"next attempt in {cooldown:.0f} s."
            )
            channel.error_kind = ERROR_FAILURE
            channel.cooldown_until = self._clock() + cooldown
            logger.warning("%s failed: %s", label, exc)
            return None
        finally:
            channel.in_flight = False

        channel.result = result
        channel.error = None
        channel.error_kind = None
        channel.last_inputs = inputs
        return result

    async def request_team_strategy(self, state: RaceState) -> StrategyAdvice | None:
        """Ask for team strategy advice unless throttled."""
        request = build_team_request(state, self.config)
        return await self._call(
            self.team,
            AdvisoryInputs.from_state(state),
            "Strategy advice",
            lambda: self.client.suggest_team_strategy(request),
        )

    async def request_pit_stop(
        self,
        state: RaceState,
        driver_id: str | None = None,
        competitor_notes: str = "",
    ) -> StrategyAdvice | None:
        """Ask for single-driver pit advice unless throttled."""
        if driver_id is None and active_driver(state) is None:
            return None
        request = build_driver_request(state, driver_id, competitor_notes)
        if request.driver_name != self._pit_driver:
            self.pit.last_inputs = None
        self._pit_driver = request.driver_name
        return await self._call(
            self.pit,
            AdvisoryInputs.from_state(state),
            "Pit-stop advice",
            lambda: self.client.suggest_pit_stop(request),
        )

    async def request_competitor_analysis(
        self,
        state: RaceState,
        driver_id: str,
        historical_data: str = "",
    ) -> CompetitorAnalysis | None:
        """Ask for an analysis of *driver_id*'s strategy unless throttled.

        A different competitor always counts as a material change.
        """
        request = build_competitor_request(state, driver_id, historical_data)
        if driver_id != self._competitor_id:
            self.competitor.last_inputs = None
        self._competitor_id = driver_id
        return await self._call(
            self.competitor,
            AdvisoryInputs.from_state(state),
            "Competitor analysis",
            lambda: self.client.analyze_competitor(request),
        )
