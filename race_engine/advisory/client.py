"""Advisory service client backed by the Anthropic Messages API.

The service is treated as an opaque text generator: this module only
renders prompts from request records and parses the JSON object that the
prompt asks for.  Requires the ``ANTHROPIC_API_KEY`` environment
variable; :func:`create_client` returns ``None`` without it.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from typing import Any, Protocol

from race_engine.advisory.schemas import (
    CompetitorAnalysis,
    CompetitorAnalysisRequest,
    DriverPitRequest,
    StrategyAdvice,
    TeamStrategyRequest,
    advice_from_payload,
    competitor_from_payload,
)

logger = logging.getLogger(__name__)

# Retries are handled by the SDK; the caller's own deadline bounds the total.
_API_MAX_RETRIES = 2
_MAX_TOKENS = 1024


class AdvisoryError(RuntimeError):
    """The advisory service returned something that could not be used."""


class AdvisoryClient(Protocol):
    async def suggest_pit_stop(self, request: DriverPitRequest) -> StrategyAdvice: ...

    async def suggest_team_strategy(
        self, request: TeamStrategyRequest
    ) -> StrategyAdvice: ...

    async def analyze_competitor(
        self, request: CompetitorAnalysisRequest
    ) -> CompetitorAnalysis: ...


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_STRATEGY_SYSTEM = (
    "You are an expert endurance race strategist. Answer with a single JSON "
    "object and nothing else."
)

_ADVICE_SCHEMA = """{
  "suggested_action": "string",
  "reasoning": "string",
  "next_pit_lap": integer or null,
  "recommended_next_driver": "string" or null,
  "plan": {"driver_id": "string", "target_lap": integer,
           "compound": "Soft" | "Medium" | "Hard" | "Intermediate" | "Wet"} or null
}"""

_COMPETITOR_SCHEMA = """{
  "strategy_summary": "string",
  "tire_compound": "Soft" | "Medium" | "Hard" | "Intermediate" | "Wet",
  "tire_age_laps": integer,
  "driver_in_front": {"name": "string", "gap": "string", "action": "string"} or null,
  "driver_behind": {"name": "string", "gap": "string", "action": "string"} or null,
  "notes": ["string"]
}"""


def build_pit_stop_prompt(request: DriverPitRequest) -> str:
    """Render the single-driver pit-stop prompt."""
    return (
        "Suggest the optimal pit-stop strategy for this driver.\n\n"
        f"Driver: {request.driver_name}\n"
        f"Current lap: {request.current_lap}\n"
        f"Tyres: {request.tire_condition}\n"
        f"Fuel: {request.fuel_level}%\n"
        f"Position: P{request.race_position}\n"
        f"Weather: {request.weather}\n"
        f"Competitor strategies: {request.competitor_strategies or 'unknown'}\n\n"
        "Only fill in 'plan' if a stop should be scheduled; use the driver's "
        "name as driver_id.\n"
        f"Reply with JSON of this shape:\n{_ADVICE_SCHEMA}"
    )


def build_team_prompt(request: TeamStrategyRequest) -> str:
    """Render the team-mode strategy prompt, one block per driver."""
    max_hours = request.max_drive_time_s / 3600.0
    lines = [
        f"The team shares one car between {len(request.drivers)} drivers. Each "
        f"driver may drive at most {request.max_drive_time_s:.0f} seconds "
        f"({max_hours:.1f} hours) in total. Never exceed that limit.",
        "",
        f"Track: {request.track_name}",
        f"Race progress: lap {request.current_lap} of {request.total_laps}",
        f"Time elapsed: {request.elapsed_s:.0f} s of {request.total_duration_s:.0f} s",
        f"Weather: {request.weather}",
        f"Safety car: {request.safety_car}",
        "",
        "Team drivers:",
    ]
    for d in request.drivers:
        lines.extend(
            [
                f"- {d.name} (driver_id {d.driver_id})",
                f"  Currently driving: {'YES' if d.is_driving else 'NO'}",
                f"  Tyres: {d.tire_compound}, age {d.tire_age_laps} laps, wear {d.tire_wear}%",
                f"  Fuel: {d.fuel_level}%",
                f"  Drive time so far: {d.drive_time_s:.0f} s",
            ]
        )
    lines.extend(
        [
            "",
            "Consider driver rotation and drive-time limits first, then tyre "
            "wear, fuel, weather and safety-car opportunities. If a stop "
            "should be scheduled for the driver in the car, fill in 'plan' "
            "with their driver_id and a target lap after the current lap.",
            f"Reply with JSON of this shape:\n{_ADVICE_SCHEMA}",
        ]
    )
    return "\n".join(lines)


def build_competitor_prompt(request: CompetitorAnalysisRequest) -> str:
    return (
        "Analyse this competitor's likely strategy.\n\n"
        f"Competitor: {request.competitor_name}\n"
        f"Historical data: {request.historical_data or 'none'}\n"
        f"Current race data:\n{request.current_race_data}\n\n"
        "Omit driver_in_front or driver_behind when there is nobody there.\n"
        f"Reply with JSON of this shape:\n{_COMPETITOR_SCHEMA}"
    )


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def extract_json(text: str) -> dict[str, Any]:
    """Pull the JSON object out of a model reply.

    Accepts bare JSON, JSON in a fenced code block, or JSON embedded in
    surrounding prose.

    Raises:
        AdvisoryError: If no JSON object can be recovered.
    """
    json_text = text.strip()
    if "```json" in json_text:
        json_text = json_text.split("```json", 1)[1].split("```", 1)[0]
    elif "```" in json_text:
        json_text = json_text.split("```", 1)[1].split("```", 1)[0]

    data: Any = None
    try:
        data = json.loads(json_text.strip())
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start != -1 and end > start:
            with contextlib.suppress(json.JSONDecodeError):
                data = json.loads(text[start : end + 1])

    if not isinstance(data, dict):
        raise AdvisoryError("Advisory reply did not contain a JSON object.")
    return data


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AnthropicAdvisoryClient:
    """:class:`AdvisoryClient` implementation over ``anthropic.AsyncAnthropic``."""

    def __init__(self, client: Any, model: str) -> None:
        self._client = client
        self.model: str = model

    async def _complete(self, prompt: str) -> dict[str, Any]:
        message = await self._client.messages.create(
            model=self.model,
            max_tokens=_MAX_TOKENS,
            system=_STRATEGY_SYSTEM,
            messages=[{"role": "user", "content": prompt}],
        )
        if not message.content:
            raise AdvisoryError("Advisory reply was empty.")
        block = message.content[0]
        text = block.text if hasattr(block, "text") else str(block)
        return extract_json(text)

    async def suggest_pit_stop(self, request: DriverPitRequest) -> StrategyAdvice:
        data = await self._complete(build_pit_stop_prompt(request))
        return advice_from_payload(data)

    async def suggest_team_strategy(self, request: TeamStrategyRequest) -> StrategyAdvice:
        data = await self._complete(build_team_prompt(request))
        return advice_from_payload(data)

    async def analyze_competitor(
        self, request: CompetitorAnalysisRequest
    ) -> CompetitorAnalysis:
        data = await self._complete(build_competitor_prompt(request))
        return competitor_from_payload(data)


def create_client(model: str, timeout_s: float) -> AnthropicAdvisoryClient | None:
    """Create the Anthropic-backed client, or ``None`` if no API key is set."""
    api_key = os.environ.get("ANTHROPIC_API_KEY", "")
    if not api_key:
        logger.info("ANTHROPIC_API_KEY not set; AI strategy advice disabled")
        return None

    import anthropic

    sdk_client = anthropic.AsyncAnthropic(
        api_key=api_key,
        max_retries=_API_MAX_RETRIES,
        timeout=timeout_s,
    )
    return AnthropicAdvisoryClient(sdk_client, model)
