"""Tests for prompt rendering, JSON extraction and the Anthropic client wrapper.

The SDK is replaced with a small fake exposing ``messages.create`` so the
suite needs neither network access nor an API key.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from race_engine.advisory.client import (
    AdvisoryError,
    AnthropicAdvisoryClient,
    build_team_prompt,
    create_client,
    extract_json,
)
from race_engine.advisory.schemas import TeamDriverStatus, TeamStrategyRequest
from race_engine.core.tyre import TyreCompound

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _FakeMessages:
    def __init__(self, text: str) -> None:
        self.text = text
        self.kwargs: dict[str, object] = {}

    async def create(self, **kwargs: object) -> SimpleNamespace:
        self.kwargs = kwargs
        return SimpleNamespace(content=[SimpleNamespace(text=self.text)])


def _fake_sdk(text: str) -> SimpleNamespace:
    return SimpleNamespace(messages=_FakeMessages(text))


def _team_request() -> TeamStrategyRequest:
    return TeamStrategyRequest(
        drivers=(
            TeamDriverStatus("DRA", "Driver A", "Medium", 8, 16.0, 76.0, 1680.0, True, 8),
            TeamDriverStatus("DRB", "Driver B", "Medium", 0, 0.0, 100.0, 0.0, False, 8),
        ),
        current_lap=8,
        total_laps=380,
        elapsed_s=1680.0,
        total_duration_s=86400.0,
        weather="Sunny",
        safety_car="None",
        track_name="Circuit de la Sarthe",
        max_drive_time_s=50400.0,
    )


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------


def test_extract_bare_json() -> None:
    assert extract_json('{"a": 1}') == {"a": 1}


def test_extract_fenced_json() -> None:
    text = 'Here you go:\n```json\n{"suggested_action": "Stay out"}\n```\nGood luck.'
    assert extract_json(text) == {"suggested_action": "Stay out"}


def test_extract_embedded_json() -> None:
    text = 'My advice is {"suggested_action": "Box"} and that is final.'
    assert extract_json(text)["suggested_action"] == "Box"


def test_extract_rejects_prose() -> None:
    with pytest.raises(AdvisoryError):
        extract_json("I cannot help with that.")


def test_extract_rejects_json_array() -> None:
    with pytest.raises(AdvisoryError):
        extract_json("[1, 2, 3]")


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


def test_team_prompt_states_drive_time_cap() -> None:
    prompt = build_team_prompt(_team_request())
    assert "50400 seconds" in prompt
    assert "14.0 hours" in prompt
    assert "Driver A (driver_id DRA)" in prompt
    assert "Currently driving: YES" in prompt
    assert "Currently driving: NO" in prompt


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


def test_team_strategy_round_trip_through_fake_sdk() -> None:
    reply = (
        '```json\n{"suggested_action": "Double stint", "reasoning": "Tyres fine",'
        ' "plan": {"driver_id": "DRA", "target_lap": 10, "compound": "Hard"}}\n```'
    )
    sdk = _fake_sdk(reply)
    client = AnthropicAdvisoryClient(sdk, "test-model")

    advice = asyncio.run(client.suggest_team_strategy(_team_request()))
    assert advice.suggested_action == "Double stint"
    assert advice.plan is not None and advice.plan.compound is TyreCompound.HARD
    assert sdk.messages.kwargs["model"] == "test-model"
    assert "system" in sdk.messages.kwargs


def test_unparseable_reply_raises() -> None:
    client = AnthropicAdvisoryClient(_fake_sdk("no json here"), "test-model")
    with pytest.raises(AdvisoryError):
        asyncio.run(client.suggest_team_strategy(_team_request()))


def test_create_client_without_key(monkeypatch: pytest.MonkeyPatch) -> None:
    """No API key means no client, not an error."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    assert create_client("test-model", 5.0) is None
