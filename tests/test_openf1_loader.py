"""Tests for OpenF1 telemetry mapping.

HTTP is served by ``httpx.MockTransport`` so no network access is needed.
"""

from __future__ import annotations

import httpx
import pytest

from race_engine.core.driver import Driver
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.state import RaceMode, SafetyCar, Weather
from race_engine.core.tyre import TyreCompound
from race_engine.data_ingestion.openf1_loader import (
    DRIVER_COLORS,
    TelemetryError,
    apply_stints,
    best_lap_times,
    drivers_from_records,
    fetch_records,
    laps_frame,
    last_lap_times,
    load_grid_race,
    positions_from_records,
    safety_car_from_race_control,
    weather_from_records,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_DRIVERS = [
    {
        "driver_number": 1,
        "full_name": "Max VERSTAPPEN",
        "name_acronym": "VER",
        "team_name": "Red Bull Racing",
        "team_colour": "3671C6",
    },
    {"driver_number": 44, "first_name": "Lewis", "last_name": "Hamilton"},
    {"driver_number": None, "full_name": "Nobody"},
]

_STINTS = [
    {"driver_number": 1, "stint_number": 1, "compound": "MEDIUM", "lap_start": 1, "lap_end": 20, "tyre_age_at_start": 0},
    {"driver_number": 1, "stint_number": 2, "compound": "HARD", "lap_start": 21, "lap_end": 30, "tyre_age_at_start": 2},
    {"driver_number": 44, "stint_number": 1, "compound": "UNKNOWN", "lap_start": 1, "lap_end": None, "tyre_age_at_start": None},
]

_LAPS = [
    {"driver_number": 1, "lap_number": 29, "lap_duration": 91.2},
    {"driver_number": 1, "lap_number": 30, "lap_duration": 91.8},
    {"driver_number": 44, "lap_number": 29, "lap_duration": None},
    {"driver_number": 44, "lap_number": 30, "lap_duration": 92.4},
]


def _transport(routes: dict[str, object], status: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.rsplit("/", 1)[-1]
        if endpoint not in routes:
            return httpx.Response(404, json={"detail": "not found"})
        return httpx.Response(status, json=routes[endpoint])

    return httpx.MockTransport(handler)


def _client(routes: dict[str, object], status: int = 200) -> httpx.Client:
    return httpx.Client(transport=_transport(routes, status))


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def test_fetch_records_passes_session_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"driver_number": 1}])

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        records = fetch_records("drivers", 9158, client)
    assert records == [{"driver_number": 1}]
    assert seen[0].url.params["session_key"] == "9158"


def test_fetch_records_http_error() -> None:
    with _client({"drivers": []}, status=500) as client:
        with pytest.raises(TelemetryError, match="500"):
            fetch_records("drivers", "latest", client)


def test_fetch_records_rejects_non_list() -> None:
    with _client({"drivers": {"detail": "oops"}}) as client:
        with pytest.raises(TelemetryError):
            fetch_records("drivers", "latest", client)


def test_fetch_records_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(TelemetryError):
            fetch_records("drivers", "latest", client)


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def test_driver_mapping_and_fallbacks() -> None:
    drivers = drivers_from_records(_DRIVERS)
    assert [d.driver_id for d in drivers] == ["1", "44"]

    ver, ham = drivers
    assert ver.name == "Max VERSTAPPEN"
    assert ver.short_name == "VER"
    assert ver.color == "#3671C6"
    assert ver.team == "Red Bull Racing"
    assert ham.name == "Lewis Hamilton"
    assert ham.short_name == "LEW"
    assert ham.team == "Unknown"
    assert ham.color == DRIVER_COLORS[1]
    assert [d.position for d in drivers] == [1, 2]


def test_driver_without_name() -> None:
    (drv,) = drivers_from_records([{"driver_number": 7}])
    assert drv.name == "Driver 7"


def test_stints_set_latest_compound_and_age() -> None:
    config = SimulationConfig()
    drivers = apply_stints(drivers_from_records(_DRIVERS), _STINTS, config, current_lap=30)
    ver, ham = drivers
    assert ver.tyres.compound is TyreCompound.HARD
    assert ver.tyres.age_laps == 11
    assert ver.tyres.wear == pytest.approx(11 * config.wear_rates[TyreCompound.HARD])
    assert ver.pit_stops == 1
    assert ham.tyres.compound is TyreCompound.MEDIUM
    assert ham.tyres.age_laps == 29
    assert ham.pit_stops == 0


def test_stint_wear_clamped() -> None:
    config = SimulationConfig()
    stints = [{"driver_number": 1, "stint_number": 1, "compound": "SOFT", "lap_start": 1, "lap_end": 60}]
    (drv,) = apply_stints([Driver("1", "Driver 1")], stints, config)
    assert drv.tyres.wear == 100.0


def test_lap_times() -> None:
    frame = laps_frame(_LAPS)
    assert best_lap_times(frame) == {"1": pytest.approx(91.2), "44": pytest.approx(92.4)}
    assert last_lap_times(frame) == {"1": pytest.approx(91.8), "44": pytest.approx(92.4)}


def test_weather_classification() -> None:
    assert weather_from_records([]) is Weather.SUNNY
    assert weather_from_records([{"rainfall": 0, "humidity": 50}]) is Weather.SUNNY
    assert weather_from_records([{"rainfall": 0, "humidity": 85}]) is Weather.CLOUDY
    assert weather_from_records([{"rainfall": 1, "humidity": 90}]) is Weather.RAINY
    assert weather_from_records([{"rainfall": 3}]) is Weather.HEAVY_RAIN
    latest_wins = [
        {"date": "2024-05-26T13:00:00", "rainfall": 3},
        {"date": "2024-05-26T14:00:00", "rainfall": 0, "humidity": 40},
    ]
    assert weather_from_records(latest_wins) is Weather.SUNNY


def test_safety_car_from_messages() -> None:
    deployed = [{"date": "1", "message": "SAFETY CAR DEPLOYED"}]
    assert safety_car_from_race_control(deployed) is SafetyCar.DEPLOYED
    ended = deployed + [{"date": "2", "message": "SAFETY CAR IN THIS LAP"}]
    assert safety_car_from_race_control(ended) is SafetyCar.NONE
    vsc = [{"date": "1", "message": "VIRTUAL SAFETY CAR DEPLOYED"}]
    assert safety_car_from_race_control(vsc) is SafetyCar.VIRTUAL
    vsc_end = vsc + [{"date": "2", "message": "VIRTUAL SAFETY CAR ENDING"}]
    assert safety_car_from_race_control(vsc_end) is SafetyCar.NONE


# ---------------------------------------------------------------------------
# Session loader
# ---------------------------------------------------------------------------


def test_load_grid_race() -> None:
    routes = {
        "drivers": _DRIVERS,
        "stints": _STINTS,
        "laps": _LAPS,
        "position": [
            {"driver_number": 1, "position": 2, "date": "2024-05-26T13:00:00"},
            {"driver_number": 44, "position": 1, "date": "2024-05-26T13:00:00"},
        ],
        "weather": [{"rainfall": 1, "humidity": 90}],
        "race_control": [{"date": "1", "message": "SAFETY CAR DEPLOYED"}],
    }
    config = SimulationConfig(total_laps=57)
    with _client(routes) as client:
        state = load_grid_race("latest", config, client)

    assert state.mode is RaceMode.GRID
    assert state.current_lap == 30
    assert state.weather is Weather.RAINY
    assert state.safety_car is SafetyCar.DEPLOYED
    assert all(d.is_driving for d in state.drivers)
    by_id = {d.driver_id: d for d in state.drivers}
    assert by_id["1"].position == 2
    assert by_id["44"].position == 1
    assert by_id["1"].best_lap_time == pytest.approx(91.2)


def test_optional_endpoints_may_fail() -> None:
    """Only the driver list is required; other endpoints fall back to defaults."""
    with _client({"drivers": _DRIVERS}) as client:
        state = load_grid_race("latest", SimulationConfig(), client)
    assert len(state.drivers) == 2
    assert state.current_lap == 0
    assert state.weather is Weather.SUNNY
    assert state.safety_car is SafetyCar.NONE


def test_no_drivers_is_an_error() -> None:
    with _client({"drivers": []}) as client:
        with pytest.raises(TelemetryError):
            load_grid_race("latest", SimulationConfig(), client)


# ---------------------------------------------------------------------------
# Malformed records
# ---------------------------------------------------------------------------


def test_stints_with_unusable_numbers_fall_back() -> None:
    """Non-numeric stint fields are defaulted instead of aborting the mapping."""
    config = SimulationConfig()
    stints = [
        {"driver_number": 1, "stint_number": "2", "compound": "HARD", "lap_start": "n/a", "lap_end": 12, "tyre_age_at_start": "n/a"},
        {"driver_number": "1", "stint_number": 1, "compound": "SOFT", "lap_start": 1, "lap_end": 5},
        {"driver_number": "car-44", "stint_number": 1, "compound": "WET"},
    ]
    ver, ham = apply_stints(drivers_from_records(_DRIVERS), stints, config)
    assert ver.tyres.compound is TyreCompound.HARD
    assert ver.tyres.age_laps == 12
    assert ver.tyres.stint_start_lap == 0
    assert ver.pit_stops == 1
    assert ham.tyres.compound is TyreCompound.MEDIUM
    assert ham.pit_stops == 0


def test_laps_with_bad_driver_numbers_dropped() -> None:
    frame = laps_frame(
        [
            {"driver_number": "car-1", "lap_number": 3, "lap_duration": 90.0},
            {"driver_number": "44", "lap_number": "4", "lap_duration": "91.5"},
            {"driver_number": 44, "lap_number": "five", "lap_duration": 89.0},
            {"driver_number": 1, "lap_number": 5, "lap_duration": "slow"},
        ]
    )
    assert best_lap_times(frame) == {"44": pytest.approx(91.5)}
    assert last_lap_times(frame) == {"44": pytest.approx(91.5)}


def test_positions_skip_unusable_records() -> None:
    records = [
        {"driver_number": 1, "position": "3", "date": "1"},
        {"driver_number": "x", "position": 1, "date": "2"},
        {"driver_number": 44, "position": None, "date": "3"},
    ]
    assert positions_from_records(records) == {"1": 3}


def test_load_grid_race_survives_malformed_records() -> None:
    routes = {
        "drivers": _DRIVERS + [{"driver_number": "n/a"}],
        "stints": [
            {"driver_number": 1, "stint_number": "2", "compound": "HARD", "lap_start": 21},
            {"driver_number": 1, "stint_number": 1, "compound": "MEDIUM", "lap_start": 1, "lap_end": 20},
        ],
        "laps": [
            {"driver_number": "car-1", "lap_number": 30, "lap_duration": 91.0},
            {"driver_number": 44, "lap_number": 25, "lap_duration": "n/a"},
        ],
        "position": [{"driver_number": 44, "position": "first"}],
    }
    with _client(routes) as client:
        state = load_grid_race("latest", SimulationConfig(), client)

    assert [d.driver_id for d in state.drivers] == ["1", "44"]
    assert state.current_lap == 25
    assert state.drivers[0].tyres.compound is TyreCompound.HARD
    assert state.drivers[0].tyres.age_laps == 4
    assert state.drivers[1].position == 2
