"""OpenF1-based telemetry loader for grid-mode races.

This module provides functions to:

1. Fetch session records (drivers, stints, laps, positions, weather,
   race control) from the public OpenF1 HTTP API.
2. Map each record shape onto the simulator's :class:`Driver` and
   :class:`RaceState` fields.

Records are mapped field by field.  A missing or null field falls back to
a documented default instead of failing the whole load: unknown tyre
compounds become Medium, a missing name becomes ``"Driver <number>"``, a
missing team colour is taken from a fallback palette.

Only the driver list is required.  Every other endpoint is optional; a
failure there is logged and the corresponding fields keep their defaults.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

import httpx
import numpy as np
import pandas as pd

from race_engine.core.driver import Driver
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.simulation import new_grid_race
from race_engine.core.state import RaceState, SafetyCar, Weather
from race_engine.core.tyre import TyreStatus, parse_compound

logger = logging.getLogger(__name__)

BASE_URL = "https://api.openf1.org/v1"
REQUEST_TIMEOUT_S = 10.0

DRIVER_COLORS: tuple[str, ...] = (
    "#FF0000", "#00FF00", "#0000FF", "#FFFF00", "#FF00FF", "#00FFFF",
    "#FFA500", "#800080", "#A52A2A", "#008000", "#FFC0CB", "#D2691E",
    "#F0E68C", "#ADD8E6", "#E0FFFF", "#FAFAD2", "#90EE90", "#D3D3D3",
    "#FFB6C1", "#87CEEB",
)  # fmt: skip


class TelemetryError(RuntimeError):
    """The telemetry API could not be reached or returned unusable data."""


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def fetch_records(
    endpoint: str,
    session_key: str | int = "latest",
    client: httpx.Client | None = None,
) -> list[dict[str, Any]]:
    """GET ``/<endpoint>?session_key=...`` and return the JSON records.

    Args:
        endpoint: OpenF1 endpoint name, e.g. ``"drivers"`` or ``"stints"``.
        session_key: Session identifier, or ``"latest"``.
        client: Optional pre-configured client (used by tests).

    Raises:
        TelemetryError: On HTTP errors, transport errors, or a payload
            that is not a JSON array.
    """
    url = f"{BASE_URL}/{endpoint}"
    params = {"session_key": str(session_key)}
    owns_client = client is None
    http = client if client is not None else httpx.Client(timeout=REQUEST_TIMEOUT_S)
    try:
        response = http.get(url, params=params)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as exc:
        raise TelemetryError(
            f"OpenF1 {endpoint} request failed with status "
            f"{exc.response.status_code}"
        ) from exc
    except (httpx.RequestError, ValueError) as exc:
        raise TelemetryError(f"OpenF1 {endpoint} request failed: {exc}") from exc
    finally:
        if owns_client:
            http.close()

    if not isinstance(data, list):
        raise TelemetryError(f"OpenF1 {endpoint} returned {type(data).__name__}, not a list")
    return [r for r in data if isinstance(r, dict)]


# ---------------------------------------------------------------------------
# Record mapping
# ---------------------------------------------------------------------------


def _str_field(record: dict[str, Any], key: str) -> str:
    value = record.get(key)
    return value.strip() if isinstance(value, str) else ""


def _int_field(
    record: dict[str, Any], key: str, default: int | None = None
) -> int | None:
    """Coerce *key* to an int, or return *default* when it is missing or unusable."""
    value = record.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value)) if isinstance(value, str) else int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _driver_name(record: dict[str, Any], number: int) -> str:
    full = _str_field(record, "full_name")
    if full:
        return full
    joined = f"{_str_field(record, 'first_name')} {_str_field(record, 'last_name')}".strip()
    return joined or f"Driver {number}"


def drivers_from_records(records: list[dict[str, Any]]) -> list[Driver]:
    """Map OpenF1 driver records onto :class:`Driver` instances.

    Records without a usable ``driver_number`` are skipped.  Positions
    follow the record order; everybody starts on fresh Medium tyres with
    a full tank until stint data says otherwise.
    """
    drivers: list[Driver] = []
    seen: set[int] = set()
    for record in records:
        number = _int_field(record, "driver_number")
        if number is None or number in seen:
            continue
        seen.add(number)

        name = _driver_name(record, number)
        short = _str_field(record, "name_acronym") or name.replace(" ", "")[:3].upper()
        colour = _str_field(record, "team_colour")
        idx = len(drivers)
        drivers.append(
            Driver(
                driver_id=str(number),
                name=name,
                short_name=short,
                number=number,
                team=_str_field(record, "team_name") or "Unknown",
                color=f"#{colour.lstrip('#')}" if colour else DRIVER_COLORS[idx % len(DRIVER_COLORS)],
                position=idx + 1,
            )
        )
    return drivers


def apply_stints(
    drivers: list[Driver],
    stints: list[dict[str, Any]],
    config: SimulationConfig,
    current_lap: int = 0,
) -> list[Driver]:
    """Fit each driver with the compound of their latest stint.

    Tyre age is ``tyre_age_at_start`` plus the laps run in the stint;
    wear is estimated from age with the configured compound wear rate.
    The pit-stop count is the number of stints minus one.
    """
    by_driver: dict[str, list[dict[str, Any]]] = {}
    for stint in stints:
        number = _int_field(stint, "driver_number")
        if number is None:
            continue
        by_driver.setdefault(str(number), []).append(stint)

    updated: list[Driver] = []
    for drv in drivers:
        own = by_driver.get(drv.driver_id)
        if not own:
            updated.append(drv)
            continue
        own.sort(key=lambda s: _int_field(s, "stint_number", 0))
        latest = own[-1]
        compound = parse_compound(latest.get("compound"))
        lap_start = max(0, _int_field(latest, "lap_start", 0))
        lap_end = _int_field(latest, "lap_end") or current_lap or lap_start
        age_at_start = max(0, _int_field(latest, "tyre_age_at_start", 0))
        age = age_at_start + max(0, lap_end - lap_start)
        rate = config.wear_rates.get(compound, 0.0)
        tyres = TyreStatus(
            compound=compound,
            wear=min(100.0, age * rate),
            age_laps=age,
            stint_start_lap=lap_start,
        )
        updated.append(replace(drv, tyres=tyres, pit_stops=max(0, len(own) - 1)))
    return updated


def laps_frame(records: list[dict[str, Any]]) -> pd.DataFrame:
    """Return lap records as a DataFrame with numeric ``LapTimeSec``.

    Columns: ``DriverNumber``, ``LapNumber``, ``LapTimeSec``.  Values that
    are not numbers become NaN; rows without a usable driver or lap number
    are dropped.
    """
    frame = pd.DataFrame(
        {
            "DriverNumber": [r.get("driver_number") for r in records],
            "LapNumber": [r.get("lap_number") for r in records],
            "LapTimeSec": [r.get("lap_duration") for r in records],
        }
    )
    for column in ("DriverNumber", "LapNumber", "LapTimeSec"):
        frame[column] = pd.to_numeric(frame[column], errors="coerce")
    frame = frame.replace([np.inf, -np.inf], np.nan)
    return frame.dropna(subset=["DriverNumber", "LapNumber"])


def best_lap_times(frame: pd.DataFrame) -> dict[str, float]:
    """Fastest valid lap per driver number."""
    valid = frame.dropna(subset=["LapTimeSec"])
    if valid.empty:
        return {}
    best = valid.groupby("DriverNumber")["LapTimeSec"].min()
    return {str(int(number)): float(t) for number, t in best.items()}


def last_lap_times(frame: pd.DataFrame) -> dict[str, float]:
    """Most recent valid lap per driver number."""
    valid = frame.dropna(subset=["LapTimeSec"]).sort_values("LapNumber")
    if valid.empty:
        return {}
    last = valid.groupby("DriverNumber")["LapTimeSec"].last()
    return {str(int(number)): float(t) for number, t in last.items()}


def positions_from_records(records: list[dict[str, Any]]) -> dict[str, int]:
    """Latest reported position per driver number (records are time-ordered)."""
    positions: dict[str, int] = {}
    for record in sorted(records, key=lambda r: str(r.get("date") or "")):
        number = _int_field(record, "driver_number")
        position = _int_field(record, "position")
        if number is None or position is None or position < 1:
            continue
        positions[str(number)] = position
    return positions


def weather_from_records(records: list[dict[str, Any]]) -> Weather:
    """Classify the latest weather sample.

    Rainfall above 2 counts as heavy rain, any rainfall as rain, humidity
    of 80 % or more as cloudy; otherwise sunny.  No samples means sunny.
    """
    if not records:
        return Weather.SUNNY
    latest = max(records, key=lambda r: str(r.get("date") or ""))
    rainfall = latest.get("rainfall") or 0
    humidity = latest.get("humidity") or 0
    if not isinstance(rainfall, (int, float)):
        rainfall = 0
    if not isinstance(humidity, (int, float)):
        humidity = 0
    if rainfall > 2:
        return Weather.HEAVY_RAIN
    if rainfall > 0:
        return Weather.RAINY
    if humidity >= 80:
        return Weather.CLOUDY
    return Weather.SUNNY


def safety_car_from_race_control(records: list[dict[str, Any]]) -> SafetyCar:
    """Derive the current safety-car status from race-control messages."""
    status = SafetyCar.NONE
    for record in sorted(records, key=lambda r: str(r.get("date") or "")):
        message = _str_field(record, "message").upper()
        if "VIRTUAL SAFETY CAR" in message:
            status = SafetyCar.NONE if "END" in message else SafetyCar.VIRTUAL
        elif "SAFETY CAR" in message:
            if "IN THIS LAP" in message or "ENDING" in message:
                status = SafetyCar.NONE
            elif "DEPLOYED" in message:
                status = SafetyCar.DEPLOYED
    return status


# ---------------------------------------------------------------------------
# Session loader
# ---------------------------------------------------------------------------


def _optional(
    endpoint: str, session_key: str | int, client: httpx.Client | None
) -> list[dict[str, Any]]:
    try:
        return fetch_records(endpoint, session_key, client)
    except TelemetryError as exc:
        logger.warning("Continuing without %s data: %s", endpoint, exc)
        return []


def load_grid_race(
    session_key: str | int,
    config: SimulationConfig,
    client: httpx.Client | None = None,
) -> RaceState:
    """Build a grid-mode :class:`RaceState` from an OpenF1 session.

    Raises:
        TelemetryError: If the driver list cannot be fetched or is empty.
    """
    drivers = drivers_from_records(fetch_records("drivers", session_key, client))
    if not drivers:
        raise TelemetryError(f"No drivers found for session {session_key}.")

    laps = laps_frame(_optional("laps", session_key, client))
    current_lap = int(laps["LapNumber"].max()) if not laps.empty else 0
    current_lap = min(max(0, current_lap), config.total_laps)

    drivers = apply_stints(drivers, _optional("stints", session_key, client), config, current_lap)

    best = best_lap_times(laps)
    last = last_lap_times(laps)
    positions = positions_from_records(_optional("position", session_key, client))
    drivers = [
        replace(
            d,
            best_lap_time=best.get(d.driver_id, d.best_lap_time),
            last_lap_time=last.get(d.driver_id, d.last_lap_time),
            position=positions.get(d.driver_id, d.position),
        )
        for d in drivers
    ]

    weather = weather_from_records(_optional("weather", session_key, client))
    safety_car = safety_car_from_race_control(_optional("race_control", session_key, client))

    logger.info(
        "Loaded %d drivers from OpenF1 session %s (lap %d)",
        len(drivers),
        session_key,
        current_lap,
    )
    return new_grid_race(
        drivers,
        config,
        weather=weather,
        safety_car=safety_car,
        current_lap=current_lap,
    )
