"""Configuration loader for the endurance race simulator."""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from race_engine.core.sim_config import SimulationConfig
from race_engine.core.state import SafetyCar, Weather
from race_engine.core.team import Team, TeamMember
from race_engine.core.tyre import TyreCompound

DATA_DIR: Path = Path(__file__).resolve().parent.parent / "data"
CONFIG_PATH: Path = DATA_DIR / "race_config.yaml"

_CONFIG_FIELDS: dict[str, Any] = {f.name: f for f in fields(SimulationConfig)}

_INT_FIELDS: tuple[str, ...] = (
    "team_size",
    "stint_length_laps",
    "history_window",
    "total_laps",
    "advisory_lap_step",
)

_MAPPING_FIELDS: dict[str, type] = {
    "wear_rates": TyreCompound,
    "weather_pace": Weather,
    "safety_car_pace": SafetyCar,
}

_REQUIRED_MEMBER_FIELDS: tuple[str, ...] = ("name", "short_name")


def _read_yaml(path: Path | None) -> dict[str, Any]:
    config_path = path or CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with open(config_path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping.")
    return data


def _enum_by_label(enum_type: type, label: Any) -> Any:
    for member in enum_type:  # type: ignore[attr-defined]
        if label in (member.value, member.name):
            return member
    raise ValueError(f"Unknown {enum_type.__name__} '{label}'.")


def _parse_mapping(name: str, raw: Any) -> dict[Any, float]:
    if not isinstance(raw, dict):
        raise ValueError(f"'{name}' must be a mapping.")
    enum_type = _MAPPING_FIELDS[name]
    parsed: dict[Any, float] = {}
    for key, val in raw.items():
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            raise ValueError(f"'{name}.{key}' must be numeric, got {type(val).__name__}")
        parsed[_enum_by_label(enum_type, key)] = float(val)
    return parsed


def parse_simulation_config(raw: dict[str, Any]) -> SimulationConfig:
    """Convert the ``simulation`` mapping into a :class:`SimulationConfig`.

    Keys not given keep their defaults.  Mappings (``wear_rates``,
    ``weather_pace``, ``safety_car_pace``) are merged over the defaults.

    Raises:
        ValueError: On unknown keys, wrong types, or out-of-range values.
    """
    defaults = SimulationConfig()
    kwargs: dict[str, Any] = {}
    for key, val in raw.items():
        if key not in _CONFIG_FIELDS:
            raise ValueError(f"Unknown simulation setting '{key}'.")
        if key in _MAPPING_FIELDS:
            merged = dict(getattr(defaults, key))
            merged.update(_parse_mapping(key, val))
            kwargs[key] = merged
        elif key == "default_compound":
            kwargs[key] = _enum_by_label(TyreCompound, val)
        elif key in ("track_name", "advisory_model"):
            if not isinstance(val, str) or not val:
                raise ValueError(f"'{key}' must be a non-empty string.")
            kwargs[key] = val
        elif key == "seed":
            if val is not None and (isinstance(val, bool) or not isinstance(val, int)):
                raise ValueError("'seed' must be an integer or null.")
            kwargs[key] = val
        else:
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                raise ValueError(
                    f"'{key}' must be numeric, got {type(val).__name__}"
                )
            if key in _INT_FIELDS:
                if float(val) != int(val):
                    raise ValueError(f"'{key}' must be a whole number, got {val}")
                kwargs[key] = int(val)
            else:
                kwargs[key] = float(val)
    return SimulationConfig(**kwargs)


def load_config(path: Path | None = None) -> SimulationConfig:
    """Load simulation parameters from a YAML file.

    Args:
        path: Optional override for the config file path.

    Returns:
        The validated :class:`SimulationConfig`.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If any setting is unknown or invalid.
    """
    data = _read_yaml(path)
    return parse_simulation_config(data.get("simulation") or {})


def load_team(path: Path | None = None) -> Team:
    """Load the team roster from the ``team`` section of a YAML file.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the section is missing, or a driver entry is not a
            mapping or is incomplete.
    """
    data = _read_yaml(path)
    section = data.get("team")
    if not isinstance(section, dict):
        raise ValueError("Config file has no 'team' section.")

    entries = section.get("drivers") or []
    if not isinstance(entries, list):
        raise ValueError("Team 'drivers' must be a list of mappings.")

    members: list[TeamMember] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(
                f"Team driver {idx} must be a mapping with name and short_name, "
                f"got {type(entry).__name__}"
            )
        for field_name in _REQUIRED_MEMBER_FIELDS:
            if not entry.get(field_name):
                raise ValueError(
                    f"Team driver {idx} ({entry.get('name', '<unknown>')}) "
                    f"is missing required field '{field_name}'"
                )
        members.append(
            TeamMember(
                name=str(entry["name"]),
                short_name=str(entry["short_name"]),
                color=str(entry.get("color", "#FFFFFF")),
            )
        )
    return Team(
        name=str(section.get("name", "")),
        members=members,
        car_number=int(section.get("car_number", 1)),
    )
