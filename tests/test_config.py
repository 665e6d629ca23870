"""Tests for YAML configuration loading."""

from pathlib import Path

import pytest

from race_engine.config import load_config, load_team, parse_simulation_config
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.state import Weather
from race_engine.core.tyre import TyreCompound

# ---------------------------------------------------------------------------
# Bundled config
# ---------------------------------------------------------------------------


def test_bundled_config_loads() -> None:
    config = load_config()
    assert config.team_size == 3
    assert config.max_drive_time_s == 14 * 3600
    assert config.stint_length_laps == 10
    assert config.wear_rates[TyreCompound.SOFT] == 3.0
    assert config.weather_pace[Weather.HEAVY_RAIN] == pytest.approx(1.12)
    assert config.seed == 2024


def test_bundled_team_matches_team_size() -> None:
    team = load_team()
    assert len(team.members) == load_config().team_size
    assert [m.short_name for m in team.members] == ["DRA", "DRB", "DRC"]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def test_missing_keys_keep_defaults() -> None:
    config = parse_simulation_config({"total_laps": 50})
    assert config.total_laps == 50
    assert config.fuel_per_lap == SimulationConfig().fuel_per_lap


def test_partial_mapping_merged_over_defaults() -> None:
    config = parse_simulation_config({"wear_rates": {"Soft": 4.0}})
    assert config.wear_rates[TyreCompound.SOFT] == 4.0
    assert config.wear_rates[TyreCompound.HARD] == 1.2


def test_unknown_key_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown simulation setting"):
        parse_simulation_config({"pit_lane_speed": 60})


def test_wrong_type_rejected() -> None:
    with pytest.raises(ValueError):
        parse_simulation_config({"fuel_per_lap": "three"})
    with pytest.raises(ValueError):
        parse_simulation_config({"team_size": 2.5})
    with pytest.raises(ValueError):
        parse_simulation_config({"wear_rates": {"Slick": 1.0}})


def test_out_of_range_rejected() -> None:
    with pytest.raises(ValueError):
        parse_simulation_config({"safety_car_probability": 1.5})


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_team_driver_missing_short_name(tmp_path: Path) -> None:
    path = tmp_path / "race.yaml"
    path.write_text(
        "team:\n  name: T\n  drivers:\n    - name: Solo\n", encoding="utf-8"
    )
    with pytest.raises(ValueError, match="short_name"):
        load_team(path)


def test_team_driver_must_be_mapping(tmp_path: Path) -> None:
    """A bare string under drivers is a config error, not an AttributeError."""
    path = tmp_path / "race.yaml"
    path.write_text("team:\n  name: T\n  drivers:\n    - Solo\n", encoding="utf-8")
    with pytest.raises(ValueError, match="must be a mapping"):
        load_team(path)

    path.write_text("team:\n  name: T\n  drivers: Solo\n", encoding="utf-8")
    with pytest.raises(ValueError, match="must be a list"):
        load_team(path)


def test_tick_longer_than_drive_limit_rejected() -> None:
    with pytest.raises(ValueError, match="One tick"):
        SimulationConfig(tick_duration_s=3600.0, max_drive_time_s=3000.0, drive_time_margin_s=0.0)
