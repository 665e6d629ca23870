"""Tests for the positions table and driver focus."""

from dataclasses import replace

from race_engine.core.driver import Driver
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.simulation import new_grid_race
from race_engine.core.standings import focused_drivers, standings
from race_engine.core.state import RaceState
from race_engine.core.tyre import TyreCompound, TyreStatus

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _sample_state() -> RaceState:
    drivers = [
        Driver("44", "Lewis Hamilton", "HAM", team="Mercedes", position=3, last_lap_time=92.1),
        Driver("1", "Max Verstappen", "VER", team="Red Bull", position=1, last_lap_time=91.2),
        Driver(
            "16",
            "Charles Leclerc",
            "LEC",
            team="Ferrari",
            position=2,
            last_lap_time=91.8,
            tyres=TyreStatus(compound=TyreCompound.SOFT),
        ),
        Driver("4", "Lando Norris", "NOR", team="McLaren", position=4),
    ]
    return new_grid_race(drivers, SimulationConfig())


# ---------------------------------------------------------------------------
# Positions table
# ---------------------------------------------------------------------------


def test_rows_sorted_by_position() -> None:
    rows = standings(_sample_state())
    assert [r.position for r in rows] == [1, 2, 3, 4]
    assert [r.driver_id for r in rows] == ["1", "16", "44", "4"]
    assert rows[1].team == "Ferrari"
    assert rows[1].tyre == "Soft"
    assert rows[0].last_lap == "1:31.200"


def test_gap_is_last_lap_difference_to_car_ahead() -> None:
    """The leader reads Leader; others get the absolute last-lap delta."""
    rows = standings(_sample_state())
    assert rows[0].gap == "Leader"
    assert rows[1].gap == "+0.600s"
    assert rows[2].gap == "+0.300s"


def test_gap_empty_without_lap_time() -> None:
    rows = standings(_sample_state())
    assert rows[3].last_lap == "N/A"
    assert rows[3].gap == ""


def test_faster_car_behind_still_shows_positive_gap() -> None:
    state = _sample_state()
    quick = replace(state.drivers[0], last_lap_time=90.0)
    state = replace(state, drivers=(quick,) + state.drivers[1:])
    rows = standings(state)
    assert rows[2].gap == "+1.800s"


# ---------------------------------------------------------------------------
# Focus
# ---------------------------------------------------------------------------


def test_focus_all_drivers() -> None:
    state = _sample_state()
    assert focused_drivers(state, None) == state.drivers


def test_focus_single_driver() -> None:
    (drv,) = focused_drivers(_sample_state(), "16")
    assert drv.short_name == "LEC"


def test_focus_on_unknown_driver_shows_everyone() -> None:
    state = _sample_state()
    assert focused_drivers(state, "99") == state.drivers
