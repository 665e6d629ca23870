"""CLI entrypoint for the endurance race strategy engine."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from race_engine import __version__
from race_engine.advisory.advisor import StrategyAdvisor
from race_engine.advisory.client import create_client
from race_engine.config import load_config, load_team
from race_engine.core.driver import format_lap_time
from race_engine.core.events import EventKind, RaceEvent
from race_engine.core.runner import RaceRunner
from race_engine.core.simulation import new_team_race


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a simulated endurance race.")
    parser.add_argument("--config", type=Path, default=None, help="YAML config file")
    parser.add_argument("--ticks", type=int, default=40, help="ticks to run (0 = to the flag)")
    parser.add_argument("--seed", type=int, default=None, help="override the config seed")
    parser.add_argument("--speed", type=float, default=None, help="speed factor")
    parser.add_argument(
        "--interval", type=float, default=0.0, help="wall-clock seconds per tick"
    )
    parser.add_argument("--advisor", action="store_true", help="ask the AI strategist")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run a demonstration race and print the stint table."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)
    overrides: dict[str, object] = {"tick_interval_s": args.interval}
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.speed is not None:
        overrides["speed_factor"] = args.speed
    config = replace(config, **overrides)
    team = load_team(args.config)

    print(f"Endurance Race Strategy Engine v{__version__}")
    print("=" * 56)
    print(f"\nTrack : {config.track_name}")
    print(f"Team  : {team.name} #{team.car_number}")
    print(f"Drivers: {', '.join(m.name for m in team.members)}")
    print("-" * 56)

    advisor: StrategyAdvisor | None = None
    if args.advisor:
        client = create_client(config.advisory_model, config.advisory_timeout_s)
        if client is not None:
            advisor = StrategyAdvisor(client, config)

    runner = RaceRunner(new_team_race(team, config), config, advisor=advisor)

    def _print_event(event: RaceEvent) -> None:
        if event.kind is not EventKind.LAP_COMPLETED:
            print(f"  [lap {event.lap:3d}] {event.message}")

    runner.subscribe(_print_event)
    state = asyncio.run(runner.run(max_ticks=args.ticks or None))

    hours = state.elapsed_s / 3600.0
    print(f"\nLap {state.current_lap}/{state.total_laps}, {hours:.2f} h elapsed")
    print(f"Weather: {state.weather.value}, safety car: {state.safety_car.value}\n")
    print(f"  {'Driver':<12} {'Drive (h)':>9} {'Stops':>5} {'Tyres':>22} {'Best':>10}")
    for drv in state.drivers:
        marker = "*" if drv.is_driving else " "
        print(
            f" {marker}{drv.name:<12} {drv.drive_time_s / 3600.0:9.2f} "
            f"{drv.pit_stops:5d} {drv.tyres.describe():>22} "
            f"{format_lap_time(drv.best_lap_time):>10}"
        )

    if advisor is not None and advisor.team.result is not None:
        advice = advisor.team.result
        print(f"\nStrategist: {advice.suggested_action}")
    elif advisor is not None and advisor.team.error:
        print(f"\nStrategist unavailable: {advisor.team.error}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
