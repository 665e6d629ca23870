"""Team model for the endurance race simulator.

A team shares one car between several drivers.  The roster order is the
rotation order used when the car pits for a driver change.
"""

from __future__ import annotations

from dataclasses import dataclass

from race_engine.core.driver import Driver
from race_engine.core.sim_config import SimulationConfig
from race_engine.core.tyre import fresh_tyres


@dataclass(frozen=True)
class TeamMember:
    """Roster entry for one team driver."""

    name: str
    short_name: str
    color: str = "#FFFFFF"


class Team:
    """An endurance team sharing one car.

    Attributes:
        name: Team name.
        car_number: Number painted on the shared car.
        members: Roster in rotation order.
    """

    __slots__ = ("name", "car_number", "members")

    def __init__(
        self, name: str, members: list[TeamMember], car_number: int = 1
    ) -> None:
        if not name:
            raise ValueError("Team name must not be empty.")
        if not members:
            raise ValueError(f"Team '{name}' must have at least one driver.")
        short_names = [m.short_name for m in members]
        if len(set(short_names)) != len(short_names):
            raise ValueError(f"Team '{name}' has duplicate driver short names.")
        for member in members:
            if not member.name:
                raise ValueError(f"Team '{name}' has a driver without a name.")
        self.name: str = name
        self.car_number: int = car_number
        self.members: list[TeamMember] = list(members)

    def __repr__(self) -> str:
        names = ", ".join(m.name for m in self.members)
        return f"Team(name={self.name!r}, members=[{names}])"


def initial_team_drivers(team: Team, config: SimulationConfig) -> tuple[Driver, ...]:
    """Build the starting drivers for a team-mode race.

    The first roster member starts in the car; everybody starts on fresh
    tyres of the configured default compound with a full tank.

    Raises:
        ValueError: If the roster size does not match ``config.team_size``.
    """
    if len(team.members) != config.team_size:
        raise ValueError(
            f"Team '{team.name}' has {len(team.members)} drivers, "
            f"expected {config.team_size}."
        )
    return tuple(
        Driver(
            driver_id=member.short_name,
            name=member.name,
            short_name=member.short_name,
            number=team.car_number,
            team=team.name,
            color=member.color,
            tyres=fresh_tyres(config.default_compound),
            fuel=100.0,
            is_driving=idx == 0,
            position=1,
        )
        for idx, member in enumerate(team.members)
    )
