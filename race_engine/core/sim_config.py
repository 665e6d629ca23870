"""Simulation parameters for the endurance race simulator.

One :class:`SimulationConfig` drives every variant of the race updater:
team size, drive-time cap, stint length and wear rates are parameters,
not separate code paths.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from race_engine.core.state import SafetyCar, Weather
from race_engine.core.tyre import DEFAULT_WEAR_RATES, TyreCompound

HOUR: float = 3600.0

DEFAULT_WEATHER_PACE: dict[Weather, float] = {
    Weather.SUNNY: 1.0,
    Weather.CLOUDY: 1.01,
    Weather.RAINY: 1.06,
    Weather.HEAVY_RAIN: 1.12,
}

DEFAULT_SAFETY_CAR_PACE: dict[SafetyCar, float] = {
    SafetyCar.NONE: 1.0,
    SafetyCar.DEPLOYED: 1.35,
    SafetyCar.VIRTUAL: 1.2,
}


def _unit(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0.0 and 1.0.")


@dataclass(frozen=True)
class SimulationConfig:
    """Parameters of a simulated race.

    Attributes:
        team_size: Drivers sharing the car in team mode.
        max_drive_time_s: Regulatory cap on a driver's cumulative drive time.
        drive_time_margin_s: A driver is pulled from the car once within
            this margin of the cap.
        eligibility_factor: A standby driver is only eligible while their
            drive time is below ``max_drive_time_s * eligibility_factor``.
        stint_length_laps: Tyre age that forces a pit stop and driver swap.
        wear_rates: Wear percent added per lap for each compound.
        fuel_per_lap: Fuel percent consumed per lap.
        base_lap_time_s: Centre of the lap-time band.
        lap_time_variation_s: Half-width of the lap-time band.
        history_window: Maximum lap-history entries kept per driver.
        tick_interval_s: Wall-clock seconds between ticks.
        tick_duration_s: Race seconds represented by one tick.
        speed_factor: Multiplier applied to ``tick_duration_s``.
        total_laps: Race distance in laps.
        total_duration_s: Race duration in seconds.
        track_name: Circuit name.
        default_compound: Compound fitted at the start and at rotation stops.
        weather_change_probability: Per-tick chance of a weather step.
        safety_car_probability: Per-tick chance of a neutralisation.
        virtual_safety_car_share: Share of neutralisations that are virtual.
        safety_car_end_probability: Per-tick chance a neutralisation ends.
        position_swap_probability: Per-tick chance P1 and P2 swap (grid mode).
        weather_pace: Lap-time multiplier per weather state.
        safety_car_pace: Lap-time multiplier per safety-car state.
        seed: Seed for the random generator; ``None`` uses OS entropy.
        advisory_timeout_s: Deadline for one advisory round trip.
        advisory_cooldown_s: Pause after a failed advisory call.
        material_change_step: Wear or fuel movement (percentage points)
            that counts as a material change for advisory de-duplication.
        advisory_lap_step: Laps after which advisory inputs count as
            materially changed regardless of wear and fuel.
        advisory_model: Model name sent to the advisory service.
    """

    team_size: int = 3
    max_drive_time_s: float = 14 * HOUR
    drive_time_margin_s: float = 15 * 60.0
    eligibility_factor: float = 0.95
    stint_length_laps: int = 10
    wear_rates: dict[TyreCompound, float] = field(
        default_factory=lambda: dict(DEFAULT_WEAR_RATES)
    )
    fuel_per_lap: float = 3.0
    base_lap_time_s: float = 210.0
    lap_time_variation_s: float = 2.5
    history_window: int = 20
    tick_interval_s: float = 5.0
    tick_duration_s: float = 210.0
    speed_factor: float = 1.0
    total_laps: int = 380
    total_duration_s: float = 24 * HOUR
    track_name: str = "Circuit de la Sarthe"
    default_compound: TyreCompound = TyreCompound.MEDIUM
    weather_change_probability: float = 0.02
    safety_car_probability: float = 0.01
    virtual_safety_car_share: float = 0.5
    safety_car_end_probability: float = 0.25
    position_swap_probability: float = 0.1
    weather_pace: dict[Weather, float] = field(
        default_factory=lambda: dict(DEFAULT_WEATHER_PACE)
    )
    safety_car_pace: dict[SafetyCar, float] = field(
        default_factory=lambda: dict(DEFAULT_SAFETY_CAR_PACE)
    )
    seed: int | None = None
    advisory_timeout_s: float = 20.0
    advisory_cooldown_s: float = 60.0
    material_change_step: float = 10.0
    advisory_lap_step: int = 5
    advisory_model: str = "claude-haiku-4-5-20251001"

    def __post_init__(self) -> None:
        """Validate simulation parameters."""
        if self.team_size < 1:
            raise ValueError("team_size must be >= 1.")
        if self.max_drive_time_s <= 0.0:
            raise ValueError("max_drive_time_s must be > 0.0.")
        if not 0.0 <= self.drive_time_margin_s < self.max_drive_time_s:
            raise ValueError("drive_time_margin_s must be in [0, max_drive_time_s).")
        if not 0.0 < self.eligibility_factor <= 1.0:
            raise ValueError("eligibility_factor must be in (0.0, 1.0].")
        if self.stint_length_laps < 1:
            raise ValueError("stint_length_laps must be >= 1.")
        if any(rate < 0.0 for rate in self.wear_rates.values()):
            raise ValueError("wear rates must be >= 0.")
        if not 0.0 <= self.fuel_per_lap <= 100.0:
            raise ValueError("fuel_per_lap must be between 0.0 and 100.0.")
        if self.base_lap_time_s <= 0.0:
            raise ValueError("base_lap_time_s must be > 0.0.")
        if not 0.0 <= self.lap_time_variation_s < self.base_lap_time_s:
            raise ValueError("lap_time_variation_s must be in [0, base_lap_time_s).")
        if self.history_window < 1:
            raise ValueError("history_window must be >= 1.")
        if self.tick_interval_s < 0.0:
            raise ValueError("tick_interval_s must be >= 0.0.")
        if self.tick_duration_s <= 0.0:
            raise ValueError("tick_duration_s must be > 0.0.")
        if self.speed_factor <= 0.0:
            raise ValueError("speed_factor must be > 0.0.")
        if self.tick_duration_s * self.speed_factor > self.rotation_drive_limit_s:
            raise ValueError(
                "One tick (tick_duration_s * speed_factor) must fit under "
                "max_drive_time_s - drive_time_margin_s."
            )
        if self.total_laps < 1:
            raise ValueError("total_laps must be >= 1.")
        if self.total_duration_s <= 0.0:
            raise ValueError("total_duration_s must be > 0.0.")
        for name in (
            "weather_change_probability",
            "safety_car_probability",
            "virtual_safety_car_share",
            "safety_car_end_probability",
            "position_swap_probability",
        ):
            _unit(name, getattr(self, name))
        if self.advisory_timeout_s <= 0.0:
            raise ValueError("advisory_timeout_s must be > 0.0.")
        if self.advisory_cooldown_s < 0.0:
            raise ValueError("advisory_cooldown_s must be >= 0.0.")
        if self.material_change_step <= 0.0:
            raise ValueError("material_change_step must be > 0.0.")
        if self.advisory_lap_step < 1:
            raise ValueError("advisory_lap_step must be >= 1.")

    @property
    def rotation_drive_limit_s(self) -> float:
        """Drive time at which the active driver is called in."""
        return self.max_drive_time_s - self.drive_time_margin_s

    @property
    def eligibility_limit_s(self) -> float:
        """Drive time at or above which a standby driver is skipped."""
        return self.max_drive_time_s * self.eligibility_factor
