"""Tyre and fuel model for the endurance race simulator.

Each compound wears at a fixed percentage per lap.  Wear and fuel are
always clamped to [0, 100]; no function in this module raises for an
out-of-range *result*, only for invalid inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping

# ---------------------------------------------------------------------------
# Compounds
# ---------------------------------------------------------------------------


class TyreCompound(Enum):
    """Tyre material category, valued by its display label."""

    SOFT = "Soft"
    MEDIUM = "Medium"
    HARD = "Hard"
    INTERMEDIATE = "Intermediate"
    WET = "Wet"

    @property
    def label(self) -> str:
        return self.value


DRY_COMPOUNDS: tuple[TyreCompound, ...] = (
    TyreCompound.SOFT,
    TyreCompound.MEDIUM,
    TyreCompound.HARD,
)

# Wear percentage added per lap.
DEFAULT_WEAR_RATES: dict[TyreCompound, float] = {
    TyreCompound.SOFT: 3.0,
    TyreCompound.MEDIUM: 2.0,
    TyreCompound.HARD: 1.2,
    TyreCompound.INTERMEDIATE: 2.5,
    TyreCompound.WET: 2.2,
}


def parse_compound(value: object) -> TyreCompound:
    """Map a free-form compound label onto :class:`TyreCompound`.

    Matching is case-insensitive against both the label ("Soft") and the
    member name ("SOFT").  Anything unrecognised, including ``None`` and
    the empty string, falls back to ``MEDIUM``.
    """
    if isinstance(value, TyreCompound):
        return value
    if not isinstance(value, str) or not value.strip():
        return TyreCompound.MEDIUM
    key = value.strip().upper()
    for compound in TyreCompound:
        if key in (compound.name, compound.value.upper()):
            return compound
    return TyreCompound.MEDIUM


# ---------------------------------------------------------------------------
# Tyre status
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TyreStatus:
    """Immutable snapshot of the tyres currently fitted.

    Attributes:
        compound: Compound fitted.
        wear: Wear percentage in [0, 100].
        age_laps: Laps completed on this set.
        stint_start_lap: Race lap on which this set was fitted.
    """

    compound: TyreCompound = TyreCompound.MEDIUM
    wear: float = 0.0
    age_laps: int = 0
    stint_start_lap: int = 0

    def __post_init__(self) -> None:
        if not 0.0 <= self.wear <= 100.0:
            raise ValueError("wear must be between 0.0 and 100.0.")
        if self.age_laps < 0:
            raise ValueError("age_laps must be >= 0.")
        if self.stint_start_lap < 0:
            raise ValueError("stint_start_lap must be >= 0.")

    def describe(self) -> str:
        """Human-readable condition string, e.g. ``"Medium, 24% wear, 12 laps"``."""
        return f"{self.compound.label}, {self.wear:.0f}% wear, {self.age_laps} laps"


def fresh_tyres(compound: TyreCompound, lap: int = 0) -> TyreStatus:
    """Return a new set of *compound* tyres fitted on *lap*."""
    return TyreStatus(compound=compound, wear=0.0, age_laps=0, stint_start_lap=lap)


def advance_wear(
    tyre: TyreStatus,
    rates: Mapping[TyreCompound, float] = DEFAULT_WEAR_RATES,
) -> TyreStatus:
    """Apply one lap of wear.

    ``wear = min(100, wear + rates[compound])`` and the age advances by
    exactly one lap.
    """
    rate: float = rates.get(tyre.compound, DEFAULT_WEAR_RATES[tyre.compound])
    new_wear: float = min(100.0, max(0.0, tyre.wear + rate))
    return replace(tyre, wear=new_wear, age_laps=tyre.age_laps + 1)


def consume_fuel(fuel: float, per_lap: float) -> float:
    """Return the fuel level after one lap, never below zero.

    Raises:
        ValueError: If *per_lap* is negative.
    """
    if per_lap < 0.0:
        raise ValueError("per_lap must be >= 0.")
    return max(0.0, min(100.0, fuel - per_lap))
