"""
Proficiency levels and the step each pair of levels belongs to.
"""

from enum import Enum
from typing import Optional, Tuple, Union


class Level(str, Enum):
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)


_ORDER = (Level.A1, Level.A2, Level.B1, Level.B2, Level.C1, Level.C2)

STEP_LEVELS: dict[int, Tuple[Level, Level]] = {
    1: (Level.A1, Level.A2),
    2: (Level.B1, Level.B2),
    3: (Level.C1, Level.C2),
}

FIRST_STEP = 1
FINAL_STEP = 3


def levels_for_step(step: int) -> Tuple[Level, Level]:
    try:
        return STEP_LEVELS[step]
    except KeyError:
        raise ValueError(f"Step must be one of {sorted(STEP_LEVELS)}, got {step}") from None


def as_level(value: Union[Level, str, None]) -> Optional[Level]:
    """Coerce a stored level string to Level; None passes through."""
    if value is None or isinstance(value, Level):
        return value
    return Level(value)


def is_higher(new: Union[Level, str], current: Union[Level, str, None]) -> bool:
    """True when ``new`` outranks ``current`` (anything outranks no level)."""
    current = as_level(current)
    return current is None or as_level(new).rank > current.rank


def ratchet(current: Union[Level, str, None], new: Union[Level, str, None]) -> Optional[Level]:
    """The higher of two levels; a recorded level never goes down."""
    if new is None:
        return as_level(current)
    return as_level(new) if is_higher(new, current) else as_level(current)
