"""Blink classifier: raw blink count -> gesture.

Only an exact count of 5 means emergency; 6-10 are treated as noise so a long
burst of blinks never pages a caretaker by accident.
"""

from __future__ import annotations

from enum import Enum
from typing import Final

from blinklink.models import BLINK_COUNT_MAX, BLINK_COUNT_MIN


class Gesture(Enum):
    IGNORE = "ignore"
    ADVANCE = "advance"
    SELECT = "select"
    EMERGENCY = "emergency"
    UNKNOWN = "unknown"


ADVANCE_COUNT: Final = 2
SELECT_COUNT: Final = 3
EMERGENCY_COUNT: Final = 5

_COUNT_2_GESTURE: Final = {
    1: Gesture.IGNORE,  # Stabilization noise
    ADVANCE_COUNT: Gesture.ADVANCE,
    SELECT_COUNT: Gesture.SELECT,
    4: Gesture.IGNORE,
    EMERGENCY_COUNT: Gesture.EMERGENCY,
}


def is_valid_count(count: object) -> bool:
    """Return True if `count` is an integer blink count in range."""
    return isinstance(count, int) and not isinstance(count, bool) and BLINK_COUNT_MIN <= count <= BLINK_COUNT_MAX


def classify(count: int) -> Gesture:
    """Map a validated blink count to its gesture.

    Counts outside the valid range never reach this function in normal flow;
    they classify as UNKNOWN rather than raising.
    """
    if not is_valid_count(count):
        return Gesture.UNKNOWN
    return _COUNT_2_GESTURE.get(count, Gesture.IGNORE)
