"""Grid snapping helpers for the 15-minute scheduling grid."""

from __future__ import annotations

import math
from typing import Final

SNAP_MINUTES: Final[int] = 15
MIN_DURATION_MINUTES: Final[int] = 15
MAX_DURATION_MINUTES: Final[int] = 12 * 60
LAST_SLOT_MINUTES: Final[int] = 24 * 60 - SNAP_MINUTES


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def _nearest_multiple(minutes: float) -> int:
    # Half-way values round up, matching how pointer positions are read.
    return int(math.floor(minutes / SNAP_MINUTES + 0.5)) * SNAP_MINUTES


def snap_minutes(minutes: float) -> int:
    """Snap a minute offset to the nearest grid line within the day.

    The result is always a multiple of :data:`SNAP_MINUTES` in
    ``[0, LAST_SLOT_MINUTES]`` so that a slot always fits before midnight.
    """

    return int(clamp(_nearest_multiple(minutes), 0, LAST_SLOT_MINUTES))


def snap_duration(minutes: float) -> int:
    """Snap a duration to the grid and clamp it to the allowed range."""

    return int(clamp(_nearest_multiple(minutes), MIN_DURATION_MINUTES, MAX_DURATION_MINUTES))


def ceil_to_slot(minutes: float) -> int:
    """Round a minute offset up to the next grid line (may reach 1440)."""

    return int(math.ceil(minutes / SNAP_MINUTES)) * SNAP_MINUTES


__all__ = [
    "LAST_SLOT_MINUTES",
    "MAX_DURATION_MINUTES",
    "MIN_DURATION_MINUTES",
    "SNAP_MINUTES",
    "ceil_to_slot",
    "clamp",
    "snap_duration",
    "snap_minutes",
]
