"""Top-level package for the professional calendar scheduling grid."""

from __future__ import annotations

from .events import Appointment, Block, EventStore
from .interaction import GestureState, InteractionController
from .session import CalendarSession, ValidationError
from .view_range import ViewMode, ViewRange, range_for

__all__ = [
    "__version__",
    "Appointment",
    "Block",
    "CalendarSession",
    "EventStore",
    "GestureState",
    "InteractionController",
    "ValidationError",
    "ViewMode",
    "ViewRange",
    "range_for",
]

__version__ = "0.1.0"
