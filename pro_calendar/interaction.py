"""Pointer gestures on the scheduling grid.

The controller is an explicit finite-state machine::

    IDLE -> CREATING -> IDLE
    IDLE -> DRAGGING_MOVE   -> PENDING_CONFIRM | IDLE
    IDLE -> DRAGGING_RESIZE -> PENDING_CONFIRM | IDLE
    PENDING_CONFIRM -> APPLYING -> IDLE     (confirm, success or rollback)
    PENDING_CONFIRM -> IDLE                 (cancel, rollback)

Gestures write optimistically into the shared :class:`EventStore` and hand a
:class:`PendingChange` to the caller. Persistence is the caller's job; the
controller only tracks the outcome and restores the pre-gesture snapshot
when the change is cancelled or fails.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, DefaultDict, List, Literal, Optional, Union

from .events import CalendarEvent, EventStore, duration_of, entity_type_of, minutes_between
from .layout import DEFAULT_METRICS, GridMetrics
from .snapping import SNAP_MINUTES, clamp, snap_duration, snap_minutes
from .timezones import utc_from_day_and_minutes

LOGGER = logging.getLogger(__name__)

CLICK_SUPPRESSION_SECONDS = 0.25

EntityType = Literal["booking", "block"]


class GestureState(str, Enum):
    IDLE = "idle"
    CREATING = "creating"
    DRAGGING_MOVE = "dragging-move"
    DRAGGING_RESIZE = "dragging-resize"
    PENDING_CONFIRM = "pending-confirm"
    APPLYING = "applying"


@dataclass(frozen=True)
class MoveChange:
    entity_type: EntityType
    event_id: str
    api_id: str
    next_start: datetime
    next_end: datetime
    duration_minutes: int
    original: CalendarEvent
    kind: Literal["move"] = "move"


@dataclass(frozen=True)
class ResizeChange:
    entity_type: EntityType
    event_id: str
    api_id: str
    next_end: datetime
    next_duration_minutes: int
    original: CalendarEvent
    kind: Literal["resize"] = "resize"

    @property
    def next_start(self) -> datetime:
        return self.original.starts_at


PendingChange = Union[MoveChange, ResizeChange]


@dataclass(frozen=True)
class CreateProposal:
    """Seed for a new appointment handed to the creation flow."""

    day: datetime
    minutes: int
    starts_at: datetime


@dataclass(frozen=True)
class ApplyOutcome:
    change: PendingChange
    ok: bool
    error: Optional[str] = None


PointerHandler = Callable[[float], None]


class PointerEvents:
    """Registry for document-level pointer handlers active during a gesture."""

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[PointerHandler]] = defaultdict(list)

    def add_listener(self, kind: str, handler: PointerHandler) -> None:
        self._handlers[kind].append(handler)

    def remove_listener(self, kind: str, handler: PointerHandler) -> None:
        handlers = self._handlers.get(kind, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, kind: Optional[str] = None) -> int:
        if kind is not None:
            return len(self._handlers.get(kind, []))
        return sum(len(handlers) for handlers in self._handlers.values())

    def dispatch(self, kind: str, pointer_y: float = 0.0) -> None:
        for handler in list(self._handlers.get(kind, [])):
            handler(pointer_y)


@dataclass
class _MoveGesture:
    snapshot: CalendarEvent
    grab_offset_minutes: float


@dataclass
class _ResizeGesture:
    snapshot: CalendarEvent
    day: datetime
    column_top: float
    original_duration: int


class InteractionController:
    """Owns click-to-create, drag-to-move and drag-to-resize gestures."""

    def __init__(
        self,
        store: EventStore,
        *,
        time_zone: Callable[[], str],
        metrics: GridMetrics = DEFAULT_METRICS,
        pointer: Optional[PointerEvents] = None,
        clock: Callable[[], float] = time.monotonic,
        overlay_open: Callable[[], bool] = lambda: False,
    ) -> None:
        self.store = store
        self.metrics = metrics
        self.pointer = pointer or PointerEvents()
        self._time_zone = time_zone
        self._clock = clock
        self._overlay_open = overlay_open

        self._state = GestureState.IDLE
        self._move: Optional[_MoveGesture] = None
        self._resize: Optional[_ResizeGesture] = None
        self._pending: Optional[PendingChange] = None
        self._suppress_until = 0.0

    # ------------------------------------------------------------------
    @property
    def state(self) -> GestureState:
        return self._state

    @property
    def pending(self) -> Optional[PendingChange]:
        return self._pending

    def can_start_gesture(self) -> bool:
        return self._state is GestureState.IDLE and not self._overlay_open()

    def suppress_click_briefly(self) -> None:
        self._suppress_until = self._clock() + CLICK_SUPPRESSION_SECONDS

    def click_suppressed(self) -> bool:
        return self._clock() < self._suppress_until

    def _refuse(self, gesture: str) -> None:
        LOGGER.debug("Ignoring %s while %s", gesture, self._state.value)

    # Create -----------------------------------------------------------
    def click_grid(self, day: datetime, pointer_y: float, column_top: float = 0.0) -> Optional[CreateProposal]:
        if not self.can_start_gesture() or self.click_suppressed():
            self._refuse("click-to-create")
            return None

        minutes = snap_minutes(self.metrics.minutes_for_offset(pointer_y, column_top))
        starts_at = utc_from_day_and_minutes(day, minutes, self._time_zone())
        self._state = GestureState.CREATING
        return CreateProposal(day=day, minutes=minutes, starts_at=starts_at)

    def finish_create(self) -> None:
        if self._state is GestureState.CREATING:
            self._state = GestureState.IDLE

    def click_event(self, event_id: str) -> bool:
        """Whether a click on an event should open it."""

        return self.store.get(event_id) is not None and not self.click_suppressed() and self.can_start_gesture()

    # Move -------------------------------------------------------------
    def begin_move(self, event_id: str, pointer_y: float, event_top: float) -> bool:
        """Grab an event, remembering where inside it the pointer landed."""

        event = self.store.get(event_id)
        if event is None or not self.can_start_gesture():
            self._refuse("drag")
            return False

        self.suppress_click_briefly()
        duration = duration_of(event)
        offset = clamp(
            self.metrics.minutes_for_offset(pointer_y, event_top),
            0,
            max(0, duration - SNAP_MINUTES),
        )
        self._move = _MoveGesture(snapshot=event, grab_offset_minutes=offset)
        self._state = GestureState.DRAGGING_MOVE
        return True

    def drop(self, day: datetime, pointer_y: float, column_top: float = 0.0) -> Optional[MoveChange]:
        gesture = self._move
        self._move = None
        if self._state is not GestureState.DRAGGING_MOVE or gesture is None:
            return None

        self.suppress_click_briefly()
        original = gesture.snapshot
        try:
            raw = self.metrics.minutes_for_offset(pointer_y, column_top)
            top = snap_minutes(raw - gesture.grab_offset_minutes)
            next_start = utc_from_day_and_minutes(day, top, self._time_zone())
        except ValueError:
            LOGGER.exception("Could not resolve drop target for %s", original.id)
            self._reset(original)
            return None

        if next_start == original.starts_at:
            self._state = GestureState.IDLE
            return None

        duration = duration_of(original)
        next_end = next_start + timedelta(minutes=duration)
        self.store.patch(original.id, starts_at=next_start, ends_at=next_end, duration_minutes=duration)

        change = MoveChange(
            entity_type=entity_type_of(original),
            event_id=original.id,
            api_id=original.backing_id,
            next_start=next_start,
            next_end=next_end,
            duration_minutes=duration,
            original=original,
        )
        return self._propose(change)

    def abort_move(self) -> None:
        if self._state is GestureState.DRAGGING_MOVE:
            self._move = None
            self._state = GestureState.IDLE

    # Resize -----------------------------------------------------------
    def begin_resize(self, event_id: str, day: datetime, column_top: float = 0.0) -> bool:
        """Start dragging the bottom edge of an event rendered on ``day``."""

        event = self.store.get(event_id)
        if event is None or not self.can_start_gesture():
            self._refuse("resize")
            return False

        self.suppress_click_briefly()
        self._resize = _ResizeGesture(
            snapshot=event,
            day=day,
            column_top=column_top,
            original_duration=duration_of(event),
        )
        self._state = GestureState.DRAGGING_RESIZE
        self.pointer.add_listener("move", self.resize_to)
        self.pointer.add_listener("up", self._on_pointer_up)
        return True

    def resize_to(self, pointer_y: float) -> Optional[CalendarEvent]:
        """Live feedback: write the snapped candidate end into the store."""

        gesture = self._resize
        if self._state is not GestureState.DRAGGING_RESIZE or gesture is None:
            return None

        start = gesture.snapshot.starts_at
        try:
            end_minutes = snap_minutes(self.metrics.minutes_for_offset(pointer_y, gesture.column_top))
            candidate_end = utc_from_day_and_minutes(gesture.day, end_minutes, self._time_zone())
        except ValueError:
            LOGGER.exception("Could not resolve resize target for %s", gesture.snapshot.id)
            return None

        duration = snap_duration(minutes_between(start, candidate_end))
        return self.store.patch(
            gesture.snapshot.id,
            ends_at=start + timedelta(minutes=duration),
            duration_minutes=duration,
        )

    def _on_pointer_up(self, _pointer_y: float) -> None:
        self.end_resize()

    def end_resize(self) -> Optional[ResizeChange]:
        gesture = self._resize
        self._resize = None
        self._release_pointer()
        if self._state is not GestureState.DRAGGING_RESIZE or gesture is None:
            return None

        self.suppress_click_briefly()
        original = gesture.snapshot
        current = self.store.get(original.id)
        if current is None:
            self._state = GestureState.IDLE
            return None

        duration = duration_of(current)
        if duration == gesture.original_duration:
            self.store.restore(original)
            self._state = GestureState.IDLE
            return None

        change = ResizeChange(
            entity_type=entity_type_of(original),
            event_id=original.id,
            api_id=original.backing_id,
            next_end=current.ends_at,
            next_duration_minutes=duration,
            original=original,
        )
        return self._propose(change)

    def _release_pointer(self) -> None:
        self.pointer.remove_listener("move", self.resize_to)
        self.pointer.remove_listener("up", self._on_pointer_up)

    # Confirm / cancel -------------------------------------------------
    def _propose(self, change: PendingChange):
        self._pending = change
        self._state = GestureState.PENDING_CONFIRM
        return change

    def cancel(self) -> Optional[PendingChange]:
        """Discard the pending change and restore the pre-gesture snapshot."""

        change = self._pending
        if change is None or self._state is not GestureState.PENDING_CONFIRM:
            return None
        self.store.restore(change.original)
        self._pending = None
        self._state = GestureState.IDLE
        return change

    def begin_apply(self) -> Optional[PendingChange]:
        if self._pending is None or self._state is not GestureState.PENDING_CONFIRM:
            return None
        self._state = GestureState.APPLYING
        return self._pending

    def complete_apply(self) -> Optional[ApplyOutcome]:
        change = self._pending
        if change is None or self._state is not GestureState.APPLYING:
            return None
        self._pending = None
        self._state = GestureState.IDLE
        return ApplyOutcome(change=change, ok=True)

    def fail_apply(self, error: str) -> Optional[ApplyOutcome]:
        change = self._pending
        if change is None or self._state is not GestureState.APPLYING:
            return None
        self.store.restore(change.original)
        self._pending = None
        self._state = GestureState.IDLE
        return ApplyOutcome(change=change, ok=False, error=error)

    # Teardown ---------------------------------------------------------
    def _reset(self, snapshot: Optional[CalendarEvent] = None) -> None:
        if snapshot is not None:
            self.store.restore(snapshot)
        self._move = None
        self._resize = None
        self._state = GestureState.IDLE

    def close(self) -> None:
        """Drop any in-flight drag gesture and deregister pointer handlers."""

        self._release_pointer()
        if self._resize is not None:
            self._reset(self._resize.snapshot)
        elif self._state in (GestureState.DRAGGING_MOVE, GestureState.CREATING):
            self._reset()


__all__ = [
    "ApplyOutcome",
    "CLICK_SUPPRESSION_SECONDS",
    "CreateProposal",
    "GestureState",
    "InteractionController",
    "MoveChange",
    "PendingChange",
    "PointerEvents",
    "ResizeChange",
]
