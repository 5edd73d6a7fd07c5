"""Working-hours configurations and per-day open windows.

A working-hours configuration maps weekday keys (``mon`` .. ``sun``) to
zone-naive ``HH:MM`` ranges. Windows are resolved for a calendar day in the
professional's timezone and several named configurations (for example a
salon schedule and a mobile schedule) merge into one set of open segments.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Final, Iterable, List, Mapping, Optional, Tuple

from .timezones import MINUTES_PER_DAY, weekday_in_timezone

# Indexed by ``datetime.weekday()``.
WEEKDAY_KEYS: Final[Tuple[str, ...]] = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
DEFAULT_CONFIG_NAME: Final[str] = "SALON"

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class WorkingHoursError(ValueError):
    """Raised when a working-hours entry is malformed."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


@dataclass(frozen=True)
class WorkingWindow:
    """Open interval ``[start_minutes, end_minutes)`` within one day."""

    start_minutes: int
    end_minutes: int

    def __post_init__(self) -> None:
        if not 0 <= self.start_minutes < self.end_minutes <= MINUTES_PER_DAY:
            raise ValueError(
                f"Invalid working window {self.start_minutes}-{self.end_minutes}"
            )

    @property
    def length(self) -> int:
        return self.end_minutes - self.start_minutes

    def contains(self, start_minutes: float, end_minutes: float) -> bool:
        return self.start_minutes <= start_minutes and end_minutes <= self.end_minutes


@dataclass(frozen=True)
class DayHours:
    enabled: bool
    start: str
    end: str

    def window(self) -> Optional[WorkingWindow]:
        if not self.enabled:
            return None
        start = parse_hhmm(self.start)
        end = parse_hhmm(self.end)
        if start is None or end is None or end <= start:
            return None
        return WorkingWindow(start, end)


WorkingHours = Dict[str, DayHours]


def parse_hhmm(value: object) -> Optional[int]:
    """Return minutes since midnight for ``"HH:MM"`` or ``None`` if invalid."""

    if not isinstance(value, str):
        return None
    match = _HHMM_RE.match(value.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def default_working_hours() -> WorkingHours:
    """Monday to Friday, 09:00-17:00."""

    return {
        key: DayHours(enabled=key not in ("sat", "sun"), start="09:00", end="17:00")
        for key in WEEKDAY_KEYS
    }


def parse_working_hours(raw: object, *, strict: bool = False) -> Optional[WorkingHours]:
    """Normalize a working-hours payload.

    ``None`` stays ``None`` (no configuration: every day is closed). Times
    such as ``"9:00"`` are normalized to ``"09:00"``. Missing days are treated
    as disabled. With ``strict`` a malformed entry raises
    :class:`WorkingHoursError` naming the field; otherwise the day is closed.
    """

    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise WorkingHoursError("workingHours", "expected an object keyed by weekday")

    hours: WorkingHours = {}
    for key in WEEKDAY_KEYS:
        entry = raw.get(key)
        if entry is None:
            hours[key] = DayHours(enabled=False, start="09:00", end="17:00")
            continue
        try:
            hours[key] = _parse_day(key, entry, strict=strict)
        except WorkingHoursError:
            if strict:
                raise
            hours[key] = DayHours(enabled=False, start="09:00", end="17:00")
    return hours


def _parse_day(key: str, entry: object, *, strict: bool) -> DayHours:
    if not isinstance(entry, Mapping):
        raise WorkingHoursError(key, "expected {enabled, start, end}")

    start = parse_hhmm(entry.get("start"))
    if start is None:
        raise WorkingHoursError(f"{key}.start", f"invalid time {entry.get('start')!r}")
    end = parse_hhmm(entry.get("end"))
    if end is None:
        raise WorkingHoursError(f"{key}.end", f"invalid time {entry.get('end')!r}")

    enabled = bool(entry.get("enabled", False))
    if strict and enabled and end <= start:
        raise WorkingHoursError(f"{key}.end", "end must be after start")
    return DayHours(enabled=enabled, start=format_hhmm(start), end=format_hhmm(end))


def working_hours_to_payload(hours: WorkingHours) -> Dict[str, Dict[str, object]]:
    return {
        key: {"enabled": day.enabled, "start": day.start, "end": day.end}
        for key, day in hours.items()
    }


def weekday_key(day: datetime, time_zone: str) -> str:
    return WEEKDAY_KEYS[weekday_in_timezone(day, time_zone)]


def window_for(
    day: datetime,
    time_zone: str,
    config: Optional[Mapping[str, DayHours]],
) -> Optional[WorkingWindow]:
    """Resolve the open window of ``config`` for ``day``'s weekday in ``time_zone``."""

    if not config:
        return None
    rule = config.get(weekday_key(day, time_zone))
    if rule is None:
        return None
    return rule.window()


def merge_windows(windows: Iterable[Optional[WorkingWindow]]) -> List[WorkingWindow]:
    """Union of windows as a sorted list of non-overlapping segments.

    Windows that overlap or touch are merged into a single segment.
    """

    ordered = sorted(
        (window for window in windows if window is not None),
        key=lambda window: (window.start_minutes, window.end_minutes),
    )
    merged: List[WorkingWindow] = []
    for window in ordered:
        if merged and window.start_minutes <= merged[-1].end_minutes:
            last = merged[-1]
            if window.end_minutes > last.end_minutes:
                merged[-1] = WorkingWindow(last.start_minutes, window.end_minutes)
            continue
        merged.append(window)
    return merged


def merged_windows_for(
    day: datetime,
    time_zone: str,
    configs: Mapping[str, Optional[Mapping[str, DayHours]]],
) -> List[WorkingWindow]:
    return merge_windows(window_for(day, time_zone, config) for config in configs.values())


def closed_segments(open_segments: Iterable[WorkingWindow]) -> List[WorkingWindow]:
    """Complement of ``open_segments`` within the day, used for shading."""

    closed: List[WorkingWindow] = []
    cursor = 0
    for segment in merge_windows(open_segments):
        if segment.start_minutes > cursor:
            closed.append(WorkingWindow(cursor, segment.start_minutes))
        cursor = segment.end_minutes
    if cursor < MINUTES_PER_DAY:
        closed.append(WorkingWindow(cursor, MINUTES_PER_DAY))
    return closed


def is_outside_working_hours(
    day: datetime,
    start_minutes: float,
    end_minutes: float,
    config: Optional[Mapping[str, DayHours]],
    time_zone: str,
) -> bool:
    window = window_for(day, time_zone, config)
    if window is None:
        return True
    return not window.contains(start_minutes, end_minutes)


def is_outside_all_working_hours(
    day: datetime,
    start_minutes: float,
    end_minutes: float,
    configs: Mapping[str, Optional[Mapping[str, DayHours]]],
    time_zone: str,
) -> bool:
    """``True`` unless one merged segment fully contains the interval."""

    segments = merged_windows_for(day, time_zone, configs)
    return not any(segment.contains(start_minutes, end_minutes) for segment in segments)


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DayHours",
    "WEEKDAY_KEYS",
    "WorkingHours",
    "WorkingHoursError",
    "WorkingWindow",
    "closed_segments",
    "default_working_hours",
    "format_hhmm",
    "is_outside_all_working_hours",
    "is_outside_working_hours",
    "merge_windows",
    "merged_windows_for",
    "parse_hhmm",
    "parse_working_hours",
    "weekday_key",
    "window_for",
    "working_hours_to_payload",
]
