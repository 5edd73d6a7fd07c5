from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pro_calendar.timezones import zoned_parts_of
from pro_calendar.view_range import (
    MONTH_GRID_DAYS,
    ViewMode,
    in_focus_month,
    range_for,
    shift_focus,
    visible_days,
)

UTC = timezone.utc


def test_week_starts_on_local_monday_midnight() -> None:
    focus = datetime(2024, 6, 5, 16, 0, tzinfo=UTC)  # Wednesday noon in New York

    view_range = range_for(ViewMode.WEEK, focus, "America/New_York")

    assert view_range.start == datetime(2024, 6, 3, 4, 0, tzinfo=UTC)
    assert view_range.end == datetime(2024, 6, 10, 4, 0, tzinfo=UTC)
    assert focus in view_range


@pytest.mark.parametrize("time_zone", ["America/New_York", "Europe/London", "Australia/Sydney", "Asia/Kathmandu"])
def test_week_alignment_holds_across_dst_transitions(time_zone: str) -> None:
    focus = datetime(2024, 2, 20, 12, 0, tzinfo=UTC)
    for _ in range(300):
        view_range = range_for("week", focus, time_zone)
        start_parts = zoned_parts_of(view_range.start, time_zone)

        assert (start_parts.hour, start_parts.minute) == (0, 0)
        assert start_parts.to_date().weekday() == 0
        assert view_range.end - view_range.start == timedelta(days=7)

        focus += timedelta(hours=13)


def test_day_view_covers_one_local_day() -> None:
    focus = datetime(2024, 3, 10, 17, 0, tzinfo=UTC)

    view_range = range_for(ViewMode.DAY, focus, "America/New_York")

    assert view_range.start == datetime(2024, 3, 10, 5, 0, tzinfo=UTC)
    assert view_range.duration == timedelta(hours=24)


def test_month_view_is_a_six_week_grid() -> None:
    focus = datetime(2024, 6, 15, 16, 0, tzinfo=UTC)

    view_range = range_for(ViewMode.MONTH, focus, "America/New_York")

    assert view_range.start == datetime(2024, 5, 27, 4, 0, tzinfo=UTC)
    assert view_range.duration == timedelta(days=MONTH_GRID_DAYS)


def test_month_grid_starting_on_monday_begins_on_the_first() -> None:
    focus = datetime(2024, 7, 20, 12, 0, tzinfo=UTC)

    view_range = range_for(ViewMode.MONTH, focus, "UTC")

    assert view_range.start == datetime(2024, 7, 1, tzinfo=UTC)


def test_visible_days_are_noon_anchors() -> None:
    focus = datetime(2024, 6, 5, 16, 0, tzinfo=UTC)

    days = visible_days(ViewMode.WEEK, focus, "America/New_York")

    assert len(days) == 7
    assert days[0] == datetime(2024, 6, 3, 16, 0, tzinfo=UTC)
    assert all(zoned_parts_of(day, "America/New_York").hour == 12 for day in days)
    assert [zoned_parts_of(day, "America/New_York").day for day in days] == [3, 4, 5, 6, 7, 8, 9]


def test_visible_days_for_month_view() -> None:
    focus = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)

    days = visible_days(ViewMode.MONTH, focus, "UTC")

    assert len(days) == MONTH_GRID_DAYS
    assert not in_focus_month(days[0], focus, "UTC")
    assert in_focus_month(days[5], focus, "UTC")


@pytest.mark.parametrize(
    "view, delta, expected",
    [
        (ViewMode.DAY, 1, datetime(2024, 2, 1, 17, 0, tzinfo=UTC)),
        (ViewMode.WEEK, -1, datetime(2024, 1, 24, 17, 0, tzinfo=UTC)),
        (ViewMode.MONTH, 1, datetime(2024, 2, 29, 17, 0, tzinfo=UTC)),
    ],
)
def test_shift_focus(view: ViewMode, delta: int, expected: datetime) -> None:
    anchor = datetime(2024, 1, 31, 17, 0, tzinfo=UTC)

    assert shift_focus(view, anchor, delta, "America/New_York") == expected


def test_shift_focus_across_dst_keeps_local_noon() -> None:
    anchor = datetime(2024, 3, 9, 17, 0, tzinfo=UTC)  # Saturday noon EST

    shifted = shift_focus(ViewMode.DAY, anchor, 1, "America/New_York")

    assert shifted == datetime(2024, 3, 10, 16, 0, tzinfo=UTC)


def test_unknown_view_is_rejected() -> None:
    with pytest.raises(ValueError):
        range_for("year", datetime(2024, 1, 1, tzinfo=UTC), "UTC")
