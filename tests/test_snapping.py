from __future__ import annotations

import pytest

from pro_calendar.snapping import (
    LAST_SLOT_MINUTES,
    ceil_to_slot,
    snap_duration,
    snap_minutes,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (0, 0),
        (7.4, 0),
        (7.5, 15),
        (22, 15),
        (23, 30),
        (601, 600),
        (-40, 0),
        (1432, 1425),
        (1500, 1425),
    ],
)
def test_snap_minutes(raw: float, expected: int) -> None:
    assert snap_minutes(raw) == expected


def test_snap_is_idempotent_and_on_grid() -> None:
    value = -60.0
    while value <= 1600:
        snapped = snap_minutes(value)
        assert snapped % 15 == 0
        assert 0 <= snapped <= LAST_SLOT_MINUTES
        assert snap_minutes(snapped) == snapped
        value += 0.75


@pytest.mark.parametrize(
    "raw, expected",
    [(0, 15), (5, 15), (44, 45), (95, 90), (800, 720)],
)
def test_snap_duration_clamps(raw: float, expected: int) -> None:
    assert snap_duration(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [(0, 0), (1, 15), (15, 15), (16, 30), (1430, 1440)],
)
def test_ceil_to_slot(raw: float, expected: int) -> None:
    assert ceil_to_slot(raw) == expected
