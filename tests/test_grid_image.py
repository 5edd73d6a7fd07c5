from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest
from PIL import Image

from pro_calendar.events import Appointment, Block
from pro_calendar.layout import layout_day
from pro_calendar.rendering import GridRenderer, GridRendererConfig
from pro_calendar.timezones import ZonedParts, utc_instant_of
from pro_calendar.view_range import ViewMode, visible_days
from pro_calendar.working_hours import WorkingWindow

TZ = "Europe/Berlin"


def _local(day: int, hour: int, minute: int = 0) -> datetime:
    return utc_instant_of(ZonedParts(2024, 6, day, hour, minute), TZ)


def test_render_columns_shades_closed_hours_and_draws_events() -> None:
    config = GridRendererConfig(canvas_width=400, canvas_height=600)
    renderer = GridRenderer(config)
    day = _local(3, 12)
    events = [
        Appointment(id="bk_1", starts_at=_local(3, 10), ends_at=_local(3, 11), client_name="Dana"),
        Block(id="block:b", starts_at=_local(3, 14), ends_at=_local(3, 16)),
    ]

    image = renderer.render_columns(
        [day],
        TZ,
        [layout_day(day, events, TZ)],
        [[WorkingWindow(0, 540), WorkingWindow(1020, 1440)]],
    )

    assert image.size == (400, 600)
    assert image.mode == "L"

    x = config.grid_left + 5
    closed_y = int(config.y_for_minutes(8 * 60 + 30))
    block_y = int(config.y_for_minutes(15 * 60))
    assert image.getpixel((x, closed_y)) == config.closed_color
    assert image.getpixel((config.grid_right - 10, block_y)) == config.block_fill


def test_render_columns_requires_matching_lengths() -> None:
    with pytest.raises(ValueError):
        GridRenderer().render_columns([_local(3, 12)], TZ, [], [])


def test_render_month_grid() -> None:
    focus = _local(15, 12)
    days = visible_days(ViewMode.MONTH, focus, TZ)

    image = GridRenderer().render_month(days, focus, TZ, {0: 1, 10: 3})

    assert isinstance(image, Image.Image)
    assert image.size == (1200, 900)


def test_config_rejects_bad_hour_window() -> None:
    with pytest.raises(ValueError):
        GridRendererConfig(start_hour=20, end_hour=8)


class FakeSession:
    def __init__(self, view: ViewMode) -> None:
        self.view = view
        self.focus = _local(5, 12)
        self.time_zone = TZ
        self.event = Appointment(id="bk", starts_at=_local(5, 9), ends_at=_local(5, 10))

    def visible_days(self):
        return visible_days(self.view, self.focus, self.time_zone)

    def layout_for(self, day):
        return layout_day(day, [self.event], self.time_zone)

    def closed_segments(self, day):
        return [WorkingWindow(0, 480)]


@pytest.mark.parametrize("view", [ViewMode.DAY, ViewMode.WEEK, ViewMode.MONTH])
def test_render_session_writes_png(tmp_path: Path, view: ViewMode) -> None:
    output = tmp_path / "snapshots" / f"{view.value}.png"

    image = GridRenderer().render_session(FakeSession(view), output_path=output)

    assert output.exists()
    with Image.open(output) as saved:
        assert saved.size == image.size
