"""Renderer for still snapshots of the scheduling grid."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, List, Mapping, Sequence

from PIL import Image, ImageDraw, ImageFont

from ..layout import EventPlacement
from ..timezones import MINUTES_PER_DAY, zoned_parts_of
from ..view_range import ViewMode, in_focus_month
from ..working_hours import WorkingWindow

if TYPE_CHECKING:
    from ..session import CalendarSession

_WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTH_LABELS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def _font_length(font: ImageFont.ImageFont, text: str) -> float:
    try:
        return font.getlength(text)  # type: ignore[attr-defined]
    except AttributeError:  # pragma: no cover - fallback for older Pillow
        dummy_img = Image.new("L", (1, 1), color=255)
        draw = ImageDraw.Draw(dummy_img)
        return float(draw.textlength(text, font=font))


def _font_size(font: ImageFont.ImageFont, fallback: int) -> int:
    return int(getattr(font, "size", fallback))


def _load_font(path_candidates: Sequence[Path], size: int) -> ImageFont.ImageFont:
    for candidate in path_candidates:
        if candidate and candidate.exists():
            return ImageFont.truetype(str(candidate), size=size)
    return ImageFont.load_default()


def _default_font_candidates(bold: bool) -> List[Path]:
    names = [
        "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf",
        "Arial Bold.ttf" if bold else "Arial.ttf",
    ]
    search_dirs = [
        Path("/usr/share/fonts/truetype/dejavu"),
        Path("/usr/share/fonts"),
        Path("/Library/Fonts"),
        Path.home() / ".fonts",
    ]
    return [directory / name for name in names for directory in search_dirs]


@dataclass
class GridRendererConfig:
    """Canvas geometry, colours and fonts for grid snapshots."""

    canvas_width: int = 1200
    canvas_height: int = 900
    header_height: int = 48
    time_label_width: int = 64
    padding: int = 12
    start_hour: int = 0
    end_hour: int = 24
    font_regular_path: Path | None = None
    font_bold_path: Path | None = None
    background_color: int = 255
    foreground_color: int = 0
    grid_color: int = 200
    closed_color: int = 232
    appointment_fill: int = 255
    block_fill: int = 180
    header_font_size: int = 18
    label_font_size: int = 13
    card_font_size: int = 13

    def __post_init__(self) -> None:
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValueError("start_hour and end_hour must satisfy 0 <= start < end <= 24")

    @property
    def grid_top(self) -> int:
        return self.header_height

    @property
    def grid_bottom(self) -> int:
        return self.canvas_height - self.padding

    @property
    def grid_left(self) -> int:
        return self.padding + self.time_label_width

    @property
    def grid_right(self) -> int:
        return self.canvas_width - self.padding

    @property
    def px_per_minute(self) -> float:
        visible = (self.end_hour - self.start_hour) * 60
        return (self.grid_bottom - self.grid_top) / visible

    def y_for_minutes(self, minutes: float) -> float:
        clamped = min(max(minutes, self.start_hour * 60), self.end_hour * 60)
        return self.grid_top + (clamped - self.start_hour * 60) * self.px_per_minute

    def font(self, size: int, *, bold: bool = False) -> ImageFont.ImageFont:
        provided = self.font_bold_path if bold else self.font_regular_path
        candidates: List[Path] = [Path(provided)] if provided is not None else []
        candidates.extend(_default_font_candidates(bold))
        return _load_font(candidates, size)


class GridRenderer:
    """Draw day and week columns, or the month grid, to a greyscale image."""

    def __init__(self, config: GridRendererConfig | None = None) -> None:
        self.config = config or GridRendererConfig()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def render_session(self, session: "CalendarSession", *, output_path: Path | None = None) -> Image.Image:
        days = session.visible_days()
        if session.view is ViewMode.MONTH:
            counts = {index: len(session.layout_for(day)) for index, day in enumerate(days)}
            image = self.render_month(days, session.focus, session.time_zone, counts)
        else:
            image = self.render_columns(
                days,
                session.time_zone,
                [session.layout_for(day) for day in days],
                [session.closed_segments(day) for day in days],
            )
        if output_path is not None:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            image.save(output_path)
        return image

    def render_columns(
        self,
        days: Sequence[datetime],
        time_zone: str,
        placements: Sequence[Sequence[EventPlacement]],
        closed: Sequence[Sequence[WorkingWindow]],
    ) -> Image.Image:
        """Render one time-grid column per day.

        Args:
            days: Noon anchors of the columns, left to right.
            time_zone: Calendar zone used for the column headers.
            placements: Laid-out events for each column.
            closed: Closed segments to shade for each column.
        """

        if not (len(days) == len(placements) == len(closed)):
            raise ValueError("days, placements and closed must have the same length")

        cfg = self.config
        image = Image.new("L", (cfg.canvas_width, cfg.canvas_height), color=cfg.background_color)
        draw = ImageDraw.Draw(image)

        column_count = max(len(days), 1)
        column_width = (cfg.grid_right - cfg.grid_left) / column_count

        for index, day in enumerate(days):
            left = cfg.grid_left + index * column_width
            right = left + column_width
            self._shade_closed(draw, left, right, closed[index])
            self._draw_column_header(draw, left, right, day, time_zone)

        self._draw_hour_grid(draw)
        for index in range(column_count + 1):
            x = cfg.grid_left + index * column_width
            draw.line((x, cfg.grid_top, x, cfg.grid_bottom), fill=cfg.grid_color, width=1)

        for index, column in enumerate(placements):
            left = cfg.grid_left + index * column_width
            self._draw_events(draw, left + 2, left + column_width - 2, column)

        return image

    def render_month(
        self,
        days: Sequence[datetime],
        focus: datetime,
        time_zone: str,
        event_counts: Mapping[int, int],
    ) -> Image.Image:
        cfg = self.config
        image = Image.new("L", (cfg.canvas_width, cfg.canvas_height), color=cfg.background_color)
        draw = ImageDraw.Draw(image)
        header_font = cfg.font(cfg.header_font_size, bold=True)
        label_font = cfg.font(cfg.label_font_size)

        parts = zoned_parts_of(focus, time_zone)
        draw.text(
            (cfg.padding, cfg.padding),
            f"{_MONTH_LABELS[parts.month - 1]} {parts.year}",
            font=header_font,
            fill=cfg.foreground_color,
        )

        left, right = cfg.padding, cfg.grid_right
        rows = max((len(days) + 6) // 7, 1)
        cell_width = (right - left) / 7
        cell_height = (cfg.grid_bottom - cfg.grid_top) / rows

        for index, day in enumerate(days):
            row, col = divmod(index, 7)
            x0 = left + col * cell_width
            y0 = cfg.grid_top + row * cell_height
            muted = not in_focus_month(day, focus, time_zone)
            draw.rectangle(
                (x0, y0, x0 + cell_width, y0 + cell_height),
                outline=cfg.grid_color,
                fill=cfg.closed_color if muted else cfg.background_color,
            )
            day_parts = zoned_parts_of(day, time_zone)
            draw.text((x0 + 6, y0 + 4), str(day_parts.day), font=label_font, fill=cfg.foreground_color)
            count = event_counts.get(index, 0)
            if count:
                label = f"{count} event" if count == 1 else f"{count} events"
                draw.text(
                    (x0 + 6, y0 + 8 + _font_size(label_font, cfg.label_font_size)),
                    label,
                    font=label_font,
                    fill=cfg.foreground_color,
                )
        return image

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------
    def _draw_column_header(
        self, draw: ImageDraw.ImageDraw, left: float, right: float, day: datetime, time_zone: str
    ) -> None:
        cfg = self.config
        font = cfg.font(cfg.label_font_size, bold=True)
        parts = zoned_parts_of(day, time_zone)
        label = f"{_WEEKDAY_LABELS[parts.to_date().weekday()]} {parts.day}"
        x = left + (right - left - _font_length(font, label)) / 2
        draw.text((x, cfg.padding), label, font=font, fill=cfg.foreground_color)

    def _shade_closed(
        self, draw: ImageDraw.ImageDraw, left: float, right: float, segments: Sequence[WorkingWindow]
    ) -> None:
        cfg = self.config
        for segment in segments:
            top = cfg.y_for_minutes(segment.start_minutes)
            bottom = cfg.y_for_minutes(segment.end_minutes)
            if bottom > top:
                draw.rectangle((left, top, right, bottom), fill=cfg.closed_color)

    def _draw_hour_grid(self, draw: ImageDraw.ImageDraw) -> None:
        cfg = self.config
        label_font = cfg.font(cfg.label_font_size)
        for hour in range(cfg.start_hour, cfg.end_hour + 1):
            y = int(round(cfg.y_for_minutes(hour * 60)))
            draw.line((cfg.grid_left, y, cfg.grid_right, y), fill=cfg.grid_color, width=1)
            if hour < 24:
                label_y = y - _font_size(label_font, cfg.label_font_size) // 2
                draw.text(
                    (cfg.padding, max(label_y, cfg.grid_top)),
                    self._format_hour_label(hour),
                    font=label_font,
                    fill=cfg.foreground_color,
                )

    def _format_hour_label(self, hour: int) -> str:
        suffix = "AM" if hour < 12 else "PM"
        display_hour = hour % 12
        if display_hour == 0:
            display_hour = 12
        return f"{display_hour} {suffix}"

    def _draw_events(
        self, draw: ImageDraw.ImageDraw, left: float, right: float, placements: Sequence[EventPlacement]
    ) -> None:
        cfg = self.config
        font = cfg.font(cfg.card_font_size)
        line_height = _font_size(font, cfg.card_font_size) + 2

        for placement in placements:
            top_minutes = placement.top_minutes
            bottom_minutes = min(placement.bottom_minutes, MINUTES_PER_DAY)
            top = cfg.y_for_minutes(top_minutes)
            bottom = cfg.y_for_minutes(bottom_minutes)
            if bottom - top < 2:
                continue

            event = placement.event
            draw.rounded_rectangle(
                (left, top + 1, right, bottom - 1),
                radius=4,
                outline=cfg.foreground_color,
                width=1,
                fill=cfg.block_fill if event.is_blocked else cfg.appointment_fill,
            )

            max_lines = int((bottom - top - 4) // line_height)
            lines = [event.client_name, event.title][: max(max_lines, 0)]
            y = top + 3
            for text in lines:
                draw.text(
                    (left + 4, y),
                    self._truncate_line(text, font, int(right - left - 8)),
                    font=font,
                    fill=cfg.foreground_color,
                )
                y += line_height

    def _truncate_line(self, line: str, font: ImageFont.ImageFont, max_width: int) -> str:
        ellipsis = "…"
        if _font_length(font, line) <= max_width:
            return line
        current = line
        while current and _font_length(font, current + ellipsis) > max_width:
            current = current[:-1].rstrip()
        return (current + ellipsis) if current else ellipsis


__all__ = ["GridRenderer", "GridRendererConfig"]
