from __future__ import annotations

from datetime import date, datetime
from typing import Sequence

from .models import (
    DayLayout,
    DaySummary,
    Event,
    EventType,
    GridConfig,
    GridGeometry,
    LayoutInfo,
    PositionedEvent,
)
from .utils import to_minutes

TYPE_PRIORITY: dict[str, int] = {"timetable": 0, "custom_hour": 1, "exam": 2}

# (max viewport width, hour height); first match wins
HOUR_HEIGHT_BREAKPOINTS: tuple[tuple[int, int], ...] = ((480, 50), (640, 40), (768, 45))
DEFAULT_HOUR_HEIGHT_PX = 60


def events_overlap(first: Event, second: Event) -> bool:
    """Half-open interval overlap: touching events do not overlap."""
    return first.start_time < second.end_time and second.start_time < first.end_time


def sort_events(events: Sequence[Event]) -> list[tuple[int, Event]]:
    """Index events and order them by start time, longer events first on ties."""
    indexed = list(enumerate(events))
    indexed.sort(key=lambda item: (item[1].start_time, -item[1].duration_minutes))
    return indexed


def group_overlapping_events(events: Sequence[Event]) -> list[list[tuple[int, Event]]]:
    """Sweep chronologically ordered events into overlap groups.

    An event joins the open group when it starts before the running maximum
    end time of that group, so a long early event keeps the group open for
    later events even if those do not overlap each other.
    """
    ordered = sort_events(events)
    if not ordered:
        return []

    groups: list[list[tuple[int, Event]]] = []
    current_group = [ordered[0]]
    group_end = ordered[0][1].end_time

    for item in ordered[1:]:
        event = item[1]
        if event.start_time < group_end:
            current_group.append(item)
            group_end = max(group_end, event.end_time)
        else:
            groups.append(current_group)
            current_group = [item]
            group_end = event.end_time

    groups.append(current_group)
    return groups


def assign_group_columns(group: Sequence[tuple[int, Event]]) -> dict[int, LayoutInfo]:
    """First-fit column assignment for one chronologically ordered group."""
    if not group:
        return {}

    columns: list[list[Event]] = []
    assigned: dict[int, int] = {}

    for index, event in group:
        for col, members in enumerate(columns):
            if not any(events_overlap(event, member) for member in members):
                members.append(event)
                assigned[index] = col
                break
        else:
            columns.append([event])
            assigned[index] = len(columns) - 1

    total_columns = len(columns)
    return {index: LayoutInfo(column=col, total_columns=total_columns) for index, col in assigned.items()}


def calculate_event_layout(events: Sequence[Event]) -> list[LayoutInfo]:
    """Return one LayoutInfo per event, aligned with the input order."""
    layout = [LayoutInfo() for _ in events]
    for group in group_overlapping_events(events):
        for index, info in assign_group_columns(group).items():
            layout[index] = info
    return layout


def compute_event_geometry(event: Event, layout: LayoutInfo, grid: GridConfig) -> GridGeometry:
    start_minutes = to_minutes(event.start_time)
    end_minutes = to_minutes(event.end_time)
    duration_minutes = end_minutes - start_minutes

    top_px = (start_minutes - grid.start_hour * 60) / 60 * grid.hour_height_px
    height_px = max(duration_minutes / 60 * grid.hour_height_px, grid.min_height_px)

    width_percent = 100 / layout.total_columns
    left_percent = layout.column * width_percent

    return GridGeometry(
        top_px=top_px,
        height_px=height_px,
        left_percent=left_percent,
        width_percent=width_percent,
        left_inset_px=grid.base_padding_px + layout.column * grid.gap_px,
        right_inset_px=grid.base_padding_px + (layout.total_columns - 1 - layout.column) * grid.gap_px,
    )


def is_visible(geometry: GridGeometry, grid: GridConfig) -> bool:
    return -grid.clip_tolerance_px <= geometry.top_px <= grid.total_height_px


def layout_day(events: Sequence[Event], grid: GridConfig) -> DayLayout:
    """Lay out one day: columns over the full set, then clip to the grid window."""
    layout = calculate_event_layout(events)

    positioned: list[PositionedEvent] = []
    hidden: list[str] = []
    for index, event in sort_events(events):
        geometry = compute_event_geometry(event, layout[index], grid)
        if not is_visible(geometry, grid):
            hidden.append(event.id)
            continue
        positioned.append(PositionedEvent(event=event, layout=layout[index], geometry=geometry))

    return DayLayout(grid=grid, events=positioned, hidden_event_ids=hidden)


def hour_height_for_width(viewport_width_px: int | None) -> int:
    if viewport_width_px is None:
        return DEFAULT_HOUR_HEIGHT_PX
    for max_width, hour_height in HOUR_HEIGHT_BREAKPOINTS:
        if viewport_width_px <= max_width:
            return hour_height
    return DEFAULT_HOUR_HEIGHT_PX


def current_time_offset(now: datetime, grid: GridConfig) -> float:
    return ((now.hour - grid.start_hour) * 60 + now.minute) * (grid.hour_height_px / 60)


def dominant_event_type(events: Sequence[Event]) -> EventType | None:
    """Type shown on a month or year cell: exam beats custom_hour beats timetable."""
    dominant: EventType | None = None
    for event in events:
        if dominant is None or TYPE_PRIORITY[event.type] > TYPE_PRIORITY[dominant]:
            dominant = event.type
    return dominant


def summarize_day(day: date, events: Sequence[Event]) -> DaySummary:
    return DaySummary(date=day, event_count=len(events), dominant_type=dominant_event_type(events))
