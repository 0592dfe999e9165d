from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta
import inspect
from typing import Sequence

from .cache import EventCache
from .config import Settings
from .layout import current_time_offset, hour_height_for_width, layout_day, summarize_day
from .loader import EventSource, MonthCallback, RangeLoader, SleepFunc
from .models import (
    DayLayout,
    DaySchedule,
    Event,
    GridConfig,
    HealthResponse,
    MonthOverview,
    MonthSchedule,
    WeekSchedule,
    YearOverview,
)
from .utils import iter_dates, month_bounds, week_start_for, year_load_order


def grid_from_settings(settings: Settings, hour_height_px: float | None = None) -> GridConfig:
    return GridConfig(
        start_hour=settings.grid_start_hour,
        end_hour=settings.grid_end_hour,
        hour_height_px=hour_height_px or settings.hour_height_px,
        min_height_px=settings.min_event_height_px,
        base_padding_px=settings.base_padding_px,
        gap_px=settings.column_gap_px,
    )


class CalendarService:
    def __init__(
        self,
        settings: Settings,
        source: EventSource,
        *,
        cache: EventCache | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        self._settings = settings
        self._source = source
        self._cache = cache if cache is not None else EventCache()

        self._loader = RangeLoader(
            source,
            self._cache,
            inter_request_delay=settings.inter_request_delay,
            sleep=sleep or asyncio.sleep,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def cache(self) -> EventCache:
        return self._cache

    @property
    def source(self) -> EventSource:
        return self._source

    async def aclose(self) -> None:
        """Release the upstream client, if the source holds one."""
        close = getattr(self._source, "aclose", None)
        if close is not None:
            await close()

    def health(self) -> HealthResponse:
        return HealthResponse(
            status="ok",
            api_base_url=self._settings.api_base_url,
            cached_days=len(self._cache),
            generation=self._cache.generation,
        )

    def layout_events(self, events: Sequence[Event], grid: GridConfig | None = None) -> DayLayout:
        return layout_day(events, grid or grid_from_settings(self._settings))

    def _serialize_day(self, day: date, grid: GridConfig, now: datetime) -> DaySchedule:
        day_layout = layout_day(self._cache.get(day), grid)
        return DaySchedule(
            date=day,
            events=day_layout.events,
            hidden_event_ids=day_layout.hidden_event_ids,
            now_indicator_px=current_time_offset(now, grid) if now.date() == day else None,
        )

    async def get_week_schedule(
        self,
        anchor_date: date,
        *,
        show_weekends: bool | None = None,
        zenturie: str | None = None,
        viewport_width: int | None = None,
        now: datetime | None = None,
        view: str | None = None,
    ) -> WeekSchedule:
        if show_weekends is None:
            show_weekends = self._settings.show_weekends

        loaded = await self._loader.load_week(anchor_date, show_weekends=show_weekends, zenturie=zenturie, view=view)

        grid = grid_from_settings(self._settings, hour_height_for_width(viewport_width) if viewport_width else None)
        week_start = week_start_for(anchor_date)
        week_end = week_start + timedelta(days=(7 if show_weekends else 5) - 1)
        now = now or datetime.now()

        return WeekSchedule(
            week_start=week_start,
            week_end=week_end,
            grid=grid,
            loaded=loaded,
            days=[self._serialize_day(day, grid, now) for day in iter_dates(week_start, week_end)],
        )

    async def get_month_schedule(
        self,
        year: int,
        month: int,
        *,
        zenturie: str | None = None,
        view: str | None = None,
    ) -> MonthSchedule:
        loaded = await self._loader.load_month(year, month, zenturie=zenturie, view=view)
        start, end = month_bounds(year, month)
        return MonthSchedule(
            year=year,
            month=month,
            loaded=loaded,
            days=[summarize_day(day, self._cache.get(day)) for day in iter_dates(start, end)],
        )

    async def get_year_overview(
        self,
        year: int,
        *,
        zenturie: str | None = None,
        today: date | None = None,
        on_month: MonthCallback | None = None,
        view: str | None = None,
    ) -> YearOverview:
        today = today or date.today()
        overviews: dict[int, MonthOverview] = {}

        async def collect(month: int, month_events: dict[date, list[Event]]) -> None:
            day_types = {}
            for day, events in month_events.items():
                summary = summarize_day(day, events)
                if summary.dominant_type is not None:
                    day_types[day.day] = summary.dominant_type
            overviews[month] = MonthOverview(
                month=month,
                loaded=True,
                days_with_events=len(day_types),
                day_types=day_types,
            )
            if on_month is not None:
                outcome = on_month(month, month_events)
                if inspect.isawaitable(outcome):
                    await outcome

        await self._loader.load_year(year, today=today, zenturie=zenturie, on_month=collect, view=view)

        months = [
            overviews.get(month, MonthOverview(month=month, loaded=False, days_with_events=0))
            for month in range(1, 13)
        ]
        return YearOverview(year=year, load_order=year_load_order(year, today), months=months)
