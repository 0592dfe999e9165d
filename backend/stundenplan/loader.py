from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import date, timedelta
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Protocol

from .cache import DEFAULT_VIEW, EventCache
from .errors import DataSourceUnavailable
from .models import Event
from .utils import iter_dates, month_bounds, week_start_for, year_load_order

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]
MonthCallback = Callable[[int, dict[date, list[Event]]], Any]


class EventSource(Protocol):
    async def get_events(self, start: date, end: date) -> list[Event]: ...

    async def get_friend_schedule(self, zenturie: str, start: date, end: date) -> list[Event]: ...

    async def get_upcoming_exams(self) -> list[Event]: ...


def bucket_by_date(events: Iterable[Event], start: date, end: date) -> dict[date, list[Event]]:
    buckets: dict[date, list[Event]] = defaultdict(list)
    for event in events:
        day = event.start_time.date()
        if start <= day <= end:
            buckets[day].append(event)
    return dict(buckets)


def view_key(kind: str, start: date, end: date, zenturie: str | None = None) -> str:
    """Default supersession key: only a newer load of the same range replaces an older one."""
    return f"{kind}:{start.isoformat()}:{end.isoformat()}:{zenturie or ''}"


class RangeLoader:
    """Fetches week, month and year ranges into an EventCache."""

    def __init__(
        self,
        source: EventSource,
        cache: EventCache,
        *,
        inter_request_delay: timedelta = timedelta(milliseconds=100),
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._source = source
        self._cache = cache
        self._inter_request_delay = inter_request_delay
        self._sleep = sleep

    @property
    def cache(self) -> EventCache:
        return self._cache

    async def _fetch_exams(self, start: date, end: date) -> list[Event]:
        try:
            exams = await self._source.get_upcoming_exams()
        except DataSourceUnavailable as exc:
            logger.warning("Could not load exams for %s to %s: %s", start, end, exc)
            return []
        return [exam for exam in exams if start <= exam.start_time.date() <= end]

    async def _fetch_range(self, start: date, end: date, zenturie: str | None) -> list[Event]:
        if zenturie:
            return await self._source.get_friend_schedule(zenturie, start, end)

        events, exams = await asyncio.gather(
            self._source.get_events(start, end),
            self._fetch_exams(start, end),
        )
        return [*events, *exams]

    async def load_range(
        self,
        start: date,
        end: date,
        *,
        zenturie: str | None = None,
        generation: int | None = None,
        view: str = DEFAULT_VIEW,
    ) -> bool:
        """Fetch ``[start, end]`` and overwrite those dates in the cache.

        Returns False when the fetch failed or a newer load for the same
        ``view`` started while it was in flight; the cache is left unchanged
        in both cases.
        """
        if generation is None:
            generation = self._cache.begin_generation(view)

        logger.info("Loading events %s to %s", start, end)
        try:
            events = await self._fetch_range(start, end, zenturie)
        except DataSourceUnavailable as exc:
            logger.error("Loading events %s to %s failed: %s", start, end, exc)
            return False

        if not self._cache.is_current(generation, view):
            logger.debug("Discarding stale response for %s to %s (view %s, generation %d)", start, end, view, generation)
            return False

        buckets = bucket_by_date(events, start, end)
        self._cache.replace_range(start, end, buckets)
        logger.info("Loaded %d events on %d days for %s to %s", len(events), len(buckets), start, end)
        return True

    async def load_week(
        self,
        anchor: date,
        *,
        show_weekends: bool = False,
        zenturie: str | None = None,
        view: str | None = None,
    ) -> bool:
        start = week_start_for(anchor)
        visible_days = 7 if show_weekends else 5
        end = start + timedelta(days=visible_days - 1)
        view = view or view_key("week", start, end, zenturie)
        generation = self._cache.begin_generation(view)
        return await self.load_range(start, end, zenturie=zenturie, generation=generation, view=view)

    async def load_month(self, year: int, month: int, *, zenturie: str | None = None, view: str | None = None) -> bool:
        start, end = month_bounds(year, month)
        view = view or view_key("month", start, end, zenturie)
        generation = self._cache.begin_generation(view)
        return await self.load_range(start, end, zenturie=zenturie, generation=generation, view=view)

    async def load_year(
        self,
        year: int,
        *,
        today: date | None = None,
        zenturie: str | None = None,
        on_month: MonthCallback | None = None,
        view: str | None = None,
    ) -> dict[int, bool]:
        """Load a year as twelve sequential month requests.

        Months are fetched in ``year_load_order`` and ``on_month`` is called
        with the month number and its per-date events as soon as each month
        lands. A failed month is skipped; a newer load for the same ``view``
        stops the sequence.
        """
        view = view or view_key("year", date(year, 1, 1), date(year, 12, 31), zenturie)
        generation = self._cache.begin_generation(view)
        order = year_load_order(year, today or date.today())
        results: dict[int, bool] = {}

        for position, month in enumerate(order):
            if position and self._inter_request_delay > timedelta(0):
                await self._sleep(self._inter_request_delay.total_seconds())

            if not self._cache.is_current(generation, view):
                logger.info("Year %d load superseded after %d months", year, len(results))
                break

            start, end = month_bounds(year, month)
            loaded = await self.load_range(start, end, zenturie=zenturie, generation=generation, view=view)
            results[month] = loaded

            if not loaded:
                continue

            if on_month is not None:
                month_events = {day: self._cache.get(day) for day in iter_dates(start, end)}
                outcome = on_month(month, month_events)
                if inspect.isawaitable(outcome):
                    await outcome

        return results
