from __future__ import annotations

from datetime import date
from typing import Mapping, Sequence

from .models import Event
from .utils import iter_dates

DEFAULT_VIEW = "default"


class EventCache:
    """Per-date event map owned by the range loader and read by the render pass.

    Generations are tracked per view key. Starting a new generation for a
    view supersedes the loads still in flight for that same view only; loads
    started under an older generation must not write.
    """

    def __init__(self) -> None:
        self._events: dict[date, list[Event]] = {}
        self._generation = 0
        self._latest: dict[str, int] = {}

    @property
    def generation(self) -> int:
        """Number of generations started across all views."""
        return self._generation

    def begin_generation(self, view: str = DEFAULT_VIEW) -> int:
        self._generation += 1
        self._latest[view] = self._generation
        return self._generation

    def is_current(self, generation: int, view: str = DEFAULT_VIEW) -> bool:
        return self._latest.get(view) == generation

    def replace_range(self, start: date, end: date, events_by_date: Mapping[date, Sequence[Event]]) -> None:
        """Overwrite every date in ``[start, end]``; dates outside are untouched."""
        for day in iter_dates(start, end):
            self._events[day] = list(events_by_date.get(day, ()))

    def invalidate(self, start: date, end: date) -> None:
        for day in iter_dates(start, end):
            self._events.pop(day, None)

    def get(self, day: date) -> list[Event]:
        return list(self._events.get(day, ()))

    def has(self, day: date) -> bool:
        return day in self._events

    def __len__(self) -> int:
        return len(self._events)
