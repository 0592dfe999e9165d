from __future__ import annotations

import calendar
from datetime import date, datetime, time as dtime, timedelta
import hashlib
from typing import Any
from zoneinfo import ZoneInfo

import pandas as pd


def parse_timestamp(value: Any, tz: ZoneInfo | None = None) -> datetime | None:
    """Parse an upstream timestamp into a naive local datetime."""
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        if pd.isna(value):
            return None

        raw = str(value).strip()
        if not raw:
            return None

        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            coerced = pd.to_datetime(raw, errors="coerce")
            if pd.isna(coerced):
                return None
            parsed = coerced.to_pydatetime()

    if parsed.tzinfo is not None:
        if tz is not None:
            parsed = parsed.astimezone(tz)
        parsed = parsed.replace(tzinfo=None)

    return parsed.replace(microsecond=0)


def to_minutes(value: datetime | dtime) -> int:
    return value.hour * 60 + value.minute


def format_date_for_api(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def week_start_for(anchor: date) -> date:
    return anchor - timedelta(days=anchor.weekday())


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def iter_dates(start: date, end: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def year_load_order(year: int, today: date) -> list[int]:
    """Month numbers (1-12) in the order the year view loads them.

    The month containing ``today`` comes first, then the rest of the year
    forward, then the earlier months backward to January. When ``today`` lies
    in another year, loading starts at January.
    """
    current = today.month if today.year == year else 1
    forward = list(range(current, 13))
    backward = list(range(current - 1, 0, -1))
    return forward + backward


def stable_event_id(*parts: str) -> str:
    payload = "|".join(parts)
    return hashlib.md5(payload.encode("utf-8")).hexdigest()[:16]


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, (list, dict)) and pd.isna(value):
        return ""
    return str(value).strip()
