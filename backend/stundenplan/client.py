from __future__ import annotations

from datetime import date, timedelta
import logging
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from .config import Settings
from .errors import DataSourceUnavailable
from .models import Event, EventType
from .utils import format_date_for_api, normalize_text, parse_timestamp, stable_event_id

logger = logging.getLogger(__name__)


def normalize_event_type(raw: Any) -> EventType:
    value = normalize_text(raw).lower()
    if not value or value == "timetable":
        return "timetable"
    if value == "exam":
        return "exam"
    return "custom_hour"


def event_from_record(record: dict[str, Any], tz: ZoneInfo | None = None) -> Event | None:
    start_time = parse_timestamp(record.get("start_time"), tz)
    end_time = parse_timestamp(record.get("end_time"), tz)
    if start_time is None or end_time is None:
        return None

    event_type = normalize_event_type(record.get("event_type"))
    raw_id = normalize_text(record.get("id"))
    if raw_id:
        event_id = f"{event_type}:{raw_id}"
    else:
        event_id = stable_event_id(
            event_type,
            start_time.isoformat(),
            end_time.isoformat(),
            normalize_text(record.get("title") or record.get("summary")),
            normalize_text(record.get("location")),
        )

    return Event(id=event_id, start_time=start_time, end_time=end_time, type=event_type, payload=dict(record))


def exam_from_record(record: dict[str, Any], tz: ZoneInfo | None = None) -> Event | None:
    start_time = parse_timestamp(record.get("start_time"), tz)
    if start_time is None:
        return None

    try:
        duration = int(record.get("duration") or 0)
    except (TypeError, ValueError):
        duration = 0

    payload = {
        **record,
        "title": normalize_text(record.get("course_name")),
        "location": normalize_text(record.get("room")) or None,
    }
    raw_id = normalize_text(record.get("id"))
    event_id = f"exam:{raw_id}" if raw_id else stable_event_id("exam", start_time.isoformat(), payload["title"])

    return Event(
        id=event_id,
        start_time=start_time,
        end_time=start_time + timedelta(minutes=duration),
        type="exam",
        payload=payload,
    )


class ScheduleClient:
    """Async wrapper around the upstream timetable REST API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        session_id: str | None = None,
        timezone: str | None = None,
    ) -> None:
        self._http = http_client
        self._session_id = session_id
        self._tz = ZoneInfo(timezone) if timezone else None

    @classmethod
    def from_settings(cls, settings: Settings) -> ScheduleClient:
        http_client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=settings.request_timeout_seconds,
            headers={"Content-Type": "application/json"},
        )
        return cls(http_client, session_id=settings.session_id, timezone=settings.timezone)

    @property
    def is_closed(self) -> bool:
        return self._http.is_closed

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get_list(self, path: str, params: dict[str, str]) -> list[dict[str, Any]]:
        headers: dict[str, str] = {}
        if self._session_id:
            headers["Authorization"] = f"Bearer {self._session_id}"

        try:
            response = await self._http.get(path, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise DataSourceUnavailable(f"Request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise DataSourceUnavailable(f"Request to {path} returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise DataSourceUnavailable(f"Response from {path} is not valid JSON") from exc

        # the API answers an empty day with null
        if data is None:
            return []
        if not isinstance(data, list):
            raise DataSourceUnavailable(f"Unexpected payload from {path}: expected a list")

        return [item for item in data if isinstance(item, dict)]

    def _session_params(self) -> dict[str, str]:
        return {"session_id": self._session_id} if self._session_id else {}

    def _to_events(self, records: list[dict[str, Any]]) -> list[Event]:
        events: list[Event] = []
        for record in records:
            event = event_from_record(record, self._tz)
            if event is None:
                logger.debug("Skipping record without parseable times: %s", record.get("id"))
                continue
            events.append(event)
        return events

    async def get_events(self, start: date, end: date) -> list[Event]:
        params = {**self._session_params(), "date": format_date_for_api(start), "end": format_date_for_api(end)}
        return self._to_events(await self._get_list("/events", params))

    async def get_friend_schedule(self, zenturie: str, start: date, end: date) -> list[Event]:
        params = {"zenturie": zenturie, "date": format_date_for_api(start), "end": format_date_for_api(end)}
        return self._to_events(await self._get_list("/view", params))

    async def get_upcoming_exams(self) -> list[Event]:
        records = await self._get_list("/exams", self._session_params())
        exams: list[Event] = []
        for record in records:
            exam = exam_from_record(record, self._tz)
            if exam is not None:
                exams.append(exam)
        return exams
