import asyncio
from datetime import date, datetime, timedelta

from fastapi.testclient import TestClient

from stundenplan.config import Settings, get_settings
from stundenplan.errors import DataSourceUnavailable
from stundenplan.main import app, get_service
from stundenplan.models import Event
from stundenplan.service import CalendarService


def _settings(**overrides) -> Settings:
    values = dict(
        api_base_url="https://api.example.test/v1",
        session_id="token-1",
        timezone="Europe/Berlin",
        request_timeout_seconds=5.0,
        inter_request_delay=timedelta(milliseconds=100),
        show_weekends=False,
        grid_start_hour=0,
        grid_end_hour=23,
        hour_height_px=60.0,
        min_event_height_px=35.0,
        base_padding_px=4.0,
        column_gap_px=2.0,
        allowed_origins=["http://localhost:5173"],
    )
    values.update(overrides)
    return Settings(**values)


def _event(event_id: str, start: datetime, minutes: int = 60, event_type: str = "timetable") -> Event:
    return Event(id=event_id, start_time=start, end_time=start + timedelta(minutes=minutes), type=event_type)


class StaticSource:
    def __init__(self, events: list[Event], exams: list[Event] | None = None, fail: bool = False) -> None:
        self.events = events
        self.exams = exams or []
        self.fail = fail

    async def get_events(self, start: date, end: date) -> list[Event]:
        if self.fail:
            raise DataSourceUnavailable("upstream down")
        return [event for event in self.events if start <= event.start_time.date() <= end]

    async def get_friend_schedule(self, zenturie: str, start: date, end: date) -> list[Event]:
        return await self.get_events(start, end)

    async def get_upcoming_exams(self) -> list[Event]:
        return list(self.exams)


async def _no_sleep(_seconds: float) -> None:
    return None


def _service(source: StaticSource, **overrides) -> CalendarService:
    return CalendarService(_settings(**overrides), source, sleep=_no_sleep)


def test_week_schedule_lays_out_each_day() -> None:
    source = StaticSource(
        [
            _event("a", datetime(2025, 10, 13, 9)),
            _event("b", datetime(2025, 10, 13, 9, 30)),
            _event("c", datetime(2025, 10, 14, 8)),
        ]
    )
    service = _service(source)

    week = asyncio.run(service.get_week_schedule(date(2025, 10, 15), now=datetime(2025, 10, 14, 10, 30)))

    assert week.week_start == date(2025, 10, 13)
    assert week.week_end == date(2025, 10, 17)
    assert week.loaded is True
    assert len(week.days) == 5

    monday, tuesday = week.days[0], week.days[1]
    assert [(item.event.id, item.layout.column, item.layout.total_columns) for item in monday.events] == [
        ("a", 0, 2),
        ("b", 1, 2),
    ]
    assert monday.now_indicator_px is None
    assert tuesday.now_indicator_px == 630
    assert tuesday.events[0].geometry.top_px == 480


def test_week_schedule_uses_responsive_hour_height() -> None:
    service = _service(StaticSource([_event("a", datetime(2025, 10, 13, 10))]))

    week = asyncio.run(service.get_week_schedule(date(2025, 10, 13), viewport_width=400, show_weekends=True))

    assert week.grid.hour_height_px == 50
    assert len(week.days) == 7
    assert week.days[0].events[0].geometry.top_px == 500


def test_failed_week_reports_not_loaded() -> None:
    service = _service(StaticSource([], fail=True))

    week = asyncio.run(service.get_week_schedule(date(2025, 10, 13)))

    assert week.loaded is False
    assert all(day.events == [] for day in week.days)


def test_month_schedule_summarizes_days() -> None:
    source = StaticSource(
        [_event("t", datetime(2025, 10, 13, 9)), _event("c", datetime(2025, 10, 13, 12), event_type="custom_hour")],
        exams=[_event("x", datetime(2025, 10, 20, 10), event_type="exam")],
    )
    service = _service(source)

    month = asyncio.run(service.get_month_schedule(2025, 10))

    assert len(month.days) == 31
    by_day = {summary.date.day: summary for summary in month.days}
    assert by_day[13].event_count == 2
    assert by_day[13].dominant_type == "custom_hour"
    assert by_day[20].dominant_type == "exam"
    assert by_day[1].dominant_type is None


def test_year_overview_collects_months_in_load_order() -> None:
    source = StaticSource([_event("a", datetime(2025, 2, 3, 9)), _event("b", datetime(2025, 11, 5, 9))])
    service = _service(source)
    seen: list[int] = []

    overview = asyncio.run(
        service.get_year_overview(2025, today=date(2025, 10, 17), on_month=lambda month, _events: seen.append(month))
    )

    assert seen == [10, 11, 12, 9, 8, 7, 6, 5, 4, 3, 2, 1]
    assert overview.load_order == seen
    assert [month.month for month in overview.months] == list(range(1, 13))
    assert overview.months[1].day_types == {3: "timetable"}
    assert overview.months[10].days_with_events == 1
    assert all(month.loaded for month in overview.months)


def test_api_layout_endpoint() -> None:
    service = _service(StaticSource([]))
    app.dependency_overrides[get_service] = lambda: service
    try:
        client = TestClient(app)
        response = client.post(
            "/api/v1/layout",
            json={
                "events": [
                    {"id": "a", "start_time": "2025-10-13T09:00:00", "end_time": "2025-10-13T10:00:00"},
                    {"id": "b", "start_time": "2025-10-13T09:30:00", "end_time": "2025-10-13T10:30:00", "type": "exam"},
                    {"id": "c", "start_time": "2025-10-13T10:00:00", "end_time": "2025-10-13T11:00:00"},
                ]
            },
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    body = response.json()
    assert [(item["event"]["id"], item["layout"]["column"]) for item in body["events"]] == [("a", 0), ("b", 1), ("c", 0)]
    assert {item["layout"]["total_columns"] for item in body["events"]} == {2}
    assert response.headers["x-request-id"]


def test_api_week_and_health_endpoints() -> None:
    service = _service(StaticSource([_event("a", datetime(2025, 10, 14, 8))]))
    app.dependency_overrides[get_service] = lambda: service
    try:
        client = TestClient(app)
        week = client.get("/api/v1/schedule/week", params={"anchor_date": "2025-10-14"})
        health = client.get("/api/v1/health")
        invalid = client.get("/api/v1/schedule/month", params={"year": 2025, "month": 13})
    finally:
        app.dependency_overrides.clear()

    assert week.status_code == 200
    assert week.json()["days"][1]["events"][0]["event"]["id"] == "a"
    assert health.json()["cached_days"] == 5
    assert health.json()["generation"] == 1
    assert invalid.status_code == 422


class SlowSource(StaticSource):
    async def get_events(self, start: date, end: date) -> list[Event]:
        await asyncio.sleep(0.01)
        return await super().get_events(start, end)


def test_concurrent_week_requests_do_not_cancel_each_other() -> None:
    service = _service(SlowSource([_event("this", datetime(2025, 10, 13, 9)), _event("next", datetime(2025, 10, 20, 9))]))

    async def both_weeks():
        return await asyncio.gather(
            service.get_week_schedule(date(2025, 10, 13)),
            service.get_week_schedule(date(2025, 10, 20)),
        )

    this_week, next_week = asyncio.run(both_weeks())

    assert this_week.loaded is True
    assert next_week.loaded is True
    assert this_week.days[0].events[0].event.id == "this"
    assert next_week.days[0].events[0].event.id == "next"


def test_same_view_key_lets_newer_week_win() -> None:
    service = _service(SlowSource([_event("this", datetime(2025, 10, 13, 9)), _event("next", datetime(2025, 10, 20, 9))]))

    async def navigate():
        return await asyncio.gather(
            service.get_week_schedule(date(2025, 10, 13), view="calendar"),
            service.get_week_schedule(date(2025, 10, 20), view="calendar"),
        )

    older, newer = asyncio.run(navigate())

    assert older.loaded is False
    assert newer.loaded is True
    assert service.cache.has(date(2025, 10, 13)) is False


class ClosableSource(StaticSource):
    def __init__(self) -> None:
        super().__init__([])
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


def test_service_aclose_closes_source() -> None:
    source = ClosableSource()

    asyncio.run(_service(source).aclose())
    asyncio.run(_service(StaticSource([])).aclose())

    assert source.closed is True


def test_app_shutdown_closes_upstream_client() -> None:
    get_service.cache_clear()
    try:
        with TestClient(app):
            service = get_service()
            assert service.source.is_closed is False
        assert service.source.is_closed is True
    finally:
        get_service.cache_clear()


def test_api_layout_accepts_mixed_naive_and_utc_timestamps(monkeypatch) -> None:
    monkeypatch.setenv("TZ", "Europe/Berlin")
    get_settings.cache_clear()
    service = _service(StaticSource([]))
    app.dependency_overrides[get_service] = lambda: service
    try:
        client = TestClient(app)
        response = client.post(
            "/api/v1/layout",
            json={
                "events": [
                    {"id": "local", "start_time": "2025-10-13T09:00:00", "end_time": "2025-10-13T10:00:00"},
                    {"id": "utc", "start_time": "2025-10-13T07:30:00Z", "end_time": "2025-10-13T08:30:00Z"},
                ]
            },
        )
    finally:
        app.dependency_overrides.clear()
        get_settings.cache_clear()

    assert response.status_code == 200
    events = {item["event"]["id"]: item for item in response.json()["events"]}
    assert events["utc"]["event"]["start_time"] == "2025-10-13T09:30:00"
    assert (events["local"]["layout"]["column"], events["utc"]["layout"]["column"]) == (0, 1)


def test_api_layout_rejects_inverted_grid_window() -> None:
    service = _service(StaticSource([]))
    app.dependency_overrides[get_service] = lambda: service
    try:
        client = TestClient(app)
        response = client.post("/api/v1/layout", json={"events": [], "grid": {"start_hour": 18, "end_hour": 8}})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 422
