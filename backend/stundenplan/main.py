from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from functools import lru_cache
import logging
import sys
from typing import AsyncIterator
import uuid

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .client import ScheduleClient
from .config import Settings, get_settings
from .errors import DataSourceUnavailable
from .models import DayLayout, ErrorResponse, HealthResponse, LayoutRequest, MonthSchedule, WeekSchedule, YearOverview
from .service import CalendarService

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return root_logger

    root_logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s - %(message)s"))
    root_logger.addHandler(handler)
    return root_logger


@lru_cache
def get_service() -> CalendarService:
    settings = get_settings()
    return CalendarService(settings=settings, source=ScheduleClient.from_settings(settings))


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    # only close a service that was actually built for this process
    if get_service.cache_info().currsize:
        logger.info("Closing upstream schedule client")
        await get_service().aclose()
        get_service.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    settings: Settings = get_settings()
    app = FastAPI(
        title="Stundenplan Calendar API",
        version="1.0.0",
        description="Calendar layout and progressive range loading for timetable data.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response

    @app.exception_handler(DataSourceUnavailable)
    async def data_source_exception_handler(request: Request, exc: DataSourceUnavailable):
        payload = ErrorResponse(detail=str(exc), request_id=getattr(request.state, "request_id", None))
        return JSONResponse(status_code=503, content=payload.model_dump())

    @app.exception_handler(Exception)
    async def unexpected_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path, exc_info=exc)
        payload = ErrorResponse(
            detail="Internal server error.",
            request_id=getattr(request.state, "request_id", None),
        )
        return JSONResponse(status_code=500, content=payload.model_dump())

    @app.get("/")
    def root() -> dict[str, str]:
        return {"message": "Stundenplan Calendar API", "docs": "/docs"}

    @app.get("/api/v1/health", response_model=HealthResponse)
    def health(service: CalendarService = Depends(get_service)) -> HealthResponse:
        return service.health()

    @app.post("/api/v1/layout", response_model=DayLayout)
    def layout(body: LayoutRequest, service: CalendarService = Depends(get_service)) -> DayLayout:
        return service.layout_events(body.events, body.grid)

    @app.get("/api/v1/schedule/week", response_model=WeekSchedule)
    async def schedule_week(
        anchor_date: date = Query(),
        show_weekends: bool | None = Query(default=None),
        zenturie: str | None = Query(default=None),
        view: str | None = Query(default=None, max_length=64),
        viewport_width: int | None = Query(default=None, ge=1),
        service: CalendarService = Depends(get_service),
    ) -> WeekSchedule:
        return await service.get_week_schedule(
            anchor_date,
            show_weekends=show_weekends,
            zenturie=zenturie,
            viewport_width=viewport_width,
            view=view,
        )

    @app.get("/api/v1/schedule/month", response_model=MonthSchedule)
    async def schedule_month(
        year: int = Query(ge=1970, le=2100),
        month: int = Query(ge=1, le=12),
        zenturie: str | None = Query(default=None),
        view: str | None = Query(default=None, max_length=64),
        service: CalendarService = Depends(get_service),
    ) -> MonthSchedule:
        return await service.get_month_schedule(year, month, zenturie=zenturie, view=view)

    @app.get("/api/v1/schedule/year", response_model=YearOverview)
    async def schedule_year(
        year: int = Query(ge=1970, le=2100),
        zenturie: str | None = Query(default=None),
        view: str | None = Query(default=None, max_length=64),
        service: CalendarService = Depends(get_service),
    ) -> YearOverview:
        return await service.get_year_overview(year, zenturie=zenturie, view=view)

    return app


app = create_app()
