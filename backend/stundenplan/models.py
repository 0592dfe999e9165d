from __future__ import annotations

from datetime import date, datetime
from typing import Generic, Literal, Optional, TypeVar
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator, model_validator

from .config import get_settings
from .utils import parse_timestamp

EventType = Literal["timetable", "custom_hour", "exam"]

PayloadT = TypeVar("PayloadT")


class Event(BaseModel, Generic[PayloadT]):
    id: str
    start_time: datetime
    end_time: datetime
    type: EventType = "timetable"
    payload: Optional[PayloadT] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def to_local_wall_time(cls, value: datetime) -> datetime:
        # offset-aware input is converted to naive wall time in the configured zone
        if value.tzinfo is None:
            return value
        return parse_timestamp(value, ZoneInfo(get_settings().timezone))

    @property
    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60


class LayoutInfo(BaseModel):
    column: int = Field(default=0, ge=0)
    total_columns: int = Field(default=1, ge=1)


class GridConfig(BaseModel):
    start_hour: int = Field(default=0, ge=0, le=23)
    end_hour: int = Field(default=23, ge=0, le=23)
    hour_height_px: float = Field(default=60, gt=0)
    min_height_px: float = Field(default=35, ge=0)
    base_padding_px: float = 4
    gap_px: float = 2
    clip_tolerance_px: float = 10

    @model_validator(mode="after")
    def check_hour_window(self) -> GridConfig:
        if self.end_hour < self.start_hour:
            raise ValueError("end_hour must not be earlier than start_hour")
        return self

    @property
    def total_height_px(self) -> float:
        return (self.end_hour - self.start_hour + 1) * self.hour_height_px


class GridGeometry(BaseModel):
    top_px: float
    height_px: float
    left_percent: float
    width_percent: float
    left_inset_px: float
    right_inset_px: float


class PositionedEvent(BaseModel):
    event: Event
    layout: LayoutInfo
    geometry: GridGeometry


class DayLayout(BaseModel):
    grid: GridConfig
    events: list[PositionedEvent] = Field(default_factory=list)
    hidden_event_ids: list[str] = Field(default_factory=list)


class LayoutRequest(BaseModel):
    events: list[Event] = Field(default_factory=list)
    grid: GridConfig = Field(default_factory=GridConfig)


class DaySchedule(BaseModel):
    date: date
    events: list[PositionedEvent] = Field(default_factory=list)
    hidden_event_ids: list[str] = Field(default_factory=list)
    now_indicator_px: float | None = None


class WeekSchedule(BaseModel):
    week_start: date
    week_end: date
    grid: GridConfig
    loaded: bool
    days: list[DaySchedule] = Field(default_factory=list)


class DaySummary(BaseModel):
    date: date
    event_count: int
    dominant_type: EventType | None = None


class MonthSchedule(BaseModel):
    year: int
    month: int
    loaded: bool
    days: list[DaySummary] = Field(default_factory=list)


class MonthOverview(BaseModel):
    month: int
    loaded: bool
    days_with_events: int
    day_types: dict[int, EventType] = Field(default_factory=dict)


class YearOverview(BaseModel):
    year: int
    load_order: list[int] = Field(default_factory=list)
    months: list[MonthOverview] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    api_base_url: str
    cached_days: int
    generation: int


class ErrorResponse(BaseModel):
    detail: str
    request_id: str | None = None
