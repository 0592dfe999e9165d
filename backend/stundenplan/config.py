from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    session_id: str | None
    timezone: str
    request_timeout_seconds: float
    inter_request_delay: timedelta
    show_weekends: bool
    grid_start_hour: int
    grid_end_hour: int
    hour_height_px: float
    min_event_height_px: float
    base_padding_px: float
    column_gap_px: float
    allowed_origins: list[str]


def _parse_origins(raw: str) -> list[str]:
    origins = [item.strip() for item in raw.split(",") if item.strip()]
    return origins or ["http://localhost:5173"]


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@lru_cache
def get_settings() -> Settings:
    start_hour = min(max(_env_int("GRID_START_HOUR", 0), 0), 23)
    end_hour = min(max(_env_int("GRID_END_HOUR", 23), start_hour), 23)

    return Settings(
        api_base_url=os.getenv("API_BASE_URL", "https://api.new.nora-nak.de/v1").rstrip("/"),
        session_id=os.getenv("SESSION_ID") or None,
        timezone=os.getenv("TZ", "Europe/Berlin"),
        request_timeout_seconds=max(_env_float("REQUEST_TIMEOUT_SECONDS", 10.0), 1.0),
        inter_request_delay=timedelta(milliseconds=max(_env_int("INTER_REQUEST_DELAY_MS", 100), 0)),
        show_weekends=_env_bool("SHOW_WEEKENDS", False),
        grid_start_hour=start_hour,
        grid_end_hour=end_hour,
        hour_height_px=max(_env_float("HOUR_HEIGHT_PX", 60.0), 1.0),
        min_event_height_px=max(_env_float("MIN_EVENT_HEIGHT_PX", 35.0), 0.0),
        base_padding_px=_env_float("BASE_PADDING_PX", 4.0),
        column_gap_px=_env_float("COLUMN_GAP_PX", 2.0),
        allowed_origins=_parse_origins(os.getenv("ALLOWED_ORIGINS", "http://localhost:5173")),
    )
