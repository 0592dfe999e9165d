from __future__ import annotations


class DataSourceUnavailable(RuntimeError):
    """Upstream timetable API could not deliver usable data."""
