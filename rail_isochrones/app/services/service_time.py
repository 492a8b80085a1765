from __future__ import annotations

from datetime import date, datetime, time, timedelta


def service_datetime_from_seconds(service_date: date, seconds: int) -> datetime:
    """Convert GTFS 'seconds since midnight' into an absolute datetime.

    Supports times over 24h (e.g. 25:10) by rolling into the next day.
    """

    day0 = datetime.combine(service_date, time(0, 0))
    return day0 + timedelta(seconds=int(seconds))


def seconds_since_midnight(dt: datetime) -> int:
    # Treat provided datetime as local service time.
    return dt.hour * 3600 + dt.minute * 60 + dt.second


def format_service_time(seconds: int) -> str:
    """HH:MM:SS, with hours past 23 kept as-is (GTFS style)."""

    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
