from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as dt_parser
from zoneinfo import ZoneInfo

DEFAULT_TIME_ZONE = "Asia/Kolkata"


def normalize_step_key(step_key: Any) -> str:
    return "_".join(str(step_key or "").strip().upper().split())


def parse_datetime_maybe(value: Any, *, app_timezone: str = DEFAULT_TIME_ZONE) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value or "").strip()
        if not s:
            return None
        try:
            dt = dt_parser.parse(s)
        except Exception:
            return None

    if dt.tzinfo is None:
        try:
            dt = dt.replace(tzinfo=ZoneInfo(app_timezone))
        except Exception:
            dt = dt.replace(tzinfo=timezone.utc)
    try:
        return dt.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return None


def _ms_to_datetime(ms: float) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def ms_in_range(ms: Any) -> bool:
    """True when ``ms`` is a finite epoch-ms number a datetime can hold."""
    if isinstance(ms, bool) or not isinstance(ms, (int, float)):
        return False
    try:
        if not math.isfinite(ms):
            return False
    except OverflowError:
        return False
    return _ms_to_datetime(ms) is not None


def to_ms(value: Any, *, app_timezone: str = DEFAULT_TIME_ZONE) -> Optional[int]:
    """Epoch milliseconds for an ISO string, datetime or epoch-ms number.

    Falsy and unparseable inputs give None; this never raises.
    """
    if not value or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not ms_in_range(value):
            return None
        return int(value)
    dt = parse_datetime_maybe(value, app_timezone=app_timezone)
    if dt is None:
        return None
    return int(round(dt.timestamp() * 1000))


def to_iso_utc(ms: int) -> str:
    dt = _ms_to_datetime(ms)
    if dt is None:
        return ""
    # Match JS Date.toISOString() millisecond precision.
    dt = dt.replace(microsecond=(dt.microsecond // 1000) * 1000)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def duration_parts(ms: float) -> tuple[int, int, int, int]:
    total_seconds = int(abs(ms) // 1000)
    days = total_seconds // (3600 * 24)
    hours = (total_seconds % (3600 * 24)) // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return days, hours, minutes, seconds


def format_duration_ms(ms: Any) -> str:
    if isinstance(ms, bool) or not isinstance(ms, (int, float)):
        return "-"
    try:
        if not math.isfinite(ms):
            return "-"
    except OverflowError:
        # Integers beyond float range.
        return "-"
    days, hours, minutes, seconds = duration_parts(ms)
    hms = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    # Days only when non-zero, to avoid huge hour values.
    return f"{days}d {hms}" if days else hms


def format_due_at(value: Any, *, time_zone: str = DEFAULT_TIME_ZONE) -> str:
    ms = to_ms(value, app_timezone=time_zone)
    if ms is None:
        return ""
    dt = _ms_to_datetime(ms)
    if dt is None:
        return ""
    try:
        return dt.astimezone(ZoneInfo(time_zone)).strftime("%d-%m-%Y %H:%M")
    except Exception:
        return dt.strftime("%c")


def format_planned(minutes: Any) -> str:
    if isinstance(minutes, float) and minutes.is_integer():
        minutes = int(minutes)
    return f"Planned: {minutes}m"
