from __future__ import annotations

import calendar
import time as _time
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union

from dateutil import parser as date_parser


def _tz_offset_minutes(dt: datetime) -> int:
    if dt.tzinfo is None:
        return 0
    offset = dt.utcoffset() or timedelta(0)
    return int(offset.total_seconds() // 60)


def _tz_name(dt: datetime) -> Optional[str]:
    if dt.tzinfo is None:
        return None
    name = dt.tzname() or ""
    if name:
        return name
    minutes = _tz_offset_minutes(dt)
    sign = "+" if minutes >= 0 else "-"
    m = abs(minutes)
    return f"UTC{sign}{m // 60:02d}:{m % 60:02d}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_to_utc_with_tzinfo(
    value: Union[str, _time.struct_time, datetime, None],
) -> Optional[Tuple[datetime, int, Optional[str]]]:
    """
    Parse feed/page date forms into a UTC datetime and the original tz label.

    Returns ``(dt_utc, original_tz_offset_minutes, original_tz_name)`` or
    ``None`` when the value cannot be parsed. Naive inputs are taken as UTC
    and report no timezone label.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, _time.struct_time):
        # feedparser structs are already normalized to UTC
        dt = datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            dt = date_parser.parse(text)
        except (ValueError, OverflowError, TypeError):
            return None

    tz_name = _tz_name(dt)
    tz_offset = _tz_offset_minutes(dt)
    return ensure_utc(dt), tz_offset, tz_name


def isoformat_utc(dt: datetime) -> str:
    return ensure_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")
