"""Date formatting for the essay list."""
from __future__ import annotations

import os
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DISPLAY_TZ_NAME = (os.getenv("ESSAY_DISPLAY_TIMEZONE") or "UTC").strip() or "UTC"


def display_timezone(name: str | None = None) -> ZoneInfo:
    try:
        return ZoneInfo(name or _DISPLAY_TZ_NAME)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def format_local_date(dt: datetime, *, tz_name: str | None = None) -> str:
    aware = dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)
    return aware.astimezone(display_timezone(tz_name)).strftime("%Y-%m-%d")


__all__ = ["display_timezone", "format_local_date"]
