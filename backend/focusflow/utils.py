from __future__ import annotations

import datetime as dt
from typing import Any, Optional
from zoneinfo import ZoneInfo

from .config import settings

UTC = dt.timezone.utc
LOCAL_TZ = ZoneInfo(settings.timezone)


def now_ms() -> dt.datetime:
    """Current UTC time truncated to millisecond precision."""
    return truncate_ms(dt.datetime.now(UTC))


def truncate_ms(value: dt.datetime) -> dt.datetime:
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def local_day(value: dt.datetime) -> dt.date:
    """Calendar day of ``value`` as observed in the configured timezone."""
    return as_utc(value).astimezone(LOCAL_TZ).date()


def normalize_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
