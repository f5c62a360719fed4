"""
quiz_engine/utils/timeutils.py
UTC helpers shared by the eligibility gate and the services.

Some backends (SQLite) hand back naive datetimes even for timezone-aware
columns; every comparison goes through ensure_utc so naive values are read
as UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
