"""
keywarden_core.utils
--------------------
Small time helpers shared by the store, the policy and the maintenance loop.
All instants handled by keywarden are timezone-aware UTC datetimes.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional
import math

ONE_DAY = timedelta(days=1)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(when: datetime) -> datetime:
    # Naive datetimes are taken to already be UTC
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


def to_iso(when: datetime) -> str:
    return as_utc(when).isoformat()


def from_iso(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def from_epoch(value: str) -> Optional[datetime]:
    """Parse a GnuPG colon-listing timestamp (seconds since epoch, may be empty)."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def whole_days(delta: timedelta) -> int:
    """Floor a duration to whole days: 23 hours is 0 days, -1 hour is -1 day."""
    return math.floor(delta / ONE_DAY)
