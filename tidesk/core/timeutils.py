"""Civil-time helpers.

Timestamps are persisted as naive UTC instants. Everything that depends on the
calendar day (daily ticket numbering, composite identifiers) is derived in the
configured civil timezone.
"""

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from tidesk.core.config import get_settings


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def civil_zone(tz_name: Optional[str] = None) -> ZoneInfo:
    return _zone(tz_name or get_settings().TIMEZONE)


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime (storage representation)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_civil(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """Interpret a stored timestamp in the civil timezone.

    Naive values are treated as UTC; aware values are converted as-is.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(civil_zone(tz_name))


def civil_today(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> date:
    return to_civil(now or utcnow(), tz_name).date()


def civil_day_bounds(day: date, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """Return the [start, end) storage-time (naive UTC) range covering a civil day."""
    zone = civil_zone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def to_storage(value: datetime) -> datetime:
    """Normalise a caller-supplied timestamp to naive UTC.

    Naive input is interpreted in the civil timezone, as sent by the web client
    for schedule times.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=civil_zone())
    return value.astimezone(timezone.utc).replace(tzinfo=None)
