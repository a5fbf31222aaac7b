"""Local business time: naive datetimes at UTC + configured offset."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pickup_coord.config import settings


def now() -> datetime:
    """Current local time as a naive datetime."""
    utc = datetime.now(timezone.utc).replace(tzinfo=None)
    return utc + timedelta(hours=settings.utc_offset_hours)


def to_local(moment: datetime) -> datetime:
    """Normalise client input: aware datetimes become naive local time."""
    if moment.tzinfo is None:
        return moment
    utc = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return utc + timedelta(hours=settings.utc_offset_hours)
