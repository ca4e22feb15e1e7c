"""Time helpers.

Instants are stored as naive UTC (TIMESTAMP WITHOUT TIME ZONE); slot times shown to
patients are wall-clock times in settings.app_timezone.
"""
from datetime import UTC, date, datetime, time

from medcenter.core.config import settings


def utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC; naive input is assumed to already be UTC."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def local_to_utc(d: date, t: time) -> datetime:
    """Clinic wall-clock (d, t) -> naive UTC."""
    local = datetime.combine(d, t, tzinfo=settings.tz)
    return local.astimezone(UTC).replace(tzinfo=None)


def utc_to_local(dt: datetime) -> datetime:
    """Naive UTC -> aware datetime in the clinic time zone."""
    return dt.replace(tzinfo=UTC).astimezone(settings.tz)


def clinic_today(now: datetime | None = None) -> date:
    return utc_to_local(now or utc_naive_now()).date()
