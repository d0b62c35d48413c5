# hims_billing/utils/timezone.py
from __future__ import annotations

from datetime import datetime, date
from zoneinfo import ZoneInfo

from hims_billing.core.config import settings


def hospital_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def now_local() -> datetime:
    """
    Returns a *naive* datetime representing hospital local time.
    All DateTime columns are stored naive in this zone.
    """
    return datetime.now(hospital_tz()).replace(tzinfo=None)


def today_local() -> date:
    return now_local().date()


def as_naive_local(dt: datetime | None) -> datetime | None:
    """Aware datetimes are converted to hospital time; naive ones pass through."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(hospital_tz()).replace(tzinfo=None)
