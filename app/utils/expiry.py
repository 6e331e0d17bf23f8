"""Shelf-life arithmetic shared by blood units and bank-level inventory."""

from datetime import date, datetime, time, timedelta
from typing import Optional

from app.schemas.base_schema import ExpiryBucket

CRITICAL_DAYS = 3
WARNING_DAYS = 7


def days_until(expiry_date: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    return (expiry_date - today).days


def hours_until_end_of_day(expiry_date: date, now: Optional[datetime] = None) -> int:
    """Whole hours left until the end of the expiry day, never negative."""
    now = now or datetime.now()
    end_of_expiry_day = datetime.combine(expiry_date + timedelta(days=1), time.min)
    hours = int((end_of_expiry_day - now).total_seconds() // 3600)
    return max(0, hours)


def bucket_for_days(days_left: int) -> ExpiryBucket:
    if days_left < 0:
        return ExpiryBucket.EXPIRED
    if days_left <= CRITICAL_DAYS:
        return ExpiryBucket.CRITICAL
    if days_left <= WARNING_DAYS:
        return ExpiryBucket.WARNING
    return ExpiryBucket.GOOD


def expiry_bucket(expiry_date: date, today: Optional[date] = None) -> ExpiryBucket:
    return bucket_for_days(days_until(expiry_date, today))


def is_expired(expiry_date: date, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return today > expiry_date
