"""
Donor eligibility: a donor may give again once DONATION_GAP_DAYS have passed
since the last donation. Donors who never donated are always eligible.
"""

from datetime import date, timedelta
from typing import Optional

from app.config import settings


def days_since(last_donation_date: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    return (today - last_donation_date).days


def is_eligible(
    last_donation_date: Optional[date],
    today: Optional[date] = None,
    gap_days: Optional[int] = None,
) -> bool:
    if last_donation_date is None:
        return True
    gap = settings.DONATION_GAP_DAYS if gap_days is None else gap_days
    return days_since(last_donation_date, today) >= gap


def days_until_eligible(
    last_donation_date: Optional[date],
    today: Optional[date] = None,
    gap_days: Optional[int] = None,
) -> int:
    if is_eligible(last_donation_date, today, gap_days):
        return 0
    gap = settings.DONATION_GAP_DAYS if gap_days is None else gap_days
    return gap - days_since(last_donation_date, today)


def next_eligible_date(
    last_donation_date: Optional[date], gap_days: Optional[int] = None
) -> Optional[date]:
    if last_donation_date is None:
        return None
    gap = settings.DONATION_GAP_DAYS if gap_days is None else gap_days
    return last_donation_date + timedelta(days=gap)


def eligibility_cutoff(today: Optional[date] = None, gap_days: Optional[int] = None) -> date:
    """Latest last-donation date that still counts as eligible on ``today``."""
    today = today or date.today()
    gap = settings.DONATION_GAP_DAYS if gap_days is None else gap_days
    return today - timedelta(days=gap)
