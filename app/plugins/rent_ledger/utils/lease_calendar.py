"""
Lease date arithmetic. Pure functions, no I/O.

Months are counted in fixed 30-day blocks from the lease start, so a tenant
owes nothing until 30 full days have passed.
"""
import calendar
from datetime import datetime, timedelta
from typing import Optional, Tuple

from plugins.rent_ledger.models.models import ReminderTrigger
from utils.date_helper import ensure_datetime

DAYS_PER_MONTH = 30
REMINDER_LEAD_DAYS = 5


def months_elapsed(lease_start: datetime, as_of: datetime) -> int:
    """Whole 30-day months between lease start and as_of, never negative."""
    start = ensure_datetime(lease_start)
    end = ensure_datetime(as_of)
    if end < start:
        return 0
    days = (end - start).days
    return max(0, days // DAYS_PER_MONTH)


def reminder_trigger(rent_payment_date: Optional[int], as_of: datetime) -> Optional[ReminderTrigger]:
    """
    Which reminder, if any, fires on ``as_of``.

    ``PaymentDate`` on the due day itself, ``FiveDaysBefore`` five days ahead of
    it. When the due day is early in the month the lead day falls into the
    previous month, e.g. a due day of 3 fires on the 26th of a 28-day February.
    """
    if not rent_payment_date:
        return None
    as_of = ensure_datetime(as_of)
    if as_of.day == rent_payment_date:
        return ReminderTrigger.PAYMENT_DATE

    lead_day = rent_payment_date - REMINDER_LEAD_DAYS
    if lead_day <= 0:
        # the lead day belongs to the month before the due date, i.e. this month
        # when as_of is near month end
        _, days_in_month = calendar.monthrange(as_of.year, as_of.month)
        lead_day += days_in_month
    if as_of.day == lead_day:
        return ReminderTrigger.FIVE_DAYS_BEFORE
    return None


def billing_period(as_of: datetime) -> Tuple[datetime, datetime]:
    """Calendar month containing as_of, as [start, end)."""
    as_of = ensure_datetime(as_of)
    start = as_of.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    _, days_in_month = calendar.monthrange(start.year, start.month)
    return start, start + timedelta(days=days_in_month)


def period_key(as_of: datetime) -> str:
    return ensure_datetime(as_of).strftime("%Y-%m")


def day_key(as_of: datetime) -> str:
    return ensure_datetime(as_of).strftime("%Y-%m-%d")


def lease_has_started(lease_start: datetime, as_of: datetime) -> bool:
    return ensure_datetime(lease_start) <= ensure_datetime(as_of)


def lease_overlaps(
    lease_start: datetime,
    lease_end: Optional[datetime],
    window_start: datetime,
    window_end: datetime,
) -> bool:
    """True when the lease is in force at some point of [window_start, window_end)."""
    if ensure_datetime(lease_start) >= ensure_datetime(window_end):
        return False
    return lease_end is None or ensure_datetime(lease_end) >= ensure_datetime(window_start)


def lease_spans(
    lease_start: datetime,
    lease_end: Optional[datetime],
    window_start: datetime,
    window_end: datetime,
) -> bool:
    """True when the lease covers the whole of [window_start, window_end)."""
    if ensure_datetime(lease_start) > ensure_datetime(window_start):
        return False
    return lease_end is None or ensure_datetime(lease_end) >= ensure_datetime(window_end) - timedelta(days=1)


def lease_covers(lease_start: datetime, lease_end: Optional[datetime], as_of: datetime) -> bool:
    as_of = ensure_datetime(as_of)
    if ensure_datetime(lease_start) > as_of:
        return False
    return lease_end is None or ensure_datetime(lease_end) >= as_of
