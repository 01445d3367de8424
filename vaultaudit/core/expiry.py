import math
from datetime import datetime, timedelta
from typing import Iterable

from ..config import settings
from .models import ExpiryReport, ExpiryStatistics, PasswordRecord

DAY = timedelta(days=1)


def calculate_expiry_date(created_at: datetime, period_days: int | None = None) -> datetime:
    if period_days is None:
        period_days = settings.DEFAULT_EXPIRY_PERIOD_DAYS
    return created_at + timedelta(days=period_days)


def days_until(expiry_date: datetime, now: datetime) -> int:
    """Whole days left, rounded up. 0 or negative once the date has passed."""
    return math.ceil((expiry_date - now) / DAY)


def days_until_expiry(record: PasswordRecord, now: datetime | None = None) -> int | None:
    if record.expiry_date is None:
        return None
    return days_until(record.expiry_date, now or datetime.now())


def is_expired(record: PasswordRecord, now: datetime | None = None) -> bool:
    if record.expiry_date is None:
        return False
    return (now or datetime.now()) > record.expiry_date


def is_expiring_soon(record: PasswordRecord, warning_days: int = 14, now: datetime | None = None) -> bool:
    if record.expiry_date is None:
        return False
    return record.expiry_date <= (now or datetime.now()) + timedelta(days=warning_days)


def get_expired(records: Iterable[PasswordRecord], now: datetime | None = None) -> list[PasswordRecord]:
    return [r for r in records if is_expired(r, now)]


def get_expiring_soon(records: Iterable[PasswordRecord],
                      warning_days: int = 14,
                      now: datetime | None = None) -> list[PasswordRecord]:
    return [r for r in records if is_expiring_soon(r, warning_days, now) and not is_expired(r, now)]


def expiry_report(records: list[PasswordRecord], now: datetime | None = None) -> ExpiryReport:
    now = now or datetime.now()
    return ExpiryReport(
        expired=get_expired(records, now),
        expiring_soon=get_expiring_soon(records, 14, now),
        expiring_30_days=get_expiring_soon(records, 30, now),
        healthy=[
            r for r in records
            if r.expiry_date is not None and not is_expired(r, now) and not is_expiring_soon(r, 30, now)
        ],
        without_expiry=[r for r in records if r.expiry_date is None],
    )


def expiry_statistics(records: list[PasswordRecord], now: datetime | None = None) -> ExpiryStatistics:
    now = now or datetime.now()
    report = expiry_report(records, now)
    with_expiry = [r for r in records if r.expiry_date is not None]

    remaining = [days_until(r.expiry_date, now) for r in with_expiry]
    remaining = [d for d in remaining if d > 0]
    average = math.floor(sum(remaining) / len(remaining) + 0.5) if remaining else 0

    return ExpiryStatistics(
        total_passwords=len(records),
        with_expiry=len(with_expiry),
        without_expiry=len(report.without_expiry),
        expired=len(report.expired),
        expiring_soon=len(report.expiring_soon),
        average_days_until_expiry=average,
    )


def extend_expiry(record: PasswordRecord, extension_days: int, now: datetime | None = None) -> datetime:
    """New expiry date counted from the current one, or from now when none is set."""
    current = record.expiry_date or now or datetime.now()
    return current + timedelta(days=extension_days)


def reminder_schedule(record: PasswordRecord,
                      reminder_days: Iterable[int],
                      now: datetime | None = None) -> list[tuple[int, datetime]]:
    """(days_before, remind_at) pairs that are still ahead of `now`."""
    if record.expiry_date is None:
        return []
    now = now or datetime.now()
    schedule = []
    for days_before in reminder_days:
        remind_at = record.expiry_date - timedelta(days=days_before)
        if remind_at > now:
            schedule.append((days_before, remind_at))
    return schedule
