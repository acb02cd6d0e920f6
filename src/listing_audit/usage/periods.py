"""UTC calendar-month helpers for usage periods."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_utc_month(moment: datetime) -> datetime:
    """Midnight UTC on the first day of ``moment``'s month."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def start_of_next_utc_month(moment: datetime) -> datetime:
    """Midnight UTC on the first day of the month after ``moment``'s."""
    start = start_of_utc_month(moment)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)
