"""UTC clock helpers and calendar-month periods.

Database columns hold naive UTC datetimes; period bounds are naive too so they
compare directly against stored completion timestamps.
"""

from datetime import UTC, datetime, timedelta
from typing import Tuple


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_now_naive() -> datetime:
    return utc_now().replace(tzinfo=None)


def billing_period(month: int, year: int) -> Tuple[datetime, datetime]:
    """Return the first and last instant of the given month."""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    start = datetime(year, month, 1)
    if month == 12:
        next_start = datetime(year + 1, 1, 1)
    else:
        next_start = datetime(year, month + 1, 1)
    return start, next_start - timedelta(microseconds=1)


def previous_month(month: int, year: int) -> Tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year
