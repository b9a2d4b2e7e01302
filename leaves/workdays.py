"""Working-day arithmetic shared by the validator and the reminder job."""
from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterator, List, Tuple

# date.weekday(): Monday is 0, Saturday 5, Sunday 6.
WEEKEND = {5, 6}


def iter_days(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def working_days(start: date, end: date) -> int:
    """Count Monday–Friday dates between ``start`` and ``end`` inclusive."""
    return sum(1 for day in iter_days(start, end) if day.weekday() not in WEEKEND)


def calendar_days(start: date, end: date) -> int:
    if start > end:
        return 0
    return (end - start).days + 1


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def months_spanned(start: date, end: date) -> List[Tuple[int, int]]:
    months: List[Tuple[int, int]] = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append((year, month))
        month += 1
        if month > 12:
            month = 1
            year += 1
    return months


def working_days_in_month(start: date, end: date, year: int, month: int) -> int:
    """Working days of ``[start, end]`` that fall inside the given calendar month."""
    first, last = month_bounds(year, month)
    return working_days(max(start, first), min(end, last))
