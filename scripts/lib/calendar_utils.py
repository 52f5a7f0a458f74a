"""Date-interval helpers used by the financial reports."""
from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterator, Optional, Tuple

DateRange = Tuple[date, date]


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(d: date, months: int) -> date:
    """First day of the month ``months`` after ``d``'s month."""
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def iter_months(start: date, end: date) -> Iterator[date]:
    """Yield the first day of every calendar month touching ``[start, end]``."""
    current = month_start(start)
    last = month_start(end)
    while current <= last:
        yield current
        current = add_months(current, 1)


def intersect(*ranges: Tuple[Optional[date], Optional[date]]) -> Optional[DateRange]:
    """
    Intersect closed date ranges. A None bound is unbounded on that side.
    Returns None when the intersection is empty.
    """
    starts = [r[0] for r in ranges if r[0] is not None]
    ends = [r[1] for r in ranges if r[1] is not None]
    start = max(starts) if starts else date.min
    end = min(ends) if ends else date.max
    if start > end:
        return None
    return start, end


def days_inclusive(window: Optional[DateRange]) -> int:
    """Calendar days in a closed window, counting both endpoints; 0 for None."""
    if window is None:
        return 0
    return (window[1] - window[0]).days + 1


def business_days(window: Optional[DateRange]) -> int:
    """Monday-Friday days in a closed window."""
    if window is None:
        return 0
    start, end = window
    total = (end - start).days + 1
    full_weeks, remainder = divmod(total, 7)
    count = full_weeks * 5
    for offset in range(remainder):
        if (start + timedelta(days=full_weeks * 7 + offset)).weekday() < 5:
            count += 1
    return count


def in_window(d: date, window: Optional[DateRange]) -> bool:
    return window is not None and window[0] <= d <= window[1]
