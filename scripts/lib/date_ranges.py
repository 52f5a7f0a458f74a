"""
Named date-range tokens used by the Zoho Books syncs and the bill-details job.

Tokens: last_month, this_month, last_quarter, this_quarter, this_fiscal_year,
last_fiscal_year, last_year, all, or an explicit ``YYYY-MM``. The fiscal year
runs April 1 to March 31. An unknown token resolves to the caller's default
with a warning, or raises InvalidRangeError when there is no default.
"""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Tuple

from scripts.lib.calendar_utils import add_months, month_end
from scripts.lib.config import FISCAL_YEAR_START_MONTH
from scripts.lib.errors import InvalidRangeError
from scripts.lib.logger import setup_logger

logger = setup_logger("date_ranges")

RANGE_TOKENS = (
    "last_month", "this_month", "last_quarter", "this_quarter",
    "this_fiscal_year", "last_fiscal_year", "last_year", "all",
)
ALL_TIME_START = date(2020, 1, 1)

_MONTH_TOKEN = re.compile(r"^(\d{4})-(\d{2})$")


def fiscal_year_start(today: date) -> date:
    year = today.year if today.month >= FISCAL_YEAR_START_MONTH else today.year - 1
    return date(year, FISCAL_YEAR_START_MONTH, 1)


def resolve_date_range(token: str, today: date = None, default: str = None) -> Tuple[date, date]:
    """
    Return the closed ``(start, end)`` range for a range token.

    ``default`` is resolved instead of an unknown token.
    """
    today = today or date.today()
    this_month = today.replace(day=1)

    if token == "last_month":
        start = add_months(this_month, -1)
        return start, this_month - timedelta(days=1)

    if token == "this_month":
        return this_month, today

    if token == "last_quarter":
        quarter_start = add_months(this_month, -((today.month - 1) % 3))
        start = add_months(quarter_start, -3)
        return start, quarter_start - timedelta(days=1)

    if token == "this_quarter":
        return add_months(this_month, -((today.month - 1) % 3)), today

    if token == "this_fiscal_year":
        return fiscal_year_start(today), today

    if token == "last_fiscal_year":
        current = fiscal_year_start(today)
        return current.replace(year=current.year - 1), current - timedelta(days=1)

    if token == "last_year":
        try:
            start = today.replace(year=today.year - 1)
        except ValueError:  # Feb 29
            start = today.replace(year=today.year - 1, day=28)
        return start, today

    if token == "all":
        return ALL_TIME_START, today

    match = _MONTH_TOKEN.match(token or "")
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        if 1 <= month <= 12:
            start = date(year, month, 1)
            return start, month_end(start)

    if default is not None and default != token:
        logger.warning("Unknown date range %r, using %s", token, default)
        return resolve_date_range(default, today)
    raise InvalidRangeError(token)
