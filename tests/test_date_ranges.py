"""Tests for range tokens and calendar helpers."""

from datetime import date

import pytest

from scripts.lib.calendar_utils import business_days, days_inclusive, intersect, iter_months
from scripts.lib.date_ranges import ALL_TIME_START, resolve_date_range
from scripts.lib.errors import InvalidRangeError, ValidationError


class TestResolveDateRange:
    def test_last_month(self):
        assert resolve_date_range("last_month", date(2025, 3, 10)) == (date(2025, 2, 1), date(2025, 2, 28))

    def test_last_month_in_january(self):
        assert resolve_date_range("last_month", date(2025, 1, 5)) == (date(2024, 12, 1), date(2024, 12, 31))

    def test_last_quarter(self):
        assert resolve_date_range("last_quarter", date(2025, 5, 20)) == (date(2025, 1, 1), date(2025, 3, 31))

    def test_this_quarter(self):
        assert resolve_date_range("this_quarter", date(2025, 8, 2)) == (date(2025, 7, 1), date(2025, 8, 2))

    def test_fiscal_year_starts_in_april(self):
        assert resolve_date_range("this_fiscal_year", date(2025, 2, 1)) == (date(2024, 4, 1), date(2025, 2, 1))
        assert resolve_date_range("this_fiscal_year", date(2025, 4, 1)) == (date(2025, 4, 1), date(2025, 4, 1))

    def test_last_fiscal_year(self):
        assert resolve_date_range("last_fiscal_year", date(2025, 10, 15)) == (date(2024, 4, 1), date(2025, 3, 31))

    def test_last_year_is_trailing_twelve_months(self):
        assert resolve_date_range("last_year", date(2025, 10, 15)) == (date(2024, 10, 15), date(2025, 10, 15))

    def test_all(self):
        assert resolve_date_range("all", date(2025, 10, 15)) == (ALL_TIME_START, date(2025, 10, 15))

    def test_explicit_month(self):
        assert resolve_date_range("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))

    @pytest.mark.parametrize("token", ["yesterday", "2024-13", "", None])
    def test_unknown_token_rejected_without_default(self, token):
        with pytest.raises(InvalidRangeError) as exc:
            resolve_date_range(token, date(2025, 1, 1))
        assert isinstance(exc.value, ValidationError)

    @pytest.mark.parametrize("token", ["yesterday", "2024-13", "fortnight"])
    def test_unknown_token_uses_default(self, token):
        today = date(2025, 10, 15)
        assert resolve_date_range(token, today, default="last_month") == (date(2025, 9, 1), date(2025, 9, 30))
        assert resolve_date_range(token, today, default="last_year") == (date(2024, 10, 15), today)

    def test_known_token_ignores_default(self):
        assert resolve_date_range("2024-02", default="last_year") == (date(2024, 2, 1), date(2024, 2, 29))


class TestCalendarUtils:
    def test_iter_months_uses_calendar_months(self):
        months = list(iter_months(date(2025, 1, 31), date(2025, 4, 1)))
        assert months == [date(2025, 1, 1), date(2025, 2, 1), date(2025, 3, 1), date(2025, 4, 1)]

    def test_empty_intersection_counts_zero_days(self):
        window = intersect((date(2025, 5, 1), None), (date(2025, 4, 1), date(2025, 4, 30)))
        assert window is None
        assert days_inclusive(window) == 0
        assert business_days(window) == 0

    def test_business_days_skip_weekends(self):
        # 2025-09-01 is a Monday
        assert business_days((date(2025, 9, 1), date(2025, 9, 30))) == 22
        assert business_days((date(2025, 9, 6), date(2025, 9, 7))) == 0
