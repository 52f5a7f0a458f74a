"""Shared fixtures: an in-memory store and fake source clients."""

from datetime import date

import pytest

from integrations.token_provider import SourceTokens
from scripts.lib.errors import APIError
from scripts.lib.pagination import PaginationResult
from scripts.lib.store import MemoryStore

TODAY = date(2025, 10, 15)


def paged(items, pages=1, warnings=None):
    return PaginationResult(items=list(items), pages=pages, warnings=list(warnings or []))


def zoho_record(zoho_id, **fields):
    """Zoho People bulk-API shape."""
    return {str(zoho_id): [fields]}


def employee(zoho_id, email, first, last="", manager=None, joined="01-Jan-2024", exited=None, **extra):
    fields = {
        "EmailID": email,
        "FirstName": first,
        "LastName": last,
        "EmployeeID": f"E{zoho_id}",
        "Designation": extra.pop("Designation", "Engineer"),
        "Department": extra.pop("Department", "Delivery"),
        "Dateofjoining": joined,
        "Dateofexit": exited or "",
        "Reporting_To.MailID": manager or "",
        **extra,
    }
    return zoho_record(zoho_id, **fields)


class FakeBooksClient:
    """Stands in for ZohoBooksClient with canned responses."""

    def __init__(self, payments=(), contacts=(), bills=(), expenses=(), details=None, fail_on=()):
        self.payments = list(payments)
        self.contacts = list(contacts)
        self.bills = list(bills)
        self.expenses = list(expenses)
        self.details = dict(details or {})
        self.fail_on = set(fail_on)
        self.ranges = []
        self.fetched = []
        self.connected = True

    async def tokens(self):
        if not self.connected:
            from scripts.lib.errors import NotConnectedError
            raise NotConnectedError("Zoho Books")
        return SourceTokens("books-token", "https://www.zohoapis.in", "org-1")

    async def list_customer_payments(self):
        return paged(self.payments)

    async def list_contacts(self):
        return paged(self.contacts)

    async def list_bills(self, date_start, date_end):
        self.ranges.append((date_start, date_end))
        return paged(self.bills)

    async def list_expenses(self, date_start, date_end):
        self.ranges.append((date_start, date_end))
        return paged(self.expenses)

    async def get_bill(self, bill_id, tokens=None):
        self.fetched.append(bill_id)
        if bill_id in self.fail_on:
            raise APIError(f"Zoho Books API error 500 for {bill_id}", status_code=500)
        return self.details.get(bill_id, {"bill_id": bill_id, "line_items": []})


class FakePeopleClient:
    """Stands in for ZohoPeopleClient with canned responses."""

    def __init__(self, employees=(), leaves=(), holidays=None, holiday_error_year=None):
        self.employees = list(employees)
        self.leaves = list(leaves)
        self.holidays = dict(holidays or {})
        self.holiday_error_year = holiday_error_year
        self.holiday_years = []

    async def list_employees(self):
        return paged(self.employees)

    async def list_leaves(self):
        return paged(self.leaves)

    async def list_holidays(self, year):
        self.holiday_years.append(year)
        if year == self.holiday_error_year:
            raise APIError(f"Zoho People holidays error for {year}", retryable=False)
        return list(self.holidays.get(year, []))


class FakeGraphClient:
    def __init__(self, users=()):
        self.users = list(users)

    async def list_licensed_users(self):
        return paged(self.users)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def today():
    return TODAY
