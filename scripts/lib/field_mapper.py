"""
MarginDesk — Field Mapper
==========================
Pure translations from external record shapes to internal row dicts.

Zoho People wraps each record as ``{"<zoho id>": [{...fields...}]}`` and uses
``dd-Mon-yyyy`` dates; Zoho Books exposes custom fields as flat ``cf_*``
properties and uses ISO dates; Microsoft Graph users are flat JSON. None of
these quirks leave this module: callers only ever see internal field names.

Unparsable dates map to None and are logged; they never raise.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from scripts.lib.config import DEFAULT_BILLING_CURRENCY
from scripts.lib.errors import MappingError
from scripts.lib.exclusion_rules import ExclusionRule, check_exclusion
from scripts.lib.logger import setup_logger

logger = setup_logger("field_mapper")

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

BILL_STATUSES = ("draft", "open", "overdue", "paid", "void")
EXPENSE_STATUSES = ("unbilled", "invoiced", "reimbursed", "non_billable")
LEAVE_STATUSES = ("pending", "approved", "rejected", "cancelled")


# ─── Scalars ──────────────────────────────────────────────────

def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _clean(value) -> Optional[str]:
    """Strip strings; blanks become None."""
    if _blank(value):
        return None
    return str(value).strip()


def _safe_float(value, default: float = 0.0) -> float:
    """Safely convert to float."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def parse_zoho_date(value) -> Optional[date]:
    """Parse a Zoho People date such as ``08-Jul-2022``."""
    if _blank(value):
        return None
    parts = str(value).strip().split("-")
    if len(parts) == 3:
        month = _MONTHS.get(parts[1][:3].lower())
        try:
            if month is not None:
                return date(int(parts[2]), month, int(parts[0]))
        except ValueError:
            pass
    logger.warning("Could not parse date: %r", value)
    return None


def parse_iso_date(value) -> Optional[date]:
    """Parse a Zoho Books / ISO date (``2024-01-15`` or a full timestamp)."""
    if _blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        logger.warning("Could not parse date: %r", value)
        return None


# ─── Zoho People ──────────────────────────────────────────────

def unwrap_zoho_record(record: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, Any]]:
    """
    Split a Zoho People record into ``(zoho_id, fields)``.

    Accepts the bulk-API shape ``{"662055000000293832": [{...}]}`` as well as
    an already-flat record carrying its id under ``Zoho ID``.
    """
    if not isinstance(record, dict) or not record:
        raise MappingError("Invalid Zoho People record structure")

    if len(record) == 1:
        key, value = next(iter(record.items()))
        if isinstance(value, list):
            if not value or not isinstance(value[0], dict):
                raise MappingError(f"Invalid Zoho People record structure for {key}")
            return str(key), value[0]

    zoho_id = record.get("Zoho ID") or record.get("Zoho_ID") or record.get("zoho_id")
    return (str(zoho_id) if zoho_id is not None else None), record


def map_zoho_employee(record: Dict[str, Any], today: date) -> Dict[str, Any]:
    """Employee -> people row. Start date falls back to ``today``."""
    zoho_id, emp = unwrap_zoho_record(record)
    email = _clean(emp.get("EmailID"))
    full_name = f"{emp.get('FirstName') or ''} {emp.get('LastName') or ''}".strip()
    return {
        "email": email,
        "name": full_name or email,
        "zoho_employee_id": zoho_id,
        "employee_code": _clean(emp.get("EmployeeID")),
        "role": _clean(emp.get("Designation")),
        "department": _clean(emp.get("Department")),
        "start_date": parse_zoho_date(emp.get("Dateofjoining")) or today,
        "end_date": parse_zoho_date(emp.get("Dateofexit")),
    }


def employee_manager_email(record: Dict[str, Any]) -> Optional[str]:
    _, emp = unwrap_zoho_record(record)
    return _clean(emp.get("Reporting_To.MailID"))


def map_leave_status(value) -> str:
    status = (value or "").strip().lower()
    return status if status in LEAVE_STATUSES else "pending"


def map_zoho_leave(record: Dict[str, Any]) -> Dict[str, Any]:
    """Leave -> leaves row; ``zoho_employee_id`` is left for the caller to resolve."""
    leave_id, leave = unwrap_zoho_record(record)
    return {
        "zoho_leave_id": leave_id,
        "zoho_employee_id": _clean(leave.get("Employee_ID.ID")),
        "leave_type": _clean(leave.get("Leavetype")),
        "start_date": parse_zoho_date(leave.get("From")),
        "end_date": parse_zoho_date(leave.get("To")),
        "days": _safe_float(leave.get("Daystaken")),
        "status": map_leave_status(leave.get("ApprovalStatus")),
        "reason": _clean(leave.get("Reasonforleave")),
    }


def map_zoho_holiday(holiday: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "date": parse_zoho_date(holiday.get("Date")),
        "name": _clean(holiday.get("Name")),
        "type": "restricted" if holiday.get("isRestrictedHoliday") else "public",
        "description": _clean(holiday.get("Remarks")),
        "zoho_holiday_id": _clean(holiday.get("ID")),
    }


# ─── Zoho Books ───────────────────────────────────────────────

def map_zoho_contact(contact: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "zoho_contact_id": _clean(contact.get("contact_id")),
        "name": _clean(contact.get("company_name")),
        "billing_currency": contact.get("currency_code") or DEFAULT_BILLING_CURRENCY,
        "gstin": _clean(contact.get("gst_no")),
        "pan": _clean(contact.get("tax_id")),
        "tags": contact.get("tags") or [],
    }


def map_customer_payment(payment: Dict[str, Any]) -> Dict[str, Any]:
    """Payment -> cash_receipts row; ``zoho_invoice_id`` is resolved by the caller."""
    return {
        "zoho_payment_id": _clean(payment.get("payment_id")),
        "zoho_invoice_id": _clean(payment.get("invoice_id")),
        "amount": _safe_float(payment.get("amount")),
        "payment_mode": payment.get("payment_mode"),
        "reference_number": payment.get("reference_number"),
        "payment_date": parse_iso_date(payment.get("payment_date") or payment.get("date")),
        "notes": payment.get("notes"),
    }


def map_bill_status(value) -> str:
    status = (value or "").strip().lower()
    return status if status in BILL_STATUSES else "open"


def map_expense_status(value) -> str:
    status = (value or "").strip().lower().replace("-", "_")
    return status if status in EXPENSE_STATUSES else "unbilled"


def map_zoho_bill(bill: Dict[str, Any], rules: List[ExclusionRule]) -> Dict[str, Any]:
    """
    Bill -> bills row.

    ``include_in_calculation`` and ``exclusion_reason`` carry the exclusion
    rule verdict; the merge policy only applies them when the bill is new.
    """
    bill_id = _clean(bill.get("bill_id"))
    if bill_id is None:
        raise MappingError("Bill has no bill_id", field="bill_id")

    match = check_exclusion(
        {
            "vendor_name": bill.get("vendor_name"),
            "bill_number": bill.get("bill_number"),
            "account_name": bill.get("account_name"),
            "description": bill.get("description"),
            "notes": bill.get("notes"),
            "cf_expense_category": bill.get("cf_expense_category") or None,
            "total": bill.get("total"),
        },
        rules,
    )
    if match:
        logger.info("Bill %s matches exclusion rule: %s", bill_id, match.name or match.reason)

    return {
        "zoho_bill_id": bill_id,
        "vendor_id": bill.get("vendor_id") or None,
        "vendor_name": bill.get("vendor_name"),
        "bill_number": bill.get("bill_number"),
        "bill_date": parse_iso_date(bill.get("date")),
        "due_date": parse_iso_date(bill.get("due_date")),
        "total": _safe_float(bill.get("total")),
        "balance": _safe_float(bill.get("balance")),
        "status": map_bill_status(bill.get("status")),
        "currency_code": bill.get("currency_code") or DEFAULT_BILLING_CURRENCY,
        "reference_number": bill.get("reference_number") or None,
        "notes": bill.get("notes") or None,
        "cf_expense_category": bill.get("cf_expense_category") or None,
        "cf_expense_category_unformatted": bill.get("cf_expense_category_unformatted") or None,
        "cf_billed_for_month": bill.get("cf_billed_for_month") or None,
        "cf_billed_for_month_unformatted": parse_iso_date(bill.get("cf_billed_for_month_unformatted")),
        "include_in_calculation": match is None,
        "exclusion_reason": match.reason if match else None,
        "details_sync_status": "pending",
    }


def map_zoho_expense(expense: Dict[str, Any], rules: List[ExclusionRule]) -> Dict[str, Any]:
    """Expense -> expenses row. ``amount`` excludes tax when Zoho provides it."""
    expense_id = _clean(expense.get("expense_id"))
    if expense_id is None:
        raise MappingError("Expense has no expense_id", field="expense_id")

    amount = _safe_float(expense.get("total_without_tax")) or _safe_float(expense.get("total"))
    match = check_exclusion(
        {
            "account_name": expense.get("account_name"),
            "description": expense.get("description"),
            "customer_name": expense.get("customer_name"),
            "amount": amount,
            "notes": expense.get("notes"),
        },
        rules,
    )

    return {
        "zoho_expense_id": expense_id,
        "account_id": expense.get("account_id") or None,
        "account_name": expense.get("account_name"),
        "expense_date": parse_iso_date(expense.get("date")),
        "amount": amount,
        "total": _safe_float(expense.get("total")),
        "status": map_expense_status(expense.get("status")),
        "is_billable": bool(expense.get("is_billable")),
        "customer_id": expense.get("customer_id") or None,
        "customer_name": expense.get("customer_name") or None,
        "currency_code": expense.get("currency_code") or DEFAULT_BILLING_CURRENCY,
        "description": expense.get("description") or None,
        "reference_number": expense.get("reference_number") or None,
        "notes": expense.get("notes") or None,
        "include_in_calculation": match is None,
        "exclusion_reason": match.reason if match else None,
    }


def _line_item_tags(line_item: Dict[str, Any]) -> List[str]:
    tags = line_item.get("tags")
    if not isinstance(tags, list):
        return []
    names = [tag.get("tag_option_name") or tag.get("tag_name") for tag in tags if isinstance(tag, dict)]
    return [name for name in names if name]


def map_bill_line_item(bill_row_id, line_item: Dict[str, Any]) -> Dict[str, Any]:
    taxes = line_item.get("line_item_taxes") or []
    return {
        "bill_id": bill_row_id,
        "zoho_line_item_id": line_item.get("line_item_id"),
        "item_id": line_item.get("item_id") or None,
        "item_name": line_item.get("name"),
        "account_id": line_item.get("account_id") or None,
        "account_name": line_item.get("account_name") or None,
        "description": line_item.get("description") or None,
        "quantity": _safe_float(line_item.get("quantity"), 1.0) or 1.0,
        "rate": _safe_float(line_item.get("rate")),
        "item_total": _safe_float(line_item.get("item_total")),
        "tax_percentage": _safe_float(line_item.get("tax_percentage")),
        "tax_amount": sum(_safe_float(tax.get("tax_amount")) for tax in taxes),
        "tds_tax_amount": _safe_float(line_item.get("tds_tax_amount")),
        "customer_id": line_item.get("customer_id") or None,
        "customer_name": line_item.get("customer_name") or None,
        "tags": _line_item_tags(line_item),
    }


def map_bill_details(detail: Dict[str, Any]) -> Dict[str, Any]:
    """Financial fields from a single-bill detail response."""
    sub_total = detail.get("sub_total")
    return {
        "sub_total": _safe_float(sub_total) if sub_total not in (None, "", 0) else None,
        "tax_total": _safe_float(detail.get("tax_total")),
        "exchange_rate": _safe_float(detail.get("exchange_rate"), 1.0) or 1.0,
        "tds_total": _safe_float(detail.get("tds_amount")),
    }


# ─── Microsoft Graph ──────────────────────────────────────────

def map_graph_user(user: Dict[str, Any], today: date) -> Dict[str, Any]:
    return {
        "email": _clean(user.get("mail")),
        "name": _clean(user.get("displayName")),
        "microsoft_user_id": _clean(user.get("id")),
        "department": _clean(user.get("department")),
        "role": _clean(user.get("jobTitle")),
        "start_date": today,
    }
