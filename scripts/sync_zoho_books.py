"""
MarginDesk — Zoho Books Sync
==============================
One-way syncs from Zoho Books into the local store:

    cash_receipts  customer payments, linked to local invoices
    contacts       customers with a company name become clients
    bills          vendor bills in a date range, with auto-exclusion rules
    expenses       expenses in a date range, with auto-exclusion rules

Each sync returns the JSON summary written by scripts.lib.sync_log.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict

from integrations.zoho_books import ZohoBooksClient
from scripts.lib.date_ranges import resolve_date_range
from scripts.lib.exclusion_rules import BILL_RULES_TABLE, EXPENSE_RULES_TABLE, load_rules
from scripts.lib.field_mapper import (
    map_customer_payment,
    map_zoho_bill,
    map_zoho_contact,
    map_zoho_expense,
)
from scripts.lib.logger import setup_logger
from scripts.lib.merge import (
    BILL_POLICY,
    CASH_RECEIPT_POLICY,
    CLIENT_POLICY,
    EXPENSE_POLICY,
    RecordSkipped,
    UpsertMerger,
)
from scripts.lib.sync_log import SyncOutcome, run_recorded

logger = setup_logger("sync_zoho_books")

DEFAULT_RANGE = "last_year"


async def sync_cash_receipts(store, client: ZohoBooksClient, actor_id: Any = None) -> Dict[str, Any]:
    """
    Sync customer payments into ``cash_receipts``.

    A payment whose invoice is not known locally is skipped and its message
    is kept in the log, without counting as an error.
    """
    async def body() -> SyncOutcome:
        payments = await client.list_customer_payments()

        def mapper(payment):
            row = map_customer_payment(payment)
            zoho_invoice_id = row.pop("zoho_invoice_id")
            invoice = None
            if zoho_invoice_id:
                invoice = store.find_one("invoices", {"zoho_invoice_id": zoho_invoice_id})
            if invoice is None:
                raise RecordSkipped(
                    f"Invoice not found for Zoho payment {row['zoho_payment_id']}", report=True,
                )
            row["invoice_id"] = invoice["id"]
            return row

        merger = UpsertMerger(store, "cash_receipts", CASH_RECEIPT_POLICY, label="Payment")
        result = merger.merge(payments, mapper, describe=lambda p: p.get("payment_id"))
        return SyncOutcome(result, metadata={"pages": payments.pages}, warnings=payments.warnings)

    return await run_recorded(store, "zoho_cash_receipts", body, actor_id=actor_id)


async def sync_contacts(store, client: ZohoBooksClient, actor_id: Any = None) -> Dict[str, Any]:
    """Sync contacts with a company name into ``clients``."""
    async def body() -> SyncOutcome:
        contacts = await client.list_contacts()
        merger = UpsertMerger(store, "clients", CLIENT_POLICY, label="Contact")
        result = merger.merge(contacts, map_zoho_contact, describe=lambda c: c.get("contact_id"))
        return SyncOutcome(result, metadata={"pages": contacts.pages}, warnings=contacts.warnings)

    return await run_recorded(store, "zoho_contacts", body, actor_id=actor_id)


async def sync_bills(
    store,
    client: ZohoBooksClient,
    range_token: str = None,
    today: date = None,
    actor_id: Any = None,
) -> Dict[str, Any]:
    """
    Sync bills dated inside ``range_token``.

    Exclusion rules decide ``include_in_calculation`` for new bills only; an
    existing bill keeps whatever a user set.
    """
    range_token = range_token or DEFAULT_RANGE
    date_start, date_end = resolve_date_range(range_token, today, default=DEFAULT_RANGE)
    logger.info("Syncing bills for range: %s (%s to %s)", range_token, date_start, date_end)

    async def body() -> SyncOutcome:
        bills = await client.list_bills(date_start, date_end)
        rules = load_rules(store, BILL_RULES_TABLE)
        merger = UpsertMerger(store, "bills", BILL_POLICY, label="Bill")
        result = merger.merge(
            bills, lambda bill: map_zoho_bill(bill, rules), describe=lambda b: b.get("bill_id"),
        )
        return SyncOutcome(
            result,
            metadata={"pages": bills.pages, "range": range_token, "rules_applied": len(rules)},
            warnings=bills.warnings,
        )

    return await run_recorded(store, "zoho_bills", body, actor_id=actor_id)


async def sync_expenses(
    store,
    client: ZohoBooksClient,
    range_token: str = None,
    today: date = None,
    actor_id: Any = None,
) -> Dict[str, Any]:
    """Sync expenses dated inside ``range_token``."""
    range_token = range_token or DEFAULT_RANGE
    date_start, date_end = resolve_date_range(range_token, today, default=DEFAULT_RANGE)
    logger.info("Syncing expenses for range: %s (%s to %s)", range_token, date_start, date_end)

    async def body() -> SyncOutcome:
        expenses = await client.list_expenses(date_start, date_end)
        rules = load_rules(store, EXPENSE_RULES_TABLE)
        merger = UpsertMerger(store, "expenses", EXPENSE_POLICY, label="Expense")
        result = merger.merge(
            expenses, lambda e: map_zoho_expense(e, rules), describe=lambda e: e.get("expense_id"),
        )
        return SyncOutcome(
            result,
            metadata={"pages": expenses.pages, "range": range_token, "rules_applied": len(rules)},
            warnings=expenses.warnings,
        )

    return await run_recorded(store, "zoho_expenses", body, actor_id=actor_id)
