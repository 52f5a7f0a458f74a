"""
MarginDesk — Upsert Merge Engine
=================================
Create-or-update by external correlation key, one record at a time.

Each table gets a ``MergePolicy`` describing which fields are written only on
create, which keep their stored value when the source sends a blank, and
which are protected by a manual-override flag. A failure on one record is
counted and the loop moves on; the counts always come back.

Usage:
    merger = UpsertMerger(store, "clients", CLIENT_POLICY, label="contacts")
    result = merger.merge(contacts, map_zoho_contact, describe=lambda c: c.get("contact_id"))
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from scripts.lib.config import DEFAULT_UTILIZATION_TARGET, MICROSOFT_UTILIZATION_TARGET
from scripts.lib.logger import setup_logger

logger = setup_logger("merge")

CREATED = "created"
UPDATED = "updated"
SKIPPED = "skipped"


class RecordSkipped(Exception):
    """
    Raised by a mapper to skip one record.

    With ``report=True`` the reason is also added to the error messages,
    without counting the record as an error.
    """

    def __init__(self, reason: str, report: bool = False):
        self.reason = reason
        self.report = report
        super().__init__(reason)


@dataclass(frozen=True)
class MergePolicy:
    key_field: str
    required_fields: Tuple[str, ...] = ()
    create_only: Tuple[str, ...] = ()
    keep_existing_if_blank: Tuple[str, ...] = ()
    override_flag: Optional[str] = None
    override_fields: Tuple[str, ...] = ()
    skip_when_overridden: bool = False
    create_defaults: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MergeResult:
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    error_messages: List[str] = field(default_factory=list)

    @property
    def synced(self) -> int:
        return self.created + self.updated

    def add(self, outcome: str) -> None:
        if outcome == CREATED:
            self.created += 1
        elif outcome == UPDATED:
            self.updated += 1
        else:
            self.skipped += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "synced": self.synced,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class UpsertMerger:
    """Applies a MergePolicy to one table of a Store."""

    def __init__(self, store, table: str, policy: MergePolicy, label: str = None):
        self.store = store
        self.table = table
        self.policy = policy
        self.label = label or table

    def merge(
        self,
        records: Iterable[Dict[str, Any]],
        mapper: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]],
        describe: Callable[[Dict[str, Any]], Any] = None,
    ) -> MergeResult:
        """
        Map and upsert every record in source order.

        A mapper returning None skips the record silently.
        """
        result = MergeResult()

        for record in records:
            result.processed += 1
            try:
                row = mapper(record)
                if row is None:
                    result.skipped += 1
                    continue
                result.add(self.merge_one(row))
            except RecordSkipped as skip:
                result.skipped += 1
                if skip.report:
                    result.error_messages.append(skip.reason)
                    logger.warning("[%s] %s", self.label, skip.reason)
                else:
                    logger.info("[%s] Skipped: %s", self.label, skip.reason)
            except Exception as e:
                result.errors += 1
                ident = describe(record) if describe else result.processed
                msg = f"{self.label} {ident}: {e}"
                result.error_messages.append(msg)
                logger.error("[%s] %s", self.label, msg)

        logger.info(
            "[%s] Processed %d - Created: %d, Updated: %d, Skipped: %d, Errors: %d",
            self.label, result.processed, result.created, result.updated,
            result.skipped, result.errors,
        )
        return result

    def merge_one(self, row: Dict[str, Any]) -> str:
        """Create or update a single mapped row. Returns the outcome."""
        policy = self.policy
        missing = [f for f in (policy.key_field, *policy.required_fields) if _blank(row.get(f))]
        if missing:
            raise RecordSkipped(f"missing {', '.join(missing)}")

        key = row[policy.key_field]
        existing = self.store.find_one(self.table, {policy.key_field: key})

        if existing is None:
            data = dict(row)
            for col, default in policy.create_defaults.items():
                if _blank(data.get(col)):
                    data[col] = default
            self.store.create(self.table, data)
            logger.debug("[%s] Created %s=%s", self.label, policy.key_field, key)
            return CREATED

        overridden = bool(policy.override_flag and existing.get(policy.override_flag))
        if overridden and policy.skip_when_overridden:
            raise RecordSkipped(f"{policy.key_field}={key} has a manual override")

        changes = {}
        for col, value in row.items():
            if col in policy.create_only:
                continue
            if overridden and col in policy.override_fields:
                continue
            if col in policy.keep_existing_if_blank and _blank(value):
                continue
            changes[col] = value

        if changes:
            self.store.update(self.table, existing["id"], changes)
        logger.debug("[%s] Updated %s=%s", self.label, policy.key_field, key)
        return UPDATED


# ─── Table policies ───────────────────────────────────────────

PERSON_FROM_ZOHO = MergePolicy(
    key_field="email",
    required_fields=("zoho_employee_id",),
    create_only=("start_date", "billable", "ctc_monthly", "utilization_target"),
    keep_existing_if_blank=("role", "department"),
    override_flag="manual_ctc_override",
    override_fields=("ctc_monthly", "role"),
    create_defaults={
        "role": "Employee",
        "billable": True,
        "ctc_monthly": 0,
        "utilization_target": DEFAULT_UTILIZATION_TARGET,
        "manual_ctc_override": False,
    },
)

PERSON_FROM_GRAPH = MergePolicy(
    key_field="email",
    create_only=("start_date", "billable", "ctc_monthly", "utilization_target"),
    keep_existing_if_blank=("name", "role", "department"),
    override_flag="manual_ctc_override",
    skip_when_overridden=True,
    create_defaults={
        "role": "Employee",
        "billable": True,
        "ctc_monthly": 0,
        "utilization_target": MICROSOFT_UTILIZATION_TARGET,
        "manual_ctc_override": False,
    },
)

CLIENT_POLICY = MergePolicy(
    key_field="zoho_contact_id",
    required_fields=("name",),
    create_only=("tags",),
    keep_existing_if_blank=("gstin", "pan"),
)

CASH_RECEIPT_POLICY = MergePolicy(
    key_field="zoho_payment_id",
    create_only=("invoice_id",),
)

BILL_POLICY = MergePolicy(
    key_field="zoho_bill_id",
    create_only=("include_in_calculation", "exclusion_reason", "details_sync_status"),
)

EXPENSE_POLICY = MergePolicy(
    key_field="zoho_expense_id",
    create_only=("include_in_calculation", "exclusion_reason"),
)

LEAVE_POLICY = MergePolicy(
    key_field="zoho_leave_id",
    create_only=("person_id",),
)

HOLIDAY_POLICY = MergePolicy(
    key_field="date",
    required_fields=("name",),
)
