"""
Auto-exclusion rules for bills and expenses.

A rule is ``(field, operator, value)`` plus the reason shown when it fires.
Enabled rules are OR-combined and evaluated in order: the first match wins.
String comparisons are case-insensitive; a rule never matches a null field.

Rule rows live in ``bill_exclusion_rules`` and ``expense_exclusion_rules``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from scripts.lib.logger import setup_logger

logger = setup_logger("exclusion_rules")

BILL_RULES_TABLE = "bill_exclusion_rules"
EXPENSE_RULES_TABLE = "expense_exclusion_rules"

OPERATORS = (
    "equals", "contains", "contains_any_of", "starts_with",
    "ends_with", "greater_than", "less_than",
)
BILL_FIELDS = (
    "vendor_name", "bill_number", "account_name", "description",
    "notes", "cf_expense_category", "total",
)
EXPENSE_FIELDS = ("account_name", "description", "customer_name", "amount", "notes")


@dataclass
class ExclusionRule:
    field: str
    operator: str
    value: Any
    reason: str
    name: str = ""
    enabled: bool = True
    id: Any = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ExclusionRule":
        return cls(
            field=row["field"],
            operator=row["operator"],
            value=row.get("value"),
            reason=row.get("reason") or "",
            name=row.get("name") or "",
            enabled=bool(row.get("enabled", True)),
            id=row.get("id"),
        )

    def matches(self, record: Dict[str, Any]) -> bool:
        field_value = record.get(self.field)
        if field_value is None:
            return False

        text = str(field_value).lower()
        target = str(self.value).lower()

        if self.operator == "equals":
            return text == target
        if self.operator == "contains":
            return target in text
        if self.operator == "contains_any_of":
            return any(str(v).lower() in text for v in _as_list(self.value))
        if self.operator == "starts_with":
            return text.startswith(target)
        if self.operator == "ends_with":
            return text.endswith(target)
        if self.operator in ("greater_than", "less_than"):
            try:
                left, right = float(field_value), float(self.value)
            except (TypeError, ValueError):
                return False
            return left > right if self.operator == "greater_than" else left < right

        logger.warning("Unknown exclusion operator %r on rule %s", self.operator, self.name or self.id)
        return False


def _as_list(value) -> List[Any]:
    """contains_any_of values are stored as a JSON array string."""
    if isinstance(value, (list, tuple)):
        return list(value)
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return [value]
    return parsed if isinstance(parsed, list) else [parsed]


def check_exclusion(record: Dict[str, Any], rules: List[ExclusionRule]) -> Optional[ExclusionRule]:
    """Return the first enabled rule matching ``record``, or None."""
    for rule in rules:
        if rule.enabled and rule.matches(record):
            return rule
    return None


def load_rules(store, table: str = BILL_RULES_TABLE) -> List[ExclusionRule]:
    """Load enabled rules in id order."""
    rows = store.find_many(table, {"enabled": True}, order_by="id")
    rules = [ExclusionRule.from_row(row) for row in rows]
    logger.info("Loaded %d active exclusion rules from %s", len(rules), table)
    return rules


def reprocess_bills(store) -> Dict[str, int]:
    """
    Re-evaluate every stored bill against the current bill rules.

    This is the one path allowed to change an existing bill's inclusion
    flag, and it runs only when a user asks for it.
    """
    rules = load_rules(store, BILL_RULES_TABLE)
    bills = store.find_many("bills")
    updated = excluded = included = 0

    for bill in bills:
        match = check_exclusion(bill, rules)
        include = match is None
        reason = match.reason if match else None

        if bill.get("include_in_calculation") == include and bill.get("exclusion_reason") == reason:
            continue

        store.update("bills", bill["id"], {
            "include_in_calculation": include,
            "exclusion_reason": reason,
        })
        updated += 1
        if include:
            included += 1
        else:
            excluded += 1
        logger.debug(
            "Bill %s: %s", bill.get("bill_number"),
            "included" if include else f"excluded - {reason}",
        )

    logger.info(
        "Reprocess complete - Updated: %d, Excluded: %d, Included: %d",
        updated, excluded, included,
    )
    return {
        "success": True,
        "total": len(bills),
        "updated": updated,
        "excluded": excluded,
        "included": included,
        "rules_applied": len(rules),
    }
