"""
MarginDesk — Monthly Profit & Loss
====================================
Company-level P&L for one calendar month:

    revenue            project costs booked to the month
    overheads          support-staff salaries + included expenses + included bills
    operational costs  salaries of everyone else
    profit_loss        revenue - (overheads + operational costs)

Bills are attributed by their billed-for month and count their sub-total
(falling back to the total). Expenses count by expense date. Rows excluded
by the exclusion rules are left out.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict

from scripts.lib.calendar_utils import in_window, month_end
from scripts.lib.errors import ValidationError
from scripts.lib.logger import setup_logger
from scripts.lib.store import as_date

logger = setup_logger("profit_loss")

_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")


def parse_month(month: str) -> date:
    """'2025-09' -> date(2025, 9, 1)."""
    if not month or not _MONTH_RE.match(month):
        raise ValidationError("month must be in YYYY-MM format", month=month)
    year, mon = int(month[:4]), int(month[5:])
    if not 1 <= mon <= 12:
        raise ValidationError("month must be in YYYY-MM format", month=month)
    return date(year, mon, 1)


def _amount(value) -> float:
    return float(value) if value is not None else 0.0


def _same_month(value, first_day: date) -> bool:
    d = as_date(value)
    return d is not None and d.year == first_day.year and d.month == first_day.month


def build_profit_loss(store, month: str) -> Dict[str, Any]:
    first_day = parse_month(month)
    window = (first_day, month_end(first_day))

    salaries = [s for s in store.find_many("person_salaries") if _same_month(s.get("month"), first_day)]
    support = [s for s in salaries if s.get("is_support_staff")]
    operational = [s for s in salaries if not s.get("is_support_staff")]
    support_total = sum(_amount(s.get("total")) for s in support)
    operational_total = sum(_amount(s.get("total")) for s in operational)

    expenses = [
        e for e in store.find_many("expenses", {"include_in_calculation": True})
        if as_date(e.get("expense_date")) is not None and in_window(as_date(e.get("expense_date")), window)
    ]
    expenses_total = sum(_amount(e.get("amount")) for e in expenses)

    bills = [
        b for b in store.find_many("bills", {"include_in_calculation": True})
        if _same_month(b.get("cf_billed_for_month_unformatted"), first_day)
    ]
    bills_total = sum(
        _amount(b.get("sub_total") if b.get("sub_total") is not None else b.get("total")) for b in bills
    )

    project_costs = [c for c in store.find_many("project_costs") if _same_month(c.get("period_month"), first_day)]
    revenue = sum(_amount(c.get("amount")) for c in project_costs)

    overheads = support_total + expenses_total + bills_total
    total_costs = overheads + operational_total
    profit = revenue - total_costs
    margin = profit / revenue * 100 if revenue > 0 else 0.0

    logger.info(
        "P&L %s: revenue=%.2f costs=%.2f profit=%.2f", month, revenue, total_costs, profit,
    )

    projects = []
    for cost in project_costs:
        project = store.find_one("projects", {"id": cost.get("project_id")}) if cost.get("project_id") is not None else None
        projects.append({
            "project_id": cost.get("project_id"),
            "project_name": project.get("name") if project else None,
            "amount": _amount(cost.get("amount")),
        })

    return {
        "month": month,
        "summary": {
            "revenue": revenue,
            "total_costs": total_costs,
            "profit_loss": profit,
            "profit_margin_percentage": margin,
            "project_revenue": revenue,
        },
        "overheads": {
            "total": overheads,
            "breakdown": {
                "support_staff_salaries": support_total,
                "expenses": expenses_total,
                "bills": bills_total,
            },
            "details": {
                "support_staff_count": len(support),
                "expense_count": len(expenses),
                "bill_count": len(bills),
            },
        },
        "operational_costs": {
            "total": operational_total,
            "staff_count": len(operational),
        },
        "revenue_details": {
            "total": revenue,
            "project_count": len(project_costs),
            "projects": projects,
        },
    }
