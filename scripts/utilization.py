"""
MarginDesk — Monthly Utilization
==================================
Per-person monthly utilization from allocations, net of holidays and leave.

    working hours  160 - (public holidays x 8) - (approved leave days x 8), floored at 0
    worked hours   billable + non-billable allocation hours for the month
    utilization    worked / working x 100
    billable       billable / working x 100

Leave days are the overlap of each approved leave with the month, capped at
the leave's own day count (half days stay half days). The monthly summary
bands people as under 70%, 70-100% and over 100% utilized.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List

from scripts.lib.calendar_utils import add_months, days_inclusive, intersect, month_end, month_start
from scripts.lib.config import HOURS_PER_DAY, STANDARD_MONTHLY_HOURS
from scripts.lib.errors import NotFoundError
from scripts.lib.logger import setup_logger
from scripts.lib.store import as_date

logger = setup_logger("utilization")

UTILIZATION_TABLE = "monthly_utilization"
UNDERUTILIZED_BELOW_PCT = 70
OVERUTILIZED_ABOVE_PCT = 100


def _amount(value) -> float:
    return float(value) if value is not None else 0.0


def _leave_days(store, person_id, first_day: date, last_day: date) -> float:
    total = 0.0
    for leave in store.find_many("leaves", {"person_id": person_id, "status": "approved"}):
        overlap = intersect(
            (as_date(leave.get("start_date")), as_date(leave.get("end_date"))),
            (first_day, last_day),
        )
        if overlap is None:
            continue
        days = days_inclusive(overlap)
        if leave.get("days") is not None:
            days = min(days, _amount(leave.get("days")))
        total += days
    return total


def calculate_utilization(store, person_id: Any, month: date) -> Dict[str, Any]:
    first_day = month_start(month)
    last_day = month_end(month)

    person = store.find_one("people", {"id": person_id})
    if person is None:
        raise NotFoundError("Person", person_id)

    holiday_days = sum(
        1 for h in store.find_many("holidays", {"type": "public"})
        if as_date(h.get("date")) is not None and first_day <= as_date(h.get("date")) <= last_day
    )
    leave_days = _leave_days(store, person_id, first_day, last_day)
    working = max(0.0, STANDARD_MONTHLY_HOURS - holiday_days * HOURS_PER_DAY - leave_days * HOURS_PER_DAY)

    worked = billable = 0.0
    for allocation in store.find_many("allocations", {"person_id": person_id}):
        if as_date(allocation.get("period_month")) != first_day:
            continue
        hours_billable = _amount(allocation.get("hours_billable"))
        worked += hours_billable + _amount(allocation.get("hours_nonbillable"))
        billable += hours_billable

    return {
        "person_id": person_id,
        "month": first_day,
        "working_hours": working,
        "worked_hours": worked,
        "billable_hours": billable,
        "utilization_pct": worked / working * 100 if working > 0 else 0.0,
        "billable_utilization": billable / working * 100 if working > 0 else 0.0,
        "leave_days": leave_days,
        "holiday_days": holiday_days,
    }


def store_utilization(store, person_id: Any, month: date) -> Dict[str, Any]:
    """Calculate and upsert the (person, month) row in ``monthly_utilization``."""
    data = calculate_utilization(store, person_id, month)
    existing = store.find_one(UTILIZATION_TABLE, {"person_id": person_id, "month": data["month"]})
    if existing:
        return store.update(UTILIZATION_TABLE, existing["id"], data)
    return store.create(UTILIZATION_TABLE, data)


def store_utilization_for_all(store, month: date) -> Dict[str, int]:
    """Recalculate every person still employed at the start of ``month``."""
    first_day = month_start(month)
    success = errors = 0
    for person in store.find_many("people", order_by="id"):
        end_date = as_date(person.get("end_date"))
        if end_date is not None and end_date < first_day:
            continue
        try:
            store_utilization(store, person["id"], first_day)
            success += 1
        except Exception as e:
            errors += 1
            logger.error("Utilization failed for %s (%s): %s", person.get("name"), person["id"], e)
    logger.info("Utilization for %s: %d stored, %d errors", first_day, success, errors)
    return {"success": success, "errors": errors}


def utilization_history(store, person_id: Any, months: int = 6, today: date = None) -> Dict[str, Any]:
    """Stored rows for the last ``months`` months, oldest first, with averages."""
    today = today or date.today()
    since = add_months(month_start(today), -(months - 1))
    history: List[Dict] = [
        row for row in store.find_many(UTILIZATION_TABLE, {"person_id": person_id}, order_by="month")
        if as_date(row.get("month")) is not None and as_date(row["month"]) >= since
    ]
    count = len(history)
    averages = {
        "utilization_pct": sum(_amount(r.get("utilization_pct")) for r in history) / count if count else 0.0,
        "billable_utilization": sum(_amount(r.get("billable_utilization")) for r in history) / count if count else 0.0,
        "months": count,
    }
    return {"history": history, "averages": averages}


def store_utilization_for_last_months(store, months: int = 6, today: date = None) -> List[Dict[str, Any]]:
    """Recalculate everyone for the current month and the ``months - 1`` before it, newest first."""
    today = today or date.today()
    current = month_start(today)
    results = []
    for i in range(months):
        month = add_months(current, -i)
        results.append({"month": month, **store_utilization_for_all(store, month)})
    return results


def _band_counts(rows: List[Dict]) -> Dict[str, int]:
    pcts = [_amount(r.get("utilization_pct")) for r in rows]
    return {
        "underutilized": sum(1 for p in pcts if p < UNDERUTILIZED_BELOW_PCT),
        "optimal": sum(1 for p in pcts if UNDERUTILIZED_BELOW_PCT <= p <= OVERUTILIZED_ABOVE_PCT),
        "overutilized": sum(1 for p in pcts if p > OVERUTILIZED_ABOVE_PCT),
    }


def utilization_summary(store, month: date) -> Dict[str, Any]:
    """
    Org-wide view of the stored rows for one month.

    Employees are sorted by utilization, highest first. Bands: under 70%,
    70-100% inclusive, over 100%.
    """
    first_day = month_start(month)
    rows = [
        r for r in store.find_many(UTILIZATION_TABLE)
        if as_date(r.get("month")) == first_day
    ]
    rows.sort(key=lambda r: _amount(r.get("utilization_pct")), reverse=True)

    employees = []
    for row in rows:
        person = store.find_one("people", {"id": row["person_id"]}) or {}
        employees.append({
            "id": row["person_id"],
            "name": person.get("name"),
            "email": person.get("email"),
            "role": person.get("role"),
            "department": person.get("department"),
            "billable": person.get("billable"),
            "working_hours": _amount(row.get("working_hours")),
            "worked_hours": _amount(row.get("worked_hours")),
            "billable_hours": _amount(row.get("billable_hours")),
            "utilization_pct": _amount(row.get("utilization_pct")),
            "billable_utilization": _amount(row.get("billable_utilization")),
            "leave_days": _amount(row.get("leave_days")),
            "holiday_days": _amount(row.get("holiday_days")),
        })

    count = len(rows)
    return {
        "month": first_day,
        "summary": {
            "total_employees": count,
            "avg_utilization": sum(e["utilization_pct"] for e in employees) / count if count else 0.0,
            "avg_billable": sum(e["billable_utilization"] for e in employees) / count if count else 0.0,
            **_band_counts(rows),
        },
        "employees": employees,
    }
