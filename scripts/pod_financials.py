"""
MarginDesk — Pod Financials Report
====================================
Revenue, prorated salary cost, profit and utilization for one pod over a
date range.

    revenue       project costs of the pod's projects, by month and project
    utilization   per member, inside the member's effective window
                  (membership interval intersected with the report range)
    costs         monthly salary x allocation x days-in-window / days-in-month
    profit        gross = revenue - salaries; net = gross - overheads

Working hours are Mon-Fri business days x 8; holidays are not subtracted
here. Overheads come from a pluggable policy that allocates nothing by
default. Amounts are returned unrounded.

Usage:
    from scripts.pod_financials import build_pod_financials
    report = build_pod_financials(store, pod_id=1, start=date(2025, 4, 1), end=date(2025, 9, 30))
"""
from __future__ import annotations

from datetime import date
from typing import Any, Callable, Dict, List

from scripts.lib.calendar_utils import (
    business_days,
    days_in_month,
    days_inclusive,
    in_window,
    intersect,
    iter_months,
    month_end,
)
from scripts.lib.config import HOURS_PER_DAY
from scripts.lib.errors import NotFoundError, ValidationError
from scripts.lib.logger import setup_logger
from scripts.lib.store import as_date

logger = setup_logger("pod_financials")

OverheadPolicy = Callable[[Dict[str, Any], List[date]], Dict[str, float]]


def no_overhead(pod: Dict[str, Any], months: List[date]) -> Dict[str, float]:
    """Default overhead policy: nothing is allocated to the pod."""
    return {m.isoformat(): 0.0 for m in months}


def _amount(value) -> float:
    return float(value) if value is not None else 0.0


def _active_during(row: Dict[str, Any], start: date, end: date) -> bool:
    row_start = as_date(row.get("start_date"))
    row_end = as_date(row.get("end_date"))
    return (row_start is None or row_start <= end) and (row_end is None or row_end >= start)


def _membership(row: Dict[str, Any]):
    return as_date(row.get("start_date")), as_date(row.get("end_date"))


def _pct(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def _revenue(store, project_mappings, start: date, end: date):
    by_month: Dict[str, float] = {}
    by_project: Dict[Any, Dict[str, Any]] = {}

    for mapping in project_mappings:
        project = store.find_one("projects", {"id": mapping["project_id"]})
        if project is None:
            logger.warning("Pod project mapping %s points at missing project %s", mapping.get("id"), mapping["project_id"])
            continue

        project_total = 0.0
        for cost in store.find_many("project_costs", {"project_id": project["id"]}):
            period = as_date(cost.get("period_month"))
            if period is None or not start <= period <= end:
                continue
            amount = _amount(cost.get("amount"))
            key = period.isoformat()
            by_month[key] = by_month.get(key, 0.0) + amount
            project_total += amount

        if project_total > 0:
            client = store.find_one("clients", {"id": project.get("client_id")}) if project.get("client_id") else None
            by_project[project["id"]] = {
                "name": project.get("name"),
                "client": client.get("name") if client else None,
                "total": project_total,
            }

    return by_month, by_project


def _member_utilization(store, membership, person, start: date, end: date) -> Dict[str, Any]:
    window = intersect(_membership(membership), (start, end))

    billable = non_billable = 0.0
    projects: Dict[Any, Dict[str, Any]] = {}
    for entry in store.find_many("timesheet_entries", {"person_id": person["id"]}, order_by="work_date"):
        work_date = as_date(entry.get("work_date"))
        if work_date is None or not in_window(work_date, window):
            continue
        hours = _amount(entry.get("hours_logged"))
        if entry.get("is_billable"):
            billable += hours
            project_id = entry.get("project_id")
            if project_id not in projects:
                project = store.find_one("projects", {"id": project_id}) if project_id is not None else None
                projects[project_id] = {
                    "name": project.get("name") if project else "Unknown Project",
                    "hours": 0.0,
                }
            projects[project_id]["hours"] += hours
        else:
            non_billable += hours

    worked = billable + non_billable
    working = business_days(window) * HOURS_PER_DAY
    return {
        "person": {
            "id": person["id"],
            "name": person.get("name"),
            "employee_code": person.get("employee_code"),
        },
        "allocation_pct": membership.get("allocation_pct"),
        "billable_hours": billable,
        "non_billable_hours": non_billable,
        "working_hours": working,
        "worked_hours": worked,
        # Negative when more hours were logged than were available
        "unutilized_hours": working - worked,
        "utilization_pct": _pct(worked, working),
        "billable_pct": _pct(billable, working),
        "projects": projects,
    }


def prorated_cost(
    monthly_salary: float,
    allocation_pct: float,
    membership: tuple,
    report: tuple,
    month: date,
) -> float:
    """Salary share for one member in one calendar month."""
    window = intersect(membership, report, (month, month_end(month)))
    factor = days_inclusive(window) / days_in_month(month.year, month.month)
    return monthly_salary * (allocation_pct / 100) * factor


def _salary_costs(store, members, start: date, end: date, months: List[date]) -> Dict[str, float]:
    salaries: Dict[tuple, float] = {}
    for membership, person in members:
        for row in store.find_many("person_salaries", {"person_id": person["id"]}):
            month = as_date(row.get("month"))
            if month is not None:
                salaries[(person["id"], month.year, month.month)] = _amount(row.get("total"))

    costs_by_month: Dict[str, float] = {}
    for month in months:
        month_cost = 0.0
        for membership, person in members:
            salary = salaries.get((person["id"], month.year, month.month))
            if salary is None:
                continue
            month_cost += prorated_cost(
                salary,
                _amount(membership.get("allocation_pct")),
                _membership(membership),
                (start, end),
                month,
            )
        costs_by_month[month.isoformat()] = month_cost
    return costs_by_month


def build_pod_financials(
    store,
    pod_id: Any,
    start: date,
    end: date,
    overhead_policy: OverheadPolicy = no_overhead,
) -> Dict[str, Any]:
    """Build the nested financial and utilization report for a pod."""
    if start > end:
        raise ValidationError("start_month must not be after end_month", start=str(start), end=str(end))

    pod = store.find_one("pods", {"id": pod_id})
    if pod is None:
        raise NotFoundError("Pod", pod_id)

    leader = None
    if pod.get("leader_id") is not None:
        leader_row = store.find_one("people", {"id": pod["leader_id"]})
        if leader_row:
            leader = {
                "id": leader_row["id"],
                "name": leader_row.get("name"),
                "employee_code": leader_row.get("employee_code"),
            }

    months = list(iter_months(start, end))
    month_keys = [m.isoformat() for m in months]

    project_mappings = [
        m for m in store.find_many("pod_projects", {"pod_id": pod_id}, order_by="id")
        if _active_during(m, start, end)
    ]
    members = []
    for membership in store.find_many("pod_members", {"pod_id": pod_id}, order_by="id"):
        if not _active_during(membership, start, end):
            continue
        person = store.find_one("people", {"id": membership["person_id"]})
        if person is None:
            logger.warning("Pod %s member %s not found", pod_id, membership["person_id"])
            continue
        members.append((membership, person))

    logger.info(
        "Pod %s financials %s to %s: %d projects, %d members",
        pod_id, start, end, len(project_mappings), len(members),
    )

    revenue_by_month, revenue_by_project = _revenue(store, project_mappings, start, end)
    by_member = [_member_utilization(store, ms, person, start, end) for ms, person in members]
    costs_by_month = _salary_costs(store, members, start, end, months)
    overhead_by_month = overhead_policy(pod, months)

    total_revenue = sum(revenue_by_month.values())
    total_salaries = sum(costs_by_month.values())
    total_overheads = sum(overhead_by_month.values())
    gross_profit = total_revenue - total_salaries
    net_profit = gross_profit - total_overheads

    total_billable = sum(m["billable_hours"] for m in by_member)
    total_working = sum(m["working_hours"] for m in by_member)
    total_worked = sum(m["worked_hours"] for m in by_member)

    return {
        "pod": {
            "id": pod["id"],
            "name": pod.get("name"),
            "leader": leader,
            "status": pod.get("status"),
        },
        "period": {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "months": month_keys,
        },
        "financials": {
            "revenue": {
                "total": total_revenue,
                "by_month": revenue_by_month,
                "by_project": revenue_by_project,
            },
            "costs": {
                "salaries": total_salaries,
                "by_month": costs_by_month,
                "overheads": total_overheads,
                "overhead_by_month": overhead_by_month,
            },
            "gross_profit": {
                "amount": gross_profit,
                "margin_pct": _pct(gross_profit, total_revenue),
            },
            "net_profit": {
                "amount": net_profit,
                "margin_pct": _pct(net_profit, total_revenue),
            },
        },
        "utilization": {
            "summary": {
                "total_billable_hours": total_billable,
                "total_working_hours": total_working,
                "total_worked_hours": total_worked,
                "total_unutilized_hours": total_working - total_worked,
                "overall_utilization_pct": _pct(total_worked, total_working),
                "overall_billability_pct": _pct(total_billable, total_working),
            },
            "by_member": by_member,
        },
    }
