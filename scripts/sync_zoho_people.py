"""
MarginDesk — Zoho People Sync
===============================
One-way syncs from Zoho People into the local store:

    employees  upsert people by email, then reconcile manager history
    leaves     approved leaves for known employees
    holidays   company holidays for last, current and next year
    all        the three above, in that order, each awaited before the next

Manager reconciliation is a second pass over the whole batch so manager
emails resolve against people written earlier in the same run.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict

from integrations.zoho_people import ZohoPeopleClient
from scripts.lib.errors import MappingError
from scripts.lib.field_mapper import (
    employee_manager_email,
    map_zoho_employee,
    map_zoho_holiday,
    map_zoho_leave,
    unwrap_zoho_record,
)
from scripts.lib.logger import setup_logger
from scripts.lib.manager_history import ManagerHistoryReconciler
from scripts.lib.merge import (
    HOLIDAY_POLICY,
    LEAVE_POLICY,
    PERSON_FROM_ZOHO,
    RecordSkipped,
    UpsertMerger,
)
from scripts.lib.sync_log import SyncOutcome, run_recorded

logger = setup_logger("sync_zoho_people")


def _record_id(record) -> Any:
    try:
        return unwrap_zoho_record(record)[0]
    except MappingError:
        return None


async def sync_employees(
    store, client: ZohoPeopleClient, today: date = None, actor_id: Any = None,
) -> Dict[str, Any]:
    """Upsert employees as people (pass 1) and reconcile their managers (pass 2)."""
    today = today or date.today()

    async def body() -> SyncOutcome:
        employees = await client.list_employees()

        merger = UpsertMerger(store, "people", PERSON_FROM_ZOHO, label="Employee")
        result = merger.merge(
            employees, lambda record: map_zoho_employee(record, today), describe=_record_id,
        )

        entries = []
        for record in employees:
            try:
                zoho_id, _ = unwrap_zoho_record(record)
                entries.append((zoho_id, employee_manager_email(record)))
            except MappingError:
                continue
        stats = ManagerHistoryReconciler(store, today=today).reconcile_all(entries)

        return SyncOutcome(
            result,
            metadata={"pages": employees.pages, **stats.to_dict()},
            extra_errors=stats.errors,
            warnings=employees.warnings,
        )

    return await run_recorded(store, "zoho_people_employees", body, actor_id=actor_id)


async def sync_leaves(store, client: ZohoPeopleClient, actor_id: Any = None) -> Dict[str, Any]:
    """
    Sync approved leaves into ``leaves``.

    Leaves for employees not known locally are skipped quietly: no error
    count and no message.
    """
    async def body() -> SyncOutcome:
        leaves = await client.list_leaves()

        def mapper(record):
            row = map_zoho_leave(record)
            zoho_employee_id = row.pop("zoho_employee_id")
            if not zoho_employee_id:
                raise RecordSkipped(f"leave {row['zoho_leave_id']} has no employee id")

            person = store.find_one("people", {"zoho_employee_id": zoho_employee_id})
            if person is None:
                raise RecordSkipped(
                    f"employee {zoho_employee_id} not found for leave {row['zoho_leave_id']}"
                )
            if row["start_date"] is None or row["end_date"] is None:
                raise RecordSkipped(f"invalid dates for leave {row['zoho_leave_id']}")
            if row["status"] != "approved":
                return None

            row["person_id"] = person["id"]
            return row

        merger = UpsertMerger(store, "leaves", LEAVE_POLICY, label="Leave")
        result = merger.merge(leaves, mapper, describe=_record_id)
        return SyncOutcome(result, metadata={"pages": leaves.pages}, warnings=leaves.warnings)

    return await run_recorded(store, "zoho_people_leaves", body, actor_id=actor_id)


async def sync_holidays(
    store, client: ZohoPeopleClient, today: date = None, actor_id: Any = None,
) -> Dict[str, Any]:
    """Sync holidays for the previous, current and next calendar year, keyed by date."""
    today = today or date.today()
    years = [today.year - 1, today.year, today.year + 1]

    async def body() -> SyncOutcome:
        holidays = []
        for year in years:
            holidays.extend(await client.list_holidays(year))

        def mapper(holiday):
            row = map_zoho_holiday(holiday)
            if row["date"] is None or not row["name"]:
                raise RecordSkipped(f"holiday {holiday.get('Name') or holiday.get('ID')} has no valid date or name")
            return row

        merger = UpsertMerger(store, "holidays", HOLIDAY_POLICY, label="Holiday")
        result = merger.merge(holidays, mapper, describe=lambda h: h.get("ID") or h.get("Name"))
        return SyncOutcome(result, metadata={"years": years})

    return await run_recorded(store, "zoho_people_holidays", body, actor_id=actor_id)


async def sync_all_people(
    store, client: ZohoPeopleClient, today: date = None, actor_id: Any = None,
) -> Dict[str, Any]:
    """Employees, then leaves, then holidays; each finishes before the next starts."""
    employees = await sync_employees(store, client, today=today, actor_id=actor_id)
    leaves = await sync_leaves(store, client, actor_id=actor_id)
    holidays = await sync_holidays(store, client, today=today, actor_id=actor_id)
    return {
        "success": True,
        "results": {
            "employees": employees,
            "leaves": leaves,
            "holidays": holidays,
        },
    }
