"""
MarginDesk — Manager-History Reconciler
========================================
Second pass of the employee sync: keeps an append-only history of who each
person reported to.

Runs only after every person from the batch has been upserted, because
manager lookups go by email against the post-sync state.

Per person there is at most one open record (``end_date`` null). Intervals
are treated as half-open ``[start_date, end_date)``: a record closed on D and
its successor opened on D share a boundary but never overlap.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from scripts.lib.logger import setup_logger
from scripts.lib.store import as_date

logger = setup_logger("manager_history")

HISTORY_TABLE = "manager_history"
PEOPLE_TABLE = "people"


@dataclass
class ReconcileStats:
    managers_updated: int = 0
    history_created: int = 0
    history_closed: int = 0
    errors: int = 0
    missing_managers: List[Dict[str, Any]] = field(default_factory=list)
    no_manager: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "managers_updated": self.managers_updated,
            "manager_history_created": self.history_created,
            "manager_history_closed": self.history_closed,
            "manager_errors": self.errors,
            "missing_managers": len(self.missing_managers),
        }


class ManagerHistoryReconciler:
    """
    Applies the manager reported by the source to one person at a time.

    Args:
        store: Store capability.
        today: The "now" used for closing and opening intervals.
    """

    def __init__(self, store, today: date = None):
        self.store = store
        self.today = today or date.today()

    def reconcile_all(self, entries: Iterable[Tuple[str, Optional[str]]]) -> ReconcileStats:
        """Reconcile ``(zoho_employee_id, manager_email)`` pairs; one failure never stops the rest."""
        stats = ReconcileStats()
        for zoho_employee_id, manager_email in entries:
            try:
                self.reconcile(zoho_employee_id, manager_email, stats)
            except Exception as e:
                stats.errors += 1
                logger.error("Error setting manager for %s: %s", zoho_employee_id, e)

        if stats.missing_managers:
            logger.warning(
                "%d employees have managers that don't exist locally",
                len(stats.missing_managers),
            )
            for entry in stats.missing_managers:
                logger.warning(
                    "   - %s (%s): Manager %s not found",
                    entry["name"], entry["employee_id"], entry["manager_email"],
                )
        return stats

    def reconcile(self, zoho_employee_id: str, manager_email: Optional[str],
                  stats: ReconcileStats = None) -> str:
        """
        Reconcile one person. Returns what happened: ``person_not_found``,
        ``manager_not_found``, ``changed``, ``unchanged``, ``closed_on_exit``
        or ``cleared``.
        """
        stats = stats if stats is not None else ReconcileStats()
        if not zoho_employee_id:
            return "person_not_found"

        person = self.store.find_one(PEOPLE_TABLE, {"zoho_employee_id": zoho_employee_id})
        if person is None:
            return "person_not_found"

        history = self.store.find_many(
            HISTORY_TABLE, {"person_id": person["id"]}, order_by="start_date", desc=True,
        )
        current = next((h for h in history if h.get("end_date") is None), None)
        exit_date = as_date(person.get("end_date"))

        if not manager_email:
            stats.no_manager.append({"employee_id": zoho_employee_id, "name": person.get("name")})
            if current:
                self._close(current, self.today)
                stats.history_closed += 1
            if person.get("manager_id"):
                self.store.update(PEOPLE_TABLE, person["id"], {"manager_id": None})
            return "cleared"

        manager = self.store.find_one(PEOPLE_TABLE, {"email": manager_email})
        if manager is None:
            logger.warning(
                "Manager %s not found for employee %s (%s)",
                manager_email, zoho_employee_id, person.get("name"),
            )
            stats.missing_managers.append({
                "employee_id": zoho_employee_id,
                "name": person.get("name"),
                "manager_email": manager_email,
            })
            return "manager_not_found"

        if current is not None and current.get("manager_id") == manager["id"]:
            if exit_date is not None:
                self._close(current, exit_date)
                stats.history_closed += 1
                if person.get("manager_id"):
                    self.store.update(PEOPLE_TABLE, person["id"], {"manager_id": None})
                return "closed_on_exit"
            return "unchanged"

        # Exited person already closed out under this manager
        if current is None and history and exit_date is not None \
                and history[0].get("manager_id") == manager["id"]:
            if person.get("manager_id"):
                self.store.update(PEOPLE_TABLE, person["id"], {"manager_id": None})
            return "unchanged"

        if current is not None:
            start = self._close(current, exit_date or self.today)
            stats.history_closed += 1
            history = [dict(h, end_date=start) if h["id"] == current["id"] else h for h in history]
        elif history:
            start = self.today
        else:
            start = as_date(person.get("start_date")) or self.today

        # Never start before an earlier interval ended.
        ends = [as_date(h.get("end_date")) for h in history if h.get("end_date") is not None]
        if ends:
            start = max(start, max(ends))

        end = exit_date
        if end is not None and end < start:
            end = start

        self.store.create(HISTORY_TABLE, {
            "person_id": person["id"],
            "manager_id": manager["id"],
            "start_date": start,
            "end_date": end,
        })
        stats.history_created += 1

        if exit_date is None:
            self.store.update(PEOPLE_TABLE, person["id"], {"manager_id": manager["id"]})
        elif person.get("manager_id"):
            self.store.update(PEOPLE_TABLE, person["id"], {"manager_id": None})
        stats.managers_updated += 1
        logger.debug("Manager for %s set to %s from %s", person.get("email"), manager_email, start)
        return "changed"

    def _close(self, record: Dict[str, Any], at: date) -> date:
        """Close an open record, never before it started. Returns the end date used."""
        start = as_date(record.get("start_date"))
        end = max(at, start) if start else at
        self.store.update(HISTORY_TABLE, record["id"], {"end_date": end})
        return end


def intervals_overlap(a: Tuple[date, Optional[date]], b: Tuple[date, Optional[date]]) -> bool:
    """Half-open overlap test; a None end is open-ended."""
    a_start, a_end = a
    b_start, b_end = b
    a_before_b_ends = b_end is None or a_start < b_end
    b_before_a_ends = a_end is None or b_start < a_end
    return a_before_b_ends and b_before_a_ends
