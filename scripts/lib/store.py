"""
Persistence capability for MarginDesk.

Every sync job and report takes a ``Store`` argument instead of reaching for a
module-level client. Rows are plain dicts; filters are column=value equality
matches where ``None`` matches SQL NULL.

Implementations:
    MemoryStore    - in-process tables, used by tests and local dry runs
    SupabaseStore  - scripts.lib.supabase_client, used in deployment

Usage:
    from scripts.lib.store import MemoryStore
    store = MemoryStore()
    person = store.create("people", {"email": "a@x.com", "name": "A B"})
    store.update("people", person["id"], {"role": "Engineer"})
"""
from __future__ import annotations

import copy
import itertools
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Protocol


class Store(Protocol):
    """Create/find/update by key over named tables."""

    def find_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict]: ...

    def find_many(
        self,
        table: str,
        filters: Dict[str, Any] = None,
        order_by: str = None,
        desc: bool = False,
        limit: int = None,
    ) -> List[Dict]: ...

    def create(self, table: str, row: Dict[str, Any]) -> Dict: ...

    def update(self, table: str, row_id: Any, changes: Dict[str, Any]) -> Dict: ...

    def create_many(self, table: str, rows: List[Dict[str, Any]]) -> int: ...

    def delete_many(self, table: str, filters: Dict[str, Any]) -> int: ...


def as_date(value) -> Optional[date]:
    """Coerce a stored date/datetime/ISO string to a ``date`` (None passes through)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    if len(text) >= 10:
        return date.fromisoformat(text[:10])
    raise ValueError(f"Not a date: {value!r}")


def _matches(row: Dict, filters: Dict[str, Any]) -> bool:
    for col, val in filters.items():
        if row.get(col) != val:
            return False
    return True


def _sort_key(col: str):
    def key(row):
        val = row.get(col)
        return (val is not None, val)
    return key


class MemoryStore:
    """Dict-of-lists store with auto-increment integer ids."""

    def __init__(self, tables: Dict[str, List[Dict]] = None):
        self._tables: Dict[str, List[Dict]] = {}
        self._ids = itertools.count(1)
        for table, rows in (tables or {}).items():
            for row in rows:
                self.create(table, row)

    def _rows(self, table: str) -> List[Dict]:
        return self._tables.setdefault(table, [])

    def find_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict]:
        for row in self._rows(table):
            if _matches(row, filters):
                return copy.deepcopy(row)
        return None

    def find_many(self, table, filters=None, order_by=None, desc=False, limit=None):
        rows = [copy.deepcopy(r) for r in self._rows(table) if _matches(r, filters or {})]
        if order_by:
            rows.sort(key=_sort_key(order_by), reverse=desc)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def create(self, table: str, row: Dict[str, Any]) -> Dict:
        stored = copy.deepcopy(row)
        stored.setdefault("id", next(self._ids))
        self._rows(table).append(stored)
        return copy.deepcopy(stored)

    def update(self, table: str, row_id: Any, changes: Dict[str, Any]) -> Dict:
        for row in self._rows(table):
            if row.get("id") == row_id:
                row.update(copy.deepcopy(changes))
                return copy.deepcopy(row)
        raise KeyError(f"{table} row {row_id} not found")

    def create_many(self, table: str, rows: List[Dict[str, Any]]) -> int:
        for row in rows:
            self.create(table, row)
        return len(rows)

    def delete_many(self, table: str, filters: Dict[str, Any]) -> int:
        rows = self._rows(table)
        kept = [r for r in rows if not _matches(r, filters)]
        self._tables[table] = kept
        return len(rows) - len(kept)

    def count(self, table: str) -> int:
        return len(self._rows(table))
