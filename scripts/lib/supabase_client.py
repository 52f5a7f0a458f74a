"""
Supabase Client Helper for MarginDesk.
Provides the connection singleton and a Store implementation over it.

Usage:
    from scripts.lib.supabase_client import SupabaseStore

    store = SupabaseStore()
    rows = store.find_many("sync_logs", {"status": "failed"}, order_by="started_at", desc=True)
"""
import os
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

# Load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_KEY = (
    os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
    or os.environ.get("SUPABASE_KEY", "")
)

_client = None


def is_configured() -> bool:
    return bool(SUPABASE_URL and SUPABASE_KEY)


def get_client():
    """Create and return a Supabase client (singleton)."""
    global _client
    if _client is not None:
        return _client

    if not SUPABASE_URL or not SUPABASE_KEY:
        raise RuntimeError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in .env"
        )

    from supabase import create_client
    _client = create_client(SUPABASE_URL, SUPABASE_KEY)
    logger.info("Supabase client connected to %s", SUPABASE_URL)
    return _client


def _serialize(value: Any) -> Any:
    """Make a row value JSON-safe for PostgREST."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    return value


def _apply_filters(query, filters: Dict[str, Any]):
    for col, val in (filters or {}).items():
        if val is None:
            query = query.is_(col, "null")
        else:
            query = query.eq(col, _serialize(val))
    return query


class SupabaseStore:
    """
    Store backed by Supabase tables.

    Dates go over the wire as ISO strings and come back as strings; readers
    coerce with ``scripts.lib.store.as_date``.
    """

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_client()
        return self._client

    def find_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict]:
        rows = self.find_many(table, filters, limit=1)
        return rows[0] if rows else None

    def find_many(
        self,
        table: str,
        filters: Dict[str, Any] = None,
        order_by: str = None,
        desc: bool = False,
        limit: int = None,
    ) -> List[Dict]:
        query = _apply_filters(self.client.table(table).select("*"), filters)
        if order_by:
            query = query.order(order_by, desc=desc)
        if limit is not None:
            query = query.limit(limit)
        result = query.execute()
        return result.data or []

    def create(self, table: str, row: Dict[str, Any]) -> Dict:
        result = self.client.table(table).insert(_serialize(row)).execute()
        return result.data[0] if result.data else dict(row)

    def update(self, table: str, row_id: Any, changes: Dict[str, Any]) -> Dict:
        result = (
            self.client.table(table)
            .update(_serialize(changes))
            .eq("id", row_id)
            .execute()
        )
        if not result.data:
            raise KeyError(f"{table} row {row_id} not found")
        return result.data[0]

    def create_many(self, table: str, rows: List[Dict[str, Any]]) -> int:
        if not rows:
            return 0
        self.client.table(table).insert(_serialize(rows)).execute()
        logger.info("Inserted %d rows into %s", len(rows), table)
        return len(rows)

    def delete_many(self, table: str, filters: Dict[str, Any]) -> int:
        query = _apply_filters(self.client.table(table).delete(), filters)
        result = query.execute()
        return len(result.data or [])
