"""
MarginDesk — Sync Runner
==========================
Selects and runs one sync type. Used by the POST /api/sync route and from
the command line.

Sync types:
    cash_receipts, contacts, bills, expenses    Zoho Books
    employees, leaves, holidays, all            Zoho People
    microsoft_users                             Microsoft 365

Usage:
    python scripts/sync_runner.py --type employees
    python scripts/sync_runner.py --type bills --range last_quarter
    python scripts/sync_runner.py --type all --memory      # in-memory store, dry run
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Path setup
# ---------------------------------------------------------------------------
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

from integrations.http_client import RetryPolicy
from integrations.microsoft_graph import MicrosoftGraphClient
from integrations.token_provider import EnvTokenProvider, TokenProvider
from integrations.zoho_books import ZohoBooksClient
from integrations.zoho_people import ZohoPeopleClient
from scripts.lib.errors import ValidationError
from scripts.lib.logger import setup_logger
from scripts.sync_microsoft_users import sync_microsoft_users
from scripts.sync_zoho_books import sync_bills, sync_cash_receipts, sync_contacts, sync_expenses
from scripts.sync_zoho_people import sync_all_people, sync_employees, sync_holidays, sync_leaves

logger = setup_logger("sync_runner")

SYNC_TYPES = (
    "cash_receipts",
    "contacts",
    "employees",
    "leaves",
    "holidays",
    "all",
    "bills",
    "expenses",
    "microsoft_users",
)


@dataclass
class SourceClients:
    """One client per external service, sharing a token provider."""

    zoho_books: ZohoBooksClient
    zoho_people: ZohoPeopleClient
    microsoft: MicrosoftGraphClient

    @classmethod
    def build(cls, token_provider: TokenProvider, retry_policy: RetryPolicy = None, transport=None):
        kwargs = {"retry_policy": retry_policy, "transport": transport}
        return cls(
            zoho_books=ZohoBooksClient(token_provider, **kwargs),
            zoho_people=ZohoPeopleClient(token_provider, **kwargs),
            microsoft=MicrosoftGraphClient(token_provider, **kwargs),
        )


async def dispatch_sync(
    sync_type: str,
    store,
    clients: SourceClients,
    range_token: str = None,
    today: date = None,
    actor_id: Any = None,
) -> Dict[str, Any]:
    """Run one sync type and return its summary. Unknown types raise ValidationError."""
    if sync_type not in SYNC_TYPES:
        raise ValidationError(
            f"Invalid sync type. Must be one of: {', '.join(SYNC_TYPES)}",
            code="INVALID_SYNC_TYPE", sync_type=sync_type,
        )

    logger.info("Dispatching sync: %s%s", sync_type, f" ({range_token})" if range_token else "")

    if sync_type == "cash_receipts":
        return await sync_cash_receipts(store, clients.zoho_books, actor_id=actor_id)
    if sync_type == "contacts":
        return await sync_contacts(store, clients.zoho_books, actor_id=actor_id)
    if sync_type == "bills":
        return await sync_bills(store, clients.zoho_books, range_token, today=today, actor_id=actor_id)
    if sync_type == "expenses":
        return await sync_expenses(store, clients.zoho_books, range_token, today=today, actor_id=actor_id)
    if sync_type == "employees":
        return await sync_employees(store, clients.zoho_people, today=today, actor_id=actor_id)
    if sync_type == "leaves":
        return await sync_leaves(store, clients.zoho_people, actor_id=actor_id)
    if sync_type == "holidays":
        return await sync_holidays(store, clients.zoho_people, today=today, actor_id=actor_id)
    if sync_type == "all":
        return await sync_all_people(store, clients.zoho_people, today=today, actor_id=actor_id)
    return await sync_microsoft_users(store, clients.microsoft, today=today, actor_id=actor_id)


def build_store(memory: bool = False):
    """SupabaseStore when configured, otherwise an in-memory store."""
    from scripts.lib import supabase_client
    from scripts.lib.store import MemoryStore

    if not memory and supabase_client.is_configured():
        return supabase_client.SupabaseStore()
    logger.warning("Supabase not configured; using in-memory store (nothing is persisted)")
    return MemoryStore()


def main():
    parser = argparse.ArgumentParser(description="MarginDesk Sync Runner")
    parser.add_argument("--type", required=True, choices=SYNC_TYPES, help="Sync type to run")
    parser.add_argument("--range", default=None, help="Date range for bills/expenses (e.g. last_month, 2025-09)")
    parser.add_argument("--memory", action="store_true", help="Use an in-memory store")
    args = parser.parse_args()

    logger.info("=" * 60)
    logger.info("  MARGINDESK — Sync: %s", args.type)
    logger.info("=" * 60)

    store = build_store(memory=args.memory)
    clients = SourceClients.build(EnvTokenProvider())

    try:
        result = asyncio.run(dispatch_sync(args.type, store, clients, range_token=args.range))
    except Exception as e:
        logger.error("Sync %s failed: %s", args.type, e)
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
