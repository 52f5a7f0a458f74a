"""
MarginDesk — Microsoft 365 User Sync
======================================
Upserts licensed Microsoft 365 users as people, keyed by email.

Users without a mail address are skipped. A person flagged with a manual
compensation override is left untouched entirely.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict

from integrations.microsoft_graph import MicrosoftGraphClient
from scripts.lib.field_mapper import map_graph_user
from scripts.lib.logger import setup_logger
from scripts.lib.merge import PERSON_FROM_GRAPH, UpsertMerger
from scripts.lib.sync_log import SyncOutcome, run_recorded

logger = setup_logger("sync_microsoft_users")


async def sync_microsoft_users(
    store, client: MicrosoftGraphClient, today: date = None, actor_id: Any = None,
) -> Dict[str, Any]:
    today = today or date.today()

    async def body() -> SyncOutcome:
        users = await client.list_licensed_users()
        merger = UpsertMerger(store, "people", PERSON_FROM_GRAPH, label="M365 user")
        result = merger.merge(
            users, lambda user: map_graph_user(user, today), describe=lambda u: u.get("mail"),
        )
        return SyncOutcome(result, metadata={"pages": users.pages}, warnings=users.warnings)

    return await run_recorded(store, "microsoft_users", body, actor_id=actor_id)
