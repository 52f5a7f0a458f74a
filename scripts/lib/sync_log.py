"""
MarginDesk — Sync Log / Audit Trail
====================================
Every sync run ends in exactly one ``sync_logs`` row, written once when the
run finishes (success, partial, or failure) and never updated afterwards.
Successful runs also get an ``audit_logs`` row pointing at the log.

Statuses:
    success                 - every record merged cleanly
    completed_with_errors   - the run finished but some records failed
    failed                  - the run aborted (config or upstream error)
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from scripts.lib.logger import setup_logger, sync_context
from scripts.lib.merge import MergeResult

logger = setup_logger("sync_log")

SYNC_LOGS_TABLE = "sync_logs"
AUDIT_LOGS_TABLE = "audit_logs"

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "completed_with_errors"
STATUS_FAILED = "failed"


@dataclass
class SyncOutcome:
    """What a sync body hands back to the recorder."""
    result: MergeResult
    metadata: Dict[str, Any] = field(default_factory=dict)
    extra_errors: int = 0
    warnings: List[str] = field(default_factory=list)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


class SyncRecorder:
    """Times one sync run and writes its log row."""

    def __init__(self, store, sync_type: str, actor_id: Any = None):
        self.store = store
        self.sync_type = sync_type
        self.actor_id = actor_id
        self.started_at = datetime.now(timezone.utc)
        self._t0 = time.monotonic()

    @property
    def duration_ms(self) -> int:
        return round((time.monotonic() - self._t0) * 1000)

    def record_success(self, outcome: SyncOutcome) -> Dict[str, Any]:
        """Write the log for a finished run and return the JSON summary."""
        result = outcome.result
        status = STATUS_PARTIAL if (result.errors or outcome.extra_errors) else STATUS_SUCCESS
        duration_ms = self.duration_ms
        messages = result.error_messages + outcome.warnings

        metadata = {
            "created": result.created,
            "updated": result.updated,
            "skipped": result.skipped,
            "errors": result.errors,
            "total": result.processed,
            **outcome.metadata,
        }
        row = self.store.create(SYNC_LOGS_TABLE, {
            "sync_type": self.sync_type,
            "status": status,
            "started_at": self.started_at,
            "completed_at": datetime.now(timezone.utc),
            "records_processed": result.processed,
            "records_synced": result.synced,
            "error_message": "; ".join(messages) if messages else None,
            "metadata": _jsonable(metadata),
            "duration_ms": duration_ms,
            "triggered_by": self.actor_id,
        })
        self.record_audit(row)

        logger.info(
            "[%s] %s - Synced: %d, Created: %d, Updated: %d, Skipped: %d, Errors: %d (%dms)",
            self.sync_type, status, result.synced, result.created, result.updated,
            result.skipped, result.errors, duration_ms,
        )
        return {
            "success": True,
            "sync_log": {
                "id": row.get("id"),
                "status": status,
                **result.to_dict(),
                "duration_ms": duration_ms,
            },
            "details": messages or None,
            "metadata": _jsonable(outcome.metadata) or None,
        }

    def record_failure(self, exc: BaseException) -> Dict[str, Any]:
        """Write a ``failed`` log for an aborted run."""
        logger.error("[%s] Sync failed: %s", self.sync_type, exc)
        return self.store.create(SYNC_LOGS_TABLE, {
            "sync_type": self.sync_type,
            "status": STATUS_FAILED,
            "started_at": self.started_at,
            "completed_at": datetime.now(timezone.utc),
            "records_processed": 0,
            "records_synced": 0,
            "error_message": str(exc),
            "metadata": {"created": 0, "updated": 0, "errors": 1, "total": 0},
            "duration_ms": self.duration_ms,
            "triggered_by": self.actor_id,
        })

    def record_audit(self, log_row: Dict[str, Any]) -> None:
        self.store.create(AUDIT_LOGS_TABLE, {
            "actor_id": self.actor_id,
            "entity": "SyncLog",
            "entity_id": log_row.get("id"),
            "action": "create",
            "after_json": _jsonable(log_row),
            "created_at": datetime.now(timezone.utc),
        })


async def run_recorded(
    store,
    sync_type: str,
    body: Callable[[], Awaitable[SyncOutcome]],
    actor_id: Any = None,
) -> Dict[str, Any]:
    """
    Run a sync body and log its outcome.

    Any exception is logged as a ``failed`` run and re-raised for the caller
    to surface.
    """
    recorder = SyncRecorder(store, sync_type, actor_id=actor_id)
    with sync_context(sync_type):
        logger.info("[%s] Starting sync", sync_type)
        try:
            outcome = await body()
        except Exception as e:
            recorder.record_failure(e)
            raise
        return recorder.record_success(outcome)
