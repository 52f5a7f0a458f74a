"""
MarginDesk — Sync Logs Router
===============================
Sync execution history.

Endpoints:
  GET /api/sync-logs         - List recent sync runs
  GET /api/sync-logs/latest  - Get the latest run (optionally of one type)
  GET /api/sync-logs/{id}    - Get a specific run
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from dashboard.api.dependencies import get_store
from scripts.lib.logger import setup_logger

logger = setup_logger("sync_logs_router")

router = APIRouter(prefix="/api/sync-logs", tags=["sync"])


@router.get("")
async def list_logs(
    status: str = Query(None, description="Filter by status: success, completed_with_errors, failed"),
    sync_type: str = Query(None, description="Filter by sync type"),
    limit: int = Query(20, ge=1, le=100, description="Max results"),
    store=Depends(get_store),
):
    """List recent sync runs."""
    filters = {}
    if status:
        filters["status"] = status
    if sync_type:
        filters["sync_type"] = sync_type
    try:
        rows = store.find_many("sync_logs", filters, order_by="started_at", desc=True, limit=limit)
        return {"results": rows, "count": len(rows)}
    except Exception as e:
        logger.error("List sync logs failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch sync logs")


@router.get("/latest")
async def latest_log(sync_type: str = Query(None), store=Depends(get_store)):
    """Get the most recent sync run."""
    try:
        rows = store.find_many(
            "sync_logs", {"sync_type": sync_type} if sync_type else {},
            order_by="started_at", desc=True, limit=1,
        )
        if not rows:
            raise HTTPException(status_code=404, detail="No sync logs found")
        return rows[0]
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Latest sync log failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch latest sync log")


@router.get("/{log_id}")
async def get_log(log_id: int, store=Depends(get_store)):
    """Get a specific sync run by ID."""
    try:
        row = store.find_one("sync_logs", {"id": log_id})
        if row is None:
            raise HTTPException(status_code=404, detail="Sync log not found")
        return row
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Get sync log failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch sync log")
