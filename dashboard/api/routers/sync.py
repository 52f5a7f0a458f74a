"""
MarginDesk — Sync Router
==========================
Manual sync triggers.

Endpoints:
  POST /api/sync         - Run one sync type {sync_type, range}
  GET  /api/sync/status  - Which external services have credentials
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from dashboard.api.dependencies import error_response, get_actor_id, get_clients, get_store
from models.margin_models import SyncRequest
from scripts.lib.logger import setup_logger
from scripts.sync_runner import dispatch_sync

logger = setup_logger("sync_router")

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("")
async def run_sync(
    body: SyncRequest,
    store=Depends(get_store),
    clients=Depends(get_clients),
    actor_id=Depends(get_actor_id),
):
    """Run a sync and return its summary once it finishes."""
    try:
        return await dispatch_sync(
            body.sync_type, store, clients, range_token=body.range, actor_id=actor_id,
        )
    except Exception as e:
        logger.error("Sync %s failed: %s", body.sync_type, e)
        return error_response(e, f"Failed to sync {body.sync_type}")


@router.get("/status")
async def sync_status(request: Request):
    """Connection status per external service."""
    provider = request.app.state.token_provider
    if hasattr(provider, "get_status"):
        return {"connections": provider.get_status()}
    clients = request.app.state.clients
    return {
        "connections": {
            "zoho_books": await clients.zoho_books.is_connected(),
            "zoho_people": await clients.zoho_people.is_connected(),
            "microsoft": await clients.microsoft.is_connected(),
        }
    }
