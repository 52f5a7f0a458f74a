"""
MarginDesk — API Server
=========================

Sync triggers, background bill-detail jobs and financial reports over the
MarginDesk store.

Route groups:
  /api/health                  - Health check
  /api/sync                    - Manual sync triggers
  /api/sync/bill-details/*     - Bill-details background job
  /api/sync-logs/*             - Sync execution history
  /api/reports/*               - Pod financials, profit & loss
  /api/utilization/*           - Monthly utilization
  /api/bill-exclusion-rules/*  - Exclusion rules and reprocessing
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from dashboard.api.dependencies import error_response
from scripts.lib.errors import MarginDeskError

load_dotenv()

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(store=None, token_provider=None, transport=None, overhead_policy=None) -> FastAPI:
    """
    Build the app. Anything not passed in is wired from the environment at
    startup: Supabase when configured (else in-memory), env tokens.
    """

    @asynccontextmanager
    async def lifespan(app):
        """Application startup and shutdown."""
        logger.info("Starting MarginDesk...")

        from integrations.token_provider import EnvTokenProvider
        from scripts.lib.jobs import JobRegistry
        from scripts.pod_financials import no_overhead
        from scripts.sync_runner import SourceClients, build_store

        app.state.store = store if store is not None else build_store()
        app.state.token_provider = token_provider or EnvTokenProvider()
        app.state.clients = SourceClients.build(app.state.token_provider, transport=transport)
        app.state.jobs = JobRegistry()
        app.state.overhead_policy = overhead_policy or no_overhead

        logger.info("MarginDesk ready (store: %s)", type(app.state.store).__name__)
        yield
        logger.info("Shutting down MarginDesk...")

    cors_origins = os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://localhost:8001"
    ).split(",")

    app = FastAPI(
        title="MarginDesk",
        version=VERSION,
        description="Finance & operations back office: Zoho/Microsoft sync, profitability and utilization",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MarginDeskError)
    async def margindesk_error_handler(request: Request, exc: MarginDeskError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return error_response(exc, "Internal error")

    # ─── Include Routers ──────────────────────────────────────

    from dashboard.api.routers.bill_details import router as bill_details_router
    from dashboard.api.routers.exclusion_rules import router as exclusion_rules_router
    from dashboard.api.routers.reports import router as reports_router
    from dashboard.api.routers.sync import router as sync_router
    from dashboard.api.routers.sync_logs import router as sync_logs_router

    app.include_router(sync_router)
    app.include_router(bill_details_router)
    app.include_router(sync_logs_router)
    app.include_router(reports_router)
    app.include_router(exclusion_rules_router)

    # ─── Health ───────────────────────────────────────────────

    @app.get("/api/health", tags=["system"])
    async def health(request: Request):
        """Health check with service status."""
        provider = request.app.state.token_provider
        connections = provider.get_status() if hasattr(provider, "get_status") else {}
        return {
            "status": "healthy",
            "service": "MarginDesk",
            "version": VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "store": type(request.app.state.store).__name__,
            "integrations": connections,
        }

    return app


app = create_app()
