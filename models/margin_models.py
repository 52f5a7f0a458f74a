"""
MarginDesk — API Pydantic Models
==================================

Request/response models for sync triggers, bill-detail jobs, utilization
batches and exclusion rule reprocessing.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


# ─── Sync Models ────────────────────────────────────────────

class SyncRequest(BaseModel):
    """Trigger one sync type."""
    sync_type: str = Field(..., description="cash_receipts|contacts|employees|leaves|holidays|all|bills|expenses|microsoft_users")
    range: Optional[str] = Field(None, description="Date range token for bills and expenses")


# ─── Bill Detail Job Models ─────────────────────────────────

class BillDetailsRequest(BaseModel):
    """Start a bill-details job."""
    filter_type: str = "bill_date"
    filter_value: str = "last_month"
    force_refetch: bool = False


class BillDetailsStarted(BaseModel):
    job_id: Any
    message: str


class BillDetailsStatus(BaseModel):
    """Polled job status; progress is recomputed on every read."""
    id: Any
    filter_type: Optional[str] = None
    filter_value: Optional[str] = None
    force_refetch: bool = False
    status: str
    total: int = 0
    processed: int = 0
    success_count: int = 0
    error_count: int = 0
    error_messages: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress_percentage: int = 0


# ─── Exclusion Rule Models ──────────────────────────────────

class ReprocessResponse(BaseModel):
    success: bool
    total: int
    updated: int
    excluded: int
    included: int
    rules_applied: int


# ─── Utilization Models ─────────────────────────────────────

class UtilizationCalculateRequest(BaseModel):
    """Batch utilization recalculation."""
    mode: str = Field("current", description="current|last_n_months")
    months_count: int = Field(6, ge=1, le=36)
