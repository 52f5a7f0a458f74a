"""
MarginDesk — Bill Details Router
==================================
Background job that pulls line items and tax detail for synced bills.

Endpoints:
  POST   /api/sync/bill-details           - Start a job, returns its id immediately
  GET    /api/sync/bill-details/{job_id}  - Poll job status and progress
  DELETE /api/sync/bill-details/{job_id}  - Cancel a running job
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from dashboard.api.dependencies import error_response, get_clients, get_jobs, get_store
from models.margin_models import BillDetailsRequest, BillDetailsStarted, BillDetailsStatus
from scripts.bill_details_sync import cancel_job, get_job_status, start_bill_details_job
from scripts.lib.logger import setup_logger

logger = setup_logger("bill_details_router")

router = APIRouter(prefix="/api/sync/bill-details", tags=["sync"])


@router.post("", response_model=BillDetailsStarted)
async def start_job(
    body: BillDetailsRequest = BillDetailsRequest(),
    store=Depends(get_store),
    clients=Depends(get_clients),
    jobs=Depends(get_jobs),
):
    try:
        return await start_bill_details_job(
            store, clients.zoho_books, jobs,
            filter_type=body.filter_type,
            filter_value=body.filter_value,
            force_refetch=body.force_refetch,
        )
    except Exception as e:
        logger.error("Start bill details job failed: %s", e)
        return error_response(e, "Failed to start bill details sync")


@router.get("/{job_id}", response_model=BillDetailsStatus)
async def job_status(job_id: int, store=Depends(get_store)):
    try:
        return get_job_status(store, job_id)
    except Exception as e:
        logger.error("Job status %s failed: %s", job_id, e)
        return error_response(e, "Failed to fetch job status")


@router.delete("/{job_id}")
async def cancel(job_id: int, store=Depends(get_store), jobs=Depends(get_jobs)):
    try:
        return cancel_job(store, jobs, job_id)
    except Exception as e:
        logger.error("Cancel job %s failed: %s", job_id, e)
        return error_response(e, "Failed to cancel job")
