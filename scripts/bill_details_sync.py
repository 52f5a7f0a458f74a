"""
MarginDesk — Bill Details Background Job
==========================================
Fetches line items and tax detail for bills already synced from Zoho Books.

The trigger creates a ``detail_sync_jobs`` row in ``running`` and returns its
id straight away; the work continues on the event loop and callers poll.

State machine:
    running -> completed   at least one bill succeeded, or none failed
    running -> failed      every attempted bill failed, or the job crashed
    running -> cancelled   DELETE while running; refused in any other state

Once a job leaves ``running`` its row is never written again. Cancellation is
cooperative: the worker checks between bills and again after each fetch, so
a fetch already in flight finishes but its result is dropped.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict

from integrations.token_provider import SourceTokens
from integrations.zoho_books import ZohoBooksClient
from scripts.lib.date_ranges import resolve_date_range
from scripts.lib.errors import JobNotFoundError, JobStateError, ValidationError
from scripts.lib.field_mapper import map_bill_details, map_bill_line_item
from scripts.lib.jobs import JobHandle, JobRegistry
from scripts.lib.logger import setup_logger, sync_context
from scripts.lib.store import as_date

logger = setup_logger("bill_details_sync")

JOBS_TABLE = "detail_sync_jobs"
LINE_ITEMS_TABLE = "bill_line_items"

FILTER_FIELDS = {
    "bill_date": "bill_date",
    "billed_for_month": "cf_billed_for_month_unformatted",
}

DEFAULT_FILTER_VALUE = "last_month"

STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def start_bill_details_job(
    store,
    client: ZohoBooksClient,
    registry: JobRegistry,
    filter_type: str = "bill_date",
    filter_value: str = DEFAULT_FILTER_VALUE,
    force_refetch: bool = False,
    today: date = None,
) -> Dict[str, Any]:
    """Validate, create the job row, and schedule the worker without awaiting it."""
    if filter_type not in FILTER_FIELDS:
        raise ValidationError(
            "Invalid filter_type. Must be 'bill_date' or 'billed_for_month'",
            filter_type=filter_type,
        )
    date_start, date_end = resolve_date_range(filter_value, today, default=DEFAULT_FILTER_VALUE)
    tokens = await client.tokens()

    job = store.create(JOBS_TABLE, {
        "filter_type": filter_type,
        "filter_value": filter_value,
        "force_refetch": bool(force_refetch),
        "status": STATUS_RUNNING,
        "total_bills": 0,
        "processed_bills": 0,
        "success_count": 0,
        "error_count": 0,
        "error_messages": [],
        "started_at": _now(),
        "completed_at": None,
    })
    logger.info(
        "Job %s started: %s %s (%s to %s), force_refetch=%s",
        job["id"], filter_type, filter_value, date_start, date_end, force_refetch,
    )

    handle = registry.register(job["id"])
    # The task copies the current context, so its log lines carry the job id
    with sync_context(f"bill_details#{job['id']}"):
        registry.start(handle, process_bill_details(
            store, client, handle,
            filter_type=filter_type,
            date_start=date_start,
            date_end=date_end,
            force_refetch=force_refetch,
            tokens=tokens,
        ))
    return {"job_id": job["id"], "message": "Bill details sync started"}


def _still_running(store, handle: JobHandle) -> bool:
    if handle.cancelled:
        return False
    job = store.find_one(JOBS_TABLE, {"id": handle.job_id})
    return job is not None and job.get("status") == STATUS_RUNNING


async def process_bill_details(
    store,
    client: ZohoBooksClient,
    handle: JobHandle,
    filter_type: str,
    date_start: date,
    date_end: date,
    force_refetch: bool = False,
    tokens: SourceTokens = None,
) -> None:
    """Worker body. Never raises: a crash marks the job failed."""
    job_id = handle.job_id
    try:
        field = FILTER_FIELDS[filter_type]
        filters = {} if force_refetch else {"details_sync_status": "pending"}
        bills = []
        for bill in store.find_many("bills", filters, order_by="id"):
            bill_day = as_date(bill.get(field))
            if bill_day is not None and date_start <= bill_day <= date_end:
                bills.append(bill)

        if not _still_running(store, handle):
            return
        store.update(JOBS_TABLE, job_id, {"total_bills": len(bills)})
        logger.info("Job %s: %d bills to process", job_id, len(bills))

        success = errors = 0
        messages = []
        for bill in bills:
            if not _still_running(store, handle):
                logger.info("Job %s cancelled after %d bills", job_id, success + errors)
                return

            try:
                store.update("bills", bill["id"], {"details_sync_status": "syncing"})
                detail = await client.get_bill(bill["zoho_bill_id"], tokens=tokens)

                if not _still_running(store, handle):
                    store.update("bills", bill["id"], {"details_sync_status": bill.get("details_sync_status")})
                    logger.info("Job %s cancelled; dropping fetched detail for %s", job_id, bill.get("bill_number"))
                    return

                store.update("bills", bill["id"], {
                    **map_bill_details(detail),
                    "details_fetched_at": _now(),
                    "details_sync_status": "synced",
                })
                line_items = detail.get("line_items") or []
                if line_items:
                    store.delete_many(LINE_ITEMS_TABLE, {"bill_id": bill["id"]})
                    store.create_many(
                        LINE_ITEMS_TABLE, [map_bill_line_item(bill["id"], item) for item in line_items],
                    )
                success += 1
                logger.debug("Job %s: synced %s (%d line items)", job_id, bill.get("bill_number"), len(line_items))
            except Exception as e:
                errors += 1
                msg = f"Failed to sync {bill.get('bill_number')}: {e}"
                messages.append(msg)
                logger.error("Job %s: %s", job_id, msg)
                try:
                    store.update("bills", bill["id"], {"details_sync_status": "error"})
                except Exception as mark_error:
                    logger.warning("Job %s: could not mark bill %s as error: %s", job_id, bill["id"], mark_error)

            if not _still_running(store, handle):
                return
            store.update(JOBS_TABLE, job_id, {
                "processed_bills": success + errors,
                "success_count": success,
                "error_count": errors,
                "error_messages": list(messages),
            })

        if not _still_running(store, handle):
            return
        status = STATUS_FAILED if errors > 0 and success == 0 else STATUS_COMPLETED
        store.update(JOBS_TABLE, job_id, {"status": status, "completed_at": _now()})
        logger.info("Job %s %s - Success: %d, Errors: %d", job_id, status, success, errors)

    except Exception as e:
        logger.error("Job %s fatal error: %s", job_id, e)
        if _still_running(store, handle):
            store.update(JOBS_TABLE, job_id, {
                "status": STATUS_FAILED,
                "error_messages": [str(e)],
                "completed_at": _now(),
            })


def get_job_status(store, job_id: Any) -> Dict[str, Any]:
    """Poll a job. Progress is recomputed on every read."""
    job = store.find_one(JOBS_TABLE, {"id": job_id})
    if job is None:
        raise JobNotFoundError(job_id)

    total = job.get("total_bills") or 0
    processed = job.get("processed_bills") or 0
    # Round half up
    progress = int(processed * 100 / total + 0.5) if total > 0 else 0
    return {
        "id": job["id"],
        "filter_type": job.get("filter_type"),
        "filter_value": job.get("filter_value"),
        "force_refetch": job.get("force_refetch", False),
        "status": job.get("status"),
        "total": total,
        "processed": processed,
        "success_count": job.get("success_count") or 0,
        "error_count": job.get("error_count") or 0,
        "error_messages": job.get("error_messages") or [],
        "started_at": job.get("started_at"),
        "completed_at": job.get("completed_at"),
        "progress_percentage": progress,
    }


def cancel_job(store, registry: JobRegistry, job_id: Any) -> Dict[str, Any]:
    """Cancel a running job; any other state is refused."""
    job = store.find_one(JOBS_TABLE, {"id": job_id})
    if job is None:
        raise JobNotFoundError(job_id)
    if job.get("status") != STATUS_RUNNING:
        raise JobStateError(job_id, job.get("status"), "Job is not running")

    store.update(JOBS_TABLE, job_id, {"status": STATUS_CANCELLED, "completed_at": _now()})
    registry.cancel(job_id)
    logger.info("Job %s cancelled", job_id)
    return {"message": "Job cancelled successfully"}
