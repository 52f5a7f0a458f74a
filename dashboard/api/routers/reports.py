"""
MarginDesk — Reports Router
=============================
Financial reports computed on read.

Endpoints:
  GET /api/reports/pod-financials?pod_id=&start_month=&end_month=
  GET /api/reports/profit-loss?month=YYYY-MM
  GET /api/utilization/summary?month=YYYY-MM
  GET /api/utilization/{person_id}?months=6
  POST /api/utilization/recalculate?month=YYYY-MM
  POST /api/utilization/calculate         {mode: current|last_n_months, months_count}
"""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from dashboard.api.dependencies import error_response, get_overhead_policy, get_store
from models.margin_models import UtilizationCalculateRequest
from scripts.lib.errors import ValidationError
from scripts.lib.logger import setup_logger
from scripts.pod_financials import build_pod_financials
from scripts.profit_loss import build_profit_loss, parse_month
from scripts.utilization import (
    store_utilization_for_all,
    store_utilization_for_last_months,
    utilization_history,
    utilization_summary,
)

logger = setup_logger("reports_router")

router = APIRouter(tags=["reports"])


def _parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)", **{name: value})


@router.get("/api/reports/pod-financials")
async def pod_financials(
    pod_id: int = Query(..., description="Pod ID"),
    start_month: str = Query(..., description="Report start date, YYYY-MM-DD"),
    end_month: str = Query(..., description="Report end date, YYYY-MM-DD"),
    store=Depends(get_store),
    overhead_policy=Depends(get_overhead_policy),
):
    try:
        start = _parse_date(start_month, "start_month")
        end = _parse_date(end_month, "end_month")
        return build_pod_financials(store, pod_id, start, end, overhead_policy=overhead_policy)
    except Exception as e:
        logger.error("Pod financials for %s failed: %s", pod_id, e)
        return error_response(e, "Failed to fetch pod financials")


@router.get("/api/reports/profit-loss")
async def profit_loss(month: str = Query(..., description="YYYY-MM"), store=Depends(get_store)):
    try:
        return build_profit_loss(store, month)
    except Exception as e:
        logger.error("Profit & loss for %s failed: %s", month, e)
        return error_response(e, "Failed to fetch profit & loss")


@router.get("/api/utilization/summary")
async def utilization_month_summary(
    month: str = Query(None, description="YYYY-MM, defaults to the current month"),
    store=Depends(get_store),
):
    try:
        target = parse_month(month) if month else date.today().replace(day=1)
        return {"success": True, "data": utilization_summary(store, target)}
    except Exception as e:
        logger.error("Utilization summary for %s failed: %s", month, e)
        return error_response(e, "Failed to fetch utilization summary")


@router.get("/api/utilization/{person_id}")
async def person_utilization(
    person_id: int,
    months: int = Query(6, ge=1, le=36),
    store=Depends(get_store),
):
    try:
        return {"success": True, "data": utilization_history(store, person_id, months)}
    except Exception as e:
        logger.error("Utilization for %s failed: %s", person_id, e)
        return error_response(e, "Failed to fetch utilization")


@router.post("/api/utilization/recalculate")
async def recalculate_utilization(month: str = Query(..., description="YYYY-MM"), store=Depends(get_store)):
    try:
        result = store_utilization_for_all(store, parse_month(month))
        return {"success": True, "stored": result["success"], "errors": result["errors"]}
    except Exception as e:
        logger.error("Utilization recalculation for %s failed: %s", month, e)
        return error_response(e, "Failed to recalculate utilization")


@router.post("/api/utilization/calculate")
async def calculate_utilization_batch(
    body: UtilizationCalculateRequest = UtilizationCalculateRequest(),
    store=Depends(get_store),
):
    """``current`` recalculates this month; ``last_n_months`` walks back ``months_count`` months."""
    try:
        if body.mode == "current":
            result = store_utilization_for_all(store, date.today())
            return {"success": True, "message": "Calculated utilization for current month", "errors": result["errors"]}
        if body.mode == "last_n_months":
            results = store_utilization_for_last_months(store, body.months_count)
            return {
                "success": True,
                "message": f"Calculated utilization for last {body.months_count} months",
                "errors": sum(r["errors"] for r in results),
            }
        raise ValidationError("Invalid mode. Use 'current' or 'last_n_months'", mode=body.mode)
    except Exception as e:
        logger.error("Utilization calculation (%s) failed: %s", body.mode, e)
        return error_response(e, "Failed to calculate utilization")
