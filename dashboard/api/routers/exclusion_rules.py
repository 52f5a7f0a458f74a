"""
MarginDesk — Exclusion Rules Router
=====================================
Endpoints:
  GET  /api/bill-exclusion-rules            - List bill exclusion rules
  POST /api/bill-exclusion-rules/reprocess  - Re-apply enabled rules to every stored bill
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from dashboard.api.dependencies import get_store
from models.margin_models import ReprocessResponse
from scripts.lib.exclusion_rules import BILL_RULES_TABLE, reprocess_bills
from scripts.lib.logger import setup_logger

logger = setup_logger("exclusion_rules_router")

router = APIRouter(prefix="/api/bill-exclusion-rules", tags=["exclusion-rules"])


@router.get("")
async def list_rules(store=Depends(get_store)):
    try:
        rules = store.find_many(BILL_RULES_TABLE, order_by="id")
        return {"results": rules, "count": len(rules)}
    except Exception as e:
        logger.error("List bill exclusion rules failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch exclusion rules")


@router.post("/reprocess", response_model=ReprocessResponse)
async def reprocess(store=Depends(get_store)):
    """Overwrites ``include_in_calculation`` on every bill, including manual edits."""
    try:
        return reprocess_bills(store)
    except Exception as e:
        logger.error("Reprocess bills failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to reprocess bills")
