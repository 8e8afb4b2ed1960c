"""
Payroll liquidation API router.

Liquidation, consistency diagnostics, recovery and saga maintenance
endpoints.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..config.thresholds import LiquidationThresholds
from ..recovery.models import RecoveryPlan
from ..saga.integration import LiquidationService
from ..saga.monitor import ConsistencyMonitor
from ..utils.datetime import isoformat_utc_now
from .dependencies import get_consistency_monitor, get_liquidation_service

logger = logging.getLogger("payroll.api.liquidation")

router = APIRouter(prefix="/api/payroll", tags=["payroll"])


class LiquidationRequest(BaseModel):
    company_id: str = Field(..., min_length=1)
    actor_id: str = Field(..., min_length=1)
    deadline_seconds: Optional[float] = Field(None, gt=0)


class RecoveryExecutionRequest(BaseModel):
    plan: Dict[str, Any]
    actor_id: str = Field(..., min_length=1)
    include_confirmation_required: bool = True


@router.post("/periods/{period_id}/liquidate", response_model=Dict[str, Any])
async def liquidate_period(
    period_id: str,
    body: LiquidationRequest,
    service: LiquidationService = Depends(get_liquidation_service),
):
    """
    Liquidate a payroll period.

    Returns:
        The liquidation result; rejected preconditions answer 409 and a
        failed saga 500, both with the result as detail
    """
    result = await service.liquidate(
        period_id,
        body.company_id,
        body.actor_id,
        deadline_seconds=body.deadline_seconds,
    )
    if result.success:
        return {"success": True, "data": result.to_dict()}

    if result.details.get("error_type") == "precondition":
        raise HTTPException(status_code=409, detail=result.to_dict())
    raise HTTPException(status_code=500, detail=result.to_dict())


@router.get("/companies/{company_id}/consistency", response_model=Dict[str, Any])
async def get_consistency_report(
    company_id: str,
    service: LiquidationService = Depends(get_liquidation_service),
):
    report = await service.diagnose(company_id)
    return {"success": True, "data": report.to_dict()}


@router.get("/companies/{company_id}/recovery-plans", response_model=Dict[str, Any])
async def get_recovery_plans(
    company_id: str,
    service: LiquidationService = Depends(get_liquidation_service),
):
    plans = await service.plan_recovery(company_id)
    return {
        "success": True,
        "data": {"plans": [plan.to_dict() for plan in plans], "count": len(plans)},
    }


@router.post("/companies/{company_id}/recovery-plans/execute", response_model=Dict[str, Any])
async def execute_recovery_plan(
    company_id: str,
    body: RecoveryExecutionRequest,
    service: LiquidationService = Depends(get_liquidation_service),
):
    try:
        plan = RecoveryPlan.from_dict(body.plan)
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid recovery plan: {e}")

    execution = await service.execute_recovery(
        plan,
        company_id,
        body.actor_id,
        include_confirmation_required=body.include_confirmation_required,
    )
    return {"success": execution.success, "data": execution.to_dict()}


@router.get("/sagas/active", response_model=Dict[str, Any])
async def list_active_sagas(service: LiquidationService = Depends(get_liquidation_service)):
    active = service.get_active_transactions()
    return {"success": True, "data": {"transactions": active, "count": len(active)}}


@router.post("/sagas/cleanup", response_model=Dict[str, Any])
async def cleanup_abandoned_sagas(
    max_age_hours: float = Query(
        LiquidationThresholds.ABANDONED_SAGA_MAX_AGE_HOURS,
        gt=0,
        description="Age after which an unfinished saga context is dropped",
    ),
    service: LiquidationService = Depends(get_liquidation_service),
):
    removed = service.cleanup_abandoned_saga_contexts(max_age_hours)
    return {"success": True, "data": {"removed": removed, "count": len(removed)}}


@router.get("/health", response_model=Dict[str, Any])
async def payroll_health(
    service: LiquidationService = Depends(get_liquidation_service),
    monitor: Optional[ConsistencyMonitor] = Depends(get_consistency_monitor),
):
    data: Dict[str, Any] = {
        "status": "ok",
        "active_sagas": len(service.registry),
        "timestamp": isoformat_utc_now(),
    }
    data["monitor"] = monitor.get_health_report() if monitor is not None else None
    return {"success": True, "data": data}
