"""
SLA Controllers (API Routes)
============================

FastAPI routes for SLA configuration and the breach sweep.
"""

from typing import Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ticketflow.audit.application import ActorRef
from ticketflow.shared.api.dependencies import get_config_provider, require_admin
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.sla.application import ISLAConfigProvider, SweepRunner

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Monitoring"])


class SLAConfigResponse(BaseModel):
    sla_hours: Dict[str, float]


class SweepResponse(BaseModel):
    skipped: bool
    breached: Optional[int] = None


class SweepStatusResponse(BaseModel):
    scheduler_running: bool
    interval_seconds: int
    sweep_in_progress: bool
    last_breached: Optional[int] = None


def get_sweep_runner(request: Request) -> SweepRunner:
    return request.app.state.sweep_runner


@router.get("/config", response_model=SLAConfigResponse, summary="Current SLA hours by priority")
async def get_sla_config(config_provider: ISLAConfigProvider = Depends(get_config_provider)):
    return SLAConfigResponse(sla_hours=config_provider.get_config().sla_hours)


@router.post("/sweep", response_model=SweepResponse, summary="Run a breach sweep now")
async def trigger_sweep(
    actor: ActorRef = Depends(require_admin),
    runner: SweepRunner = Depends(get_sweep_runner),
):
    """
    Run one SLA sweep immediately.

    Returns ``skipped: true`` when a sweep is already running.
    """
    logger.info("Manual SLA sweep requested", extra={"actor_id": actor.id})
    breached = await runner.run_once()
    return SweepResponse(skipped=breached is None, breached=breached)


@router.get("/sweep", response_model=SweepStatusResponse)
async def sweep_status(request: Request, runner: SweepRunner = Depends(get_sweep_runner)):
    scheduler = getattr(request.app.state, "sweep_scheduler", None)
    return SweepStatusResponse(
        scheduler_running=bool(scheduler and scheduler.is_running),
        interval_seconds=scheduler.interval_seconds if scheduler else 0,
        sweep_in_progress=runner.is_running,
        last_breached=runner.last_result,
    )
