# backend/portfolio_engine/routers/scheduler.py
"""
Scheduler trigger endpoints.

- POST /scheduler {"action": "daily-snapshots"} - Snapshot every user now
- POST /scheduler {"action": "run-scheduler"} - Same, but only on a weekday
  at or after market close; otherwise reports why it was skipped
- GET /scheduler - Gate status and available actions
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from portfolio_engine.database import get_db
from portfolio_engine.dependencies import get_current_user, get_snapshot_scheduler
from portfolio_engine.middleware.rate_limit import RATE_LIMIT_REFRESH, limiter
from portfolio_engine.models import User
from portfolio_engine.schemas.scheduler import (
    SchedulerRunRequest,
    SchedulerRunResponse,
    SchedulerStatusResponse,
    UserRunErrorResponse,
)
from portfolio_engine.services.exceptions import ValidationError
from portfolio_engine.services.scheduler import SnapshotScheduler

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])

ACTION_FORCED = "daily-snapshots"
ACTION_GATED = "run-scheduler"


@router.post("", response_model=SchedulerRunResponse, summary="Trigger snapshot generation")
@limiter.limit(RATE_LIMIT_REFRESH)
def run_scheduler(
    request: Request,
    data: SchedulerRunRequest,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    scheduler: Annotated[SnapshotScheduler, Depends(get_snapshot_scheduler)],
) -> SchedulerRunResponse:
    if data.action == ACTION_FORCED:
        result = scheduler.run_forced(db)
    elif data.action == ACTION_GATED:
        result = scheduler.run_gated(db)
    else:
        raise ValidationError(
            f"Invalid action '{data.action}'. Use '{ACTION_FORCED}' or '{ACTION_GATED}'",
            field="action",
        )

    return SchedulerRunResponse(
        action=data.action,
        ran=result.ran,
        reason=result.reason,
        processed=result.processed,
        succeeded=result.succeeded,
        skipped=result.skipped,
        failed=result.failed,
        errors=[UserRunErrorResponse.model_validate(e) for e in result.errors],
        started_at=result.started_at,
    )


@router.get("", response_model=SchedulerStatusResponse, summary="Scheduler status")
def scheduler_status(
    current_user: Annotated[User, Depends(get_current_user)],
    scheduler: Annotated[SnapshotScheduler, Depends(get_snapshot_scheduler)],
) -> SchedulerStatusResponse:
    return SchedulerStatusResponse(
        status="Scheduler API is running",
        background_job_running=scheduler.running,
        market_timezone=scheduler.market_timezone,
        market_close_hour=scheduler.market_close_hour,
        is_business_day=scheduler.is_business_day(),
        is_market_closed=scheduler.is_market_closed(),
        should_run=scheduler.should_run(),
        endpoints={
            ACTION_FORCED: "POST - Create snapshots for all users now",
            ACTION_GATED: "POST - Create snapshots if it is a weekday after market close",
        },
    )
