# backend/portfolio_engine/routers/portfolio.py
"""
Portfolio valuation and snapshot endpoints.

- GET /portfolio?currency= - Live valuation (defaults to the user's currency)
- GET /portfolio/snapshots?range= - Gap-filled daily series ending with today's live value
- POST /portfolio/snapshots - Record today's snapshot
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from portfolio_engine.database import get_db
from portfolio_engine.dependencies import (
    get_current_user,
    get_snapshot_service,
    get_valuation_service,
)
from portfolio_engine.middleware.rate_limit import RATE_LIMIT_WRITE, limiter
from portfolio_engine.models import User
from portfolio_engine.schemas.portfolio import PortfolioValuationResponse
from portfolio_engine.schemas.snapshots import SnapshotRecordResponse, SnapshotSeriesResponse
from portfolio_engine.services.constants import DEFAULT_SNAPSHOT_RANGE
from portfolio_engine.services.snapshot_service import SnapshotService
from portfolio_engine.services.valuation import ValuationService

router = APIRouter(prefix="/portfolio", tags=["Portfolio"])


@router.get("", response_model=PortfolioValuationResponse, summary="Current portfolio valuation")
def get_portfolio(
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[ValuationService, Depends(get_valuation_service)],
    currency: Annotated[str | None, Query(max_length=3, description="CAD or USD")] = None,
) -> PortfolioValuationResponse:
    valuation = service.get_valuation(db, current_user, target_currency=currency)
    return PortfolioValuationResponse.model_validate(valuation)


@router.get(
    "/snapshots",
    response_model=SnapshotSeriesResponse,
    summary="Daily portfolio value series",
)
def get_snapshots(
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[SnapshotService, Depends(get_snapshot_service)],
    range: Annotated[str, Query(description="7d, 30d, 3m, 6m or 12m")] = DEFAULT_SNAPSHOT_RANGE,
) -> SnapshotSeriesResponse:
    series = service.get_series(db, current_user, range)
    return SnapshotSeriesResponse.model_validate(series)


@router.post(
    "/snapshots",
    response_model=SnapshotRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record today's snapshot",
)
@limiter.limit(RATE_LIMIT_WRITE)
def record_snapshot(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[SnapshotService, Depends(get_snapshot_service)],
) -> SnapshotRecordResponse:
    record = service.record_snapshot(db, current_user)
    return SnapshotRecordResponse.model_validate(record)
