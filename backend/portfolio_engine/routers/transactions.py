# backend/portfolio_engine/routers/transactions.py
"""
Ledger endpoints.

- POST /transactions - Append a ledger entry
- GET /transactions - List the ledger, newest first
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from portfolio_engine.database import get_db
from portfolio_engine.dependencies import get_current_user, get_ledger_service
from portfolio_engine.middleware.rate_limit import RATE_LIMIT_WRITE, limiter
from portfolio_engine.models import Transaction, User
from portfolio_engine.schemas.transactions import (
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
)
from portfolio_engine.services.ledger_service import LedgerService

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a transaction",
)
@limiter.limit(RATE_LIMIT_WRITE)
def create_transaction(
    request: Request,
    data: TransactionCreate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[LedgerService, Depends(get_ledger_service)],
) -> Transaction:
    return service.append_transaction(
        db,
        current_user,
        symbol=data.symbol,
        transaction_type=data.transaction_type,
        quantity=data.quantity,
        price=data.price,
        currency=data.currency,
        date=data.date,
    )


@router.get("", response_model=TransactionListResponse, summary="List transactions")
def list_transactions(
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[LedgerService, Depends(get_ledger_service)],
) -> TransactionListResponse:
    items = service.list_transactions(db, current_user)
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in items],
        total=len(items),
    )
