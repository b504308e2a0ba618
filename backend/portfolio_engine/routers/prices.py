# backend/portfolio_engine/routers/prices.py
"""
Price endpoints.

- GET /prices?symbol=AAPL - One current price (404 when unavailable)
- GET /prices?symbols=AAPL,VDY - Batch lookup; unavailable symbols map to null
- POST /prices - Refresh a list of symbols from cache, then the provider
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from portfolio_engine.database import get_db
from portfolio_engine.dependencies import get_price_service
from portfolio_engine.middleware.rate_limit import RATE_LIMIT_REFRESH, limiter
from portfolio_engine.schemas.prices import (
    PriceBatchResponse,
    PriceQuoteResponse,
    PriceRefreshRequest,
)
from portfolio_engine.services.exceptions import NotFoundError, ValidationError
from portfolio_engine.services.price_service import PriceBatchResult, PriceService

router = APIRouter(prefix="/prices", tags=["Prices"])


def _to_batch_response(result: PriceBatchResult) -> PriceBatchResponse:
    return PriceBatchResponse(
        prices={
            symbol: PriceQuoteResponse.model_validate(quote) if quote is not None else None
            for symbol, quote in result.prices.items()
        },
        found=result.found_count,
        missing=result.missing,
        errors=result.errors,
    )


@router.get(
    "",
    response_model=PriceQuoteResponse | PriceBatchResponse,
    summary="Current price for one symbol or a comma-separated list",
)
def get_prices(
    db: Annotated[Session, Depends(get_db)],
    service: Annotated[PriceService, Depends(get_price_service)],
    symbol: Annotated[str | None, Query(max_length=20)] = None,
    symbols: Annotated[str | None, Query(description="Comma-separated symbols")] = None,
) -> PriceQuoteResponse | PriceBatchResponse:
    if symbol:
        quote = service.current_price(db, symbol)
        if quote is None:
            raise NotFoundError(
                f"No price available for {symbol.upper()}",
                resource_type="price",
                resource_id=symbol.upper(),
            )
        return PriceQuoteResponse.model_validate(quote)

    requested = [s for s in (symbols or "").split(",") if s.strip()]
    if not requested:
        raise ValidationError("Provide 'symbol' or 'symbols'", field="symbols")

    return _to_batch_response(service.current_prices(db, requested))


@router.post("", response_model=PriceBatchResponse, summary="Refresh prices")
@limiter.limit(RATE_LIMIT_REFRESH)
def refresh_prices(
    request: Request,
    data: PriceRefreshRequest,
    db: Annotated[Session, Depends(get_db)],
    service: Annotated[PriceService, Depends(get_price_service)],
) -> PriceBatchResponse:
    return _to_batch_response(service.current_prices(db, data.symbols, use_stored=False))
