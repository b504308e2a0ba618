# backend/portfolio_engine/routers/exchange_rates.py
"""
Exchange rate endpoints.

- GET /exchange-rates?base=CAD - Rate from base to every supported currency
- POST /exchange-rates/refresh - Fetch and store a fresh rate for every pair
- GET /exchange-rates/convert?amount&from&to - Convert an amount
"""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from portfolio_engine.database import get_db
from portfolio_engine.dependencies import get_currency_service
from portfolio_engine.middleware.rate_limit import RATE_LIMIT_REFRESH, limiter
from portfolio_engine.schemas.exchange_rates import (
    ConversionResponse,
    ExchangeRateRefreshResponse,
    ExchangeRatesResponse,
)
from portfolio_engine.services.currency_service import SOURCE_IDENTITY, CurrencyConversionService

router = APIRouter(prefix="/exchange-rates", tags=["Exchange Rates"])


@router.get("", response_model=ExchangeRatesResponse, summary="Rates relative to a base currency")
def get_rates(
    db: Annotated[Session, Depends(get_db)],
    service: Annotated[CurrencyConversionService, Depends(get_currency_service)],
    base: Annotated[str, Query(max_length=3)] = "CAD",
) -> ExchangeRatesResponse:
    base_code = service.validate_currency(base)
    return ExchangeRatesResponse(base=base_code, rates=service.all_rates(db, base_code))


@router.post(
    "/refresh",
    response_model=ExchangeRateRefreshResponse,
    summary="Refresh every supported pair from the provider",
)
@limiter.limit(RATE_LIMIT_REFRESH)
def refresh_rates(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    service: Annotated[CurrencyConversionService, Depends(get_currency_service)],
) -> ExchangeRateRefreshResponse:
    result = service.refresh_rates(db)
    return ExchangeRateRefreshResponse.model_validate(result)


@router.get("/convert", response_model=ConversionResponse, summary="Convert an amount")
def convert(
    db: Annotated[Session, Depends(get_db)],
    service: Annotated[CurrencyConversionService, Depends(get_currency_service)],
    amount: Annotated[Decimal, Query()],
    from_currency: Annotated[str, Query(alias="from", max_length=3)],
    to_currency: Annotated[str, Query(alias="to", max_length=3)],
) -> ConversionResponse:
    rate = service.get_rate(db, from_currency, to_currency)
    if rate.source == SOURCE_IDENTITY:
        converted = amount
    else:
        converted = CurrencyConversionService.apply_rate(amount, rate)
    return ConversionResponse(
        amount=amount,
        from_currency=rate.from_currency,
        to_currency=rate.to_currency,
        converted=converted,
        rate=rate.rate,
    )
