# backend/portfolio_engine/schemas/exchange_rates.py
"""
Exchange rate schemas.
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ExchangeRateResponse(BaseModel):
    from_currency: str
    to_currency: str
    rate: Decimal = Field(..., description="1 from_currency = rate to_currency")
    source: str = Field(..., description="identity, stored, provider, fallback_stored or fallback_constant")
    timestamp: dt.datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ExchangeRatesResponse(BaseModel):
    base: str
    rates: dict[str, Decimal] = Field(..., description="1 base = rate[code]")


class ExchangeRateRefreshResponse(BaseModel):
    updated: list[ExchangeRateResponse]
    updated_count: int
    errors: dict[str, str] = Field(default_factory=dict)
    timestamp: dt.datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ConversionResponse(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str
    converted: Decimal
    rate: Decimal
