# backend/portfolio_engine/schemas/prices.py
"""
Price lookup schemas.
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PriceQuoteResponse(BaseModel):
    symbol: str
    price: Decimal
    currency: str
    timestamp: dt.datetime
    source: str

    model_config = ConfigDict(from_attributes=True)


class PriceBatchResponse(BaseModel):
    prices: dict[str, PriceQuoteResponse | None] = Field(
        ...,
        description="Every requested symbol; null when no price is available",
    )
    found: int
    missing: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)


class PriceRefreshRequest(BaseModel):
    symbols: list[str] = Field(..., min_length=1, max_length=100, examples=[["AAPL", "VDY"]])

    @field_validator("symbols")
    @classmethod
    def normalize_symbols(cls, v: list[str]) -> list[str]:
        symbols = [s.strip().upper() for s in v if s and s.strip()]
        if not symbols:
            raise ValueError("At least one symbol is required")
        return list(dict.fromkeys(symbols))
