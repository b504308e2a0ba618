# backend/portfolio_engine/schemas/portfolio.py
"""
Portfolio valuation response schemas.

Mirrors services/valuation/types.py. Native fields are in the holding's own
currency; *_converted fields and the summary are in the requested currency.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class HoldingValuationResponse(BaseModel):
    symbol: str
    currency: str
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    total_cost: Decimal
    total_value: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal
    is_cash: bool
    price_available: bool
    price_source: str | None = None
    price_timestamp: datetime | None = None
    target_currency: str | None = None
    fx_rate: Decimal | None = None
    fx_source: str | None = None
    total_value_converted: Decimal
    total_cost_converted: Decimal

    model_config = ConfigDict(from_attributes=True)


class PortfolioSummaryResponse(BaseModel):
    currency: str
    total_value: Decimal
    total_cost: Decimal
    total_gain_loss: Decimal
    total_gain_loss_percent: Decimal
    holdings_count: int

    model_config = ConfigDict(from_attributes=True)


class PortfolioValuationResponse(BaseModel):
    holdings: list[HoldingValuationResponse]
    summary: PortfolioSummaryResponse
    cash_balances: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Raw cash balance per currency; may be negative",
    )
    warnings: list[str] = Field(default_factory=list)
    valued_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
