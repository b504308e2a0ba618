# backend/portfolio_engine/schemas/transactions.py
"""
Ledger entry schemas.

Domain rules (currency support, CASH normalization, ticker validation) are
enforced by LedgerService so that they surface as 400s; the schema only
checks shape.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portfolio_engine.models import TransactionType


class TransactionCreate(BaseModel):
    symbol: str = Field(default="CASH", max_length=20, examples=["AAPL"])
    transaction_type: TransactionType = Field(..., examples=["BUY"])
    quantity: Decimal = Field(..., description="Units, or the amount for cash movements")
    price: Decimal | None = Field(default=None, description="Unit price; ignored for cash movements")
    currency: str = Field(..., max_length=3, examples=["USD"])
    date: datetime | None = Field(default=None, description="Effective date; defaults to now")

    @field_validator("symbol", "currency")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class TransactionResponse(BaseModel):
    id: int
    symbol: str
    transaction_type: TransactionType
    quantity: Decimal
    price: Decimal
    currency: str
    date: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]
    total: int
