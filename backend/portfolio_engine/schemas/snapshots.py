# backend/portfolio_engine/schemas/snapshots.py
"""
Snapshot series and snapshot write schemas.
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class SnapshotPointResponse(BaseModel):
    date: dt.date
    value: Decimal
    currency: str
    is_live: bool = Field(..., description="True for today's live valuation")
    is_stored: bool = Field(..., description="True when backed by a stored snapshot")

    model_config = ConfigDict(from_attributes=True)


class SnapshotSeriesResponse(BaseModel):
    points: list[SnapshotPointResponse]
    range: str
    days_in_range: int
    total_stored_snapshots: int
    live_value_for_today: Decimal
    currency: str
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class SnapshotRecordResponse(BaseModel):
    user_id: int
    date: dt.date
    valued_at: dt.datetime
    total_value: Decimal
    currency: str
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
