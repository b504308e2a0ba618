# backend/portfolio_engine/schemas/scheduler.py
"""
Scheduler trigger and status schemas.
"""

import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SchedulerRunRequest(BaseModel):
    action: str = Field(
        ...,
        description="'daily-snapshots' runs now; 'run-scheduler' runs only after the weekday close",
        examples=["run-scheduler"],
    )


class UserRunErrorResponse(BaseModel):
    user_id: int
    email: str
    error: str

    model_config = ConfigDict(from_attributes=True)


class SchedulerRunResponse(BaseModel):
    action: Literal["daily-snapshots", "run-scheduler"]
    ran: bool
    reason: str | None = None
    processed: int
    succeeded: int
    skipped: int
    failed: int
    errors: list[UserRunErrorResponse] = Field(default_factory=list)
    started_at: dt.datetime | None = None


class SchedulerStatusResponse(BaseModel):
    status: str
    background_job_running: bool
    market_timezone: str
    market_close_hour: int
    is_business_day: bool
    is_market_closed: bool
    should_run: bool
    endpoints: dict[str, str]
