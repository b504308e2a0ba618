# backend/portfolio_engine/schemas/user_settings.py
"""
User settings schemas.
"""

from pydantic import BaseModel, ConfigDict, Field


class UserSettingsResponse(BaseModel):
    default_currency: str

    model_config = ConfigDict(from_attributes=True)


class UserSettingsUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    default_currency: str | None = Field(default=None, max_length=3, examples=["USD"])
