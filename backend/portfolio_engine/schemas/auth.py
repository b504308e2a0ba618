# backend/portfolio_engine/schemas/auth.py
"""
Authentication request/response schemas.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class UserRegisterRequest(BaseModel):
    email: EmailStr = Field(..., examples=["user@example.com"])
    password: str = Field(
        ...,
        min_length=8,
        max_length=128,
        description="Password (min 8 characters)",
    )
    default_currency: str = Field(
        default="CAD",
        max_length=3,
        description="Display currency for valuations and snapshots (CAD or USD)",
    )


class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")


class UserResponse(BaseModel):
    id: int
    email: str
    default_currency: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
