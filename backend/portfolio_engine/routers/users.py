# backend/portfolio_engine/routers/users.py
"""
User settings endpoints.

- GET /users/me/settings
- PUT /users/me/settings
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from portfolio_engine.database import get_db
from portfolio_engine.dependencies import get_current_user, get_user_settings_service
from portfolio_engine.middleware.rate_limit import RATE_LIMIT_WRITE, limiter
from portfolio_engine.models import User
from portfolio_engine.schemas.user_settings import UserSettingsResponse, UserSettingsUpdate
from portfolio_engine.services.user_settings_service import UserSettingsService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me/settings", response_model=UserSettingsResponse, summary="Get user settings")
def get_settings(
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[UserSettingsService, Depends(get_user_settings_service)],
) -> UserSettingsResponse:
    return UserSettingsResponse(**service.get_settings(current_user))


@router.put("/me/settings", response_model=UserSettingsResponse, summary="Update user settings")
@limiter.limit(RATE_LIMIT_WRITE)
def update_settings(
    request: Request,
    data: UserSettingsUpdate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[UserSettingsService, Depends(get_user_settings_service)],
) -> UserSettingsResponse:
    result = service.update_settings(db, current_user, default_currency=data.default_currency)
    return UserSettingsResponse(**service.get_settings(result.user))
