# backend/portfolio_engine/routers/auth.py
"""
Authentication endpoints.

- POST /auth/register - Register a new user
- POST /auth/login - Login with email/password, returns a bearer token
- GET /auth/me - Current user profile
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from portfolio_engine.database import get_db
from portfolio_engine.dependencies import get_auth_service, get_current_user
from portfolio_engine.middleware.rate_limit import (
    RATE_LIMIT_AUTH_LOGIN,
    RATE_LIMIT_AUTH_REGISTER,
    limiter,
)
from portfolio_engine.models import User
from portfolio_engine.schemas.auth import (
    TokenResponse,
    UserLoginRequest,
    UserRegisterRequest,
    UserResponse,
)
from portfolio_engine.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
@limiter.limit(RATE_LIMIT_AUTH_REGISTER)
def register(
    request: Request,  # Required for rate limiter
    data: UserRegisterRequest,
    db: Annotated[Session, Depends(get_db)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
) -> User:
    return auth_service.register(
        db=db,
        email=data.email,
        password=data.password,
        default_currency=data.default_currency,
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login with email and password",
)
@limiter.limit(RATE_LIMIT_AUTH_LOGIN)
def login(
    request: Request,
    data: UserLoginRequest,
    db: Annotated[Session, Depends(get_db)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
) -> TokenResponse:
    token = auth_service.login(db=db, email=data.email, password=data.password)
    return TokenResponse(
        access_token=token.access_token,
        token_type=token.token_type,
        expires_in=token.expires_in,
    )


@router.get("/me", response_model=UserResponse, summary="Get current user")
def me(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    return current_user
