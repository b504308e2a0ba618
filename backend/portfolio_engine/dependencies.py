# backend/portfolio_engine/dependencies.py
"""
Dependency injection for FastAPI routers.

Services are process-wide singletons, lazily built on first use, so that
the price cache, the provider's circuit breaker and the FX state are shared
by every request and by the background scheduler.

Build order:
    1. get_market_data_provider, get_price_cache (no deps)
    2. get_price_service, get_currency_service (provider, cache)
    3. get_valuation_service (prices, FX)
    4. get_snapshot_service (valuation)
    5. get_snapshot_scheduler (snapshots)
    6. get_ledger_service, get_auth_service, get_user_settings_service

Usage in routers:
    @router.get("/portfolio")
    def get_portfolio(
        service: ValuationService = Depends(get_valuation_service),
        current_user: User = Depends(get_current_user),
    ):
        ...
"""

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from portfolio_engine.config import settings
from portfolio_engine.database import SessionLocal, get_db
from portfolio_engine.models import User
from portfolio_engine.services.auth import AuthService, JWTHandler
from portfolio_engine.services.currency_service import CurrencyConversionService
from portfolio_engine.services.exceptions import InvalidCredentialsError, TokenExpiredError
from portfolio_engine.services.ledger_service import LedgerService
from portfolio_engine.services.market_data import MarketDataProvider, PriceCache, YahooFinanceProvider
from portfolio_engine.services.price_service import PriceService
from portfolio_engine.services.scheduler import SnapshotScheduler
from portfolio_engine.services.snapshot_service import SnapshotService
from portfolio_engine.services.ticker_directory import TickerDirectory
from portfolio_engine.services.user_settings_service import UserSettingsService
from portfolio_engine.services.valuation import ValuationService

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================

@lru_cache(maxsize=1)
def get_market_data_provider() -> MarketDataProvider:
    """Shared provider, so the circuit breaker sees every call."""
    logger.debug("Initializing singleton YahooFinanceProvider")
    return YahooFinanceProvider(timeout=settings.provider_timeout_seconds)


@lru_cache(maxsize=1)
def get_price_cache() -> PriceCache:
    return PriceCache(ttl_seconds=settings.price_cache_ttl_seconds)


@lru_cache(maxsize=1)
def get_price_service() -> PriceService:
    logger.debug("Initializing singleton PriceService")
    return PriceService(
        provider=get_market_data_provider(),
        cache=get_price_cache(),
        stored_max_age_seconds=settings.stored_price_max_age_seconds,
        batch_size=settings.price_batch_size,
        batch_pause_seconds=settings.price_batch_pause_seconds,
    )


@lru_cache(maxsize=1)
def get_currency_service() -> CurrencyConversionService:
    logger.debug("Initializing singleton CurrencyConversionService")
    return CurrencyConversionService(
        provider=get_market_data_provider(),
        max_age_seconds=settings.fx_rate_max_age_seconds,
        fallback_rates={
            ("USD", "CAD"): Decimal(str(settings.fallback_usd_to_cad)),
            ("CAD", "USD"): Decimal(str(settings.fallback_cad_to_usd)),
        },
    )


@lru_cache(maxsize=1)
def get_valuation_service() -> ValuationService:
    logger.debug("Initializing singleton ValuationService")
    return ValuationService(
        price_service=get_price_service(),
        currency_service=get_currency_service(),
    )


@lru_cache(maxsize=1)
def get_snapshot_service() -> SnapshotService:
    return SnapshotService(
        valuation_service=get_valuation_service(),
        market_timezone=settings.market_timezone,
        market_close_hour=settings.market_close_hour,
    )


@lru_cache(maxsize=1)
def get_snapshot_scheduler() -> SnapshotScheduler:
    logger.debug("Initializing singleton SnapshotScheduler")
    return SnapshotScheduler(
        snapshot_service=get_snapshot_service(),
        session_factory=SessionLocal,
        market_timezone=settings.market_timezone,
        market_close_hour=settings.market_close_hour,
        cron_minute=settings.scheduler_minute,
    )


@lru_cache(maxsize=1)
def get_ledger_service() -> LedgerService:
    return LedgerService(
        directory=TickerDirectory(),
        negative_cash_policy=settings.negative_cash_policy,
    )


@lru_cache(maxsize=1)
def get_auth_service() -> AuthService:
    return AuthService()


@lru_cache(maxsize=1)
def get_user_settings_service() -> UserSettingsService:
    return UserSettingsService()


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """
    Resolve the user from the bearer token.

    Raises:
        HTTPException 401: Missing, invalid or expired token, or unknown user
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    try:
        payload = JWTHandler.validate_access_token(credentials.credentials)
        user_id = int(payload["sub"])
    except TokenExpiredError:
        raise _unauthorized("Token has expired")
    except InvalidCredentialsError as e:
        raise _unauthorized(str(e))

    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")

    return user


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

def clear_service_caches() -> None:
    """Drop every singleton; the next call builds fresh instances."""
    get_market_data_provider.cache_clear()
    get_price_cache.cache_clear()
    get_price_service.cache_clear()
    get_currency_service.cache_clear()
    get_valuation_service.cache_clear()
    get_snapshot_service.cache_clear()
    get_snapshot_scheduler.cache_clear()
    get_ledger_service.cache_clear()
    get_auth_service.cache_clear()
    get_user_settings_service.cache_clear()
    logger.info("Cleared all service singleton caches")
