# backend/portfolio_engine/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application and its middleware
- Starts the background snapshot scheduler when enabled
- Maps domain exceptions to HTTP responses
- Registers routers and health endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.orm import Session

from portfolio_engine.config import settings
from portfolio_engine.database import get_db
from portfolio_engine.dependencies import get_market_data_provider, get_snapshot_scheduler
from portfolio_engine.middleware import (
    RATE_LIMIT_HEALTH,
    CorrelationIdMiddleware,
    SlowAPIMiddleware,
    limiter,
    rate_limit_exceeded_handler,
)
from portfolio_engine.routers.auth import router as auth_router
from portfolio_engine.routers.exchange_rates import router as exchange_rates_router
from portfolio_engine.routers.portfolio import router as portfolio_router
from portfolio_engine.routers.prices import router as prices_router
from portfolio_engine.routers.scheduler import router as scheduler_router
from portfolio_engine.routers.transactions import router as transactions_router
from portfolio_engine.routers.users import router as users_router
from portfolio_engine.schemas.errors import ErrorDetail, ValidationErrorDetail
from portfolio_engine.services.exceptions import (
    AuthenticationError,
    CircuitBreakerOpen,
    FXRateError,
    MarketDataError,
    NotFoundError,
    RateLimitError,
    RateUnavailableError,
    ServiceError,
    UnsupportedCurrencyError,
    UserExistsError,
    ValidationError,
)
from portfolio_engine.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = get_snapshot_scheduler()
        scheduler.start()

    yield

    if scheduler is not None:
        scheduler.shutdown()


# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Portfolio valuation, currency conversion and daily snapshot API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Order matters: last added = first executed
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Starlette picks the handler of the most specific class in the exception's
# MRO, so subclasses registered here override their ServiceError parent.

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def _error_response(status_code: int, exc: Exception, details: dict | None = None, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details=details,
        ).model_dump(),
        headers=headers,
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Domain validation failures, unknown ranges and unknown symbols (400)."""
    return _error_response(400, exc, details={"field": exc.field} if exc.field else None)


@app.exception_handler(UnsupportedCurrencyError)
async def unsupported_currency_handler(request: Request, exc: UnsupportedCurrencyError) -> JSONResponse:
    return _error_response(400, exc, details={"currency": exc.currency})


@app.exception_handler(RateUnavailableError)
async def rate_unavailable_handler(request: Request, exc: RateUnavailableError) -> JSONResponse:
    logger.warning(f"Exchange rate unavailable: {exc}")
    return _error_response(
        503, exc, details={"from_currency": exc.from_currency, "to_currency": exc.to_currency}
    )


@app.exception_handler(FXRateError)
async def fx_rate_error_handler(request: Request, exc: FXRateError) -> JSONResponse:
    logger.error(f"FX error: {exc}")
    return _error_response(502, exc)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    details = None
    if exc.resource_type:
        details = {"resource_type": exc.resource_type, "resource_id": exc.resource_id}
    return _error_response(404, exc, details=details)


@app.exception_handler(RateLimitError)
async def provider_rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    logger.warning(f"Provider rate limit: {exc}")
    return _error_response(
        429,
        exc,
        details={"retry_after": exc.retry_after} if exc.retry_after else None,
    )


@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    logger.error(f"Market data error: {exc}")
    return _error_response(502, exc)


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """503 with Retry-After while the provider breaker is open."""
    logger.warning(f"Circuit breaker open: {exc.breaker_name}")
    retry_after = int(exc.time_remaining) + 1
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error="CircuitBreakerOpen",
            message=f"Service temporarily unavailable. The {exc.breaker_name} circuit breaker is open.",
            details={"breaker_name": exc.breaker_name, "retry_after": retry_after},
        ).model_dump(),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(UserExistsError)
async def user_exists_handler(request: Request, exc: UserExistsError) -> JSONResponse:
    return _error_response(409, exc)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return _error_response(401, exc, headers={"WWW-Authenticate": "Bearer"})


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Fallback for service errors without a more specific handler."""
    logger.error(f"Unhandled service error: {exc}", exc_info=exc)
    return _error_response(500, exc)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException in the standard ErrorDetail shape."""
    error_types = {
        400: "BadRequestError",
        401: "UnauthorizedError",
        403: "ForbiddenError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        409: "ConflictError",
        422: "ValidationError",
        429: "RateLimitError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error=error_types.get(exc.status_code, "HTTPError"),
            message=str(exc.detail) if exc.detail else "An error occurred",
            details=None,
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(details=errors).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(auth_router)  # /auth/*
app.include_router(users_router)  # /users/me/*
app.include_router(transactions_router)  # /transactions
app.include_router(portfolio_router)  # /portfolio, /portfolio/snapshots
app.include_router(exchange_rates_router)  # /exchange-rates/*
app.include_router(prices_router)  # /prices
app.include_router(scheduler_router)  # /scheduler


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def root(request: Request):
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Dependency health.

    - 200 healthy: database reachable, provider circuit closed
    - 200 degraded: provider circuit open
    - 503 unhealthy: database unreachable
    """
    checks = {}
    overall_status = "healthy"

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy", "critical": True}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = {"status": "unhealthy", "critical": True, "error": str(e)}
        overall_status = "unhealthy"

    provider = get_market_data_provider()
    breaker = getattr(provider, "breaker", None)
    breaker_state = breaker.state.value if breaker is not None else None
    provider_healthy = provider.is_available()

    checks["market_data"] = {
        "status": "healthy" if provider_healthy else "unhealthy",
        "critical": False,
        "provider": provider.name,
        "circuit_breaker_state": breaker_state,
    }
    if not provider_healthy and overall_status == "healthy":
        overall_status = "degraded"

    checks["scheduler"] = {
        "enabled": settings.scheduler_enabled,
        "running": get_snapshot_scheduler().running,
    }

    response_data = {"status": overall_status, "checks": checks}

    if overall_status == "unhealthy":
        return JSONResponse(status_code=503, content=response_data)

    return response_data


@app.get("/health/live", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """Always 200 while the process is alive."""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def readiness_check(request: Request, db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "error": "Database unavailable"},
        )
