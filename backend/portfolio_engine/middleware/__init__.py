# backend/portfolio_engine/middleware/__init__.py
"""
ASGI middleware: correlation IDs and rate limiting.

Usage:
    from portfolio_engine.middleware import CorrelationIdMiddleware, limiter

    app.add_middleware(CorrelationIdMiddleware)
    app.state.limiter = limiter
"""

from portfolio_engine.middleware.correlation import CorrelationIdMiddleware
from portfolio_engine.middleware.rate_limit import (
    RATE_LIMIT_AUTH_LOGIN,
    RATE_LIMIT_AUTH_REGISTER,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_REFRESH,
    RATE_LIMIT_WRITE,
    SlowAPIMiddleware,
    limiter,
    rate_limit_exceeded_handler,
)

__all__ = [
    "CorrelationIdMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_WRITE",
    "RATE_LIMIT_REFRESH",
    "RATE_LIMIT_HEALTH",
    "RATE_LIMIT_AUTH_LOGIN",
    "RATE_LIMIT_AUTH_REGISTER",
]
