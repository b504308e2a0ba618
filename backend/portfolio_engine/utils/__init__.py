# backend/portfolio_engine/utils/__init__.py
"""
Cross-cutting utilities:
- logging: setup with correlation ID support
- context: request-scoped correlation ID
- date_utils: UTC/market-timezone helpers
- sql: dialect-aware upsert construct

Usage:
    from portfolio_engine.utils import setup_logging, get_logger
    from portfolio_engine.utils.date_utils import utc_now
"""

from portfolio_engine.utils.context import (
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from portfolio_engine.utils.logging import get_logger, setup_logging

__all__ = [
    "setup_logging",
    "get_logger",
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
]
