# backend/portfolio_engine/utils/context.py
"""
Request-scoped correlation ID.

Stored in a ContextVar so it follows the request through sync handlers
run in the threadpool as well as async code.

Usage:
    from portfolio_engine.utils.context import get_correlation_id, set_correlation_id

    set_correlation_id("abc-123")
    get_correlation_id()  # "abc-123"
"""

from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """Called by middleware at the start of each request."""
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)
