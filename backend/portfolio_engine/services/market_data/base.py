# backend/portfolio_engine/services/market_data/base.py
"""
Abstract interface for market data providers.

A provider answers two questions: the latest price of a symbol and the
latest exchange rate between two currencies. Callers depend on this
interface only; the Yahoo implementation and test doubles plug in behind it.

Retry behavior for transient failures lives here so every provider gets the
same backoff.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TypeVar, Callable, Any

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from portfolio_engine.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class PriceQuote:
    """
    A single observed price.

    Attributes:
        symbol: Ledger symbol as stored in transactions (e.g., "VDY")
        price: Price per unit in `currency`
        currency: Currency the asset trades in ("CAD" or "USD")
        timestamp: When the price was observed (UTC)
        source: Where the quote came from (provider name, "cache", "stored")
    """
    symbol: str
    price: Decimal
    currency: str
    timestamp: datetime
    source: str

    def __post_init__(self) -> None:
        if not self.symbol:
            raise ValueError("symbol is required")
        if self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price}")


class MarketDataProvider(ABC):
    """
    Abstract base class for market data providers.

    Retry Behavior:
        `_execute_with_retry` retries ProviderUnavailableError and
        RateLimitError with exponential backoff. TickerNotFoundError and any
        other exception propagate on the first attempt. Subclasses tune the
        policy through the class attributes below.
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: int = 1
    RETRY_MAX_WAIT: int = 10
    RETRY_MULTIPLIER: int = 1

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in logs, errors and AssetPrice.source."""
        pass

    @abstractmethod
    def get_current_price(self, symbol: str) -> PriceQuote:
        """
        Fetch the latest price for a ledger symbol.

        Raises:
            TickerNotFoundError: Provider has no data for the symbol
            ProviderUnavailableError: Network or API error (retryable)
            RateLimitError: Rate limit exceeded (retryable)
        """
        pass

    @abstractmethod
    def get_exchange_rate(self, from_currency: str, to_currency: str) -> Decimal:
        """
        Fetch the latest rate meaning "1 from_currency = rate to_currency".

        Raises:
            ProviderUnavailableError: Network or API error (retryable)
            RateLimitError: Rate limit exceeded (retryable)
        """
        pass

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """Run func, retrying transient provider failures with backoff."""

        @retry(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((ProviderUnavailableError, RateLimitError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()

    def is_available(self) -> bool:
        """Health hint for the provider. Subclasses may override."""
        return True
