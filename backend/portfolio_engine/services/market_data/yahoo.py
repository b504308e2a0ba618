# backend/portfolio_engine/services/market_data/yahoo.py
"""
Yahoo Finance market data provider implementation.

Implements MarketDataProvider with the yfinance library:
- ledger symbols are mapped to Yahoo symbols (TSX listings get ".TO",
  BTC becomes "BTC-USD")
- the trading currency is inferred from the Yahoo symbol
- FX rates are read from Yahoo's "{FROM}{TO}=X" pairs
- every fetch runs through the base class retry and a circuit breaker

Limitations:
- Rate limits exist but are undocumented
- Quotes may be delayed 15-20 minutes
"""

import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

import yfinance as yf

from portfolio_engine.services.circuit_breaker import CircuitBreaker, CircuitState
from portfolio_engine.services.constants import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
    EXTERNAL_API_TIMEOUT_SECONDS,
    SHARE_PRECISION,
)
from portfolio_engine.services.exceptions import (
    ProviderUnavailableError,
    TickerNotFoundError,
    RateLimitError,
)
from portfolio_engine.services.market_data.base import MarketDataProvider, PriceQuote
from portfolio_engine.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class YahooFinanceProvider(MarketDataProvider):
    """
    Yahoo Finance implementation of MarketDataProvider.

    Example:
        provider = YahooFinanceProvider(timeout=15)
        quote = provider.get_current_price("VDY")   # fetched as VDY.TO, CAD
        rate = provider.get_exchange_rate("USD", "CAD")
    """

    # Ledger symbols listed on the TSX that are entered without a suffix
    TSX_SYMBOLS: frozenset[str] = frozenset({"VDY", "HXQ", "TDB902", "VCN"})

    # Yahoo suffixes that denote a Canadian listing priced in CAD
    CAD_SUFFIXES: tuple[str, ...] = (".TO", ".TRT")

    # Ledger symbols that Yahoo lists under a different name
    SYMBOL_ALIASES: dict[str, str] = {
        "BTC": "BTC-USD",
    }

    def __init__(
            self,
            timeout: int = EXTERNAL_API_TIMEOUT_SECONDS,
            breaker: CircuitBreaker | None = None,
            clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.timeout = timeout
        self._clock = clock
        self._breaker = breaker or CircuitBreaker(
            name="yahoo-finance",
            failure_threshold=CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            half_open_max_calls=CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
            excluded_exceptions=(TickerNotFoundError,),
        )

    @property
    def name(self) -> str:
        return "yahoo"

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def get_current_price(self, symbol: str) -> PriceQuote:
        return self._execute_with_retry(self._fetch_current_price, symbol)

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> Decimal:
        return self._execute_with_retry(self._fetch_exchange_rate, from_currency, to_currency)

    def is_available(self) -> bool:
        return self._breaker.state != CircuitState.OPEN

    # =========================================================================
    # FETCHING
    # =========================================================================

    def _fetch_current_price(self, symbol: str) -> PriceQuote:
        symbol = symbol.strip().upper()
        yahoo_symbol = self.build_yahoo_symbol(symbol)

        with self._breaker:
            price = self._latest_close(yahoo_symbol, ticker=symbol)

        logger.debug(f"Fetched {yahoo_symbol}: {price}")

        return PriceQuote(
            symbol=symbol,
            price=price,
            currency=self.currency_for(yahoo_symbol),
            timestamp=self._clock(),
            source=self.name,
        )

    def _fetch_exchange_rate(self, from_currency: str, to_currency: str) -> Decimal:
        yahoo_symbol = f"{from_currency.upper()}{to_currency.upper()}=X"

        with self._breaker:
            rate = self._latest_close(yahoo_symbol, ticker=yahoo_symbol)

        logger.debug(f"Fetched FX {yahoo_symbol}: {rate}")
        return rate

    def _latest_close(self, yahoo_symbol: str, ticker: str) -> Decimal:
        """
        Most recent non-NaN daily close for a Yahoo symbol.

        A short multi-day window is requested so weekends and holidays still
        yield the last traded close.
        """
        try:
            df = yf.Ticker(yahoo_symbol).history(
                period="5d",
                interval="1d",
                auto_adjust=False,
                timeout=self.timeout,
            )
        except Exception as e:
            raise self._map_error(e, ticker) from e

        if df is None or df.empty or "Close" not in df:
            raise TickerNotFoundError(ticker=ticker, provider=self.name)

        for value in reversed(df["Close"].tolist()):
            price = self._to_decimal(value)
            if price is not None and price > 0:
                return price

        raise TickerNotFoundError(ticker=ticker, provider=self.name)

    def _map_error(self, error: Exception, ticker: str) -> Exception:
        error_str = str(error).lower()

        if "not found" in error_str or "no data" in error_str or "delisted" in error_str:
            return TickerNotFoundError(ticker=ticker, provider=self.name)
        if "rate limit" in error_str or "too many requests" in error_str:
            return RateLimitError(provider=self.name)

        logger.warning(f"Yahoo request for {ticker} failed: {error}")
        return ProviderUnavailableError(provider=self.name, reason=str(error))

    # =========================================================================
    # HELPERS
    # =========================================================================

    @classmethod
    def build_yahoo_symbol(cls, symbol: str) -> str:
        """
        Map a ledger symbol to the symbol Yahoo lists it under.

        Symbols that already carry an exchange suffix pass through unchanged.
        """
        symbol = symbol.strip().upper()

        if symbol in cls.SYMBOL_ALIASES:
            return cls.SYMBOL_ALIASES[symbol]
        if "." in symbol:
            return symbol
        if symbol in cls.TSX_SYMBOLS:
            return f"{symbol}.TO"
        return symbol

    @classmethod
    def currency_for(cls, yahoo_symbol: str) -> str:
        """Canadian listings trade in CAD; everything else is priced in USD."""
        if yahoo_symbol.upper().endswith(cls.CAD_SUFFIXES):
            return "CAD"
        return "USD"

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        """Convert a value to Decimal, returning None for NaN/None."""
        if value is None:
            return None
        try:
            if math.isnan(float(value)):
                return None
            return Decimal(str(value)).quantize(SHARE_PRECISION)
        except (TypeError, ValueError):
            return None
