# backend/portfolio_engine/services/price_service.py
"""
Current price lookup with layered fallbacks.

Resolution order for a symbol:
    1. In-process PriceCache entry younger than its TTL (5 minutes)
    2. Latest persisted AssetPrice younger than the stored max age (1 hour)
    3. Live provider fetch, which populates the cache and appends an
       AssetPrice row

Provider failures never propagate: the symbol resolves to None and the
failure is logged (and reported per symbol for batches).

Batches fetch cache/storage misses in chunks of `batch_size` concurrent
provider calls with a pause between chunks. Worker threads only talk to the
provider; all database work stays on the calling thread.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portfolio_engine.models import AssetPrice
from portfolio_engine.services.circuit_breaker import CircuitBreakerOpen
from portfolio_engine.services.constants import PRICE_PRECISION
from portfolio_engine.services.exceptions import MarketDataError
from portfolio_engine.services.market_data.base import MarketDataProvider, PriceQuote
from portfolio_engine.services.market_data.price_cache import PriceCache
from portfolio_engine.utils.date_utils import as_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass
class PriceBatchResult:
    """
    Outcome of a multi-symbol lookup.

    Attributes:
        prices: Every requested symbol mapped to its quote, or None
        errors: Symbols whose live fetch failed, mapped to the reason
        fetched: Symbols resolved by a live provider call in this batch
    """
    prices: dict[str, PriceQuote | None] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    fetched: list[str] = field(default_factory=list)

    @property
    def found_count(self) -> int:
        return sum(1 for quote in self.prices.values() if quote is not None)

    @property
    def missing(self) -> list[str]:
        return [symbol for symbol, quote in self.prices.items() if quote is None]


class PriceService:
    """
    Resolves current prices through cache, storage and provider.

    Args:
        provider: Market data provider used for live fetches
        cache: Shared in-process price cache
        clock: Current aware datetime; injectable for tests
        stored_max_age_seconds: Maximum age of a persisted price that is
            still served without a live fetch
        batch_size: Concurrent provider fetches per chunk
        batch_pause_seconds: Pause between chunks
        sleep: Sleep function used for the pause; injectable for tests
    """

    def __init__(
            self,
            provider: MarketDataProvider,
            cache: PriceCache,
            clock: Callable[[], datetime] = utc_now,
            stored_max_age_seconds: int = 3600,
            batch_size: int = 5,
            batch_pause_seconds: float = 1.0,
            sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._provider = provider
        self._cache = cache
        self._clock = clock
        self._stored_max_age = timedelta(seconds=stored_max_age_seconds)
        self._batch_size = batch_size
        self._batch_pause = batch_pause_seconds
        self._sleep = sleep

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def current_price(self, db: Session, symbol: str) -> PriceQuote | None:
        """
        Current price of one symbol, or None when no layer can supply it.
        """
        symbol = symbol.strip().upper()

        quote = self._cached_or_stored(db, symbol)
        if quote is not None:
            return quote

        quote, _ = self._fetch_quote(symbol)
        if quote is not None:
            self._remember(db, [quote])
        return quote

    def current_prices(
            self,
            db: Session,
            symbols: list[str],
            use_stored: bool = True,
    ) -> PriceBatchResult:
        """
        Current prices for many symbols with per-symbol failure isolation.

        Args:
            db: Database session
            symbols: Ledger symbols; duplicates are collapsed
            use_stored: Consult persisted prices before fetching. Refresh
                requests pass False to go straight from cache to provider.
        """
        result = PriceBatchResult()
        misses: list[str] = []

        for symbol in dict.fromkeys(s.strip().upper() for s in symbols if s and s.strip()):
            if use_stored:
                quote = self._cached_or_stored(db, symbol)
            else:
                quote = self._cache.get(symbol)

            result.prices[symbol] = quote
            if quote is None:
                misses.append(symbol)

        if not misses:
            return result

        fetched: list[PriceQuote] = []
        chunks = [misses[i:i + self._batch_size] for i in range(0, len(misses), self._batch_size)]

        for index, chunk in enumerate(chunks):
            with ThreadPoolExecutor(max_workers=len(chunk)) as pool:
                outcomes = list(pool.map(self._fetch_quote, chunk))

            for symbol, (quote, error) in zip(chunk, outcomes):
                result.prices[symbol] = quote
                if quote is not None:
                    fetched.append(quote)
                    result.fetched.append(symbol)
                else:
                    result.errors[symbol] = error or "No price available"

            if index < len(chunks) - 1 and self._batch_pause > 0:
                self._sleep(self._batch_pause)

        if fetched:
            self._remember(db, fetched)

        logger.info(
            f"Price batch: {len(result.prices)} symbols, "
            f"{len(result.fetched)} fetched, {len(result.errors)} failed"
        )
        return result

    def latest_stored_price(self, db: Session, symbol: str) -> PriceQuote | None:
        """Most recent persisted price for a symbol, regardless of age."""
        try:
            row = db.scalars(
                select(AssetPrice)
                .where(AssetPrice.symbol == symbol)
                .order_by(AssetPrice.timestamp.desc(), AssetPrice.id.desc())
                .limit(1)
            ).first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read stored price for {symbol}: {e}")
            return None

        if row is None:
            return None

        # Prices below the stored precision round to zero
        if Decimal(row.price) <= 0:
            logger.debug(f"Ignoring stored price {row.price} for {symbol}")
            return None

        return PriceQuote(
            symbol=row.symbol,
            price=Decimal(row.price),
            currency=row.currency,
            timestamp=as_utc(row.timestamp),
            source=row.source,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _cached_or_stored(self, db: Session, symbol: str) -> PriceQuote | None:
        quote = self._cache.get(symbol)
        if quote is not None:
            return quote

        stored = self.latest_stored_price(db, symbol)
        if stored is not None and self._clock() - stored.timestamp < self._stored_max_age:
            logger.debug(f"Using stored price for {symbol} from {stored.timestamp}")
            return stored
        return None

    def _fetch_quote(self, symbol: str) -> tuple[PriceQuote | None, str | None]:
        """Live provider fetch that never raises. Safe to run in a worker thread."""
        try:
            return self._provider.get_current_price(symbol), None
        except (MarketDataError, CircuitBreakerOpen) as e:
            logger.warning(f"Price fetch failed for {symbol}: {e}")
            return None, str(e)
        except Exception as e:
            logger.exception(f"Unexpected error fetching price for {symbol}")
            return None, str(e)

    def _remember(self, db: Session, quotes: list[PriceQuote]) -> None:
        """Cache fetched quotes and append them to the price history."""
        for quote in quotes:
            self._cache.put(quote)

        try:
            db.add_all([
                AssetPrice(
                    symbol=quote.symbol,
                    price=quote.price.quantize(PRICE_PRECISION),
                    currency=quote.currency,
                    timestamp=quote.timestamp,
                    source=quote.source,
                )
                for quote in quotes
            ])
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to persist {len(quotes)} price(s): {e}")
