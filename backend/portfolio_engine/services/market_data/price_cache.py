# backend/portfolio_engine/services/market_data/price_cache.py
"""
In-process cache of live price quotes.

One instance is shared per process (see dependencies.get_price_cache) and
injected into PriceService. Entries are keyed by ledger symbol; a lookup
only returns an entry younger than the TTL, measured from when it was
cached. Stale entries are left in place and overwritten by the next put.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from portfolio_engine.services.market_data.base import PriceQuote
from portfolio_engine.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class PriceCache:
    """
    Thread-safe TTL cache of PriceQuote by symbol. Last write wins.

    Args:
        ttl_seconds: Freshness window (default 5 minutes)
        clock: Returns the current aware datetime; injectable for tests
    """

    def __init__(
            self,
            ttl_seconds: int = 300,
            clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: dict[str, tuple[datetime, PriceQuote]] = {}
        self._lock = threading.Lock()

    def get(self, symbol: str) -> PriceQuote | None:
        with self._lock:
            entry = self._entries.get(symbol)

        if entry is None:
            return None

        cached_at, quote = entry
        if self._clock() - cached_at < self._ttl:
            logger.debug(f"Price cache hit for {symbol}")
            return quote
        return None

    def put(self, quote: PriceQuote) -> None:
        with self._lock:
            self._entries[quote.symbol] = (self._clock(), quote)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
