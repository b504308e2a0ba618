"""
Market data package: provider interface, Yahoo implementation and the
in-process price cache.

Usage:
    from portfolio_engine.services.market_data import (
        MarketDataProvider,
        PriceQuote,
        PriceCache,
        YahooFinanceProvider,
    )
"""

from portfolio_engine.services.market_data.base import MarketDataProvider, PriceQuote
from portfolio_engine.services.market_data.price_cache import PriceCache
from portfolio_engine.services.market_data.yahoo import YahooFinanceProvider

__all__ = [
    "MarketDataProvider",
    "PriceQuote",
    "PriceCache",
    "YahooFinanceProvider",
]
