# backend/portfolio_engine/services/__init__.py
"""
Service layer for business logic.

Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive database sessions as parameters (not via Depends)
- Take clocks and providers through the constructor so tests can inject them

Architecture:
    services/
    ├── exceptions.py            # Domain exceptions
    ├── constants.py             # Precision, ranges, limits, fallback rates
    ├── circuit_breaker.py       # Circuit breaker for the market data provider
    ├── market_data/             # Provider interface, Yahoo provider, price cache
    ├── price_service.py         # Cache -> stored -> provider price lookup
    ├── currency_service.py      # CAD/USD rates with stored-rate fallback
    ├── valuation/               # Ledger fold and portfolio valuation
    ├── snapshot_service.py      # Daily snapshot upsert and gap-filled series
    ├── scheduler.py             # Weekday/market-close snapshot runs
    ├── ledger_service.py        # Transaction append and listing
    ├── ticker_directory.py      # Symbol validation lookups
    ├── user_settings_service.py # Default currency preference
    └── auth/                    # Password hashing, JWT, register/login

Usage:
    from portfolio_engine.services import ValuationService, SnapshotService
"""

from portfolio_engine.services.currency_service import CurrencyConversionService
from portfolio_engine.services.ledger_service import LedgerService
from portfolio_engine.services.price_service import PriceService
from portfolio_engine.services.scheduler import SnapshotScheduler
from portfolio_engine.services.snapshot_service import SnapshotService
from portfolio_engine.services.ticker_directory import TickerDirectory
from portfolio_engine.services.user_settings_service import UserSettingsService
from portfolio_engine.services.valuation import HoldingsCalculator, ValuationService

__all__ = [
    "CurrencyConversionService",
    "HoldingsCalculator",
    "LedgerService",
    "PriceService",
    "SnapshotScheduler",
    "SnapshotService",
    "TickerDirectory",
    "UserSettingsService",
    "ValuationService",
]
