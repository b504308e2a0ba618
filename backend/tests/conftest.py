# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

Shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- A controllable clock
- A mock market data provider
- Service fixtures wired the same way dependencies.py wires them
- Sample data factories
"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portfolio_engine.models import (
    Base,
    TickerSymbol,
    Transaction,
    TransactionType,
    User,
)
from portfolio_engine.services.currency_service import CurrencyConversionService
from portfolio_engine.services.exceptions import ProviderUnavailableError, TickerNotFoundError
from portfolio_engine.services.market_data.base import MarketDataProvider, PriceQuote
from portfolio_engine.services.market_data.price_cache import PriceCache
from portfolio_engine.services.price_service import PriceService
from portfolio_engine.services.scheduler import SnapshotScheduler
from portfolio_engine.services.snapshot_service import SnapshotService
from portfolio_engine.services.valuation import ValuationService

# Wednesday 2024-01-17, 17:30 in Toronto (after the 16:00 close)
WEDNESDAY_AFTER_CLOSE = datetime(2024, 1, 17, 22, 30, tzinfo=timezone.utc)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Iterator[Session]:
    """Create a database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# CLOCK
# =============================================================================

class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = WEDNESDAY_AFTER_CLOSE):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


# =============================================================================
# MOCK MARKET DATA PROVIDER
# =============================================================================

class MockMarketDataProvider(MarketDataProvider):
    """
    Configurable in-memory provider.

    Unknown symbols raise TickerNotFoundError; unknown currency pairs raise
    ProviderUnavailableError. Calls are counted per symbol/pair.
    """

    def __init__(self, clock=None):
        self._clock = clock or FixedClock()
        self._prices: dict[str, tuple[Decimal, str]] = {}
        self._rates: dict[tuple[str, str], Decimal] = {}
        self._errors: dict[str, Exception] = {}
        self._lock = threading.Lock()
        self.price_calls: dict[str, int] = {}
        self.rate_calls: dict[tuple[str, str], int] = {}

    @property
    def name(self) -> str:
        return "mock"

    def set_price(self, symbol: str, price: str | Decimal, currency: str = "USD") -> None:
        self._prices[symbol] = (Decimal(str(price)), currency)

    def set_rate(self, from_currency: str, to_currency: str, rate: str | Decimal) -> None:
        self._rates[(from_currency, to_currency)] = Decimal(str(rate))

    def clear_rates(self) -> None:
        self._rates.clear()

    def set_error(self, symbol: str, error: Exception) -> None:
        self._errors[symbol] = error

    def get_current_price(self, symbol: str) -> PriceQuote:
        with self._lock:
            self.price_calls[symbol] = self.price_calls.get(symbol, 0) + 1

        if symbol in self._errors:
            raise self._errors[symbol]
        if symbol not in self._prices:
            raise TickerNotFoundError(ticker=symbol, provider=self.name)

        price, currency = self._prices[symbol]
        return PriceQuote(
            symbol=symbol,
            price=price,
            currency=currency,
            timestamp=self._clock(),
            source=self.name,
        )

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> Decimal:
        key = (from_currency, to_currency)
        with self._lock:
            self.rate_calls[key] = self.rate_calls.get(key, 0) + 1

        if key not in self._rates:
            raise ProviderUnavailableError(provider=self.name, reason=f"no rate for {from_currency}/{to_currency}")
        return self._rates[key]


@pytest.fixture
def mock_provider(clock) -> MockMarketDataProvider:
    return MockMarketDataProvider(clock=clock)


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def price_cache(clock) -> PriceCache:
    return PriceCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def sleeps() -> list[float]:
    """Records batch pauses instead of sleeping."""
    return []


@pytest.fixture
def price_service(mock_provider, price_cache, clock, sleeps) -> PriceService:
    return PriceService(
        provider=mock_provider,
        cache=price_cache,
        clock=clock,
        stored_max_age_seconds=3600,
        batch_size=5,
        batch_pause_seconds=1.0,
        sleep=sleeps.append,
    )


@pytest.fixture
def currency_service(mock_provider, clock) -> CurrencyConversionService:
    return CurrencyConversionService(provider=mock_provider, clock=clock, max_age_seconds=3600)


@pytest.fixture
def valuation_service(price_service, currency_service, clock) -> ValuationService:
    return ValuationService(
        price_service=price_service,
        currency_service=currency_service,
        clock=clock,
    )


@pytest.fixture
def snapshot_service(valuation_service, clock) -> SnapshotService:
    return SnapshotService(
        valuation_service=valuation_service,
        clock=clock,
        market_timezone="America/Toronto",
        market_close_hour=16,
    )


@pytest.fixture
def snapshot_scheduler(snapshot_service, session_factory, clock) -> SnapshotScheduler:
    return SnapshotScheduler(
        snapshot_service=snapshot_service,
        session_factory=session_factory,
        clock=clock,
        market_timezone="America/Toronto",
        market_close_hour=16,
    )


# =============================================================================
# FACTORIES
# =============================================================================

def create_user(db: Session, email: str = "test@example.com", default_currency: str = "CAD") -> User:
    user = User(email=email, hashed_password="hashed", default_currency=default_currency)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_transaction(
        db: Session,
        user: User,
        symbol: str,
        transaction_type: TransactionType,
        quantity: str | Decimal,
        price: str | Decimal = "1",
        currency: str = "USD",
        date: datetime | None = None,
) -> Transaction:
    txn = Transaction(
        user_id=user.id,
        symbol=symbol,
        transaction_type=transaction_type,
        quantity=Decimal(str(quantity)),
        price=Decimal(str(price)),
        currency=currency,
        date=date or datetime(2024, 1, 2, 15, 0, tzinfo=timezone.utc),
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    return txn


def add_ticker(db: Session, symbol: str, is_active: bool = True) -> TickerSymbol:
    ticker = TickerSymbol(symbol=symbol, name=symbol, is_active=is_active)
    db.add(ticker)
    db.commit()
    return ticker


@pytest.fixture
def user(db) -> User:
    return create_user(db)


# =============================================================================
# API FIXTURES
# =============================================================================

@pytest.fixture
def client(
        session_factory,
        clock,
        price_service,
        currency_service,
        valuation_service,
        snapshot_service,
        snapshot_scheduler,
):
    """TestClient with the database and every service swapped for test instances."""
    from fastapi.testclient import TestClient

    from portfolio_engine.database import get_db
    from portfolio_engine.dependencies import (
        get_currency_service,
        get_ledger_service,
        get_price_service,
        get_snapshot_scheduler,
        get_snapshot_service,
        get_valuation_service,
    )
    from portfolio_engine.main import app
    from portfolio_engine.services.ledger_service import LedgerService

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    ledger_service = LedgerService(clock=clock)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_price_service] = lambda: price_service
    app.dependency_overrides[get_currency_service] = lambda: currency_service
    app.dependency_overrides[get_valuation_service] = lambda: valuation_service
    app.dependency_overrides[get_snapshot_service] = lambda: snapshot_service
    app.dependency_overrides[get_snapshot_scheduler] = lambda: snapshot_scheduler
    app.dependency_overrides[get_ledger_service] = lambda: ledger_service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def auth_headers_for(user: User) -> dict[str, str]:
    from portfolio_engine.services.auth import JWTHandler

    token = JWTHandler.create_access_token(user.id, user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(user) -> dict[str, str]:
    return auth_headers_for(user)
