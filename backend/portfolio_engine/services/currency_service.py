# backend/portfolio_engine/services/currency_service.py
"""
Currency conversion between the supported settlement currencies.

=============================================================================
RATE CONVENTION
=============================================================================

    rate(from, to) = "1 from_currency = rate to_currency"

    to_amount = from_amount × rate

=============================================================================
RESOLUTION ORDER
=============================================================================

    1. from == to                                   → 1 (identity)
    2. stored rate younger than max age (1 hour)    → stored
    3. provider fetch, appended as a new row        → provider
    4. provider failed: latest stored rate of any
       age, or the inverse of the reverse pair      → fallback
    5. nothing stored at all                        → RateUnavailableError

Currencies outside the Currency enum raise UnsupportedCurrencyError.

The valuation engine additionally uses `rate_or_fallback`, which degrades
to configured constant rates instead of failing.

Usage:
    service = CurrencyConversionService(provider)
    cad = service.convert(db, Decimal("100"), "USD", "CAD")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from itertools import permutations
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from portfolio_engine.models import Currency, ExchangeRate
from portfolio_engine.services.circuit_breaker import CircuitBreakerOpen
from portfolio_engine.services.constants import FALLBACK_FX_RATES, SHARE_PRECISION
from portfolio_engine.services.exceptions import (
    FXConversionError,
    FXProviderError,
    FXRateError,
    MarketDataError,
    RateUnavailableError,
    UnsupportedCurrencyError,
)
from portfolio_engine.services.market_data.base import MarketDataProvider
from portfolio_engine.utils.date_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

# Every directed pair of distinct supported currencies
CURRENCY_PAIRS: tuple[tuple[Currency, Currency], ...] = tuple(permutations(Currency, 2))

SOURCE_IDENTITY = "identity"
SOURCE_STORED = "stored"
SOURCE_PROVIDER = "provider"
SOURCE_FALLBACK_STORED = "fallback_stored"
SOURCE_FALLBACK_CONSTANT = "fallback_constant"


@dataclass
class FXRateResult:
    """
    Result of a rate lookup.

    Attributes:
        from_currency: Source currency code
        to_currency: Target currency code
        rate: 1 from_currency = rate to_currency
        source: How the rate was resolved (identity, stored, provider,
            fallback_stored, fallback_constant)
        timestamp: When the rate was observed (None for identity/constant)
    """
    from_currency: str
    to_currency: str
    rate: Decimal
    source: str
    timestamp: datetime | None = None

    @property
    def is_fallback(self) -> bool:
        return self.source in (SOURCE_FALLBACK_STORED, SOURCE_FALLBACK_CONSTANT)


@dataclass
class FXRefreshResult:
    """Outcome of refreshing every supported pair from the provider."""
    updated: list[FXRateResult] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    timestamp: datetime | None = None

    @property
    def updated_count(self) -> int:
        return len(self.updated)


class CurrencyConversionService:
    """
    Resolves exchange rates with stored-rate caching and fallback.

    Args:
        provider: Market data provider used for live rates
        clock: Current aware datetime; injectable for tests
        max_age_seconds: Freshness window for stored rates
        fallback_rates: Constant rates used by rate_or_fallback
    """

    def __init__(
            self,
            provider: MarketDataProvider,
            clock: Callable[[], datetime] = utc_now,
            max_age_seconds: int = 3600,
            fallback_rates: dict[tuple[str, str], Decimal] | None = None,
    ) -> None:
        self._provider = provider
        self._clock = clock
        self._max_age = timedelta(seconds=max_age_seconds)
        self._fallback_rates = dict(FALLBACK_FX_RATES if fallback_rates is None else fallback_rates)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    @staticmethod
    def validate_currency(currency: str) -> str:
        """Normalize a currency code, raising for anything unsupported."""
        code = (currency or "").strip().upper()
        if code not in {c.value for c in Currency}:
            raise UnsupportedCurrencyError(currency)
        return code

    # =========================================================================
    # RATE LOOKUP
    # =========================================================================

    def get_rate(self, db: Session, from_currency: str, to_currency: str) -> FXRateResult:
        """
        Resolve the rate for a pair.

        Raises:
            UnsupportedCurrencyError: Either currency is unsupported
            RateUnavailableError: Provider failed and nothing is stored
        """
        from_code = self.validate_currency(from_currency)
        to_code = self.validate_currency(to_currency)

        if from_code == to_code:
            return FXRateResult(from_code, to_code, Decimal("1"), SOURCE_IDENTITY)

        now = as_utc(self._clock())

        fresh = self._latest_stored(db, from_code, to_code, newer_than=now - self._max_age)
        if fresh is not None:
            return FXRateResult(from_code, to_code, Decimal(fresh.rate), SOURCE_STORED, as_utc(fresh.timestamp))

        try:
            rate = self._fetch_rate(from_code, to_code)
        except (MarketDataError, FXProviderError, CircuitBreakerOpen) as e:
            logger.warning(f"FX fetch failed for {from_code}/{to_code}: {e}")
            fallback = self._stored_fallback(db, from_code, to_code)
            if fallback is None:
                raise RateUnavailableError(from_code, to_code) from e
            return fallback

        try:
            self._append_rate(db, from_code, to_code, rate, now)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store FX rate {from_code}/{to_code}: {e}")

        return FXRateResult(from_code, to_code, rate, SOURCE_PROVIDER, now)

    def rate(self, db: Session, from_currency: str, to_currency: str) -> Decimal:
        return self.get_rate(db, from_currency, to_currency).rate

    def convert(self, db: Session, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        """Convert an amount; identity when both currencies are the same."""
        result = self.get_rate(db, from_currency, to_currency)
        if result.source == SOURCE_IDENTITY:
            return amount
        return self.apply_rate(amount, result)

    def rate_or_fallback(self, db: Session, from_currency: str, to_currency: str) -> FXRateResult:
        """
        Like get_rate, but degrades to the configured constant rate when the
        pair cannot be resolved. Unsupported currencies still raise.
        """
        from_code = self.validate_currency(from_currency)
        to_code = self.validate_currency(to_currency)

        try:
            return self.get_rate(db, from_code, to_code)
        except FXRateError as e:
            reason = str(e)
        except SQLAlchemyError as e:
            db.rollback()
            reason = f"database error: {e}"

        constant = self._fallback_rates.get((from_code, to_code))
        if constant is None:
            raise RateUnavailableError(from_code, to_code)

        logger.warning(
            f"Using constant fallback rate {constant} for {from_code}/{to_code} ({reason})"
        )
        return FXRateResult(from_code, to_code, constant, SOURCE_FALLBACK_CONSTANT)

    def all_rates(self, db: Session, base_currency: str = Currency.CAD.value) -> dict[str, Decimal]:
        """Rate from `base_currency` to every supported currency (base maps to 1)."""
        base = self.validate_currency(base_currency)
        return {currency.value: self.rate(db, base, currency.value) for currency in Currency}

    def refresh_rates(self, db: Session) -> FXRefreshResult:
        """
        Fetch and append a new rate for every supported pair.

        Pairs are isolated: a failure is recorded and the next pair proceeds.
        """
        now = as_utc(self._clock())
        result = FXRefreshResult(timestamp=now)

        for from_currency, to_currency in CURRENCY_PAIRS:
            pair = f"{from_currency.value}/{to_currency.value}"
            try:
                rate = self._fetch_rate(from_currency.value, to_currency.value)
                self._append_rate(db, from_currency.value, to_currency.value, rate, now)
            except (MarketDataError, FXProviderError, CircuitBreakerOpen, SQLAlchemyError) as e:
                logger.warning(f"FX refresh failed for {pair}: {e}")
                result.errors[pair] = str(e)
                continue

            result.updated.append(
                FXRateResult(from_currency.value, to_currency.value, rate, SOURCE_PROVIDER, now)
            )

        logger.info(
            f"FX refresh complete: {result.updated_count} updated, {len(result.errors)} failed"
        )
        return result

    # =========================================================================
    # CONVERSION HELPERS
    # =========================================================================

    @staticmethod
    def apply_rate(amount: Decimal, rate_result: FXRateResult) -> Decimal:
        """Multiply an amount by a resolved rate."""
        if rate_result.rate <= 0:
            raise FXConversionError(
                f"Invalid FX rate {rate_result.rate}",
                from_currency=rate_result.from_currency,
                to_currency=rate_result.to_currency,
            )

        converted = (amount * rate_result.rate).quantize(SHARE_PRECISION)
        if not converted.is_finite():
            raise FXConversionError(
                f"Conversion of {amount} produced a non-finite result",
                from_currency=rate_result.from_currency,
                to_currency=rate_result.to_currency,
            )
        return converted

    @staticmethod
    def invert_rate(rate: Decimal) -> Decimal:
        """If 1 USD = 1.37 CAD, the inverse is 1 CAD = 0.72992701 USD."""
        if rate == 0:
            raise FXConversionError("Cannot invert zero rate")
        return (Decimal("1") / rate).quantize(SHARE_PRECISION)

    # =========================================================================
    # PROVIDER AND STORAGE
    # =========================================================================

    def _fetch_rate(self, from_currency: str, to_currency: str) -> Decimal:
        rate = self._provider.get_exchange_rate(from_currency, to_currency)
        if rate is None or not rate.is_finite() or rate <= 0:
            raise FXProviderError(self._provider.name, f"invalid rate {rate} for {from_currency}/{to_currency}")
        return rate.quantize(SHARE_PRECISION)

    def _append_rate(
            self,
            db: Session,
            from_currency: str,
            to_currency: str,
            rate: Decimal,
            observed_at: datetime,
    ) -> None:
        try:
            db.add(ExchangeRate(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=rate,
                timestamp=observed_at,
                provider=self._provider.name,
            ))
            db.commit()
        except IntegrityError:
            # Same pair already recorded at this instant
            db.rollback()
            logger.debug(f"FX rate {from_currency}/{to_currency} at {observed_at} already stored")
        except SQLAlchemyError:
            db.rollback()
            raise

    def _latest_stored(
            self,
            db: Session,
            from_currency: str,
            to_currency: str,
            newer_than: datetime | None = None,
    ) -> ExchangeRate | None:
        stmt = select(ExchangeRate).where(
            ExchangeRate.from_currency == from_currency,
            ExchangeRate.to_currency == to_currency,
        )
        if newer_than is not None:
            stmt = stmt.where(ExchangeRate.timestamp >= newer_than)

        stmt = stmt.order_by(ExchangeRate.timestamp.desc(), ExchangeRate.id.desc()).limit(1)
        return db.scalars(stmt).first()

    def _stored_fallback(self, db: Session, from_currency: str, to_currency: str) -> FXRateResult | None:
        direct = self._latest_stored(db, from_currency, to_currency)
        if direct is not None:
            logger.info(f"Using stale stored rate for {from_currency}/{to_currency} from {direct.timestamp}")
            return FXRateResult(
                from_currency, to_currency, Decimal(direct.rate), SOURCE_FALLBACK_STORED, as_utc(direct.timestamp)
            )

        reverse = self._latest_stored(db, to_currency, from_currency)
        if reverse is not None and reverse.rate:
            logger.info(f"Using inverted stored rate {to_currency}/{from_currency} from {reverse.timestamp}")
            return FXRateResult(
                from_currency,
                to_currency,
                self.invert_rate(Decimal(reverse.rate)),
                SOURCE_FALLBACK_STORED,
                as_utc(reverse.timestamp),
            )

        return None
