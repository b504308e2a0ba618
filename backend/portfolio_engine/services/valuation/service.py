# backend/portfolio_engine/services/valuation/service.py
"""
Valuation engine: ledger → holdings → prices and FX → portfolio valuation.

Steps:
    1. Fold the ledger into holdings (HoldingsCalculator)
    2. Fetch current prices for every non-cash holding in one batch
    3. Value each holding in its own currency
         priced:    value = quantity × price, gain = value - cost
         unpriced:  value = cost (average cost), gain = 0, flagged + warning
         cash:      par value, gain = 0
    4. Convert each holding into the target currency
    5. Sum the converted values into the summary

Conversion happens per holding, before any summation. When a rate cannot
be resolved the configured constant rate is used and a warning is added.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_engine.models import Transaction, User
from portfolio_engine.services.constants import (
    CURRENCY_PRECISION,
    DISPLAY_PERCENTAGE_PRECISION,
    SHARE_PRECISION,
)
from portfolio_engine.services.currency_service import (
    SOURCE_FALLBACK_CONSTANT,
    CurrencyConversionService,
    FXRateResult,
)
from portfolio_engine.services.market_data.base import PriceQuote
from portfolio_engine.services.price_service import PriceService
from portfolio_engine.services.valuation.calculators import HoldingsCalculator
from portfolio_engine.services.valuation.types import (
    HoldingPosition,
    HoldingValuation,
    PortfolioSummary,
    PortfolioValuation,
    ZERO,
)
from portfolio_engine.utils.date_utils import utc_now

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def gain_loss_percent(gain_loss: Decimal, total_cost: Decimal) -> Decimal:
    """gain / cost × 100, or 0 when there is no cost basis."""
    if total_cost == ZERO:
        return ZERO
    return (gain_loss / total_cost * HUNDRED).quantize(DISPLAY_PERCENTAGE_PRECISION)


class ValuationService:
    """
    Values a user's ledger in a target currency.

    Args:
        price_service: Current price lookup
        currency_service: FX resolution
        calculator: Ledger fold (defaults to HoldingsCalculator)
        clock: Current aware datetime; injectable for tests
    """

    def __init__(
            self,
            price_service: PriceService,
            currency_service: CurrencyConversionService,
            calculator: HoldingsCalculator | None = None,
            clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._prices = price_service
        self._fx = currency_service
        self._calculator = calculator or HoldingsCalculator()
        self._clock = clock

    def get_valuation(
            self,
            db: Session,
            user: User,
            target_currency: str | None = None,
    ) -> PortfolioValuation:
        """Value a user's full ledger, in their default currency unless overridden."""
        target = target_currency or user.default_currency
        transactions = self.load_ledger(db, user.id)

        logger.debug(f"Valuing {len(transactions)} transactions for user {user.id} in {target}")
        return self.value_transactions(db, transactions, target)

    def value_transactions(
            self,
            db: Session,
            transactions: list[Transaction],
            target_currency: str,
    ) -> PortfolioValuation:
        target = self._fx.validate_currency(target_currency)

        # Step 1: fold
        holdings_result = self._calculator.calculate(transactions)
        warnings = list(holdings_result.warnings)

        # Step 2: prices for non-cash holdings
        symbols = holdings_result.symbols
        quotes: dict[str, PriceQuote | None] = {}
        if symbols:
            quotes = self._prices.current_prices(db, symbols).prices

        # Steps 3 and 4: value each holding, then convert it
        rates: dict[tuple[str, str], FXRateResult] = {}
        valuations: list[HoldingValuation] = []

        for holding in holdings_result.holdings:
            if holding.is_cash:
                valuation = self._value_cash(holding)
            else:
                valuation = self._value_position(db, holding, quotes.get(holding.symbol), rates, warnings)

            self._convert(db, valuation, target, rates, warnings)
            valuations.append(valuation)

        # Step 5: totals from converted values only
        summary = self._summarize(valuations, target)

        if warnings:
            logger.info(f"Valuation completed with {len(warnings)} warning(s)")

        return PortfolioValuation(
            holdings=valuations,
            summary=summary,
            cash_balances=holdings_result.cash_balances,
            warnings=warnings,
            valued_at=self._clock(),
        )

    @staticmethod
    def load_ledger(db: Session, user_id: int) -> list[Transaction]:
        """A user's transactions in ledger order (effective date, then insertion)."""
        return list(db.scalars(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.date.asc(), Transaction.id.asc())
        ).all())

    # =========================================================================
    # HOLDING VALUATION
    # =========================================================================

    @staticmethod
    def _value_cash(holding: HoldingPosition) -> HoldingValuation:
        amount = holding.quantity.quantize(CURRENCY_PRECISION)
        return HoldingValuation(
            symbol=holding.symbol,
            currency=holding.currency,
            quantity=holding.quantity,
            average_cost=Decimal("1"),
            current_price=Decimal("1"),
            total_cost=amount,
            total_value=amount,
            gain_loss=ZERO,
            gain_loss_percent=ZERO,
            is_cash=True,
        )

    def _value_position(
            self,
            db: Session,
            holding: HoldingPosition,
            quote: PriceQuote | None,
            rates: dict[tuple[str, str], FXRateResult],
            warnings: list[str],
    ) -> HoldingValuation:
        total_cost = holding.total_cost.quantize(CURRENCY_PRECISION)
        average_cost = holding.average_cost.quantize(SHARE_PRECISION)

        if quote is None:
            warnings.append(
                f"No current price for {holding.symbol}; valued at average cost"
            )
            return HoldingValuation(
                symbol=holding.symbol,
                currency=holding.currency,
                quantity=holding.quantity,
                average_cost=average_cost,
                current_price=average_cost,
                total_cost=total_cost,
                total_value=total_cost,
                gain_loss=ZERO,
                gain_loss_percent=ZERO,
                price_available=False,
            )

        price = quote.price
        if quote.currency != holding.currency:
            # Holding was bought in a different currency than the listing trades in
            rate = self._rate(db, quote.currency, holding.currency, rates, warnings)
            price = (price * rate.rate).quantize(SHARE_PRECISION)

        total_value = (holding.quantity * price).quantize(CURRENCY_PRECISION)
        gain_loss = total_value - total_cost

        return HoldingValuation(
            symbol=holding.symbol,
            currency=holding.currency,
            quantity=holding.quantity,
            average_cost=average_cost,
            current_price=price,
            total_cost=total_cost,
            total_value=total_value,
            gain_loss=gain_loss,
            gain_loss_percent=gain_loss_percent(gain_loss, total_cost),
            price_source=quote.source,
            price_timestamp=quote.timestamp,
        )

    # =========================================================================
    # CONVERSION AND TOTALS
    # =========================================================================

    def _convert(
            self,
            db: Session,
            valuation: HoldingValuation,
            target: str,
            rates: dict[tuple[str, str], FXRateResult],
            warnings: list[str],
    ) -> None:
        rate = self._rate(db, valuation.currency, target, rates, warnings)

        valuation.target_currency = target
        valuation.fx_rate = rate.rate
        valuation.fx_source = rate.source
        valuation.total_value_converted = (valuation.total_value * rate.rate).quantize(CURRENCY_PRECISION)
        valuation.total_cost_converted = (valuation.total_cost * rate.rate).quantize(CURRENCY_PRECISION)

    def _rate(
            self,
            db: Session,
            from_currency: str,
            to_currency: str,
            rates: dict[tuple[str, str], FXRateResult],
            warnings: list[str],
    ) -> FXRateResult:
        key = (from_currency, to_currency)
        if key not in rates:
            result = self._fx.rate_or_fallback(db, from_currency, to_currency)
            if result.source == SOURCE_FALLBACK_CONSTANT:
                warnings.append(
                    f"Exchange rate {from_currency}/{to_currency} unavailable; "
                    f"using fallback rate {result.rate}"
                )
            rates[key] = result
        return rates[key]

    @staticmethod
    def _summarize(valuations: list[HoldingValuation], currency: str) -> PortfolioSummary:
        total_value = sum((v.total_value_converted for v in valuations), ZERO)
        total_cost = sum((v.total_cost_converted for v in valuations), ZERO)
        total_gain_loss = total_value - total_cost

        return PortfolioSummary(
            currency=currency,
            total_value=total_value.quantize(CURRENCY_PRECISION),
            total_cost=total_cost.quantize(CURRENCY_PRECISION),
            total_gain_loss=total_gain_loss.quantize(CURRENCY_PRECISION),
            total_gain_loss_percent=gain_loss_percent(total_gain_loss, total_cost),
            holdings_count=len(valuations),
        )
