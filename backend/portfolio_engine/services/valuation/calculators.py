# backend/portfolio_engine/services/valuation/calculators.py
"""
Ledger fold: transactions in, average-cost holdings and cash balances out.

Rules, applied in ascending date order (ties keep ledger order):
    BUY         total_cost += q × price; quantity += q; avg = total_cost / quantity
    SELL        total_cost -= q × avg; quantity -= q; avg unchanged.
                A quantity at or below zero resets quantity, cost and avg to 0.
    DEPOSIT     cash[currency] += q × price
    WITHDRAWAL  cash[currency] -= q × price (may go negative)

Cash balances above zero become synthetic CASH holdings (avg = price = 1,
cost = balance). Holdings with no remaining quantity are dropped.

Realized gains are not computed: a sale removes cost at the average cost
and the proceeds are not tracked.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Protocol

from portfolio_engine.models import CASH_SYMBOL, TransactionType
from portfolio_engine.services.valuation.types import (
    HoldingPosition,
    HoldingsResult,
    ZERO,
)
from portfolio_engine.utils.date_utils import as_utc

logger = logging.getLogger(__name__)

# Sort position for entries without an effective date
_UNDATED = datetime.min.replace(tzinfo=timezone.utc)


class LedgerEntry(Protocol):
    """Anything shaped like a Transaction row."""
    symbol: str
    transaction_type: TransactionType | str
    quantity: Decimal
    price: Decimal
    currency: str


class HoldingsCalculator:
    """
    Stateless average-cost calculator.

    Usage:
        result = HoldingsCalculator().calculate(transactions)
        for holding in result.holdings:
            ...
    """

    def calculate(self, transactions: Iterable[LedgerEntry]) -> HoldingsResult:
        ordered = sorted(transactions, key=self._sort_key)

        positions: dict[tuple[str, str], HoldingPosition] = {}
        cash: dict[str, Decimal] = {}
        warnings: list[str] = []

        for txn in ordered:
            kind = TransactionType(txn.transaction_type)
            quantity = Decimal(txn.quantity)
            price = Decimal(txn.price)
            currency = txn.currency

            if kind == TransactionType.DEPOSIT:
                cash[currency] = cash.get(currency, ZERO) + quantity * price
            elif kind == TransactionType.WITHDRAWAL:
                cash[currency] = cash.get(currency, ZERO) - quantity * price
            else:
                key = (txn.symbol, currency)
                position = positions.get(key)
                if position is None:
                    position = positions[key] = HoldingPosition(symbol=txn.symbol, currency=currency)

                if kind == TransactionType.BUY:
                    self._apply_buy(position, quantity, price)
                else:
                    warning = self._apply_sell(position, quantity)
                    if warning:
                        warnings.append(warning)

        holdings = [p for p in positions.values() if p.has_position]
        holdings.extend(self.cash_holdings(cash))

        return HoldingsResult(holdings=holdings, cash_balances=cash, warnings=warnings)

    @staticmethod
    def cash_balances(transactions: Iterable[LedgerEntry]) -> dict[str, Decimal]:
        """Per-currency cash balance of a ledger without the full fold."""
        balances: dict[str, Decimal] = {}
        for txn in transactions:
            kind = TransactionType(txn.transaction_type)
            if kind == TransactionType.DEPOSIT:
                balances[txn.currency] = balances.get(txn.currency, ZERO) + Decimal(txn.quantity) * Decimal(txn.price)
            elif kind == TransactionType.WITHDRAWAL:
                balances[txn.currency] = balances.get(txn.currency, ZERO) - Decimal(txn.quantity) * Decimal(txn.price)
        return balances

    @staticmethod
    def cash_holdings(balances: dict[str, Decimal]) -> list[HoldingPosition]:
        return [
            HoldingPosition(
                symbol=CASH_SYMBOL,
                currency=currency,
                quantity=balance,
                total_cost=balance,
                average_cost=Decimal("1"),
                is_cash=True,
            )
            for currency, balance in balances.items()
            if balance > ZERO
        ]

    @staticmethod
    def _apply_buy(position: HoldingPosition, quantity: Decimal, price: Decimal) -> None:
        position.total_cost += quantity * price
        position.quantity += quantity
        position.average_cost = position.total_cost / position.quantity

    @staticmethod
    def _apply_sell(position: HoldingPosition, quantity: Decimal) -> str | None:
        held = position.quantity
        position.total_cost -= quantity * position.average_cost
        position.quantity -= quantity

        if position.quantity <= ZERO:
            position.quantity = ZERO
            position.total_cost = ZERO
            position.average_cost = ZERO
            if quantity > held:
                logger.warning(
                    f"SELL of {quantity} {position.symbol} exceeds held {held}; position floored at zero"
                )
                return (
                    f"Sold {quantity} {position.symbol} ({position.currency}) "
                    f"but only {held} was held; position reset to zero"
                )
        return None

    @staticmethod
    def _sort_key(txn: LedgerEntry) -> datetime:
        # sorted() is stable, so same-date entries keep ledger order
        value = getattr(txn, "date", None)
        return as_utc(value) if value is not None else _UNDATED
