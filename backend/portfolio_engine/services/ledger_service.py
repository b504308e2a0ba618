# backend/portfolio_engine/services/ledger_service.py
"""
Ledger write and read path.

The ledger is append-only. append_transaction normalizes an entry before it
is stored:
- symbols are uppercased
- DEPOSIT/WITHDRAWAL use the CASH symbol with price fixed at 1
- the effective date defaults to now
- non-cash symbols must be active in the ticker directory; when the
  directory cannot be reached the entry is accepted unvalidated

Negative cash balances are allowed unless the service is configured with
the "reject" policy, in which case a WITHDRAWAL larger than the balance of
its currency raises InsufficientCashError.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_engine.models import (
    CASH_SYMBOL,
    CASH_TRANSACTION_TYPES,
    Transaction,
    TransactionType,
    User,
)
from portfolio_engine.services.currency_service import CurrencyConversionService
from portfolio_engine.services.exceptions import (
    InsufficientCashError,
    UnknownSymbolError,
    ValidationError,
)
from portfolio_engine.services.ticker_directory import TickerDirectory
from portfolio_engine.services.valuation.calculators import HoldingsCalculator
from portfolio_engine.services.valuation.types import ZERO
from portfolio_engine.utils.date_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

NEGATIVE_CASH_ALLOW = "allow"
NEGATIVE_CASH_REJECT = "reject"


class LedgerService:
    """
    Args:
        directory: Ticker directory used to validate symbols
        negative_cash_policy: "allow" or "reject"
        clock: Current aware datetime; injectable for tests
    """

    def __init__(
            self,
            directory: TickerDirectory | None = None,
            negative_cash_policy: str = NEGATIVE_CASH_ALLOW,
            clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if negative_cash_policy not in (NEGATIVE_CASH_ALLOW, NEGATIVE_CASH_REJECT):
            raise ValueError(f"Unknown negative cash policy: {negative_cash_policy}")
        self._directory = directory or TickerDirectory()
        self._policy = negative_cash_policy
        self._clock = clock

    def append_transaction(
            self,
            db: Session,
            user: User,
            symbol: str,
            transaction_type: TransactionType | str,
            quantity: Decimal,
            price: Decimal | None,
            currency: str,
            date: datetime | None = None,
    ) -> Transaction:
        """
        Validate and store a ledger entry.

        Raises:
            ValidationError: Bad type, quantity or price
            UnsupportedCurrencyError: Currency outside CAD/USD
            UnknownSymbolError: Symbol not active in the directory
            InsufficientCashError: Overdraft under the "reject" policy
        """
        try:
            kind = TransactionType(transaction_type)
        except ValueError:
            raise ValidationError(f"Unknown transaction type: {transaction_type}", field="transaction_type")

        currency = CurrencyConversionService.validate_currency(currency)
        quantity = self._positive(quantity, "quantity")

        if kind in CASH_TRANSACTION_TYPES:
            symbol = CASH_SYMBOL
            price = Decimal("1")
        else:
            symbol = (symbol or "").strip().upper()
            if not symbol:
                raise ValidationError("Symbol is required", field="symbol")
            if price is None:
                raise ValidationError("Price is required", field="price")
            price = self._positive(price, "price")
            if symbol != CASH_SYMBOL:
                self._check_symbol(db, symbol)

        if kind == TransactionType.WITHDRAWAL and self._policy == NEGATIVE_CASH_REJECT:
            self._check_cash(db, user, currency, quantity)

        txn = Transaction(
            user_id=user.id,
            symbol=symbol,
            transaction_type=kind,
            quantity=quantity,
            price=price,
            currency=currency,
            date=as_utc(date) if date is not None else self._clock(),
            created_at=self._clock(),
        )
        db.add(txn)
        db.commit()
        db.refresh(txn)

        logger.info(f"Recorded {kind.value} {quantity} {symbol} ({currency}) for user {user.id}")
        return txn

    def list_transactions(self, db: Session, user: User) -> list[Transaction]:
        """A user's ledger, newest first."""
        return list(db.scalars(
            select(Transaction)
            .where(Transaction.user_id == user.id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        ).all())

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def _check_symbol(self, db: Session, symbol: str) -> None:
        recognized = self._directory.is_recognized(db, symbol)
        if recognized is False:
            raise UnknownSymbolError(symbol)

    def _check_cash(self, db: Session, user: User, currency: str, amount: Decimal) -> None:
        ledger = db.scalars(
            select(Transaction).where(
                Transaction.user_id == user.id,
                Transaction.symbol == CASH_SYMBOL,
                Transaction.currency == currency,
            )
        ).all()
        balance = HoldingsCalculator.cash_balances(ledger).get(currency, ZERO)
        if amount > balance:
            raise InsufficientCashError(currency, balance, amount)

    @staticmethod
    def _positive(value, field: str) -> Decimal:
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number", field=field)
        if not number.is_finite() or number <= ZERO:
            raise ValidationError(f"{field} must be greater than zero", field=field)
        return number
