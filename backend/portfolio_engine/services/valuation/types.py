# backend/portfolio_engine/services/valuation/types.py
"""
Internal data types for the valuation engine.

These dataclasses are NOT Pydantic schemas; the API shapes live in
portfolio_engine/schemas/portfolio.py.

Type Hierarchy:
    HoldingPosition     - Running average-cost state for one (symbol, currency)
    HoldingsResult      - Output of the ledger fold
    HoldingValuation    - One holding priced and converted to the target currency
    PortfolioSummary    - Totals in the target currency
    PortfolioValuation  - Complete valuation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


ZERO = Decimal("0")


# =============================================================================
# HOLDINGS
# =============================================================================

@dataclass
class HoldingPosition:
    """
    Average-cost position for one (symbol, currency) key.

    Attributes:
        symbol: Ledger symbol, or CASH for synthetic cash holdings
        currency: Currency the position was bought in
        quantity: Units held
        total_cost: Remaining cost basis in `currency`
        average_cost: total_cost / quantity at the last BUY
        is_cash: True for synthetic cash holdings
    """
    symbol: str
    currency: str
    quantity: Decimal = ZERO
    total_cost: Decimal = ZERO
    average_cost: Decimal = ZERO
    is_cash: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.symbol, self.currency)

    @property
    def has_position(self) -> bool:
        return self.quantity > ZERO


@dataclass
class HoldingsResult:
    """
    Result of folding a ledger into holdings.

    Attributes:
        holdings: Open positions followed by one cash holding per currency
            with a positive balance
        cash_balances: Raw cash balance per currency, negative balances included
        warnings: Data quality notes (e.g. a SELL that exceeded the position)
    """
    holdings: list[HoldingPosition] = field(default_factory=list)
    cash_balances: dict[str, Decimal] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def positions(self) -> list[HoldingPosition]:
        """Non-cash holdings."""
        return [h for h in self.holdings if not h.is_cash]

    @property
    def symbols(self) -> list[str]:
        return list(dict.fromkeys(h.symbol for h in self.positions))


# =============================================================================
# VALUATION
# =============================================================================

@dataclass
class HoldingValuation:
    """
    A holding priced in its own currency and converted to the target currency.

    Native fields (current_price, total_cost, total_value, gain_loss) are in
    `currency`; the *_converted fields are in `target_currency`.
    """
    symbol: str
    currency: str
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    total_cost: Decimal
    total_value: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal
    is_cash: bool = False
    price_available: bool = True
    price_source: str | None = None
    price_timestamp: datetime | None = None

    target_currency: str | None = None
    fx_rate: Decimal | None = None
    fx_source: str | None = None
    total_value_converted: Decimal = ZERO
    total_cost_converted: Decimal = ZERO


@dataclass
class PortfolioSummary:
    """Totals in the target currency, computed after per-holding conversion."""
    currency: str
    total_value: Decimal = ZERO
    total_cost: Decimal = ZERO
    total_gain_loss: Decimal = ZERO
    total_gain_loss_percent: Decimal = ZERO
    holdings_count: int = 0


@dataclass
class PortfolioValuation:
    """
    Complete valuation of a ledger.

    Attributes:
        holdings: Per-holding valuations (cash included)
        summary: Totals in the target currency
        cash_balances: Raw per-currency cash balances (may be negative)
        warnings: Degradations (missing prices, fallback FX rates)
        valued_at: When the valuation was computed
    """
    holdings: list[HoldingValuation]
    summary: PortfolioSummary
    cash_balances: dict[str, Decimal] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    valued_at: datetime | None = None

    @property
    def currency(self) -> str:
        return self.summary.currency

    @property
    def total_value(self) -> Decimal:
        return self.summary.total_value

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0
