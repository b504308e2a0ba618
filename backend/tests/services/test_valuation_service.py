# backend/tests/services/test_valuation_service.py
"""
Integration tests for ValuationService against an in-memory database.

These tests exercise the full path: ledger rows → holdings → prices and FX
→ converted totals, with the mock provider standing in for Yahoo.
"""

from decimal import Decimal

import pytest

from portfolio_engine.models import TransactionType
from portfolio_engine.services.currency_service import SOURCE_FALLBACK_CONSTANT, SOURCE_IDENTITY
from portfolio_engine.services.exceptions import UnsupportedCurrencyError
from portfolio_engine.services.valuation.service import gain_loss_percent
from tests.conftest import add_transaction


def _holding(valuation, symbol, currency=None):
    for holding in valuation.holdings:
        if holding.symbol == symbol and (currency is None or holding.currency == currency):
            return holding
    raise AssertionError(f"No holding {symbol} {currency or ''}")


@pytest.fixture
def usd_cad(mock_provider):
    mock_provider.set_rate("USD", "CAD", "1.35")
    mock_provider.set_rate("CAD", "USD", "0.74074074")
    return mock_provider


# =============================================================================
# WORKED EXAMPLE
# =============================================================================

class TestMixedCurrencyPortfolio:
    """Deposit 1000 CAD, buy 10 X at 100 USD, X now trades at 110 USD."""

    @pytest.fixture
    def ledger(self, db, user, usd_cad):
        add_transaction(db, user, "CASH", TransactionType.DEPOSIT, "1000", "1", currency="CAD")
        add_transaction(db, user, "X", TransactionType.BUY, "10", "100", currency="USD")
        usd_cad.set_price("X", "110", currency="USD")

    def test_position_in_native_currency(self, db, user, ledger, valuation_service):
        valuation = valuation_service.get_valuation(db, user)

        x = _holding(valuation, "X")
        assert x.currency == "USD"
        assert x.quantity == Decimal("10")
        assert x.average_cost == Decimal("100")
        assert x.current_price == Decimal("110")
        assert x.total_cost == Decimal("1000")
        assert x.total_value == Decimal("1100")
        assert x.gain_loss == Decimal("100")
        assert x.gain_loss_percent == Decimal("10.00")
        assert x.price_available

    def test_cash_holding(self, db, user, ledger, valuation_service):
        valuation = valuation_service.get_valuation(db, user)

        cash = _holding(valuation, "CASH")
        assert cash.currency == "CAD"
        assert cash.quantity == Decimal("1000")
        assert cash.total_value == Decimal("1000")
        assert cash.gain_loss == Decimal("0")
        assert cash.is_cash

    def test_summary_in_default_currency(self, db, user, ledger, valuation_service):
        """1100 USD × 1.35 + 1000 CAD = 2485 CAD."""
        valuation = valuation_service.get_valuation(db, user)

        assert valuation.currency == "CAD"
        assert valuation.summary.total_value == Decimal("2485.00")
        # 1000 USD × 1.35 + 1000 CAD
        assert valuation.summary.total_cost == Decimal("2350.00")
        assert valuation.summary.total_gain_loss == Decimal("135.00")
        assert valuation.summary.holdings_count == 2
        assert valuation.warnings == []

    def test_each_holding_converted_before_summing(self, db, user, ledger, valuation_service):
        valuation = valuation_service.get_valuation(db, user)

        converted = sum(h.total_value_converted for h in valuation.holdings)
        assert converted == valuation.summary.total_value
        assert _holding(valuation, "X").total_value_converted == Decimal("1485.00")
        assert _holding(valuation, "CASH").fx_source == SOURCE_IDENTITY

    def test_target_currency_override(self, db, user, ledger, valuation_service):
        valuation = valuation_service.get_valuation(db, user, target_currency="USD")

        assert valuation.currency == "USD"
        # 1100 USD + 1000 CAD × 0.74074074
        assert valuation.summary.total_value == Decimal("1840.74")


# =============================================================================
# DEGRADATION
# =============================================================================

class TestDegradedValuation:

    def test_unpriced_holding_valued_at_cost(self, db, user, valuation_service):
        add_transaction(db, user, "GONE", TransactionType.BUY, "4", "25", currency="CAD")

        valuation = valuation_service.get_valuation(db, user)

        gone = _holding(valuation, "GONE")
        assert not gone.price_available
        assert gone.current_price == Decimal("25")
        assert gone.total_value == Decimal("100")
        assert gone.gain_loss == Decimal("0")
        assert any("GONE" in w for w in valuation.warnings)
        assert valuation.summary.total_value == Decimal("100.00")

    def test_constant_rate_used_when_fx_unavailable(self, db, user, mock_provider, valuation_service):
        mock_provider.set_price("AAPL", "200", currency="USD")
        add_transaction(db, user, "AAPL", TransactionType.BUY, "1", "200", currency="USD")

        valuation = valuation_service.get_valuation(db, user)

        aapl = _holding(valuation, "AAPL")
        assert aapl.fx_source == SOURCE_FALLBACK_CONSTANT
        assert aapl.total_value_converted == Decimal("274.00")
        assert any("fallback" in w for w in valuation.warnings)

    def test_quote_currency_differs_from_holding_currency(self, db, user, usd_cad, valuation_service):
        """A USD listing bought in CAD is repriced into CAD before valuing."""
        usd_cad.set_price("AAPL", "100", currency="USD")
        add_transaction(db, user, "AAPL", TransactionType.BUY, "2", "130", currency="CAD")

        valuation = valuation_service.get_valuation(db, user)

        aapl = _holding(valuation, "AAPL")
        assert aapl.current_price == Decimal("135")
        assert aapl.total_value == Decimal("270.00")
        assert aapl.gain_loss == Decimal("10.00")

    def test_oversell_warning_propagated(self, db, user, valuation_service):
        add_transaction(db, user, "AAPL", TransactionType.SELL, "1", "100", currency="USD")

        valuation = valuation_service.get_valuation(db, user)

        assert valuation.holdings == []
        assert len(valuation.warnings) == 1

    def test_negative_cash_not_counted_as_holding(self, db, user, valuation_service):
        add_transaction(db, user, "CASH", TransactionType.WITHDRAWAL, "50", currency="CAD")

        valuation = valuation_service.get_valuation(db, user)

        assert valuation.holdings == []
        assert valuation.cash_balances == {"CAD": Decimal("-50")}
        assert valuation.summary.total_value == Decimal("0.00")


# =============================================================================
# MISC
# =============================================================================

class TestValuationMisc:

    def test_empty_ledger(self, db, user, valuation_service, clock):
        valuation = valuation_service.get_valuation(db, user)

        assert valuation.holdings == []
        assert valuation.summary.total_value == Decimal("0")
        assert valuation.valued_at == clock()

    def test_unsupported_target_currency(self, db, user, valuation_service):
        with pytest.raises(UnsupportedCurrencyError):
            valuation_service.get_valuation(db, user, target_currency="EUR")

    def test_prices_fetched_once_per_symbol(self, db, user, mock_provider, valuation_service):
        mock_provider.set_price("AAPL", "200", currency="USD")
        mock_provider.set_rate("USD", "CAD", "1.35")
        add_transaction(db, user, "AAPL", TransactionType.BUY, "1", "150", currency="USD")
        add_transaction(db, user, "AAPL", TransactionType.BUY, "1", "250", currency="USD")

        valuation_service.get_valuation(db, user)
        valuation_service.get_valuation(db, user)

        assert mock_provider.price_calls["AAPL"] == 1

    def test_micro_priced_holding_survives_cache_expiry(self, db, user, mock_provider, valuation_service, clock):
        mock_provider.set_price("SHIB", "0.00002", currency="CAD")
        add_transaction(db, user, "SHIB", TransactionType.BUY, "1000000", "0.00002", currency="CAD")
        valuation_service.get_valuation(db, user)

        clock.advance(minutes=6)
        valuation = valuation_service.get_valuation(db, user)

        shib = _holding(valuation, "SHIB")
        assert shib.price_available
        assert shib.total_value == Decimal("20")

    @pytest.mark.parametrize("gain,cost,expected", [
        ("100", "1000", "10.00"),
        ("-25", "200", "-12.50"),
        ("5", "0", "0"),
        ("1", "3", "33.33"),
    ])
    def test_gain_loss_percent(self, gain, cost, expected):
        assert gain_loss_percent(Decimal(gain), Decimal(cost)) == Decimal(expected)
