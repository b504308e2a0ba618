"""
Valuation engine.

Usage:
    from portfolio_engine.services.valuation import ValuationService, HoldingsCalculator
"""

from portfolio_engine.services.valuation.calculators import HoldingsCalculator
from portfolio_engine.services.valuation.service import ValuationService
from portfolio_engine.services.valuation.types import (
    HoldingPosition,
    HoldingsResult,
    HoldingValuation,
    PortfolioSummary,
    PortfolioValuation,
)

__all__ = [
    "HoldingsCalculator",
    "ValuationService",
    "HoldingPosition",
    "HoldingsResult",
    "HoldingValuation",
    "PortfolioSummary",
    "PortfolioValuation",
]
