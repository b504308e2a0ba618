# backend/portfolio_engine/services/ticker_directory.py
"""
Ticker directory lookups used to validate ledger symbols.

is_recognized answers three ways:
    True   the symbol is an active directory entry
    False  the symbol is missing or deactivated
    None   the directory could not be queried

Callers treat None as "unknown" and accept the entry without validation.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portfolio_engine.models import TickerSymbol

logger = logging.getLogger(__name__)


class TickerDirectory:

    def is_recognized(self, db: Session, symbol: str) -> bool | None:
        try:
            entry = db.scalar(
                select(TickerSymbol.is_active).where(TickerSymbol.symbol == symbol.upper())
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Ticker directory unavailable, skipping validation for {symbol}: {e}")
            return None

        return bool(entry)
