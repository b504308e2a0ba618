#!/usr/bin/env python3
# backend/init_db.py
"""
Database initialization script.

Creates every table and seeds the ticker directory with a starter set of
symbols so BUY/SELL entries for them validate out of the box.

This script can be run from any directory:
    python backend/init_db.py
    python backend/init_db.py --no-seed
"""
import argparse
import sys
from pathlib import Path

# Make the 'portfolio_engine' package importable
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy import select

from portfolio_engine.database import SessionLocal, engine
from portfolio_engine.models import Base, TickerSymbol

STARTER_TICKERS = [
    # symbol, name, exchange, asset_type, currency
    ("VDY", "Vanguard FTSE Canadian High Dividend Yield Index ETF", "TSX", "etf", "CAD"),
    ("HXQ", "Global X NASDAQ-100 Index Corporate Class ETF", "TSX", "etf", "CAD"),
    ("VCN", "Vanguard FTSE Canada All Cap Index ETF", "TSX", "etf", "CAD"),
    ("TDB902", "TD U.S. Index Fund - e", "TSX", "mutual_fund", "CAD"),
    ("AAPL", "Apple Inc.", "NASDAQ", "stock", "USD"),
    ("MSFT", "Microsoft Corporation", "NASDAQ", "stock", "USD"),
    ("VOO", "Vanguard S&P 500 ETF", "NYSE", "etf", "USD"),
    ("BTC", "Bitcoin", "CRYPTO", "crypto", "USD"),
]


def init_db(seed: bool = True) -> None:
    """Create all tables, then optionally seed the ticker directory."""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("Tables created successfully!")

    if not seed:
        return

    with SessionLocal() as db:
        existing = set(db.scalars(select(TickerSymbol.symbol)).all())
        added = 0
        for symbol, name, exchange, asset_type, currency in STARTER_TICKERS:
            if symbol in existing:
                continue
            db.add(TickerSymbol(
                symbol=symbol,
                name=name,
                exchange=exchange,
                asset_type=asset_type,
                currency=currency,
                is_active=True,
            ))
            added += 1
        db.commit()

    print(f"Seeded {added} ticker symbols")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create tables and seed the ticker directory")
    parser.add_argument("--no-seed", action="store_true", help="Skip ticker directory seeding")
    args = parser.parse_args()
    init_db(seed=not args.no_seed)
