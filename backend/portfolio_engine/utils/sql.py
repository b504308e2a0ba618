# backend/portfolio_engine/utils/sql.py
"""
SQL utility functions.

- dialect_insert: INSERT construct that supports ON CONFLICT for the
  session's database (PostgreSQL in production, SQLite in tests)

Usage:
    from portfolio_engine.utils.sql import dialect_insert

    stmt = dialect_insert(db, PortfolioSnapshot).values(...)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "date"],
        set_={"total_value": stmt.excluded.total_value},
    )
"""

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session


def dialect_insert(db: Session, model):
    """
    Return an upsert-capable INSERT for the dialect the session is bound to.

    Raises:
        NotImplementedError: For databases without ON CONFLICT support here
    """
    dialect = db.get_bind().dialect.name

    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)

    raise NotImplementedError(f"Upsert is not supported for dialect '{dialect}'")
