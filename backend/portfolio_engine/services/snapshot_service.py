# backend/portfolio_engine/services/snapshot_service.py
"""
Daily portfolio snapshots: idempotent write, gap-filled read.

Write:
    record_snapshot values the user's portfolio in their default currency and
    upserts one row for (user, today), with valued_at at the market close
    hour. A second write on the same day overwrites the value.

Read:
    get_series returns one point per calendar day in [today - N, today]:
    - past days use the stored snapshot value, or 0 when none exists
    - today is always the live valuation, never the stored row
    Stored points keep the currency they were recorded in.

"Today" is the calendar date in the market timezone.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portfolio_engine.models import PortfolioSnapshot, User
from portfolio_engine.services.constants import (
    CURRENCY_PRECISION,
    DEFAULT_SNAPSHOT_RANGE,
    SNAPSHOT_RANGES,
)
from portfolio_engine.services.exceptions import InvalidRangeError
from portfolio_engine.services.valuation.service import ValuationService
from portfolio_engine.utils.date_utils import (
    as_utc,
    date_window,
    local_today,
    market_close_datetime,
    utc_now,
)
from portfolio_engine.utils.sql import dialect_insert

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class SnapshotPoint:
    date: date
    value: Decimal
    currency: str
    is_live: bool = False
    is_stored: bool = False


@dataclass
class SnapshotSeries:
    """
    Chart-ready snapshot history.

    Attributes:
        points: Exactly days_in_range + 1 contiguous daily points, oldest first
        range: The range key requested
        days_in_range: Days looked back from today
        total_stored_snapshots: Stored rows for the days before today in the window
        live_value_for_today: The live valuation used for today's point
        currency: Display currency of the live point
        warnings: Degradations reported by the live valuation
    """
    points: list[SnapshotPoint]
    range: str
    days_in_range: int
    total_stored_snapshots: int
    live_value_for_today: Decimal
    currency: str
    warnings: list[str] = field(default_factory=list)


@dataclass
class SnapshotRecord:
    user_id: int
    date: date
    valued_at: datetime
    total_value: Decimal
    currency: str
    warnings: list[str] = field(default_factory=list)


class SnapshotService:
    """
    Args:
        valuation_service: Produces the live valuation
        clock: Current aware datetime; injectable for tests
        market_timezone: IANA zone that defines "today" and the close time
        market_close_hour: Hour of the canonical daily valuation
    """

    def __init__(
            self,
            valuation_service: ValuationService,
            clock: Callable[[], datetime] = utc_now,
            market_timezone: str = "America/Toronto",
            market_close_hour: int = 16,
    ) -> None:
        self._valuation = valuation_service
        self._clock = clock
        self._tz = market_timezone
        self._close_hour = market_close_hour

    def today(self) -> date:
        return local_today(self._clock(), self._tz)

    @staticmethod
    def resolve_range(range_key: str) -> int:
        """Days covered by a range key."""
        days = SNAPSHOT_RANGES.get((range_key or "").strip().lower())
        if days is None:
            raise InvalidRangeError(range_key, list(SNAPSHOT_RANGES))
        return days

    # =========================================================================
    # WRITE
    # =========================================================================

    def record_snapshot(self, db: Session, user: User) -> SnapshotRecord:
        """
        Upsert today's snapshot for a user.

        Raises:
            SQLAlchemyError: If the upsert fails (the session is rolled back)
        """
        valuation = self._valuation.get_valuation(db, user)
        today = self.today()
        valued_at = as_utc(market_close_datetime(today, self._close_hour, self._tz))
        now = as_utc(self._clock())
        total_value = valuation.summary.total_value.quantize(CURRENCY_PRECISION)

        stmt = dialect_insert(db, PortfolioSnapshot).values(
            user_id=user.id,
            date=today,
            valued_at=valued_at,
            total_value=total_value,
            currency=valuation.currency,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "date"],
            set_={
                "total_value": stmt.excluded.total_value,
                "currency": stmt.excluded.currency,
                "valued_at": stmt.excluded.valued_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )

        try:
            db.execute(stmt)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Failed to record snapshot for user {user.id}")
            raise

        logger.info(
            f"Snapshot recorded for user {user.id} on {today}: "
            f"{valuation.currency} {total_value}"
        )

        return SnapshotRecord(
            user_id=user.id,
            date=today,
            valued_at=valued_at,
            total_value=total_value,
            currency=valuation.currency,
            warnings=valuation.warnings,
        )

    # =========================================================================
    # READ
    # =========================================================================

    def get_series(
            self,
            db: Session,
            user: User,
            range_key: str = DEFAULT_SNAPSHOT_RANGE,
    ) -> SnapshotSeries:
        """
        Gap-filled daily series ending with today's live value.

        Raises:
            InvalidRangeError: Unknown range key
        """
        days = self.resolve_range(range_key)
        today = self.today()
        window = date_window(today, days)

        stored = db.scalars(
            select(PortfolioSnapshot)
            .where(
                PortfolioSnapshot.user_id == user.id,
                PortfolioSnapshot.date >= window[0],
                PortfolioSnapshot.date < today,
            )
        ).all()
        by_date = {snapshot.date: snapshot for snapshot in stored}

        valuation = self._valuation.get_valuation(db, user)
        live_value = valuation.summary.total_value

        points: list[SnapshotPoint] = []
        for day in window[:-1]:
            snapshot = by_date.get(day)
            if snapshot is not None:
                points.append(SnapshotPoint(
                    date=day,
                    value=Decimal(snapshot.total_value),
                    currency=snapshot.currency,
                    is_stored=True,
                ))
            else:
                points.append(SnapshotPoint(date=day, value=ZERO, currency=user.default_currency))

        points.append(SnapshotPoint(
            date=today,
            value=live_value,
            currency=valuation.currency,
            is_live=True,
        ))

        return SnapshotSeries(
            points=points,
            range=range_key,
            days_in_range=days,
            total_stored_snapshots=len(stored),
            live_value_for_today=live_value,
            currency=valuation.currency,
            warnings=valuation.warnings,
        )
