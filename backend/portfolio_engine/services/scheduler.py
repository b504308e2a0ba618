# backend/portfolio_engine/services/scheduler.py
"""
Daily snapshot scheduler.

Two entry points over the same snapshot write path:
    run_gated   only runs on a weekday at or after the market close hour
                (market timezone); otherwise returns a skipped result
    run_forced  runs for every user regardless of day or time

Users are processed independently: a failure is rolled back, logged and
recorded, and the run continues with the next user. Users with an empty
ledger are skipped.

`start` optionally registers an in-process APScheduler cron job that calls
run_gated on weekdays shortly after the close. APScheduler is imported
lazily so the module loads without it when the job is disabled.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from portfolio_engine.models import Transaction, User
from portfolio_engine.services.snapshot_service import SnapshotService
from portfolio_engine.utils.date_utils import is_business_day, to_local, utc_now

logger = logging.getLogger(__name__)


@dataclass
class UserRunError:
    user_id: int
    email: str
    error: str


@dataclass
class SchedulerRunResult:
    """
    Outcome of a scheduler run.

    Attributes:
        ran: False when the gate was closed and nothing was written
        reason: Why the run was skipped (gated runs only)
        processed: Users considered
        succeeded: Snapshots written
        skipped: Users without transactions
        errors: Per-user failures
    """
    ran: bool
    reason: str | None = None
    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    errors: list[UserRunError] = field(default_factory=list)
    started_at: datetime | None = None

    @property
    def failed(self) -> int:
        return len(self.errors)


class SnapshotScheduler:
    """
    Args:
        snapshot_service: Writes individual snapshots
        session_factory: Creates sessions for background runs
        clock: Current aware datetime; injectable for tests
        market_timezone: IANA zone for the weekday/close-hour gate
        market_close_hour: Local hour from which the gate opens
        cron_minute: Minute past the close hour for the background job
    """

    def __init__(
            self,
            snapshot_service: SnapshotService,
            session_factory: Callable[[], Session] | None = None,
            clock: Callable[[], datetime] = utc_now,
            market_timezone: str = "America/Toronto",
            market_close_hour: int = 16,
            cron_minute: int = 5,
    ) -> None:
        self._snapshots = snapshot_service
        self._session_factory = session_factory
        self._clock = clock
        self._tz = market_timezone
        self._close_hour = market_close_hour
        self._cron_minute = cron_minute
        self._scheduler: Any = None

    @property
    def market_timezone(self) -> str:
        return self._tz

    @property
    def market_close_hour(self) -> int:
        return self._close_hour

    # =========================================================================
    # GATE
    # =========================================================================

    def is_business_day(self, now: datetime | None = None) -> bool:
        local = to_local(now or self._clock(), self._tz)
        return is_business_day(local.date())

    def is_market_closed(self, now: datetime | None = None) -> bool:
        local = to_local(now or self._clock(), self._tz)
        return local.hour >= self._close_hour

    def should_run(self, now: datetime | None = None) -> bool:
        now = now or self._clock()
        return self.is_business_day(now) and self.is_market_closed(now)

    # =========================================================================
    # RUNS
    # =========================================================================

    def run_gated(self, db: Session) -> SchedulerRunResult:
        now = self._clock()

        if not self.is_business_day(now):
            logger.info("Skipping scheduler - not a weekday")
            return SchedulerRunResult(ran=False, reason="Not a business day", started_at=now)

        if not self.is_market_closed(now):
            logger.info("Skipping scheduler - market not closed yet")
            return SchedulerRunResult(ran=False, reason="Market not closed yet", started_at=now)

        return self.run_forced(db)

    def run_forced(self, db: Session) -> SchedulerRunResult:
        result = SchedulerRunResult(ran=True, started_at=self._clock())

        users = db.scalars(select(User).order_by(User.id)).all()
        logger.info(f"Starting daily snapshot generation for {len(users)} users")

        for user in users:
            result.processed += 1

            has_ledger = db.scalar(select(exists().where(Transaction.user_id == user.id)))
            if not has_ledger:
                result.skipped += 1
                continue

            try:
                self._snapshots.record_snapshot(db, user)
                result.succeeded += 1
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to create snapshot for user {user.id}: {e}")
                result.errors.append(UserRunError(user_id=user.id, email=user.email, error=str(e)))

        logger.info(
            f"Daily snapshot generation completed: {result.succeeded} written, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    # =========================================================================
    # BACKGROUND JOB
    # =========================================================================

    def start(self) -> None:
        """Register the weekday cron job and start a background scheduler."""
        if self._session_factory is None:
            raise ValueError("A session_factory is required to run in the background")

        from apscheduler.schedulers.background import BackgroundScheduler
        from apscheduler.triggers.cron import CronTrigger

        self._scheduler = BackgroundScheduler(timezone=self._tz)
        self._scheduler.add_job(
            self._run_scheduled,
            trigger=CronTrigger(
                day_of_week="mon-fri",
                hour=self._close_hour,
                minute=self._cron_minute,
                timezone=self._tz,
            ),
            id="daily_snapshots",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info(
            f"Snapshot scheduler started: weekdays {self._close_hour:02d}:{self._cron_minute:02d} {self._tz}"
        )

    def shutdown(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Snapshot scheduler shut down")

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _run_scheduled(self) -> None:
        db = self._session_factory()
        try:
            self.run_gated(db)
        except Exception:
            logger.exception("Scheduled snapshot run failed")
        finally:
            db.close()
