# backend/tests/services/test_scheduler.py
"""
Tests for SnapshotScheduler.

Covers:
- Weekday / market-close gate in the market timezone
- Gated runs perform no writes outside the window
- Forced runs always write
- Per-user failure isolation and empty-ledger skipping
- Background job registration
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import func, select

from portfolio_engine.models import PortfolioSnapshot, TransactionType
from portfolio_engine.services.scheduler import SnapshotScheduler
from tests.conftest import add_transaction, create_user

# Toronto is UTC-5 in January
SATURDAY_EVENING = datetime(2024, 1, 20, 23, 0, tzinfo=timezone.utc)
SATURDAY_MORNING = datetime(2024, 1, 20, 14, 0, tzinfo=timezone.utc)
WEDNESDAY_MIDDAY = datetime(2024, 1, 17, 17, 0, tzinfo=timezone.utc)
WEDNESDAY_AT_CLOSE = datetime(2024, 1, 17, 21, 0, tzinfo=timezone.utc)


def _snapshot_count(db) -> int:
    return db.scalar(select(func.count()).select_from(PortfolioSnapshot))


@pytest.fixture
def funded_users(db):
    users = []
    for i in range(3):
        user = create_user(db, email=f"user{i}@example.com")
        add_transaction(db, user, "CASH", TransactionType.DEPOSIT, str(100 * (i + 1)), currency="CAD")
        users.append(user)
    return users


# =============================================================================
# GATE
# =============================================================================

class TestGate:

    @pytest.mark.parametrize("now,expected", [
        (WEDNESDAY_AT_CLOSE, True),
        (datetime(2024, 1, 17, 22, 30, tzinfo=timezone.utc), True),
        (WEDNESDAY_MIDDAY, False),
        (SATURDAY_EVENING, False),
        (SATURDAY_MORNING, False),
        # Friday 23:30 Toronto is Saturday 04:30 UTC
        (datetime(2024, 1, 20, 4, 30, tzinfo=timezone.utc), True),
    ])
    def test_should_run(self, snapshot_scheduler, now, expected):
        assert snapshot_scheduler.should_run(now) is expected

    def test_business_day_uses_market_timezone(self, snapshot_scheduler):
        # Sunday 02:00 UTC is Saturday evening in Toronto
        assert not snapshot_scheduler.is_business_day(datetime(2024, 1, 21, 2, 0, tzinfo=timezone.utc))
        # Monday 02:00 UTC is Sunday evening in Toronto
        assert not snapshot_scheduler.is_business_day(datetime(2024, 1, 22, 2, 0, tzinfo=timezone.utc))

    def test_defaults_to_clock(self, snapshot_scheduler, clock):
        clock.set(WEDNESDAY_MIDDAY)
        assert not snapshot_scheduler.is_market_closed()

        clock.set(WEDNESDAY_AT_CLOSE)
        assert snapshot_scheduler.is_market_closed()


# =============================================================================
# RUNS
# =============================================================================

class TestRuns:

    @pytest.mark.parametrize("now", [SATURDAY_EVENING, SATURDAY_MORNING])
    def test_gated_run_on_saturday_writes_nothing(self, db, funded_users, snapshot_scheduler, clock, now):
        clock.set(now)

        result = snapshot_scheduler.run_gated(db)

        assert not result.ran
        assert result.reason == "Not a business day"
        assert result.processed == 0
        assert _snapshot_count(db) == 0

    @pytest.mark.parametrize("now", [SATURDAY_EVENING, SATURDAY_MORNING])
    def test_forced_run_on_saturday_writes(self, db, funded_users, snapshot_scheduler, clock, now):
        clock.set(now)

        result = snapshot_scheduler.run_forced(db)

        assert result.ran
        assert result.succeeded == 3
        assert _snapshot_count(db) == 3

    def test_gated_run_before_close(self, db, funded_users, snapshot_scheduler, clock):
        clock.set(WEDNESDAY_MIDDAY)

        result = snapshot_scheduler.run_gated(db)

        assert not result.ran
        assert result.reason == "Market not closed yet"
        assert _snapshot_count(db) == 0

    def test_gated_run_after_close(self, db, funded_users, snapshot_scheduler, clock):
        clock.set(WEDNESDAY_AT_CLOSE)

        result = snapshot_scheduler.run_gated(db)

        assert result.ran
        assert result.processed == 3
        assert result.succeeded == 3
        assert result.failed == 0
        assert _snapshot_count(db) == 3

    def test_repeated_runs_are_idempotent(self, db, funded_users, snapshot_scheduler):
        snapshot_scheduler.run_forced(db)
        snapshot_scheduler.run_forced(db)

        assert _snapshot_count(db) == 3

    def test_users_without_ledger_skipped(self, db, funded_users, snapshot_scheduler):
        create_user(db, email="empty@example.com")

        result = snapshot_scheduler.run_forced(db)

        assert result.processed == 4
        assert result.skipped == 1
        assert result.succeeded == 3
        assert _snapshot_count(db) == 3

    def test_one_user_failure_does_not_stop_run(self, db, funded_users, snapshot_service, session_factory, clock):
        failing_id = funded_users[1].id
        original = snapshot_service.record_snapshot

        def record(session, user):
            if user.id == failing_id:
                raise RuntimeError("valuation exploded")
            return original(session, user)

        snapshot_service.record_snapshot = record
        scheduler = SnapshotScheduler(snapshot_service, session_factory=session_factory, clock=clock)

        result = scheduler.run_forced(db)

        assert result.succeeded == 2
        assert result.failed == 1
        assert result.errors[0].user_id == failing_id
        assert result.errors[0].email == "user1@example.com"
        assert "valuation exploded" in result.errors[0].error
        assert _snapshot_count(db) == 2


# =============================================================================
# BACKGROUND JOB
# =============================================================================

class TestBackgroundJob:

    def test_start_requires_session_factory(self, snapshot_service):
        scheduler = SnapshotScheduler(snapshot_service)

        with pytest.raises(ValueError, match="session_factory"):
            scheduler.start()

    def test_start_registers_weekday_job(self, snapshot_scheduler):
        with patch("apscheduler.schedulers.background.BackgroundScheduler") as scheduler_cls:
            snapshot_scheduler.start()

        background = scheduler_cls.return_value
        background.start.assert_called_once()
        kwargs = background.add_job.call_args.kwargs
        assert kwargs["id"] == "daily_snapshots"
        assert kwargs["max_instances"] == 1
        trigger_fields = {f.name: str(f) for f in kwargs["trigger"].fields}
        assert trigger_fields["day_of_week"] == "mon-fri"
        assert trigger_fields["hour"] == "16"
        assert trigger_fields["minute"] == "5"

        snapshot_scheduler.shutdown()
        background.shutdown.assert_called_once_with(wait=False)
        assert not snapshot_scheduler.running

    def test_scheduled_run_uses_own_session(self, funded_users, snapshot_scheduler, session_factory, clock):
        clock.set(WEDNESDAY_AT_CLOSE)

        snapshot_scheduler._run_scheduled()

        with session_factory() as check:
            assert _snapshot_count(check) == 3

    def test_scheduled_run_logs_and_swallows_errors(self, snapshot_service, clock):
        session = MagicMock()
        scheduler = SnapshotScheduler(snapshot_service, session_factory=lambda: session, clock=clock)
        scheduler.run_gated = MagicMock(side_effect=RuntimeError("db down"))

        scheduler._run_scheduled()

        session.close.assert_called_once()
