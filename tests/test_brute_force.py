"""Tests for lockout, IP blocking and progressive delay."""

from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from gatekeeper.database import Base
from gatekeeper.models.login_attempt import SCOPE_EMAIL, SCOPE_IP
from gatekeeper.repositories.attempts import AttemptRepository
from gatekeeper.services.brute_force import BruteForceGuard, BruteForcePolicy

EMAIL = "staff@example.com"
IP = "203.0.113.5"


@pytest.fixture(name="attempts")
def attempts_fixture(db_session: Session) -> AttemptRepository:
    return AttemptRepository(db_session)


@pytest.fixture(name="guard")
def guard_fixture(attempts: AttemptRepository, clock) -> BruteForceGuard:
    return BruteForceGuard(attempts, BruteForcePolicy(), clock=clock)


def fail(guard: BruteForceGuard, times: int, email: str = EMAIL, ip: str | None = IP) -> None:
    for _ in range(times):
        guard.record_login_attempt(email, ip, False)


class TestAccountLockout:
    """Tests for per-email lockout."""

    def test_fresh_email_is_not_locked(self, guard: BruteForceGuard):
        assert not guard.is_account_locked(EMAIL).locked

    def test_four_failures_do_not_lock(self, guard: BruteForceGuard):
        fail(guard, 4)
        assert not guard.is_account_locked(EMAIL).locked

    def test_fifth_failure_locks_for_fifteen_minutes(self, guard: BruteForceGuard, clock):
        """Lock lasts from the last failure until the lockout elapses."""
        fail(guard, 5)
        status = guard.is_account_locked(EMAIL)
        assert status.locked
        assert status.unlock_at == clock.now + guard.policy.account_lockout
        assert status.minutes_remaining(clock.now) == 15

        clock.advance(minutes=14, seconds=30)
        assert guard.is_account_locked(EMAIL).minutes_remaining(clock.now) == 1

        clock.advance(seconds=30)
        assert not guard.is_account_locked(EMAIL).locked

    def test_sixth_failure_extends_the_lock(self, guard: BruteForceGuard, clock):
        """Failing while locked keeps the account locked, counted from the newest failure."""
        fail(guard, 5)
        clock.advance(minutes=5)
        fail(guard, 1)
        status = guard.is_account_locked(EMAIL)
        assert status.locked
        assert status.unlock_at == clock.now + guard.policy.account_lockout

        clock.advance(minutes=14)
        assert guard.is_account_locked(EMAIL).locked

    def test_stale_streak_restarts(self, guard: BruteForceGuard, attempts: AttemptRepository, clock):
        """A failure after the window has passed starts a new count at one."""
        fail(guard, 3)
        clock.advance(minutes=16)
        fail(guard, 1)
        assert attempts.get(SCOPE_EMAIL, EMAIL).failure_count == 1
        assert not guard.is_account_locked(EMAIL).locked

    def test_success_resets_email_but_not_ip(self, guard: BruteForceGuard, attempts: AttemptRepository):
        fail(guard, 4)
        guard.record_login_attempt(EMAIL, IP, True, user_id=1)
        assert attempts.get(SCOPE_EMAIL, EMAIL) is None
        assert attempts.get(SCOPE_IP, IP).failure_count == 4


class TestIpBlocking:
    """Tests for per-IP blocking."""

    def test_twenty_failures_across_emails_block_ip(self, guard: BruteForceGuard, clock):
        """The IP counter is shared across every email tried from it."""
        for i in range(19):
            guard.record_login_attempt(f"user{i}@example.com", IP, False)
        assert not guard.is_ip_blocked(IP)

        guard.record_login_attempt("user19@example.com", IP, False)
        assert guard.is_ip_blocked(IP)
        assert not guard.is_ip_blocked("198.51.100.1")

        clock.advance(minutes=60)
        assert not guard.is_ip_blocked(IP)

    def test_twenty_first_failure_stays_blocked(self, guard: BruteForceGuard):
        for i in range(21):
            guard.record_login_attempt(f"user{i}@example.com", IP, False)
        assert guard.is_ip_blocked(IP)

    def test_unknown_ip_is_never_blocked(self, guard: BruteForceGuard):
        fail(guard, 25, ip=None)
        assert not guard.is_ip_blocked(None)


class TestProgressiveDelay:
    """Tests for get_progressive_delay."""

    def test_no_failures_no_delay(self, guard: BruteForceGuard):
        assert guard.get_progressive_delay(EMAIL) == 0

    def test_delay_grows_with_failures(self, guard: BruteForceGuard):
        fail(guard, 1)
        assert guard.get_progressive_delay(EMAIL) == 500
        fail(guard, 2)
        assert guard.get_progressive_delay(EMAIL) == 1500

    def test_delay_is_capped(self, attempts: AttemptRepository, clock):
        guard = BruteForceGuard(attempts, BruteForcePolicy(max_account_failures=100), clock=clock)
        fail(guard, 30)
        assert guard.get_progressive_delay(EMAIL) == 5000

    def test_delay_expires_with_the_window(self, guard: BruteForceGuard, clock):
        fail(guard, 2)
        clock.advance(minutes=15)
        assert guard.get_progressive_delay(EMAIL) == 0


class TestConcurrentFailures:
    """Tests for two requests racing to record the first failure."""

    def test_second_insert_counts_instead_of_failing(self, tmp_path, clock):
        """The loser of the insert race increments the winner's row."""
        engine = create_engine(f"sqlite:///{tmp_path / 'attempts.db'}")
        Base.metadata.create_all(engine)
        factory = sessionmaker(bind=engine)
        window = BruteForcePolicy().account_lockout

        with factory() as first, factory() as second:
            racer = AttemptRepository(first)
            assert racer.get(SCOPE_EMAIL, EMAIL) is None

            AttemptRepository(second).register_failure(SCOPE_EMAIL, EMAIL, clock.now, window)

            # The first read inside register_failure still sees no row, as if it ran before the insert.
            with patch.object(racer, "get", side_effect=[None, racer.get(SCOPE_EMAIL, EMAIL)]):
                record = racer.register_failure(SCOPE_EMAIL, EMAIL, clock.now, window)

            assert record.failure_count == 2

        with factory() as check:
            assert AttemptRepository(check).get(SCOPE_EMAIL, EMAIL).failure_count == 2
        engine.dispose()
