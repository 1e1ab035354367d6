"""Brute-force protection for the login flow.

Failures are counted independently per normalized email and per client IP.
An email that reaches ``max_account_failures`` inside the lockout window is
locked until ``last_failure + account_lockout``; an IP that reaches
``max_ip_failures`` inside its (longer) window is blocked the same way.
Every attempt after a prior failure also pays a progressive delay before the
password is checked.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from gatekeeper.clock import Clock, utcnow
from gatekeeper.config import Settings
from gatekeeper.models.login_attempt import SCOPE_EMAIL, SCOPE_IP
from gatekeeper.repositories.attempts import AttemptRepository

logger = logging.getLogger("gatekeeper")


@dataclass(frozen=True)
class BruteForcePolicy:
    """Thresholds, windows and delay curve."""

    max_account_failures: int = 5
    account_lockout: timedelta = timedelta(minutes=15)
    max_ip_failures: int = 20
    ip_block_window: timedelta = timedelta(minutes=60)
    delay_step_ms: int = 500
    max_delay_ms: int = 5000

    @classmethod
    def from_settings(cls, settings: Settings) -> "BruteForcePolicy":
        return cls(
            max_account_failures=settings.MAX_LOGIN_ATTEMPTS,
            account_lockout=timedelta(minutes=settings.LOCKOUT_MINUTES),
            max_ip_failures=settings.MAX_IP_FAILURES,
            ip_block_window=timedelta(minutes=settings.IP_BLOCK_WINDOW_MINUTES),
            delay_step_ms=settings.DELAY_STEP_MS,
            max_delay_ms=settings.MAX_DELAY_MS,
        )


@dataclass(frozen=True)
class LockStatus:
    """Whether an account is locked and until when."""

    locked: bool
    unlock_at: datetime | None = None

    def minutes_remaining(self, now: datetime) -> int:
        if not self.locked or self.unlock_at is None:
            return 0
        return max(1, math.ceil((self.unlock_at - now).total_seconds() / 60))


class BruteForceGuard:
    """Tracks failed logins and turns them into lockout, block and delay decisions."""

    def __init__(self, attempts: AttemptRepository, policy: BruteForcePolicy, clock: Clock = utcnow) -> None:
        self._attempts = attempts
        self._policy = policy
        self._clock = clock

    @property
    def policy(self) -> BruteForcePolicy:
        return self._policy

    def is_account_locked(self, email: str) -> LockStatus:
        """Locked once the email's failure streak reaches the threshold, until the lockout elapses."""
        record = self._attempts.get(SCOPE_EMAIL, email)
        if record is None or record.failure_count < self._policy.max_account_failures:
            return LockStatus(locked=False)
        unlock_at = record.last_failure_at + self._policy.account_lockout
        if self._clock() >= unlock_at:
            return LockStatus(locked=False)
        return LockStatus(locked=True, unlock_at=unlock_at)

    def is_ip_blocked(self, ip_address: str | None) -> bool:
        """Same mechanism keyed by IP with a looser threshold. Unknown IPs are never blocked."""
        if not ip_address:
            return False
        record = self._attempts.get(SCOPE_IP, ip_address)
        if record is None or record.failure_count < self._policy.max_ip_failures:
            return False
        return self._clock() < record.last_failure_at + self._policy.ip_block_window

    def get_progressive_delay(self, email: str) -> int:
        """Milliseconds to wait before checking credentials: failures * step, capped."""
        record = self._attempts.get(SCOPE_EMAIL, email)
        if record is None or record.failure_count <= 0:
            return 0
        if self._clock() - record.last_failure_at >= self._policy.account_lockout:
            return 0
        return min(record.failure_count * self._policy.delay_step_ms, self._policy.max_delay_ms)

    def record_login_attempt(
        self,
        email: str,
        ip_address: str | None,
        success: bool,
        user_id: int | None = None,
    ) -> None:
        """Count a failure against both email and IP, or clear the email's streak on success."""
        if success:
            self.reset_failed_attempts(email)
            logger.info("Login succeeded for user_id=%s from %s", user_id, ip_address or "unknown")
            return

        now = self._clock()
        record = self._attempts.register_failure(SCOPE_EMAIL, email, now, self._policy.account_lockout)
        if ip_address:
            self._attempts.register_failure(SCOPE_IP, ip_address, now, self._policy.ip_block_window)
        logger.warning(
            "Login failed (user_id=%s, failures=%d) from %s",
            user_id,
            record.failure_count,
            ip_address or "unknown",
        )

    def reset_failed_attempts(self, email: str) -> None:
        """Zero the email's failure streak. The IP counter is deliberately left alone."""
        self._attempts.reset(SCOPE_EMAIL, email)
