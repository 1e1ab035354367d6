"""Login attempt persistence, owned by the brute-force guard."""

from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from gatekeeper.models.login_attempt import LoginAttempt
from gatekeeper.repositories.base import SqlRepository


class AttemptRepository(SqlRepository):
    """Failure counters keyed by (scope, key)."""

    def get(self, scope: str, key: str) -> LoginAttempt | None:
        stmt = select(LoginAttempt).where(LoginAttempt.scope == scope, LoginAttempt.key == key)
        return self._db.execute(stmt).scalar_one_or_none()

    def register_failure(self, scope: str, key: str, now: datetime, window: timedelta) -> LoginAttempt:
        """Count one more failure, restarting the streak when the previous one fell out of the window."""
        record = self.get(scope, key)
        if record is None:
            record = LoginAttempt(scope=scope, key=key, failure_count=1, first_failure_at=now, last_failure_at=now)
            self._db.add(record)
            try:
                self._commit()
                return record
            except IntegrityError:
                # A concurrent request inserted the first failure; count on top of its row.
                record = self.get(scope, key)
                if record is None:
                    raise

        if now - record.last_failure_at >= window:
            record.failure_count = 1
            record.first_failure_at = now
        else:
            record.failure_count += 1
        record.last_failure_at = now
        self._commit()
        return record

    def reset(self, scope: str, key: str) -> None:
        self._db.execute(delete(LoginAttempt).where(LoginAttempt.scope == scope, LoginAttempt.key == key))
        self._commit()
