"""Session row persistence."""

from datetime import datetime

from sqlalchemy import delete, select

from gatekeeper.models.session import AuthSession
from gatekeeper.repositories.base import SqlRepository


class SessionRepository(SqlRepository):
    """Insert, lookup and delete session rows keyed by opaque token."""

    def add(self, row: AuthSession) -> AuthSession:
        self._db.add(row)
        self._commit()
        return row

    def get_by_token(self, token: str) -> AuthSession | None:
        """Return the row for a token joined with its owning user."""
        return self._db.execute(select(AuthSession).where(AuthSession.token == token)).unique().scalar_one_or_none()

    def delete_by_token(self, token: str) -> int:
        result = self._db.execute(delete(AuthSession).where(AuthSession.token == token))
        self._commit()
        return result.rowcount or 0

    def delete_for_user(self, user_id: int) -> int:
        result = self._db.execute(delete(AuthSession).where(AuthSession.user_id == user_id))
        self._commit()
        return result.rowcount or 0

    def delete_expired(self, now: datetime) -> int:
        result = self._db.execute(delete(AuthSession).where(AuthSession.expires_at <= now))
        self._commit()
        return result.rowcount or 0

    def increment_two_factor_failures(self, row: AuthSession) -> int:
        row.failed_two_factor_attempts = (row.failed_two_factor_attempts or 0) + 1
        self._commit()
        return row.failed_two_factor_attempts

    def count_for_user(self, user_id: int) -> int:
        return len(self._db.execute(select(AuthSession.id).where(AuthSession.user_id == user_id)).all())
