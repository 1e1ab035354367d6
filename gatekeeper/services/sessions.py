"""Opaque bearer-token session lifecycle.

A session row is either ``active`` (a signed-in browser, 2 hours) or
``pending_2fa`` (a temp token issued after the password step, 5 minutes).
Both kinds live in the same table and carry no claims; the token is only a
lookup key. Expiry is enforced on every read and stale rows are deleted when
they are found.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from gatekeeper.clock import Clock, utcnow
from gatekeeper.config import Settings
from gatekeeper.models.session import AuthSession, SessionKind
from gatekeeper.models.user import User
from gatekeeper.repositories.sessions import SessionRepository
from gatekeeper.repositories.users import UserRepository

logger = logging.getLogger("gatekeeper")

TOKEN_BYTES = 32


@dataclass(frozen=True)
class IssuedSession:
    """A token handed to the caller together with its absolute expiry."""

    token: str
    expires_at: datetime
    kind: SessionKind


def generate_token() -> str:
    """256 bits from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(TOKEN_BYTES)


class SessionManager:
    """Issues, resolves and revokes session tokens."""

    def __init__(
        self,
        sessions: SessionRepository,
        users: UserRepository,
        session_ttl: timedelta = timedelta(hours=2),
        temp_token_ttl: timedelta = timedelta(minutes=5),
        clock: Clock = utcnow,
    ) -> None:
        self._sessions = sessions
        self._users = users
        self._session_ttl = session_ttl
        self._temp_token_ttl = temp_token_ttl
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        sessions: SessionRepository,
        users: UserRepository,
        settings: Settings,
        clock: Clock = utcnow,
    ) -> "SessionManager":
        return cls(
            sessions,
            users,
            session_ttl=timedelta(minutes=settings.SESSION_TTL_MINUTES),
            temp_token_ttl=timedelta(minutes=settings.TEMP_TOKEN_TTL_MINUTES),
            clock=clock,
        )

    def create_session(
        self,
        user_id: int,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedSession:
        """Store a new active session. Other sessions of the user stay valid."""
        now = self._clock()
        issued = self._insert(user_id, SessionKind.ACTIVE, now + self._session_ttl, ip_address, user_agent)
        try:
            self._users.touch_last_login(user_id, now)
        except SQLAlchemyError:
            logger.warning("Could not update last login for user_id=%s", user_id, exc_info=True)
        return issued

    def create_temp_token(self, user_id: int) -> IssuedSession:
        """Store a short-lived token that only the two-factor step accepts."""
        return self._insert(user_id, SessionKind.PENDING_2FA, self._clock() + self._temp_token_ttl, None, None)

    def get_session(self, token: str | None) -> User | None:
        """Resolve an active session token to its user, or None."""
        if not token:
            return None
        row = self._sessions.get_by_token(token)
        if row is None:
            return None
        if row.is_expired(self._clock()):
            self._sessions.delete_by_token(token)
            return None
        if row.kind != SessionKind.ACTIVE.value:
            logger.warning("Pending two-factor token presented as a session credential")
            return None
        user = row.user
        if user is None:
            logger.warning("Session %s references a missing user", row.id)
            return None
        if not user.is_active:
            return None
        return user

    def find_pending(self, token: str) -> AuthSession | None:
        """Look up a temp token row without judging it; the two-factor flow inspects it."""
        if not token:
            return None
        return self._sessions.get_by_token(token)

    def register_failed_two_factor(self, row: AuthSession) -> int:
        return self._sessions.increment_two_factor_failures(row)

    def delete_session(self, token: str | None) -> None:
        """Delete a session row. Unknown tokens are ignored."""
        if token:
            self._sessions.delete_by_token(token)

    def revoke_user_sessions(self, user_id: int) -> int:
        revoked = self._sessions.delete_for_user(user_id)
        logger.info("Revoked %d session(s) for user_id=%s", revoked, user_id)
        return revoked

    def purge_expired(self) -> int:
        """Remove rows past their expiry. Lazy expiry already keeps reads correct."""
        return self._sessions.delete_expired(self._clock())

    def _insert(
        self,
        user_id: int,
        kind: SessionKind,
        expires_at: datetime,
        ip_address: str | None,
        user_agent: str | None,
    ) -> IssuedSession:
        token = generate_token()
        self._sessions.add(
            AuthSession(
                user_id=user_id,
                token=token,
                kind=kind.value,
                expires_at=expires_at,
                ip_address=ip_address,
                user_agent=user_agent[:512] if user_agent else None,
                created_at=self._clock(),
            )
        )
        return IssuedSession(token=token, expires_at=expires_at, kind=kind)
