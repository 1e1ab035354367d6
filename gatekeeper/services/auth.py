"""Login orchestration: password step, two-factor step and logout."""

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy.exc import SQLAlchemyError

from gatekeeper.clock import Clock, utcnow
from gatekeeper.config import Settings
from gatekeeper.errors import (
    INVALID_CREDENTIALS_MESSAGE,
    AuthenticationError,
    ConfigurationError,
    InternalError,
    LockedError,
    RateLimitedError,
    ValidationError,
)
from gatekeeper.models.session import SessionKind
from gatekeeper.models.user import User
from gatekeeper.repositories.users import UserRepository
from gatekeeper.security import is_valid_email, is_valid_password_length, normalize_email
from gatekeeper.services import audit
from gatekeeper.services.audit import AuditLogger
from gatekeeper.services.brute_force import BruteForceGuard
from gatekeeper.services.passwords import hash_password, verify_password
from gatekeeper.services.sessions import IssuedSession, SessionManager
from gatekeeper.services.two_factor import TwoFactorEngine

logger = logging.getLogger("gatekeeper")

Sleep = Callable[[float], None]


@dataclass
class LoginResult:
    """Outcome of a successful authentication step."""

    user: User | None = None
    session: IssuedSession | None = None
    requires_two_factor: bool = False
    temp_token: str | None = None


@lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> str:
    """Hash verified when the email is unknown, so both failure paths cost one bcrypt check."""
    return hash_password("gatekeeper-timing-equalizer", rounds=rounds)


@contextmanager
def _storage_guard(operation: str) -> Iterator[None]:
    """Turn storage failures on the security path into InternalError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Storage failure during %s", operation)
        raise InternalError(f"storage failure during {operation}") from exc


class AuthService:
    """Composes the guard, verifier, two-factor engine and session manager."""

    def __init__(
        self,
        users: UserRepository,
        sessions: SessionManager,
        guard: BruteForceGuard,
        two_factor: TwoFactorEngine,
        audit_logger: AuditLogger,
        settings: Settings,
        clock: Clock = utcnow,
        sleep: Sleep = time.sleep,
    ) -> None:
        self._users = users
        self._sessions = sessions
        self._guard = guard
        self._two_factor = two_factor
        self._audit = audit_logger
        self._settings = settings
        self._clock = clock
        self._sleep = sleep

    def login(
        self,
        email: str | None,
        password: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """Authenticate with email and password.

        Returns either a full session or a temp token when the account has
        two-factor enabled. Raises ValidationError, RateLimitedError,
        LockedError, AuthenticationError or InternalError.
        """
        if not email or not password:
            raise ValidationError("Email and password required")
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")
        if not is_valid_password_length(password, self._settings.PASSWORD_MAX_BYTES):
            raise ValidationError("Password is too long")

        email = normalize_email(email)
        with _storage_guard("login"):
            if self._guard.is_ip_blocked(ip_address):
                self._guard.record_login_attempt(email, ip_address, False)
                raise RateLimitedError()

            lock = self._guard.is_account_locked(email)
            if lock.locked:
                raise LockedError(lock.minutes_remaining(self._clock()))

            delay_ms = self._guard.get_progressive_delay(email)
            if delay_ms > 0:
                self._sleep(delay_ms / 1000)

            user = self._users.get_active_by_email(email)
            if user is None:
                verify_password(password, _dummy_hash(self._settings.BCRYPT_ROUNDS))
                self._guard.record_login_attempt(email, ip_address, False)
                self._audit.log_event(
                    audit.LOGIN_FAILED,
                    success=False,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    error_message="Unknown or inactive account",
                )
                raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

            if not verify_password(password, user.password_hash):
                self._guard.record_login_attempt(email, ip_address, False, user.id)
                self._audit.log_event(
                    audit.LOGIN_FAILED,
                    user_id=user.id,
                    success=False,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    error_message="Invalid password",
                )
                raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

            if user.two_factor_enabled:
                # Counters are only reset once the second factor succeeds.
                issued = self._sessions.create_temp_token(user.id)
                return LoginResult(requires_two_factor=True, temp_token=issued.token)

            return self._complete_login(user, email, ip_address, user_agent, audit.LOGIN)

    def verify_two_factor(
        self,
        code: str | None,
        temp_token: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """Exchange a temp token and a TOTP code for a full session."""
        if not code or not temp_token:
            raise ValidationError("Code and temp token required")
        code = code.strip()
        if len(code) != 6 or not code.isdigit():
            raise ValidationError("Code must be 6 digits")

        with _storage_guard("two-factor verification"):
            row = self._sessions.find_pending(temp_token)
            if row is None or row.kind != SessionKind.PENDING_2FA.value:
                raise AuthenticationError("Invalid or expired token")

            if row.is_expired(self._clock()):
                self._sessions.delete_session(temp_token)
                raise AuthenticationError("Token expired")

            user = row.user
            if user is None or not user.is_active:
                self._sessions.delete_session(temp_token)
                raise AuthenticationError("Invalid or expired token")

            if not user.two_factor_secret:
                logger.error("User %s has two-factor enabled but no enrolled secret", user.id)
                raise ConfigurationError(f"two-factor secret missing for user {user.id}")

            if not self._two_factor.verify(code, user.two_factor_secret):
                failures = self._sessions.register_failed_two_factor(row)
                self._audit.log_event(
                    audit.TWO_FACTOR_FAILED,
                    user_id=user.id,
                    success=False,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    details={"attempt": failures},
                )
                if failures >= self._settings.MAX_TWO_FACTOR_ATTEMPTS:
                    logger.warning("Temp token for user %s invalidated after %d wrong codes", user.id, failures)
                    self._sessions.delete_session(temp_token)
                raise AuthenticationError("Invalid 2FA code")

            self._sessions.delete_session(temp_token)
            return self._complete_login(user, user.email, ip_address, user_agent, audit.TWO_FACTOR_SUCCESS)

    def logout(self, token: str | None, ip_address: str | None = None, user_agent: str | None = None) -> None:
        """Revoke the caller's session. Unknown or missing tokens are fine."""
        with _storage_guard("logout"):
            user = self._sessions.get_session(token)
            if user is not None:
                self._audit.log_event(audit.LOGOUT, user_id=user.id, ip_address=ip_address, user_agent=user_agent)
            self._sessions.delete_session(token)

    def _complete_login(
        self,
        user: User,
        email: str,
        ip_address: str | None,
        user_agent: str | None,
        action: str,
    ) -> LoginResult:
        self._guard.reset_failed_attempts(email)
        issued = self._sessions.create_session(user.id, ip_address, user_agent)
        self._guard.record_login_attempt(email, ip_address, True, user.id)
        self._audit.log_event(action, user_id=user.id, ip_address=ip_address, user_agent=user_agent)
        return LoginResult(user=user, session=issued)
