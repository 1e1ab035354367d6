"""Error taxonomy for the authentication core.

Every error carries the HTTP status it maps to and a message that is safe to
show to the client. Errors whose detail must stay server-side
(``ConfigurationError``, ``InternalError``) keep that detail in ``detail`` and
expose only a generic ``message``.
"""

from typing import Any

GENERIC_INTERNAL_MESSAGE = "Internal server error"
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class AuthError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(detail or message)
        self.message = message
        self.detail = detail or message

    def payload(self) -> dict[str, Any]:
        return {"error": self.message}


class ValidationError(AuthError):
    """Malformed input; the message is always safe to reveal."""

    status_code = 400


class WeakInputError(ValidationError):
    """Password rejected before hashing (empty or too long)."""


class AuthenticationError(AuthError):
    """Bad credentials, missing session or wrong second factor."""

    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class NotFoundError(AuthError):
    status_code = 404


class ConflictError(AuthError):
    status_code = 409


class LockedError(AuthError):
    """Account temporarily locked after repeated failures."""

    status_code = 423

    def __init__(self, minutes_remaining: int) -> None:
        super().__init__(
            "Account temporarily locked due to too many failed attempts. "
            f"Please try again in {minutes_remaining} minute(s)."
        )
        self.minutes_remaining = minutes_remaining

    def payload(self) -> dict[str, Any]:
        return {"error": self.message, "minutesRemaining": self.minutes_remaining}


class RateLimitedError(AuthError):
    """Client IP blocked; never says which accounts were targeted."""

    status_code = 429

    def __init__(self) -> None:
        super().__init__("Too many failed attempts from this IP. Please try again later.")


class ConfigurationError(AuthError):
    """Internal inconsistency, e.g. 2FA enabled without an enrolled secret."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(GENERIC_INTERNAL_MESSAGE, detail=detail)


class InternalError(AuthError):
    """Storage failure on a security-critical path."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(GENERIC_INTERNAL_MESSAGE, detail=detail)
