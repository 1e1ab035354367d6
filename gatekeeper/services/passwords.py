"""Password hashing, verification and strength policy."""

import base64
import hashlib
import logging
from dataclasses import dataclass, field

import bcrypt

from gatekeeper.config import Settings
from gatekeeper.errors import WeakInputError

logger = logging.getLogger("gatekeeper")

SCHEME_PREFIX = "bcrypt_sha256$"
DEFAULT_ROUNDS = 12
DEFAULT_MAX_BYTES = 1024
BCRYPT_MAX_BYTES = 72


@dataclass(frozen=True)
class PasswordPolicy:
    """Composition rules applied when a password is set."""

    min_length: int = 8
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_symbol: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordPolicy":
        return cls(
            min_length=settings.PASSWORD_MIN_LENGTH,
            require_uppercase=settings.PASSWORD_REQUIRE_UPPERCASE,
            require_lowercase=settings.PASSWORD_REQUIRE_LOWERCASE,
            require_digit=settings.PASSWORD_REQUIRE_DIGIT,
            require_symbol=settings.PASSWORD_REQUIRE_SYMBOL,
        )


@dataclass
class PasswordStrength:
    """Result of a strength check."""

    valid: bool
    errors: list[str] = field(default_factory=list)


def _prehash(password: str) -> bytes:
    # bcrypt only reads 72 bytes, so long passwords are digested first.
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS, max_bytes: int = DEFAULT_MAX_BYTES) -> str:
    """Hash a password with SHA-256 pre-hashing and salted bcrypt.

    Raises WeakInputError for empty passwords or passwords longer than
    ``max_bytes`` before any hashing work is done.
    """
    if not password:
        raise WeakInputError("Password must not be empty")
    if len(password.encode("utf-8")) > max_bytes:
        raise WeakInputError(f"Password must be at most {max_bytes} bytes")
    digest = bcrypt.hashpw(_prehash(password), bcrypt.gensalt(rounds=rounds))
    return SCHEME_PREFIX + digest.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored hash. Returns False on any mismatch."""
    if not password or not password_hash:
        return False
    try:
        if password_hash.startswith(SCHEME_PREFIX):
            return bcrypt.checkpw(_prehash(password), password_hash[len(SCHEME_PREFIX) :].encode("utf-8"))
        # Plain bcrypt hashes created before the scheme prefix existed.
        return bcrypt.checkpw(password.encode("utf-8")[:BCRYPT_MAX_BYTES], password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash could not be parsed")
        return False


def validate_password_strength(password: str, policy: PasswordPolicy | None = None) -> PasswordStrength:
    """Check a new password against the composition policy."""
    policy = policy or PasswordPolicy()
    errors = []
    if len(password) < policy.min_length:
        errors.append(f"Password must be at least {policy.min_length} characters long")
    if policy.require_uppercase and not any(c.isupper() for c in password):
        errors.append("Password must contain at least one uppercase letter")
    if policy.require_lowercase and not any(c.islower() for c in password):
        errors.append("Password must contain at least one lowercase letter")
    if policy.require_digit and not any(c.isdigit() for c in password):
        errors.append("Password must contain at least one number")
    if policy.require_symbol and not any(not c.isalnum() and not c.isspace() for c in password):
        errors.append("Password must contain at least one special character")
    return PasswordStrength(valid=not errors, errors=errors)
