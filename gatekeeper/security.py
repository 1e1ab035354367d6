"""Input validation and sanitization for authentication requests."""

import ipaddress
import re

MAX_EMAIL_LENGTH = 254

_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)


def extract_client_ip(forwarded_for: str | None) -> str | None:
    """Return the first hop of an X-Forwarded-For value if it is a real IP address.

    The header is client-controlled, so anything that does not parse as an
    IPv4/IPv6 address is discarded rather than used as a lookup key.
    """
    if not forwarded_for:
        return None
    first_hop = forwarded_for.split(",")[0].strip()
    if not first_hop:
        return None
    try:
        return str(ipaddress.ip_address(first_hop))
    except ValueError:
        return None


def is_valid_email(email: str | None) -> bool:
    """Validate email format and length."""
    if not email or not isinstance(email, str):
        return False
    trimmed = email.strip()
    if not trimmed or len(trimmed) > MAX_EMAIL_LENGTH:
        return False
    return _EMAIL_RE.match(trimmed) is not None


def normalize_email(email: str) -> str:
    """Trim and lowercase an email that already passed validation."""
    return email.strip().lower()


def is_valid_password_length(password: str | None, max_bytes: int) -> bool:
    """Reject empty passwords and passwords too long to hash cheaply."""
    if not password or not isinstance(password, str):
        return False
    return len(password.encode("utf-8")) <= max_bytes
