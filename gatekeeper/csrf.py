"""Double-submit CSRF tokens for state-changing requests.

The token lives in an HMAC-signed HttpOnly cookie and is echoed back by the
client in the ``x-csrf-token`` header. A request passes only when the cookie
signature checks out and the header equals the token inside it.
"""

import hashlib
import hmac
import logging
import secrets

from fastapi import Request, Response

from gatekeeper.config import Settings
from gatekeeper.errors import ForbiddenError

logger = logging.getLogger("gatekeeper")

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "x-csrf-token"
CSRF_TOKEN_BYTES = 32
CSRF_ERROR_MESSAGE = "Invalid or missing CSRF token"
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def generate_csrf_token() -> str:
    return secrets.token_hex(CSRF_TOKEN_BYTES)


def sign_token(token: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), token.encode("utf-8"), hashlib.sha256).hexdigest()


def unsign_token(signed: str | None, secret: str) -> str | None:
    """Return the token inside a ``token.signature`` cookie value, or None if it was tampered with."""
    if not signed or "." not in signed:
        return None
    token, _, signature = signed.partition(".")
    if not token or not signature:
        return None
    if not hmac.compare_digest(sign_token(token, secret), signature):
        return None
    return token


def issue_csrf_token(response: Response, settings: Settings) -> str:
    """Set a fresh signed cookie and return the bare token for the client to echo."""
    token = generate_csrf_token()
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=f"{token}.{sign_token(token, settings.CSRF_SECRET)}",
        httponly=True,
        samesite="strict",
        secure=settings.is_production,
        path="/",
        max_age=settings.SESSION_TTL_MINUTES * 60,
    )
    return token


def verify_csrf_token(request: Request, secret: str) -> bool:
    cookie_token = unsign_token(request.cookies.get(CSRF_COOKIE_NAME), secret)
    header_token = request.headers.get(CSRF_HEADER_NAME)
    if not cookie_token or not header_token:
        return False
    return hmac.compare_digest(cookie_token, header_token)


def require_csrf_token(request: Request) -> None:
    """Dependency: reject state-changing requests without a matching CSRF token."""
    if request.method.upper() in SAFE_METHODS:
        return
    if not verify_csrf_token(request, request.app.state.settings.CSRF_SECRET):
        logger.warning("CSRF check failed for %s %s", request.method, request.url.path)
        raise ForbiddenError(CSRF_ERROR_MESSAGE)
