"""Coarse per-IP request limits for the authentication endpoints."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from gatekeeper.security import extract_client_ip


def client_ip_key(request: Request) -> str:
    """Rate-limit key: validated forwarded IP, else the socket peer."""
    return extract_client_ip(request.headers.get("x-forwarded-for")) or get_remote_address(request)


limiter = Limiter(key_func=client_ip_key)
