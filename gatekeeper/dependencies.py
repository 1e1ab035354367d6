"""FastAPI dependencies: service wiring, current user and cookie transport."""

from collections.abc import Callable
from datetime import timezone

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from gatekeeper.access_control import Permission, has_permission
from gatekeeper.config import Settings
from gatekeeper.database import get_db
from gatekeeper.errors import AuthenticationError, ForbiddenError
from gatekeeper.models.user import User
from gatekeeper.repositories.attempts import AttemptRepository
from gatekeeper.repositories.sessions import SessionRepository
from gatekeeper.repositories.users import UserRepository
from gatekeeper.security import extract_client_ip
from gatekeeper.services.auth import AuthService
from gatekeeper.services.brute_force import BruteForceGuard, BruteForcePolicy
from gatekeeper.services.sessions import IssuedSession, SessionManager
from gatekeeper.services.two_factor import TwoFactorEngine
from gatekeeper.services.users import UserService

SESSION_COOKIE_NAME = "gk_session"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def build_session_manager(db: Session, request: Request) -> SessionManager:
    """Session manager bound to a database session and the app's clock."""
    state = request.app.state
    return SessionManager.from_settings(SessionRepository(db), UserRepository(db), state.settings, clock=state.clock)


def get_session_manager(request: Request, db: Session = Depends(get_db)) -> SessionManager:
    return build_session_manager(db, request)


def get_auth_service(
    request: Request,
    db: Session = Depends(get_db),
    sessions: SessionManager = Depends(get_session_manager),
) -> AuthService:
    """Login orchestrator wired to request-scoped repositories."""
    state = request.app.state
    return AuthService(
        users=UserRepository(db),
        sessions=sessions,
        guard=BruteForceGuard(AttemptRepository(db), BruteForcePolicy.from_settings(state.settings), clock=state.clock),
        two_factor=TwoFactorEngine.from_settings(state.settings, clock=state.clock),
        audit_logger=state.audit_logger,
        settings=state.settings,
        clock=state.clock,
        sleep=state.sleep,
    )


def get_user_service(
    request: Request,
    db: Session = Depends(get_db),
    sessions: SessionManager = Depends(get_session_manager),
) -> UserService:
    state = request.app.state
    return UserService(
        users=UserRepository(db),
        sessions=sessions,
        two_factor=TwoFactorEngine.from_settings(state.settings, clock=state.clock),
        audit_logger=state.audit_logger,
        settings=state.settings,
    )


def get_client_ip(request: Request) -> str | None:
    """Validated client IP from X-Forwarded-For, falling back to the socket peer."""
    forwarded = extract_client_ip(request.headers.get("x-forwarded-for"))
    if forwarded:
        return forwarded
    return extract_client_ip(request.client.host if request.client else None)


def get_current_user(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
) -> User:
    """Resolve the session cookie to a user. Raises 401 if there is no valid session."""
    user = sessions.get_session(request.cookies.get(SESSION_COOKIE_NAME))
    if user is None:
        raise AuthenticationError("Not authenticated")
    return user


def require_permission(permission: Permission) -> Callable[..., User]:
    """Dependency factory that demands a role permission on top of authentication."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user.role, permission):
            raise ForbiddenError("Insufficient permissions")
        return user

    return dependency


def set_session_cookie(response: Response, issued: IssuedSession, settings: Settings) -> None:
    """Set the session cookie; it expires together with the session row."""
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=issued.token,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        path="/",
        expires=issued.expires_at.replace(tzinfo=timezone.utc),
        max_age=settings.SESSION_TTL_MINUTES * 60,
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    """Clear the session cookie."""
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )
