"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from gatekeeper.config import Settings, get_settings
from gatekeeper.csrf import issue_csrf_token, require_csrf_token
from gatekeeper.dependencies import (
    SESSION_COOKIE_NAME,
    clear_session_cookie,
    get_app_settings,
    get_auth_service,
    get_client_ip,
    get_session_manager,
    set_session_cookie,
)
from gatekeeper.rate_limit import limiter
from gatekeeper.schemas.auth import (
    CsrfTokenResponse,
    LoginRequest,
    LoginResponse,
    SessionResponse,
    SuccessResponse,
    TwoFactorVerifyRequest,
    UserProfile,
)
from gatekeeper.services.auth import AuthService
from gatekeeper.services.sessions import SessionManager

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_csrf_token)],
)
@limiter.limit(get_settings().LOGIN_RATE_LIMIT)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> LoginResponse:
    """Check email and password; returns the user or a two-factor challenge."""
    result = auth_service.login(
        body.email,
        body.password,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    if result.requires_two_factor:
        return LoginResponse(requires_two_factor=True, temp_token=result.temp_token)

    set_session_cookie(response, result.session, settings)  # type: ignore[arg-type]
    return LoginResponse(user=UserProfile.from_user(result.user))  # type: ignore[arg-type]


@router.post(
    "/verify-2fa",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_csrf_token)],
)
@limiter.limit(get_settings().LOGIN_RATE_LIMIT)
def verify_two_factor(
    request: Request,
    response: Response,
    body: TwoFactorVerifyRequest,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> LoginResponse:
    """Exchange a temp token and a TOTP code for a session cookie."""
    result = auth_service.verify_two_factor(
        body.code,
        body.temp_token,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    set_session_cookie(response, result.session, settings)  # type: ignore[arg-type]
    return LoginResponse(user=UserProfile.from_user(result.user))  # type: ignore[arg-type]


@router.get("/csrf-token", response_model=CsrfTokenResponse)
def csrf_token(response: Response, settings: Settings = Depends(get_app_settings)) -> CsrfTokenResponse:
    """Issue the token that must accompany login, verify-2fa and user changes."""
    return CsrfTokenResponse(token=issue_csrf_token(response, settings))


@router.get("/session", response_model=SessionResponse)
def current_session(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_app_settings),
) -> SessionResponse | JSONResponse:
    """Return the user behind the session cookie, or 401 and clear a stale cookie."""
    token = request.cookies.get(SESSION_COOKIE_NAME)
    user = sessions.get_session(token)
    if user is None:
        unauthenticated = JSONResponse(status_code=401, content={"error": "Not authenticated"})
        if token:
            clear_session_cookie(unauthenticated, settings)
        return unauthenticated
    return SessionResponse(user=UserProfile.from_user(user))


@router.post("/logout", response_model=SuccessResponse)
def logout(
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
) -> SuccessResponse:
    """Delete the session row and clear the cookie."""
    auth_service.logout(
        request.cookies.get(SESSION_COOKIE_NAME),
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    clear_session_cookie(response, settings)
    return SuccessResponse()
