"""Gatekeeper - authentication and session security for the admin dashboard."""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from gatekeeper.access_control import (
    HOME_PATH,
    LOGIN_PATH,
    MUTATING_METHODS,
    AccessOutcome,
    evaluate_access,
    is_api_path,
    is_exempt,
)
from gatekeeper.clock import utcnow
from gatekeeper.config import Settings, get_settings
from gatekeeper.database import build_engine, build_session_factory
from gatekeeper.dependencies import SESSION_COOKIE_NAME, build_session_manager, clear_session_cookie
from gatekeeper.errors import GENERIC_INTERNAL_MESSAGE, AuthError
from gatekeeper.models.user import User
from gatekeeper.rate_limit import limiter
from gatekeeper.repositories.sessions import SessionRepository
from gatekeeper.repositories.users import UserRepository
from gatekeeper.routers import auth_router, users_router
from gatekeeper.services.audit import AuditLogger
from gatekeeper.services.sessions import SessionManager

# Logging
logger = logging.getLogger("gatekeeper")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# --- Security headers middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'self'; style-src 'self' 'unsafe-inline'"
        response.headers["Cache-Control"] = "no-store"
        return response


# --- Request size limit middleware ---
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    MAX_BODY_SIZE = 1024 * 1024  # 1MB, auth payloads are tiny

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.MAX_BODY_SIZE:
            return JSONResponse(status_code=413, content={"error": "Request body too large"})
        return await call_next(request)


# --- Audit logging middleware ---
class AuditLogMiddleware(BaseHTTPMiddleware):
    AUDIT_PATHS = {"/api/auth/"}

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        path = request.url.path
        method = request.method
        if method in MUTATING_METHODS and any(path.startswith(p) for p in self.AUDIT_PATHS):
            logger.info(
                "REQUEST %s %s -> %d (%.0fms) from %s",
                method,
                path,
                response.status_code,
                duration_ms,
                request.client.host if request.client else "unknown",
            )

        return response


# --- Authorization gate middleware ---
def _resolve_user(request: Request, token: str | None) -> User | None:
    if not token:
        return None
    db = request.app.state.session_factory()
    try:
        return build_session_manager(db, request).get_session(token)
    finally:
        db.close()


class AuthorizationMiddleware(BaseHTTPMiddleware):
    """Applies evaluate_access() to every request before it reaches a route."""

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if is_exempt(path):
            return await call_next(request)

        token = request.cookies.get(SESSION_COOKIE_NAME)
        try:
            user = await run_in_threadpool(_resolve_user, request, token)
        except SQLAlchemyError:
            logger.exception("Session lookup failed for %s %s", request.method, path)
            return JSONResponse(status_code=500, content={"error": GENERIC_INTERNAL_MESSAGE})

        decision = evaluate_access(user, path, request.method, has_session_cookie=token is not None)
        api = is_api_path(path)

        if decision.outcome == AccessOutcome.ALLOW:
            response = await call_next(request)
        elif decision.outcome == AccessOutcome.LOGIN_REQUIRED:
            if api:
                response = JSONResponse(status_code=401, content={"error": decision.message})
            else:
                response = RedirectResponse(url=LOGIN_PATH, status_code=302)
        elif decision.outcome == AccessOutcome.ALREADY_AUTHENTICATED:
            response = RedirectResponse(url=HOME_PATH, status_code=302)
        else:
            if api or request.method.upper() in MUTATING_METHODS:
                response = JSONResponse(status_code=403, content={"error": decision.message})
            else:
                response = RedirectResponse(url=HOME_PATH, status_code=302)

        if decision.clear_cookie:
            clear_session_cookie(response, request.app.state.settings)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Report configuration warnings and drop sessions that expired while down."""
    settings = app.state.settings
    for warning in settings.validate():
        logger.warning("Configuration: %s", warning)

    db = app.state.session_factory()
    try:
        manager = SessionManager.from_settings(SessionRepository(db), UserRepository(db), settings, clock=app.state.clock)
        purged = manager.purge_expired()
        logger.info("Purged %d expired session(s)", purged)
    except SQLAlchemyError:
        logger.warning("Could not purge expired sessions at startup", exc_info=True)
    finally:
        db.close()
    yield


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application with its engine, session factory and collaborators."""
    settings = settings or get_settings()
    app = FastAPI(title="Gatekeeper", version="0.1.0", lifespan=lifespan)

    engine = build_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.clock = utcnow
    app.state.sleep = time.sleep
    app.state.audit_logger = AuditLogger()
    app.state.limiter = limiter

    # Last added runs first
    app.add_middleware(AuthorizationMiddleware)
    app.add_middleware(AuditLogMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(auth_router)
    app.include_router(users_router)

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        """Render domain errors as {"error": message}."""
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=exc.payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed request bodies are a 400 like every other input error."""
        errors = exc.errors()
        field = errors[0]["loc"][-1] if errors and errors[0].get("loc") else "body"
        return JSONResponse(status_code=400, content={"error": f"Invalid request: {field}"})

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Handle rate limit exceeded."""
        return JSONResponse(status_code=429, content={"error": "Too many requests. Please try again later."})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": GENERIC_INTERNAL_MESSAGE})


_PAGE = """<!doctype html>
<html><head><meta charset="utf-8"><title>{title}</title></head>
<body><h1>{title}</h1><p>{body}</p></body></html>"""


def _register_routes(app: FastAPI) -> None:
    @app.get("/api/health")
    def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "ok", "app": "gatekeeper", "version": "0.1.0"}

    @app.get("/login", response_class=HTMLResponse)
    def login_page() -> HTMLResponse:
        """Sign-in page; signed-in users are redirected away by the gate."""
        return HTMLResponse(_PAGE.format(title="Sign in", body="POST your credentials to /api/auth/login."))

    @app.get("/verify-2fa", response_class=HTMLResponse)
    def verify_two_factor_page() -> HTMLResponse:
        """Second-factor page."""
        return HTMLResponse(_PAGE.format(title="Two-factor verification", body="POST your code to /api/auth/verify-2fa."))

    @app.get("/admin", response_class=HTMLResponse)
    def admin_home() -> HTMLResponse:
        """Dashboard landing page; only reachable with a valid session."""
        return HTMLResponse(_PAGE.format(title="Admin", body="Signed in."))


app = create_app()
