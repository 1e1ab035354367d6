"""
Name: Authorization Gate

Responsibilities:
  - Decide, per request, whether a resolved user may reach a path with a method
  - Map roles to fine-grained permissions for the user administration endpoints

Collaborators:
  - main.py: AuthorizationMiddleware applies the decision to every request
  - services/sessions.py: resolves the session cookie into a user
  - dependencies.py: require_permission() on individual endpoints

Constraints:
  - evaluate_access() is pure; it never touches storage
  - super_admin is always allowed
  - read_only may never use a mutating method, checked after the path rules
"""

from dataclasses import dataclass
from enum import Enum

from gatekeeper.models.user import Role, User

LOGIN_PATH = "/login"
HOME_PATH = "/admin"

EXEMPT_PATHS = frozenset(
    {
        "/api/health",
        "/api/auth/login",
        "/api/auth/verify-2fa",
        "/api/auth/logout",
        "/api/auth/session",
        "/api/auth/csrf-token",
        "/docs",
        "/openapi.json",
        "/favicon.ico",
    }
)
AUTH_ONLY_PATHS = ("/login", "/verify-2fa")
SETTINGS_PREFIXES = ("/admin/settings", "/api/admin/settings")
USER_MANAGEMENT_PREFIXES = ("/admin/users", "/api/admin/users", "/api/auth/users")
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

SETTINGS_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
USER_MANAGEMENT_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN, Role.MANAGER})

READ_ONLY_MESSAGE = "Read-only users cannot modify data"
INSUFFICIENT_PERMISSIONS_MESSAGE = "Insufficient permissions"


class AccessOutcome(str, Enum):
    ALLOW = "allow"
    LOGIN_REQUIRED = "login_required"
    ALREADY_AUTHENTICATED = "already_authenticated"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class AccessDecision:
    """What the middleware should do with a request."""

    outcome: AccessOutcome
    message: str = ""
    clear_cookie: bool = False

    @property
    def allowed(self) -> bool:
        return self.outcome == AccessOutcome.ALLOW


def _matches(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in prefixes)


def is_exempt(path: str) -> bool:
    return path in EXEMPT_PATHS or path.startswith("/static/")


def is_api_path(path: str) -> bool:
    return path.startswith("/api/")


def _as_role(role: str | Role) -> Role | None:
    try:
        return Role(role)
    except ValueError:
        return None


def can_write(role: str | Role) -> bool:
    return _as_role(role) != Role.READ_ONLY


def can_manage_users(role: str | Role) -> bool:
    return _as_role(role) in USER_MANAGEMENT_ROLES


def can_access_settings(role: str | Role) -> bool:
    return _as_role(role) in SETTINGS_ROLES


def evaluate_access(user: User | None, path: str, method: str, has_session_cookie: bool = False) -> AccessDecision:
    """Decide whether ``user`` may issue ``method`` against ``path``.

    ``has_session_cookie`` tells a stale cookie (present but resolving to no
    session) apart from an anonymous request, so the caller can clear it.
    """
    if is_exempt(path):
        return AccessDecision(AccessOutcome.ALLOW)

    stale_cookie = has_session_cookie and user is None

    if _matches(path, AUTH_ONLY_PATHS):
        if user is not None:
            return AccessDecision(AccessOutcome.ALREADY_AUTHENTICATED)
        return AccessDecision(AccessOutcome.ALLOW, clear_cookie=stale_cookie)

    if user is None:
        return AccessDecision(AccessOutcome.LOGIN_REQUIRED, message="Not authenticated", clear_cookie=stale_cookie)

    if _as_role(user.role) == Role.SUPER_ADMIN:
        return AccessDecision(AccessOutcome.ALLOW)

    if _matches(path, SETTINGS_PREFIXES) and not can_access_settings(user.role):
        return AccessDecision(AccessOutcome.FORBIDDEN, message=INSUFFICIENT_PERMISSIONS_MESSAGE)

    if _matches(path, USER_MANAGEMENT_PREFIXES) and not can_manage_users(user.role):
        return AccessDecision(AccessOutcome.FORBIDDEN, message=INSUFFICIENT_PERMISSIONS_MESSAGE)

    if method.upper() in MUTATING_METHODS and not can_write(user.role):
        return AccessDecision(AccessOutcome.FORBIDDEN, message=READ_ONLY_MESSAGE)

    return AccessDecision(AccessOutcome.ALLOW)


class Permission(str, Enum):
    """Fine-grained permissions checked by individual endpoints."""

    USERS_CREATE = "users.create"
    USERS_READ = "users.read"
    USERS_UPDATE = "users.update"
    USERS_DELETE = "users.delete"
    USERS_DEACTIVATE = "users.deactivate"
    ASSESSMENTS_CREATE = "assessments.create"
    ASSESSMENTS_READ = "assessments.read"
    ASSESSMENTS_UPDATE = "assessments.update"
    ASSESSMENTS_DELETE = "assessments.delete"
    ASSESSMENTS_EXPORT = "assessments.export"
    COMPLAINTS_CREATE = "complaints.create"
    COMPLAINTS_READ = "complaints.read"
    COMPLAINTS_UPDATE = "complaints.update"
    COMPLAINTS_DELETE = "complaints.delete"
    SETTINGS_READ = "settings.read"
    SETTINGS_UPDATE = "settings.update"
    REPORTS_GENERATE = "reports.generate"
    REPORTS_EXPORT = "reports.export"
    AUDIT_LOGS_READ = "audit_logs.read"


_ADMIN_PERMISSIONS = frozenset(Permission) - {Permission.USERS_DELETE}

ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.SUPER_ADMIN: frozenset(Permission),
    Role.ADMIN: _ADMIN_PERMISSIONS,
    Role.MANAGER: frozenset(
        {
            Permission.USERS_READ,
            Permission.ASSESSMENTS_CREATE,
            Permission.ASSESSMENTS_READ,
            Permission.ASSESSMENTS_UPDATE,
            Permission.ASSESSMENTS_EXPORT,
            Permission.COMPLAINTS_CREATE,
            Permission.COMPLAINTS_READ,
            Permission.COMPLAINTS_UPDATE,
            Permission.REPORTS_GENERATE,
            Permission.REPORTS_EXPORT,
        }
    ),
    Role.REVIEWER: frozenset(
        {
            Permission.ASSESSMENTS_READ,
            Permission.ASSESSMENTS_UPDATE,
            Permission.COMPLAINTS_READ,
            Permission.COMPLAINTS_UPDATE,
            Permission.REPORTS_GENERATE,
        }
    ),
    Role.READ_ONLY: frozenset(
        {
            Permission.ASSESSMENTS_READ,
            Permission.COMPLAINTS_READ,
            Permission.REPORTS_GENERATE,
            Permission.AUDIT_LOGS_READ,
        }
    ),
}


def has_permission(role: str | Role, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS.get(_as_role(role), frozenset())

