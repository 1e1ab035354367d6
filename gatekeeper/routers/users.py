"""User administration API endpoints."""

from fastapi import APIRouter, Depends, Request

from gatekeeper.access_control import Permission
from gatekeeper.csrf import require_csrf_token
from gatekeeper.dependencies import get_user_service, require_permission
from gatekeeper.models.user import User
from gatekeeper.rate_limit import limiter
from gatekeeper.schemas.auth import SuccessResponse, UserProfile
from gatekeeper.schemas.user import (
    CreateUserRequest,
    TwoFactorQrResponse,
    UpdateUserRequest,
    UserListResponse,
    UserResponse,
)
from gatekeeper.services.users import UserService

router = APIRouter(
    prefix="/api/auth/users",
    tags=["Users"],
    dependencies=[Depends(require_csrf_token)],
)


@router.get("", response_model=UserListResponse)
def list_users(
    _: User = Depends(require_permission(Permission.USERS_READ)),
    service: UserService = Depends(get_user_service),
) -> UserListResponse:
    """List all accounts."""
    users = service.list_users()
    return UserListResponse(items=[UserProfile.from_user(u) for u in users], total=len(users))


@router.post("", response_model=UserResponse, response_model_exclude_none=True, status_code=201)
@limiter.limit("5/minute")
def create_user(
    request: Request,
    body: CreateUserRequest,
    actor: User = Depends(require_permission(Permission.USERS_CREATE)),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    """Create an account; includes the otpauth URL when two-factor is enabled."""
    created = service.create_user(
        actor,
        email=body.email,
        name=body.name,
        password=body.password,
        role=body.role,
        two_factor_enabled=body.two_factor_enabled,
    )
    return UserResponse(user=UserProfile.from_user(created.user), otpauth_url=created.otpauth_uri)


@router.patch("/{user_id}", response_model=UserResponse, response_model_exclude_none=True)
def update_user(
    user_id: int,
    body: UpdateUserRequest,
    actor: User = Depends(require_permission(Permission.USERS_UPDATE)),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    """Change name, role, active flag or password."""
    user = service.update_user(
        actor,
        user_id,
        name=body.name,
        role=body.role,
        is_active=body.is_active,
        password=body.password,
    )
    return UserResponse(user=UserProfile.from_user(user))


@router.delete("/{user_id}", response_model=SuccessResponse)
def deactivate_user(
    user_id: int,
    actor: User = Depends(require_permission(Permission.USERS_DEACTIVATE)),
    service: UserService = Depends(get_user_service),
) -> SuccessResponse:
    """Soft delete an account and revoke its sessions."""
    service.deactivate_user(actor, user_id)
    return SuccessResponse()


@router.get("/{user_id}/2fa-qr", response_model=TwoFactorQrResponse)
def two_factor_qr(
    user_id: int,
    _: User = Depends(require_permission(Permission.USERS_UPDATE)),
    service: UserService = Depends(get_user_service),
) -> TwoFactorQrResponse:
    """QR code and otpauth URL for an enrolled user's authenticator app."""
    setup = service.two_factor_setup(user_id)
    return TwoFactorQrResponse(email=setup.email, qr_code=setup.qr_code, otpauth_url=setup.otpauth_uri)
