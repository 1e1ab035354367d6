"""Pydantic schemas for authentication endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from gatekeeper.models.user import User


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class TwoFactorVerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str | None = None
    temp_token: str | None = Field(default=None, alias="tempToken")


class UserProfile(BaseModel):
    """User fields safe to return to the client. Never the hash or the 2FA secret."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    email: str
    name: str
    role: str
    is_active: bool = Field(alias="isActive")
    two_factor_enabled: bool = Field(alias="twoFactorEnabled")
    last_login: datetime | None = Field(default=None, alias="lastLogin")

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            is_active=user.is_active,
            two_factor_enabled=user.two_factor_enabled,
            last_login=user.last_login_at,
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: UserProfile | None = None
    requires_two_factor: bool | None = Field(default=None, alias="requiresTwoFactor")
    temp_token: str | None = Field(default=None, alias="tempToken")


class CsrfTokenResponse(BaseModel):
    token: str


class SessionResponse(BaseModel):
    user: UserProfile


class SuccessResponse(BaseModel):
    success: bool = True
