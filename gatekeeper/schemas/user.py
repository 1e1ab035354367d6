"""Pydantic schemas for user administration endpoints."""

from pydantic import BaseModel, ConfigDict, Field

from gatekeeper.schemas.auth import UserProfile


class CreateUserRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    name: str | None = None
    password: str | None = None
    role: str | None = None
    two_factor_enabled: bool = Field(default=False, alias="twoFactorEnabled")


class UpdateUserRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    role: str | None = None
    is_active: bool | None = Field(default=None, alias="isActive")
    password: str | None = None


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: UserProfile
    otpauth_url: str | None = Field(default=None, alias="otpauthUrl")


class UserListResponse(BaseModel):
    items: list[UserProfile]
    total: int


class TwoFactorQrResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    qr_code: str = Field(alias="qrCode")
    otpauth_url: str = Field(alias="otpauthUrl")
