"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from filemytax.auth.models import User


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class _CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserResponse(_CamelResponse):
    """Public user profile; never includes the password hash."""

    id: str
    email: str
    name: str | None = None
    first_name: str | None = None
    middle_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    date_of_birth: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None
    has_password: bool

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.user_id,
            has_password=user.has_password,
            **user.model_dump(
                exclude={"user_id", "password_hash", "google_id", "created_at", "updated_at"}
            ),
        )


class AuthSessionResponse(_CamelResponse):
    """Login/registration response; the refresh token travels in a cookie."""

    access_token: str
    user: UserResponse


class AccessTokenResponse(_CamelResponse):
    """Refresh response carrying only the new access token."""

    access_token: str


class MessageResponse(BaseModel):
    """Plain acknowledgement payload."""

    message: str
