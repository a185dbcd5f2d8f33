"""Pydantic models for the authentication domain."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

PROFILE_FIELDS = (
    "first_name",
    "middle_name",
    "last_name",
    "phone",
    "date_of_birth",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip",
    "country",
)


class User(BaseModel):
    """Persisted user record.

    ``password_hash`` is ``None`` for federated-only accounts and
    ``google_id`` is ``None`` until a Google identity is linked.
    """

    user_id: str
    email: str
    password_hash: str | None = None
    google_id: str | None = None
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
    created_at: int = 0
    updated_at: int = 0

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    @property
    def is_federated_only(self) -> bool:
        return self.password_hash is None and self.google_id is not None


class RefreshTokenRecord(BaseModel):
    """Refresh token persistence record."""

    token: str
    user_id: str
    expires_at: int
    created_at: int = 0


class PasswordResetRecord(BaseModel):
    """Password reset token persistence record."""

    token: str
    user_id: str
    expires_at: int
    created_at: int = 0


class FederatedIdentity(BaseModel):
    """Identity claims extracted from a verified third-party ID token."""

    subject: str
    email: str
    name: str | None = None
    email_verified: bool = False


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(_CamelModel):
    """Registration payload. Presence checks happen in the service."""

    email: str | None = None
    password: str | None = None
    name: str | None = None


class LoginRequest(_CamelModel):
    """Login request payload."""

    email: str | None = None
    password: str | None = None


class GoogleLoginRequest(_CamelModel):
    """Federated login payload carrying a Google ID token."""

    id_token: str | None = None


class ProfileUpdateRequest(_CamelModel):
    """Profile fields; omitted or blank values are stored as null."""

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


class SetPasswordRequest(_CamelModel):
    """Set or change password payload."""

    current_password: str | None = None
    new_password: str | None = None


class ForgotPasswordRequest(_CamelModel):
    """Forgot password payload; any value is accepted."""

    email: Any = None


class ResetPasswordRequest(_CamelModel):
    """Reset password payload."""

    token: str | None = None
    new_password: str | None = None


class AuthSession(BaseModel):
    """Issued session: access token for the body, refresh token for the cookie."""

    access_token: str
    refresh_token: str
    user: User
