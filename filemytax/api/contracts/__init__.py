"""Public API response contracts."""

from filemytax.api.contracts.models import (
    AccessTokenResponse,
    ApiErrorResponse,
    AuthSessionResponse,
    HealthResponse,
    MessageResponse,
    UserResponse,
)

__all__ = [
    "AccessTokenResponse",
    "ApiErrorResponse",
    "AuthSessionResponse",
    "HealthResponse",
    "MessageResponse",
    "UserResponse",
]
