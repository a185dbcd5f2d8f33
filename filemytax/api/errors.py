"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_FEDERATED_ONLY = "AUTH_FEDERATED_ONLY"
    AUTH_FEDERATED_INVALID = "AUTH_FEDERATED_INVALID"
    AUTH_REFRESH_INVALID = "AUTH_REFRESH_INVALID"
    AUTH_REFRESH_EXPIRED = "AUTH_REFRESH_EXPIRED"
    AUTH_CURRENT_PASSWORD_INVALID = "AUTH_CURRENT_PASSWORD_INVALID"
    AUTH_RESET_TOKEN_INVALID = "AUTH_RESET_TOKEN_INVALID"
    AUTH_EMAIL_IN_USE = "AUTH_EMAIL_IN_USE"
    AUTH_FEDERATED_ACCOUNT = "AUTH_FEDERATED_ACCOUNT"
    AUTH_RATE_LIMITED = "AUTH_RATE_LIMITED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
        )
        self.error_code = error_code
        self.message = message


class ValidationError(ApiError):
    """Malformed or missing input."""

    def __init__(
        self, message: str, error_code: ApiErrorCode = ApiErrorCode.VALIDATION_ERROR
    ) -> None:
        super().__init__(status_code=400, error_code=error_code, message=message)


class AuthenticationError(ApiError):
    """Bad or expired credentials or tokens."""

    def __init__(self, error_code: ApiErrorCode, message: str) -> None:
        super().__init__(status_code=401, error_code=error_code, message=message)


class ConflictError(ApiError):
    """Duplicate registration."""

    def __init__(self, error_code: ApiErrorCode, message: str) -> None:
        super().__init__(status_code=409, error_code=error_code, message=message)


class NotFoundError(ApiError):
    """Authenticated caller refers to a record that no longer exists."""

    def __init__(
        self, message: str, error_code: ApiErrorCode = ApiErrorCode.USER_NOT_FOUND
    ) -> None:
        super().__init__(status_code=404, error_code=error_code, message=message)


class ConfigurationError(ApiError):
    """Missing secret or provider setting.

    ``message`` is kept for server logs only; the exception handler replaces it
    with a generic text before anything reaches the client.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            status_code=500,
            error_code=ApiErrorCode.CONFIGURATION_ERROR,
            message=message,
        )


def to_error_payload(detail: Any, status_code: int) -> dict[str, str]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
        return {"error_code": error_code, "message": message}
    return {
        "error_code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }
