"""Request-level authorization for bearer access tokens."""

from __future__ import annotations

from typing import Callable

from fastapi import Header, Request

from filemytax.api.errors import ApiErrorCode, AuthenticationError
from filemytax.auth.tokens import TokenIssuer


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def create_current_user_dependency(issuer: TokenIssuer) -> Callable[..., str]:
    """Create a FastAPI dependency resolving the caller's user id."""

    def current_user_id(
        request: Request, authorization: str | None = Header(default=None)
    ) -> str:
        """Validate the bearer token and attach the user id to request state."""
        token = extract_bearer_token(authorization)
        if not token:
            raise AuthenticationError(ApiErrorCode.AUTH_MISSING_TOKEN, "No token provided")
        user_id = issuer.verify_access_token(token)
        request.state.user_id = user_id
        return user_id

    return current_user_id
