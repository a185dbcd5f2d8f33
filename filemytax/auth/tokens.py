"""Access and refresh token lifecycle."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt

from filemytax.api.errors import ApiErrorCode, AuthenticationError, ConfigurationError
from filemytax.auth.models import RefreshTokenRecord
from filemytax.auth.repository import CredentialStore
from filemytax.core.config import AuthConfig
from filemytax.core.security import generate_opaque_token

JWT_ALGORITHM = "HS256"
LOGGER = logging.getLogger(__name__)


class TokenIssuer:
    """Mints signed access tokens and rotating opaque refresh tokens.

    Access tokens are stateless HS256 JWTs. Refresh tokens are random strings
    persisted in the credential store and valid for a single exchange.
    """

    def __init__(
        self,
        store: CredentialStore,
        config: AuthConfig,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock

    def _secret(self) -> str:
        if not self._config.secret_key:
            LOGGER.error("jwt_secret_missing")
            raise ConfigurationError("JWT_SECRET is not configured")
        return self._config.secret_key

    def ensure_configured(self) -> None:
        """Raise ``ConfigurationError`` when tokens cannot be signed."""
        self._secret()

    def issue_access_token(self, user_id: str) -> str:
        """Return a signed access token for ``user_id``."""
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        payload = {
            "sub": user_id,
            "type": "access",
            "iss": self._config.issuer,
            "iat": now,
            "exp": now + timedelta(seconds=self._config.access_token_ttl_seconds),
        }
        return jwt.encode(payload, self._secret(), algorithm=JWT_ALGORITHM)

    def verify_access_token(self, token: str) -> str:
        """Return the user id asserted by ``token``.

        Raises:
            AuthenticationError: ``AUTH_TOKEN_EXPIRED`` once the validity window
                has elapsed, ``AUTH_TOKEN_INVALID`` for any other defect.
            ConfigurationError: The signing secret is missing.
        """
        secret = self._secret()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[JWT_ALGORITHM],
                issuer=self._config.issuer,
                options={"require": ["exp", "sub", "iss"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError(
                ApiErrorCode.AUTH_TOKEN_EXPIRED, "Access token expired"
            ) from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError(
                ApiErrorCode.AUTH_TOKEN_INVALID, "Invalid access token"
            ) from exc

        # PyJWT checks expiry against the wall clock only.
        if int(payload["exp"]) <= int(self._clock()):
            raise AuthenticationError(ApiErrorCode.AUTH_TOKEN_EXPIRED, "Access token expired")
        user_id = payload.get("sub")
        if payload.get("type") != "access" or not isinstance(user_id, str) or not user_id:
            raise AuthenticationError(ApiErrorCode.AUTH_TOKEN_INVALID, "Invalid access token")
        return user_id

    def issue_refresh_token(self, user_id: str) -> RefreshTokenRecord:
        """Persist and return a new refresh token for ``user_id``."""
        now = int(self._clock())
        record = RefreshTokenRecord(
            token=generate_opaque_token(),
            user_id=user_id,
            expires_at=now + self._config.refresh_token_ttl_seconds,
            created_at=now,
        )
        self._store.create_refresh_token(record)
        return record

    def rotate_refresh_token(self, old_token: str) -> RefreshTokenRecord:
        """Exchange ``old_token`` for a new refresh token bound to the same user.

        The old value stops working as soon as this returns. Any failure means
        the caller has to authenticate again.
        """
        now = int(self._clock())
        existing = self._store.get_refresh_token(old_token) if old_token else None
        if existing is None:
            raise AuthenticationError(
                ApiErrorCode.AUTH_REFRESH_INVALID, "Invalid or expired refresh token"
            )
        if existing.expires_at < now:
            self._store.delete_refresh_token(old_token)
            raise AuthenticationError(
                ApiErrorCode.AUTH_REFRESH_EXPIRED, "Invalid or expired refresh token"
            )

        rotated = self._store.rotate_refresh_token(
            old_token,
            generate_opaque_token(),
            expires_at=now + self._config.refresh_token_ttl_seconds,
            now=now,
        )
        if rotated is None:
            # Another request consumed the same token first.
            LOGGER.warning("refresh_token_reuse", extra={"user_id": existing.user_id})
            raise AuthenticationError(
                ApiErrorCode.AUTH_REFRESH_INVALID, "Invalid or expired refresh token"
            )
        return rotated

    def revoke_refresh_token(self, token: str) -> bool:
        """Delete ``token`` if it exists."""
        if not token:
            return False
        return self._store.delete_refresh_token(token)
