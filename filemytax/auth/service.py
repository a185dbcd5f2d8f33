"""Account lifecycle: registration, login, refresh, profile and passwords."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable
from urllib.parse import urlencode

from pydantic import BaseModel

from filemytax.api.errors import (
    ApiErrorCode,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from filemytax.auth.identity import IdentityVerifier
from filemytax.auth.models import (
    PROFILE_FIELDS,
    AuthSession,
    PasswordResetRecord,
    ProfileUpdateRequest,
    User,
)
from filemytax.auth.repository import CredentialStore, DuplicateUserError
from filemytax.auth.tokens import TokenIssuer
from filemytax.core.config import AuthConfig
from filemytax.core.logging import mask_email
from filemytax.core.security import generate_opaque_token, hash_password, verify_password
from filemytax.notify import Notifier, ResetEmail

LOGGER = logging.getLogger(__name__)

RESET_INVALID_MESSAGE = "Invalid or expired reset link. Please request a new one."
FEDERATED_ACCOUNT_MESSAGE = (
    "This email is linked to a Google account. Use \"Forgot password?\" "
    "to set a password and enable email login."
)


class RefreshedTokens(BaseModel):
    """Result of a refresh: new access token plus the rotated refresh token."""

    access_token: str
    refresh_token: str


def _clean(value: str | None) -> str | None:
    """Trim ``value`` and map blanks to ``None``."""
    stripped = (value or "").strip()
    return stripped or None


class AuthService:
    """Coordinates the credential store, token issuer and identity verifier."""

    def __init__(
        self,
        *,
        store: CredentialStore,
        issuer: TokenIssuer,
        identity: IdentityVerifier,
        notifier: Notifier,
        config: AuthConfig,
        frontend_url: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._issuer = issuer
        self._identity = identity
        self._notifier = notifier
        self._config = config
        self._frontend_url = frontend_url.rstrip("/")
        self._clock = clock

    @property
    def issuer(self) -> TokenIssuer:
        return self._issuer

    def _issue_session(self, user: User) -> AuthSession:
        access_token = self._issuer.issue_access_token(user.user_id)
        refresh = self._issuer.issue_refresh_token(user.user_id)
        return AuthSession(access_token=access_token, refresh_token=refresh.token, user=user)

    def _require_password_length(self, password: str, message: str) -> None:
        if len(password) < self._config.min_password_length:
            raise ValidationError(message)

    def register(self, email: str | None, password: str | None, name: str | None = None) -> AuthSession:
        """Create a password account and open a session for it."""
        email = (email or "").strip()
        if not email or not password:
            raise ValidationError("Email and password are required")
        self._require_password_length(
            password,
            f"Password must be at least {self._config.min_password_length} characters",
        )

        existing = self._store.get_user_by_email(email)
        if existing is not None:
            raise self._duplicate_error(existing)
        self._issuer.ensure_configured()

        try:
            user = self._store.create_user(
                User(
                    user_id=uuid.uuid4().hex,
                    email=email,
                    password_hash=hash_password(password, rounds=self._config.bcrypt_rounds),
                    name=_clean(name),
                )
            )
        except DuplicateUserError as exc:
            raise ConflictError(ApiErrorCode.AUTH_EMAIL_IN_USE, "Email already in use") from exc

        LOGGER.info("user_registered", extra={"user_id": user.user_id})
        return self._issue_session(user)

    @staticmethod
    def _duplicate_error(existing: User) -> ConflictError:
        if existing.is_federated_only:
            return ConflictError(ApiErrorCode.AUTH_FEDERATED_ACCOUNT, FEDERATED_ACCOUNT_MESSAGE)
        return ConflictError(ApiErrorCode.AUTH_EMAIL_IN_USE, "Email already in use")

    def login(self, email: str | None, password: str | None) -> AuthSession:
        """Authenticate local credentials and open a session."""
        email = (email or "").strip()
        if not email or not password:
            raise ValidationError("Email and password are required")
        user = self._identity.verify_local_credentials(email, password)
        LOGGER.info("user_logged_in", extra={"user_id": user.user_id})
        return self._issue_session(user)

    def google_login(self, id_token: str | None) -> AuthSession:
        """Authenticate a Google ID token, creating or linking the account."""
        if not id_token:
            raise ValidationError("idToken is required")
        self._issuer.ensure_configured()
        identity = self._identity.verify_federated_identity(id_token)
        user = self._identity.resolve_or_create_federated_user(identity)
        LOGGER.info("user_logged_in_google", extra={"user_id": user.user_id})
        return self._issue_session(user)

    def refresh(self, refresh_token: str | None) -> RefreshedTokens:
        """Rotate ``refresh_token`` and mint a new access token."""
        if not refresh_token:
            raise AuthenticationError(ApiErrorCode.AUTH_REFRESH_INVALID, "No refresh token")
        self._issuer.ensure_configured()
        rotated = self._issuer.rotate_refresh_token(refresh_token)
        return RefreshedTokens(
            access_token=self._issuer.issue_access_token(rotated.user_id),
            refresh_token=rotated.token,
        )

    def logout(self, refresh_token: str | None) -> None:
        """Revoke ``refresh_token`` when present; unknown tokens are ignored."""
        if refresh_token:
            self._issuer.revoke_refresh_token(refresh_token)

    def get_user(self, user_id: str) -> User:
        user = self._store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def update_profile(self, user_id: str, update: ProfileUpdateRequest) -> User:
        """Replace profile fields; the display name follows first and last name."""
        user = self.get_user(user_id)
        fields = {field: _clean(getattr(update, field)) for field in PROFILE_FIELDS}
        first, last = fields["first_name"], fields["last_name"]
        fields["name"] = f"{first} {last}" if first and last else first or last
        return self._store.update_user(user.model_copy(update=fields))

    def set_password(
        self, user_id: str, current_password: str | None, new_password: str | None
    ) -> None:
        """Set a first password or change an existing one.

        Accounts that already have a password must re-enter it.
        """
        message = f"New password must be at least {self._config.min_password_length} characters"
        if not new_password:
            raise ValidationError(message)
        self._require_password_length(new_password, message)

        user = self.get_user(user_id)
        if user.password_hash is not None:
            if not current_password:
                raise ValidationError("Current password is required")
            if not verify_password(current_password, user.password_hash):
                raise AuthenticationError(
                    ApiErrorCode.AUTH_CURRENT_PASSWORD_INVALID,
                    "Current password is incorrect",
                )

        self._store.update_user(
            user.model_copy(
                update={
                    "password_hash": hash_password(
                        new_password, rounds=self._config.bcrypt_rounds
                    )
                }
            )
        )
        LOGGER.info("password_set", extra={"user_id": user.user_id})

    async def send_password_reset(self, email: Any) -> None:
        """Issue a reset token for ``email`` and mail the link.

        Runs after the response has been sent. Unknown or malformed emails are
        ignored, and delivery errors are only logged.
        """
        if not isinstance(email, str) or not email.strip():
            return
        user = self._store.get_user_by_email(email)
        if user is None:
            LOGGER.info("password_reset_unknown_email")
            return

        now = int(self._clock())
        record = PasswordResetRecord(
            token=generate_opaque_token(),
            user_id=user.user_id,
            expires_at=now + self._config.reset_token_ttl_seconds,
            created_at=now,
        )
        self._store.replace_password_reset_token(record)

        reset_url = f"{self._frontend_url}/reset-password?{urlencode({'token': record.token})}"
        try:
            await self._notifier.send_reset_email(ResetEmail(to=user.email, reset_url=reset_url))
        except Exception:
            LOGGER.exception(
                "password_reset_email_failed: %s",
                mask_email(user.email),
                extra={"user_id": user.user_id, "provider": self._notifier.name},
            )
            return
        LOGGER.info(
            "password_reset_email_sent",
            extra={"user_id": user.user_id, "provider": self._notifier.name},
        )

    def reset_password(self, token: str | None, new_password: str | None) -> None:
        """Consume a reset token and store the new password."""
        if not token or not new_password:
            raise ValidationError("Token and new password are required")
        self._require_password_length(
            new_password,
            f"Password must be at least {self._config.min_password_length} characters",
        )

        record = self._store.get_password_reset_token(token)
        if record is None:
            raise ValidationError(RESET_INVALID_MESSAGE, ApiErrorCode.AUTH_RESET_TOKEN_INVALID)
        if record.expires_at < int(self._clock()):
            self._store.delete_password_reset_token(token)
            raise ValidationError(RESET_INVALID_MESSAGE, ApiErrorCode.AUTH_RESET_TOKEN_INVALID)
        user = self._store.get_user_by_id(record.user_id)
        # Delete before the update so a token cannot be consumed twice.
        if user is None or not self._store.delete_password_reset_token(token):
            raise ValidationError(RESET_INVALID_MESSAGE, ApiErrorCode.AUTH_RESET_TOKEN_INVALID)

        self._store.update_user(
            user.model_copy(
                update={
                    "password_hash": hash_password(
                        new_password, rounds=self._config.bcrypt_rounds
                    )
                }
            )
        )
        LOGGER.info("password_reset_completed", extra={"user_id": user.user_id})

    def purge_expired_refresh_tokens(self) -> int:
        """Delete refresh tokens whose expiry has passed."""
        removed = self._store.delete_expired_refresh_tokens(int(self._clock()))
        if removed:
            LOGGER.info("expired_refresh_tokens_purged: %d", removed)
        return removed
