"""Local and federated identity verification."""

from __future__ import annotations

import logging
import uuid
from functools import cached_property
from typing import Any, Protocol

from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from filemytax.api.errors import ApiErrorCode, AuthenticationError, ConfigurationError
from filemytax.auth.models import FederatedIdentity, User
from filemytax.auth.repository import (
    CredentialStore,
    DuplicateUserError,
    find_user_for_federated_login,
    normalize_email,
)
from filemytax.core.config import AuthConfig
from filemytax.core.logging import mask_email
from filemytax.core.security import hash_password, verify_password

LOGGER = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
FEDERATED_ONLY_MESSAGE = (
    "This account uses Google Sign-In. Click the Google button to sign in, "
    'or use "Forgot password?" to set a password.'
)


class IdentityProvider(Protocol):
    """Verifies a third-party ID token and returns its claims."""

    def verify(self, token: str) -> dict[str, Any]: ...


class GoogleIdentityProvider:
    """Google ID token verification via ``google-auth``."""

    def __init__(self, client_id: str, request: Any = None) -> None:
        self._client_id = client_id
        self._request = request

    def verify(self, token: str) -> dict[str, Any]:
        if not self._client_id:
            LOGGER.error("google_client_id_missing")
            raise ConfigurationError("GOOGLE_CLIENT_ID is not configured")
        if self._request is None:
            self._request = google_requests.Request()
        try:
            return google_id_token.verify_oauth2_token(
                token, self._request, audience=self._client_id
            )
        except (ValueError, google_exceptions.GoogleAuthError) as exc:
            LOGGER.info("google_token_rejected: %s", exc)
            raise AuthenticationError(
                ApiErrorCode.AUTH_FEDERATED_INVALID, "Invalid Google token"
            ) from exc


class IdentityVerifier:
    """Maps credentials and federated identities onto user records."""

    def __init__(
        self,
        store: CredentialStore,
        provider: IdentityProvider,
        config: AuthConfig,
    ) -> None:
        self._store = store
        self._provider = provider
        self._config = config

    @cached_property
    def _dummy_hash(self) -> str:
        return hash_password(uuid.uuid4().hex, rounds=self._config.bcrypt_rounds)

    def verify_local_credentials(self, email: str, password: str) -> User:
        """Return the user owning ``email`` when ``password`` matches.

        Unknown email and wrong password produce the same error. Accounts
        without a password hash get ``AUTH_FEDERATED_ONLY`` instead.
        """
        user = self._store.get_user_by_email(email)
        if user is None:
            # Keep the response time of unknown emails close to real checks.
            verify_password(password, self._dummy_hash)
            raise AuthenticationError(
                ApiErrorCode.AUTH_INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE
            )
        if user.password_hash is None:
            raise AuthenticationError(
                ApiErrorCode.AUTH_FEDERATED_ONLY, FEDERATED_ONLY_MESSAGE
            )
        if not verify_password(password, user.password_hash):
            raise AuthenticationError(
                ApiErrorCode.AUTH_INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE
            )
        return user

    def verify_federated_identity(self, token: str) -> FederatedIdentity:
        """Validate a Google ID token against the configured audience."""
        claims = self._provider.verify(token)
        subject = str(claims.get("sub") or "").strip()
        email = str(claims.get("email") or "").strip()
        if not subject or not email:
            raise AuthenticationError(
                ApiErrorCode.AUTH_FEDERATED_INVALID, "Could not read Google profile"
            )
        return FederatedIdentity(
            subject=subject,
            email=normalize_email(email),
            name=claims.get("name") or None,
            email_verified=claims.get("email_verified") in (True, "true"),
        )

    def resolve_or_create_federated_user(self, identity: FederatedIdentity) -> User:
        """Find the user for ``identity``, linking or creating as needed."""
        user = find_user_for_federated_login(
            self._store, identity.subject, identity.email
        )
        if user is None:
            try:
                return self._store.create_user(
                    User(
                        user_id=uuid.uuid4().hex,
                        email=identity.email,
                        google_id=identity.subject,
                        name=identity.name,
                    )
                )
            except DuplicateUserError:
                # A concurrent login for the same identity created it first.
                user = find_user_for_federated_login(
                    self._store, identity.subject, identity.email
                )
                if user is None:
                    raise
                return user

        if user.google_id == identity.subject:
            return user
        if user.google_id is not None:
            LOGGER.warning(
                "google_subject_mismatch",
                extra={"user_id": user.user_id},
            )
            raise AuthenticationError(
                ApiErrorCode.AUTH_FEDERATED_INVALID,
                "This email is linked to a different Google account",
            )
        if (
            user.has_password
            and self._config.google_link_requires_verified_email
            and not identity.email_verified
        ):
            raise AuthenticationError(
                ApiErrorCode.AUTH_FEDERATED_INVALID,
                "Google has not verified this email address",
            )

        LOGGER.info(
            "google_identity_linked: %s",
            mask_email(user.email),
            extra={"user_id": user.user_id},
        )
        return self._store.update_user(user.model_copy(update={"google_id": identity.subject}))
