"""Typed account operations on top of ``ApiClient``."""

from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from filemytax.client.api_client import ApiClient

LOGGER = logging.getLogger(__name__)


class AuthClientError(Exception):
    """Server rejected an account operation."""

    def __init__(self, status_code: int, error_code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message


class ClientUser(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

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
    has_password: bool = False


def _raise_for_error(response: requests.Response, fallback: str) -> None:
    if response.ok:
        return
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    raise AuthClientError(
        response.status_code,
        str(body.get("error_code") or f"HTTP_{response.status_code}"),
        str(body.get("message") or fallback),
    )


class AuthClient:
    """Account lifecycle calls. Successful logins populate the token holder."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    def _authenticate(self, path: str, payload: dict[str, Any]) -> ClientUser:
        response = self.api.post(path, payload)
        _raise_for_error(response, "Authentication failed")
        body = response.json()
        self.api.tokens.set(body["accessToken"])
        return ClientUser.model_validate(body["user"])

    def register(self, email: str, password: str, name: str | None = None) -> ClientUser:
        return self._authenticate(
            "/auth/register", {"email": email, "password": password, "name": name}
        )

    def login(self, email: str, password: str) -> ClientUser:
        return self._authenticate("/auth/login", {"email": email, "password": password})

    def google_login(self, id_token: str) -> ClientUser:
        return self._authenticate("/auth/google", {"idToken": id_token})

    def logout(self) -> None:
        """Revoke the server session; the local token is cleared regardless."""
        try:
            self.api.post("/auth/logout")
        except requests.RequestException as exc:
            LOGGER.warning("logout_request_failed: %s", exc)
        finally:
            self.api.tokens.clear()

    def me(self) -> ClientUser | None:
        """Return the current user, or ``None`` when the session is gone."""
        response = self.api.get("/auth/me")
        if not response.ok:
            return None
        return ClientUser.model_validate(response.json())

    def update_profile(self, **fields: str | None) -> ClientUser:
        payload = {to_camel(key): value for key, value in fields.items()}
        response = self.api.put("/auth/profile", payload)
        _raise_for_error(response, "Failed to update profile")
        return ClientUser.model_validate(response.json())

    def set_password(self, current_password: str | None, new_password: str) -> None:
        response = self.api.post(
            "/auth/set-password",
            {"currentPassword": current_password, "newPassword": new_password},
        )
        _raise_for_error(response, "Failed to set password")

    def forgot_password(self, email: str) -> None:
        self.api.post("/auth/forgot-password", {"email": email})

    def reset_password(self, token: str, new_password: str) -> None:
        response = self.api.post(
            "/auth/reset-password", {"token": token, "newPassword": new_password}
        )
        _raise_for_error(response, "Reset failed")
