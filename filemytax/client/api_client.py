"""HTTP client that attaches the access token and refreshes it transparently."""

from __future__ import annotations

import logging
from typing import Any

import requests

from filemytax.client.session import SingleFlightRefresh, TokenHolder

LOGGER = logging.getLogger(__name__)

REFRESH_PATH = "/auth/refresh"
# A 401 from these means bad credentials, not a stale access token.
NO_REFRESH_PATHS = frozenset(
    {
        "/auth/login",
        "/auth/register",
        "/auth/google",
        REFRESH_PATH,
        "/auth/logout",
        "/auth/forgot-password",
        "/auth/reset-password",
    }
)


class ApiClient:
    """JSON API client with single-flight access token refresh.

    The refresh token lives in the HTTP-only cookie kept by the underlying
    ``requests.Session``; this class never sees its value.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        tokens: TokenHolder | None = None,
        timeout_sec: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout_sec = timeout_sec
        self.tokens = tokens or TokenHolder()
        self.refresher = SingleFlightRefresh(self._refresh_access_token)

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    def _refresh_access_token(self) -> str | None:
        try:
            response = self._session.request(
                "POST", self._url(REFRESH_PATH), timeout=self._timeout_sec
            )
            token = response.json().get("accessToken") if response.ok else None
        except requests.RequestException as exc:
            LOGGER.warning("access_token_refresh_failed: %s", exc)
            token = None
        if not token:
            self.tokens.clear()
            return None
        self.tokens.set(token)
        return token

    def _send(self, method: str, path: str, token: str | None, body: Any) -> requests.Response:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        kwargs: dict[str, Any] = {"headers": headers, "timeout": self._timeout_sec}
        if body is not None:
            kwargs["json"] = body
        return self._session.request(method, self._url(path), **kwargs)

    def request(self, method: str, path: str, body: Any = None) -> requests.Response:
        """Send a request, refreshing and replaying once on 401."""
        sent_with = self.tokens.get()
        response = self._send(method, path, sent_with, body)
        if response.status_code != 401 or path in NO_REFRESH_PATHS:
            return response

        current = self.tokens.get()
        if current and current != sent_with:
            # Another request refreshed while this one was in flight.
            new_token: str | None = current
        else:
            new_token = self.refresher.run()
        if not new_token:
            return response
        return self._send(method, path, new_token, body)

    def get(self, path: str) -> requests.Response:
        return self.request("GET", path)

    def post(self, path: str, body: Any = None) -> requests.Response:
        return self.request("POST", path, body)

    def put(self, path: str, body: Any = None) -> requests.Response:
        return self.request("PUT", path, body)
