from __future__ import annotations

import sqlite3
from pathlib import Path

from fastapi.testclient import TestClient

from filemytax.api.application import create_app
from filemytax.auth.repository import SqliteCredentialStore
from tests.fakes import FakeGoogleProvider, RecordingNotifier, make_app_config

COOKIE = "fmt_refresh"


def _register(client: TestClient, email: str = "grace@example.org", password: str = "hopper-1906"):
    return client.post(
        "/auth/register",
        json={"email": email, "password": password, "name": "Grace Hopper"},
    )


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _reset_rows(tmp_path: Path) -> int:
    with sqlite3.connect(tmp_path / "auth_state.db") as connection:
        return connection.execute("SELECT COUNT(*) FROM auth_password_reset_tokens").fetchone()[0]


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_register_sets_refresh_cookie_and_hides_password_hash(client: TestClient) -> None:
    response = _register(client)

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "grace@example.org"
    assert body["user"]["hasPassword"] is True
    assert "passwordHash" not in body["user"]
    assert "password_hash" not in body["user"]
    assert "refreshToken" not in body
    set_cookie = response.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "path=/auth" in set_cookie
    assert "samesite=lax" in set_cookie
    assert response.cookies.get(COOKIE)


def test_register_duplicate_returns_conflict(client: TestClient) -> None:
    _register(client)

    response = _register(client, email="GRACE@example.org")

    assert response.status_code == 409
    assert response.json()["error_code"] == "AUTH_EMAIL_IN_USE"


def test_register_and_login_resolve_to_same_user(client: TestClient) -> None:
    registered = _register(client).json()

    login = client.post("/auth/login", json={"email": "grace@example.org", "password": "hopper-1906"})
    me = client.get("/auth/me", headers=_bearer(login.json()["accessToken"]))

    assert login.status_code == 200
    assert me.status_code == 200
    assert me.json()["id"] == registered["user"]["id"]


def test_login_with_wrong_password_is_generic(client: TestClient) -> None:
    _register(client)

    wrong = client.post("/auth/login", json={"email": "grace@example.org", "password": "nope-nope"})
    unknown = client.post("/auth/login", json={"email": "who@example.org", "password": "nope-nope"})

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


def test_login_missing_fields_is_bad_request(client: TestClient) -> None:
    response = client.post("/auth/login", json={"email": "grace@example.org"})

    assert response.status_code == 400
    assert response.json()["message"] == "Email and password are required"


def test_malformed_body_is_bad_request(client: TestClient) -> None:
    response = client.post("/auth/login", json={"email": 5, "password": "hopper-1906"})

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"


def test_login_locks_out_after_repeated_failures(client: TestClient) -> None:
    _register(client)
    for _ in range(3):
        client.post("/auth/login", json={"email": "grace@example.org", "password": "wrong-pass"})

    response = client.post("/auth/login", json={"email": "grace@example.org", "password": "hopper-1906"})

    assert response.status_code == 429
    assert response.json()["error_code"] == "AUTH_RATE_LIMITED"


def test_refresh_rotates_cookie_and_rejects_replay(client: TestClient) -> None:
    old_token = _register(client).cookies.get(COOKIE)

    refreshed = client.post("/auth/refresh")
    new_token = refreshed.cookies.get(COOKIE)

    assert refreshed.status_code == 200
    assert refreshed.json()["accessToken"]
    assert new_token and new_token != old_token

    client.cookies.clear()
    replay = client.post("/auth/refresh", headers={"Cookie": f"{COOKIE}={old_token}"})

    assert replay.status_code == 401
    assert replay.json()["error_code"] == "AUTH_REFRESH_INVALID"
    assert "max-age=0" in replay.headers["set-cookie"].lower()


def test_refresh_without_cookie_is_unauthorized(client: TestClient) -> None:
    response = client.post("/auth/refresh")

    assert response.status_code == 401
    assert response.json()["message"] == "No refresh token"


def test_logout_is_idempotent_and_revokes_cookie(client: TestClient) -> None:
    token = _register(client).cookies.get(COOKIE)

    first = client.post("/auth/logout")
    client.cookies.clear()
    second = client.post("/auth/logout")
    replay = client.post("/auth/refresh", headers={"Cookie": f"{COOKIE}={token}"})

    assert first.status_code == second.status_code == 200
    assert first.json() == {"message": "Logged out"}
    assert replay.status_code == 401


def test_me_requires_bearer_token(client: TestClient) -> None:
    missing = client.get("/auth/me")
    garbage = client.get("/auth/me", headers=_bearer("garbage"))

    assert missing.status_code == 401
    assert missing.json() == {"error_code": "AUTH_MISSING_TOKEN", "message": "No token provided"}
    assert garbage.status_code == 401
    assert garbage.json()["error_code"] == "AUTH_TOKEN_INVALID"


def test_profile_update_round_trips_camel_case_fields(client: TestClient) -> None:
    token = _register(client).json()["accessToken"]

    response = client.put(
        "/auth/profile",
        headers=_bearer(token),
        json={"firstName": "Grace", "lastName": "Hopper", "addressLine1": "1 Navy Way", "zip": "22202"},
    )
    me = client.get("/auth/me", headers=_bearer(token)).json()

    assert response.status_code == 200
    assert me["name"] == "Grace Hopper"
    assert me["addressLine1"] == "1 Navy Way"
    assert me["zip"] == "22202"
    assert me["city"] is None


def test_google_login_then_set_password_enables_email_login(client: TestClient) -> None:
    first = client.post("/auth/google", json={"idToken": "google-token-ada"})
    second = client.post("/auth/google", json={"idToken": "google-token-ada-again"})

    assert first.status_code == second.status_code == 200
    assert first.json()["user"]["id"] == second.json()["user"]["id"]
    assert first.json()["user"]["hasPassword"] is False

    blocked = client.post("/auth/login", json={"email": "ada@example.org", "password": "engine-1843"})
    assert blocked.status_code == 401
    assert blocked.json()["error_code"] == "AUTH_FEDERATED_ONLY"

    set_password = client.post(
        "/auth/set-password",
        headers=_bearer(second.json()["accessToken"]),
        json={"newPassword": "engine-1843"},
    )
    login = client.post("/auth/login", json={"email": "ada@example.org", "password": "engine-1843"})

    assert set_password.status_code == 200
    assert login.status_code == 200
    assert login.json()["user"]["id"] == first.json()["user"]["id"]


def test_google_login_with_bad_token(client: TestClient) -> None:
    response = client.post("/auth/google", json={"idToken": "forged"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "AUTH_FEDERATED_INVALID"


def test_set_password_wrong_current_password(client: TestClient) -> None:
    token = _register(client).json()["accessToken"]

    response = client.post(
        "/auth/set-password",
        headers=_bearer(token),
        json={"currentPassword": "not-it-at-all", "newPassword": "another-pass"},
    )

    assert response.status_code == 401
    assert response.json()["error_code"] == "AUTH_CURRENT_PASSWORD_INVALID"
    login = client.post("/auth/login", json={"email": "grace@example.org", "password": "hopper-1906"})
    assert login.status_code == 200


def test_forgot_password_answers_the_same_for_any_input(
    client: TestClient, notifier: RecordingNotifier, tmp_path: Path
) -> None:
    _register(client)
    expected = {"message": "If this email is registered, a reset link has been sent."}

    responses = [
        client.post("/auth/forgot-password", json={"email": "nobody@example.org"}),
        client.post("/auth/forgot-password", json={"email": 42}),
        client.post("/auth/forgot-password", json=["grace@example.org"]),
        client.post(
            "/auth/forgot-password",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        ),
    ]

    assert all(response.status_code == 200 for response in responses)
    assert all(response.json() == expected for response in responses)
    assert notifier.sent == []
    assert _reset_rows(tmp_path) == 0


def test_forgot_and_reset_password_end_to_end(
    client: TestClient, notifier: RecordingNotifier, tmp_path: Path
) -> None:
    _register(client)

    client.post("/auth/forgot-password", json={"email": "grace@example.org"})
    token = notifier.sent[-1].reset_url.split("token=", 1)[1]
    assert _reset_rows(tmp_path) == 1

    reset = client.post("/auth/reset-password", json={"token": token, "newPassword": "brand-new-pass"})
    again = client.post("/auth/reset-password", json={"token": token, "newPassword": "other-new-pass"})
    login = client.post("/auth/login", json={"email": "grace@example.org", "password": "brand-new-pass"})

    assert reset.status_code == 200
    assert again.status_code == 400
    assert again.json()["error_code"] == "AUTH_RESET_TOKEN_INVALID"
    assert login.status_code == 200
    assert _reset_rows(tmp_path) == 0


def test_reset_password_with_unknown_token(client: TestClient) -> None:
    _register(client)

    response = client.post("/auth/reset-password", json={"token": "nope", "newPassword": "brand-new-pass"})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid or expired reset link. Please request a new one."
    old_login = client.post("/auth/login", json={"email": "grace@example.org", "password": "hopper-1906"})
    new_login = client.post("/auth/login", json={"email": "grace@example.org", "password": "brand-new-pass"})
    assert old_login.status_code == 200
    assert new_login.status_code == 401


def _unsigned_client(
    tmp_path: Path,
    store: SqliteCredentialStore,
    google: FakeGoogleProvider,
    notifier: RecordingNotifier,
) -> TestClient:
    app = create_app(
        make_app_config(tmp_path, secret_key=""),
        app_root=tmp_path,
        store=store,
        identity_provider=google,
        notifier=notifier,
    )
    return TestClient(app)


def test_register_without_secret_is_masked_and_creates_no_user(
    tmp_path: Path,
    store: SqliteCredentialStore,
    google: FakeGoogleProvider,
    notifier: RecordingNotifier,
) -> None:
    with _unsigned_client(tmp_path, store, google, notifier) as unsigned:
        response = _register(unsigned)

    assert response.status_code == 500
    assert response.json()["error_code"] == "CONFIGURATION_ERROR"
    assert response.json()["message"] == "Server misconfigured"
    assert store.get_user_by_email("grace@example.org") is None


def test_refresh_without_secret_is_masked_and_keeps_cookie_token(
    client: TestClient,
    tmp_path: Path,
    store: SqliteCredentialStore,
    google: FakeGoogleProvider,
    notifier: RecordingNotifier,
) -> None:
    token = _register(client).cookies.get(COOKIE)

    with _unsigned_client(tmp_path, store, google, notifier) as unsigned:
        response = unsigned.post("/auth/refresh", headers={"Cookie": f"{COOKIE}={token}"})

    assert response.status_code == 500
    assert response.json()["message"] == "Server misconfigured"
    assert "JWT_SECRET" not in response.text
    assert store.get_refresh_token(token) is not None
