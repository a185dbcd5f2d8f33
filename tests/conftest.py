from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from filemytax.api.application import create_app
from filemytax.auth.identity import IdentityVerifier
from filemytax.auth.repository import SqliteCredentialStore
from filemytax.auth.service import AuthService
from filemytax.auth.tokens import TokenIssuer
from tests.fakes import (
    FakeClock,
    FakeGoogleProvider,
    RecordingNotifier,
    make_app_config,
    make_auth_config,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path) -> Iterator[SqliteCredentialStore]:
    credential_store = SqliteCredentialStore(tmp_path / "auth_state.db")
    yield credential_store
    credential_store.close()


@pytest.fixture
def google() -> FakeGoogleProvider:
    return FakeGoogleProvider(
        {
            "google-token-ada": {
                "sub": "google-sub-ada",
                "email": "ada@example.org",
                "name": "Ada Lovelace",
                "email_verified": True,
            },
            "google-token-ada-again": {
                "sub": "google-sub-ada",
                "email": "ada@example.org",
                "name": "Ada Lovelace",
                "email_verified": True,
            },
        }
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(
    store: SqliteCredentialStore,
    google: FakeGoogleProvider,
    notifier: RecordingNotifier,
    clock: FakeClock,
) -> AuthService:
    config = make_auth_config()
    return AuthService(
        store=store,
        issuer=TokenIssuer(store, config, clock=clock),
        identity=IdentityVerifier(store, google, config),
        notifier=notifier,
        config=config,
        frontend_url="http://localhost:3000",
        clock=clock,
    )


@pytest.fixture
def client(
    tmp_path: Path,
    store: SqliteCredentialStore,
    google: FakeGoogleProvider,
    notifier: RecordingNotifier,
) -> Iterator[TestClient]:
    app = create_app(
        make_app_config(tmp_path),
        app_root=tmp_path,
        store=store,
        identity_provider=google,
        notifier=notifier,
    )
    with TestClient(app) as test_client:
        yield test_client
