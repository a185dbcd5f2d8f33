"""FastAPI application factory for the auth service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from filemytax.api.contracts import HealthResponse
from filemytax.api.http_setup import register_exception_handlers, register_http_middleware
from filemytax.auth.identity import GoogleIdentityProvider, IdentityProvider, IdentityVerifier
from filemytax.auth.rate_limiter import LoginRateLimiter
from filemytax.auth.repository import CredentialStore, build_credential_store
from filemytax.auth.router import create_auth_router
from filemytax.auth.service import AuthService
from filemytax.auth.tokens import TokenIssuer
from filemytax.core.config import AppConfig
from filemytax.notify import Notifier, build_notifier

LOGGER = logging.getLogger(__name__)


def create_app(
    config: AppConfig,
    *,
    app_root: Path | None = None,
    store: CredentialStore | None = None,
    identity_provider: IdentityProvider | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """Wire store, issuer, verifier, service and router into an app.

    Collaborators left as ``None`` are built from ``config``.
    """
    root = app_root or Path.cwd()
    store = store or build_credential_store(config.storage, root)
    issuer = TokenIssuer(store, config.auth)
    identity = IdentityVerifier(
        store,
        identity_provider or GoogleIdentityProvider(config.auth.google_client_id),
        config.auth,
    )
    service = AuthService(
        store=store,
        issuer=issuer,
        identity=identity,
        notifier=notifier or build_notifier(config.email),
        config=config.auth,
        frontend_url=config.email.frontend_url,
    )
    limiter_path = Path(config.storage.sqlite_path)
    if not limiter_path.is_absolute():
        limiter_path = root / limiter_path
    rate_limiter = LoginRateLimiter(
        database_path=limiter_path,
        max_attempts=config.security.login_rate_limit_max_attempts,
        window_seconds=config.security.login_rate_limit_window_seconds,
        lock_seconds=config.security.login_rate_limit_lock_seconds,
    )

    if not config.auth.secret_key:
        LOGGER.error("jwt_secret_missing: token endpoints will fail closed")

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        service.purge_expired_refresh_tokens()
        yield
        rate_limiter.close()

    app = FastAPI(title="FileMyTax Auth API", version="1.0.0", lifespan=lifespan)
    app.state.auth_service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    app.include_router(
        create_auth_router(
            service,
            rate_limiter,
            auth_config=config.auth,
            cookie_config=config.cookie,
        )
    )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    return app
