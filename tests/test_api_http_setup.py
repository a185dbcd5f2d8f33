from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Awaitable, Coroutine, cast

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from filemytax.api.errors import ConfigurationError
from filemytax.api.http_setup import register_exception_handlers, register_http_middleware
from filemytax.core.config import AppConfig, SecurityConfig
from tests.fakes import make_app_config

LOGGER = logging.getLogger(__name__)


def _config() -> AppConfig:
    base = make_app_config(Path("runtime"))
    return AppConfig(
        auth=base.auth,
        cookie=base.cookie,
        email=base.email,
        storage=base.storage,
        logging=base.logging,
        security=SecurityConfig(
            cors_allowed_origins=["http://localhost:3000"],
            request_max_bytes=8,
            login_rate_limit_max_attempts=5,
            login_rate_limit_window_seconds=300,
            login_rate_limit_lock_seconds=600,
        ),
    )


def _app() -> FastAPI:
    app = FastAPI()
    register_http_middleware(app, config=_config(), logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    return app


def _request(path: str, method: str = "GET", headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "root_path": "",
        "headers": headers or [],
        "client": ("127.0.0.1", 1234),
        "server": ("testserver", 80),
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def _dispatch_by_name(app: FastAPI, name: str):
    for middleware in app.user_middleware:
        dispatch = middleware.kwargs.get("dispatch")
        if callable(dispatch) and getattr(dispatch, "__name__", "") == name:
            return dispatch
    raise AssertionError(f"Dispatch {name!r} not found")


def _resolve_response(result: Response | Awaitable[Response]) -> Response:
    if inspect.iscoroutine(result):
        return asyncio.run(cast(Coroutine[Any, Any, Response], result))
    return cast(Response, result)


async def _ok(_request: Request) -> Response:
    return Response(content="ok", status_code=200)


def test_http_setup_adds_security_headers_and_request_id() -> None:
    dispatch = _dispatch_by_name(_app(), "request_logging_middleware")
    request = _request("/auth/me", headers=[(b"x-request-id", b"req-123")])

    response = asyncio.run(dispatch(request, _ok))

    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Cache-Control"] == "no-store"


def test_http_setup_rejects_large_request_before_handler() -> None:
    dispatch = _dispatch_by_name(_app(), "request_size_limit_middleware")
    request = _request("/auth/login", method="POST", headers=[(b"content-length", b"20")])

    response = asyncio.run(dispatch(request, _ok))

    assert response.status_code == 413
    assert b"REQUEST_TOO_LARGE" in response.body


def test_http_setup_serializes_http_exception_payload() -> None:
    handler = _app().exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(
            _request("/auth/me"),
            HTTPException(
                status_code=404,
                detail={"error_code": "USER_NOT_FOUND", "message": "User not found"},
            ),
        )
    )

    assert response.status_code == 404
    assert b"USER_NOT_FOUND" in response.body


def test_http_setup_masks_configuration_error_message() -> None:
    handler = _app().exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(_request("/auth/login"), ConfigurationError("JWT_SECRET is not configured"))
    )

    assert response.status_code == 500
    assert b"Server misconfigured" in response.body
    assert b"JWT_SECRET" not in response.body


def test_http_setup_handles_unexpected_exceptions() -> None:
    handler = _app().exception_handlers[Exception]
    response: Response = _resolve_response(handler(_request("/boom"), RuntimeError("db path /secret")))

    assert response.status_code == 500
    assert b"INTERNAL_SERVER_ERROR" in response.body
    assert b"/secret" not in response.body


def test_http_setup_maps_validation_exception_to_bad_request() -> None:
    handler = _app().exception_handlers[RequestValidationError]
    response: Response = _resolve_response(
        handler(
            _request("/auth/login"),
            RequestValidationError([{"loc": ("body", "email"), "msg": "bad", "type": "string_type"}]),
        )
    )

    assert response.status_code == 400
    assert b"VALIDATION_ERROR" in response.body
    assert b"Invalid request body: email" in response.body
