"""HTTP middleware and exception handler wiring for FastAPI apps."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from filemytax.api.contracts import ApiErrorResponse
from filemytax.api.errors import ApiErrorCode, ConfigurationError, to_error_payload
from filemytax.core.config import AppConfig
from filemytax.core.logging import set_correlation_id

GENERIC_SERVER_ERROR = "Internal server error"
CONFIGURATION_ERROR_MESSAGE = "Server misconfigured"


def _log_extra(request: Request, status_code: int) -> dict[str, Any]:
    return {
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "user_id": getattr(request.state, "user_id", None),
    }


def register_http_middleware(app: FastAPI, *, config: AppConfig, logger: Any) -> None:
    """Attach request size limit, correlation id and security headers."""

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                parsed_length = int(content_length)
            except ValueError:
                parsed_length = 0
            if parsed_length > config.security.request_max_bytes:
                return JSONResponse(
                    status_code=413,
                    content=ApiErrorResponse(
                        error_code=ApiErrorCode.REQUEST_TOO_LARGE,
                        message=(
                            "Request size exceeds configured limit "
                            f"({config.security.request_max_bytes} bytes)."
                        ),
                    ).model_dump(),
                )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        logger.info("request_completed", extra=_log_extra(request, response.status_code))
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    """Attach API exception handlers that return stable error contracts."""

    @app.exception_handler(HTTPException)
    async def handle_http_exception(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        payload = to_error_payload(exc.detail, exc.status_code)
        if isinstance(exc, ConfigurationError):
            logger.error(
                "configuration_error: %s",
                payload["message"],
                extra=_log_extra(request, exc.status_code),
            )
            payload["message"] = CONFIGURATION_ERROR_MESSAGE
        else:
            logger.warning(
                "http_exception",
                extra={**_log_extra(request, exc.status_code), "error_code": payload["error_code"]},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=ApiErrorResponse(**payload).model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning("validation_exception", extra=_log_extra(request, 400))
        fields = sorted(
            {".".join(str(part) for part in error.get("loc", ())[1:]) for error in exc.errors()}
            - {""}
        )
        message = "Invalid request body"
        if fields:
            message = f"Invalid request body: {', '.join(fields)}"
        return JSONResponse(
            status_code=400,
            content=ApiErrorResponse(
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message=message,
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception("unexpected_exception", extra=_log_extra(request, 500))
        return JSONResponse(
            status_code=500,
            content=ApiErrorResponse(
                error_code=ApiErrorCode.INTERNAL_SERVER_ERROR,
                message=GENERIC_SERVER_ERROR,
            ).model_dump(),
        )
