"""Authentication API router."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import JSONResponse

from filemytax.api.contracts import (
    AccessTokenResponse,
    ApiErrorResponse,
    AuthSessionResponse,
    MessageResponse,
    UserResponse,
)
from filemytax.api.errors import AuthenticationError, to_error_payload
from filemytax.auth.middleware import create_current_user_dependency
from filemytax.auth.models import (
    AuthSession,
    ForgotPasswordRequest,
    GoogleLoginRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SetPasswordRequest,
)
from filemytax.auth.rate_limiter import LoginRateLimiter
from filemytax.auth.service import AuthService
from filemytax.core.config import AuthConfig, CookieConfig

LOGGER = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If this email is registered, a reset link has been sent."

_ERRORS_400_401 = {400: {"model": ApiErrorResponse}, 401: {"model": ApiErrorResponse}}


class RefreshCookie:
    """Writes and clears the HTTP-only refresh token cookie."""

    def __init__(self, cookie: CookieConfig, max_age: int) -> None:
        self._cookie = cookie
        self._max_age = max_age

    @property
    def name(self) -> str:
        return self._cookie.name

    def read(self, request: Request) -> str | None:
        return request.cookies.get(self._cookie.name) or None

    def set(self, response: Response, token: str) -> None:
        response.set_cookie(
            key=self._cookie.name,
            value=token,
            max_age=self._max_age,
            path=self._cookie.path,
            httponly=True,
            secure=self._cookie.secure,
            samesite=self._cookie.samesite,
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(
            key=self._cookie.name,
            path=self._cookie.path,
            httponly=True,
            secure=self._cookie.secure,
            samesite=self._cookie.samesite,
        )


def _client_ip(request: Request) -> str:
    return (request.client.host if request.client else "") or "unknown"


def create_auth_router(
    service: AuthService,
    rate_limiter: LoginRateLimiter,
    *,
    auth_config: AuthConfig,
    cookie_config: CookieConfig,
) -> APIRouter:
    """Build the account lifecycle router mounted under ``/auth``."""
    router = APIRouter(prefix="/auth", tags=["auth"])
    refresh_cookie = RefreshCookie(cookie_config, auth_config.refresh_token_ttl_seconds)
    current_user_id = create_current_user_dependency(service.issuer)

    def _session_response(session: AuthSession, response: Response) -> AuthSessionResponse:
        refresh_cookie.set(response, session.refresh_token)
        return AuthSessionResponse(
            access_token=session.access_token,
            user=UserResponse.from_user(session.user),
        )

    @router.post(
        "/register",
        status_code=201,
        response_model=AuthSessionResponse,
        responses={400: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def register(req: RegisterRequest, response: Response) -> AuthSessionResponse:
        """Create a password account and start a session."""
        session = service.register(req.email, req.password, req.name)
        return _session_response(session, response)

    @router.post(
        "/login",
        response_model=AuthSessionResponse,
        responses={**_ERRORS_400_401, 429: {"model": ApiErrorResponse}},
    )
    def login(req: LoginRequest, request: Request, response: Response) -> AuthSessionResponse:
        """Authenticate with email and password."""
        client_ip = _client_ip(request)
        email = (req.email or "").strip().lower()
        if email:
            rate_limiter.assert_allowed(email=email, client_ip=client_ip)
        try:
            session = service.login(req.email, req.password)
        except AuthenticationError:
            rate_limiter.record_failure(email=email, client_ip=client_ip)
            raise
        rate_limiter.record_success(email=email, client_ip=client_ip)
        return _session_response(session, response)

    @router.post("/google", response_model=AuthSessionResponse, responses=_ERRORS_400_401)
    def google_login(req: GoogleLoginRequest, response: Response) -> AuthSessionResponse:
        """Authenticate with a Google ID token."""
        session = service.google_login(req.id_token)
        return _session_response(session, response)

    @router.post(
        "/refresh",
        response_model=AccessTokenResponse,
        responses={401: {"model": ApiErrorResponse}},
    )
    def refresh(request: Request, response: Response):
        """Rotate the refresh cookie and return a new access token."""
        try:
            tokens = service.refresh(refresh_cookie.read(request))
        except AuthenticationError as exc:
            LOGGER.info("refresh_denied", extra={"error_code": str(exc.error_code)})
            failure = JSONResponse(
                status_code=exc.status_code,
                content=ApiErrorResponse(
                    **to_error_payload(exc.detail, exc.status_code)
                ).model_dump(),
            )
            refresh_cookie.clear(failure)
            return failure
        refresh_cookie.set(response, tokens.refresh_token)
        return AccessTokenResponse(access_token=tokens.access_token)

    @router.post("/logout", response_model=MessageResponse)
    def logout(request: Request, response: Response) -> MessageResponse:
        """Revoke the refresh cookie if any and clear it."""
        service.logout(refresh_cookie.read(request))
        refresh_cookie.clear(response)
        return MessageResponse(message="Logged out")

    @router.get(
        "/me",
        response_model=UserResponse,
        responses={401: {"model": ApiErrorResponse}, 404: {"model": ApiErrorResponse}},
    )
    def me(user_id: str = Depends(current_user_id)) -> UserResponse:
        """Return the caller's profile."""
        return UserResponse.from_user(service.get_user(user_id))

    @router.put(
        "/profile",
        response_model=UserResponse,
        responses={401: {"model": ApiErrorResponse}, 404: {"model": ApiErrorResponse}},
    )
    def update_profile(
        req: ProfileUpdateRequest, user_id: str = Depends(current_user_id)
    ) -> UserResponse:
        """Replace the caller's profile fields."""
        return UserResponse.from_user(service.update_profile(user_id, req))

    @router.post(
        "/set-password",
        response_model=MessageResponse,
        responses={**_ERRORS_400_401, 404: {"model": ApiErrorResponse}},
    )
    def set_password(
        req: SetPasswordRequest, user_id: str = Depends(current_user_id)
    ) -> MessageResponse:
        """Set a first password or change the current one."""
        service.set_password(user_id, req.current_password, req.new_password)
        return MessageResponse(message="Password set successfully")

    @router.post("/forgot-password", response_model=MessageResponse)
    async def forgot_password(
        request: Request, background_tasks: BackgroundTasks
    ) -> MessageResponse:
        """Acknowledge immediately and send the reset email in the background."""
        try:
            body = await request.json()
        except ValueError:
            body = None
        req = ForgotPasswordRequest.model_validate(body if isinstance(body, dict) else {})
        background_tasks.add_task(service.send_password_reset, req.email)
        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    @router.post(
        "/reset-password",
        response_model=MessageResponse,
        responses={400: {"model": ApiErrorResponse}},
    )
    def reset_password(req: ResetPasswordRequest) -> MessageResponse:
        """Set a new password with a one-time reset token."""
        service.reset_password(req.token, req.new_password)
        return MessageResponse(message="Password updated successfully. You can now log in.")

    return router
