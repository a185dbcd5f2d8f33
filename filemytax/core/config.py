"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}
_PLACEHOLDER_PATTERNS = ("xxxx-xxxx", "your@", "example.com", "changeme", "placeholder")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _env_secret(name: str) -> str:
    """Return env value, treating template placeholders as unset."""
    value = os.getenv(name, "").strip()
    if is_placeholder(value):
        return ""
    return value


def is_placeholder(value: str) -> bool:
    """Return whether a configured value is still a template placeholder."""
    lowered = value.lower()
    return any(pattern in lowered for pattern in _PLACEHOLDER_PATTERNS)


@dataclass(frozen=True)
class AuthConfig:
    """Authentication-related configuration."""

    secret_key: str
    issuer: str
    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_seconds: int = 30 * 24 * 60 * 60
    reset_token_ttl_seconds: int = 60 * 60
    bcrypt_rounds: int = 12
    min_password_length: int = 8
    google_client_id: str = ""
    google_link_requires_verified_email: bool = True


@dataclass(frozen=True)
class CookieConfig:
    """Refresh-token cookie transport settings."""

    secure: bool = False
    name: str = "fmt_refresh"
    path: str = "/auth"

    @property
    def samesite(self) -> str:
        """Cross-site cookies require ``None`` which browsers only accept when secure."""
        return "none" if self.secure else "lax"


@dataclass(frozen=True)
class EmailConfig:
    """Outbound password-reset email settings."""

    frontend_url: str = "http://localhost:3000"
    resend_api_key: str = ""
    resend_from: str = "FileMyTax <onboarding@resend.dev>"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_service: str = ""
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""


@dataclass(frozen=True)
class StorageConfig:
    """Credential store backend settings."""

    sqlite_path: str = "runtime/auth_state.db"
    mongo_uri: str = ""
    mongo_db: str = "filemytax"


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    login_rate_limit_max_attempts: int
    login_rate_limit_window_seconds: int
    login_rate_limit_lock_seconds: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    cookie: CookieConfig
    email: EmailConfig
    storage: StorageConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        app_env = os.getenv("APP_ENV", "development").strip().lower()
        secret_key = os.getenv("JWT_SECRET", "").strip()
        issuer = os.getenv("AUTH_ISSUER", "filemytax").strip() or "filemytax"
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "2592000"))
        reset_ttl = int(os.getenv("AUTH_RESET_TOKEN_TTL_SECONDS", "3600"))
        bcrypt_rounds = int(os.getenv("AUTH_BCRYPT_ROUNDS", "12"))
        min_password_length = int(os.getenv("AUTH_MIN_PASSWORD_LENGTH", "8"))
        google_client_id = os.getenv("GOOGLE_CLIENT_ID", "").strip()
        link_requires_verified = _env_flag(
            "AUTH_GOOGLE_LINK_REQUIRES_VERIFIED_EMAIL", True
        )

        cookie_secure = _env_flag("COOKIE_SECURE", app_env == "production")
        cookie_name = os.getenv("REFRESH_COOKIE_NAME", "fmt_refresh").strip() or "fmt_refresh"
        cookie_path = os.getenv("REFRESH_COOKIE_PATH", "/auth").strip() or "/auth"

        frontend_url = (
            os.getenv("FRONTEND_URL", "http://localhost:3000").strip()
            or "http://localhost:3000"
        )
        sqlite_path = (
            os.getenv("AUTH_SQLITE_PATH", "runtime/auth_state.db").strip()
            or "runtime/auth_state.db"
        )
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv("CORS_ALLOWED_ORIGINS", frontend_url).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(1024 * 1024)))

        return AppConfig(
            auth=AuthConfig(
                secret_key=secret_key,
                issuer=issuer,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                reset_token_ttl_seconds=reset_ttl,
                bcrypt_rounds=bcrypt_rounds,
                min_password_length=min_password_length,
                google_client_id=google_client_id,
                google_link_requires_verified_email=link_requires_verified,
            ),
            cookie=CookieConfig(
                secure=cookie_secure,
                name=cookie_name,
                path=cookie_path,
            ),
            email=EmailConfig(
                frontend_url=frontend_url.rstrip("/"),
                resend_api_key=_env_secret("RESEND_API_KEY"),
                resend_from=(
                    os.getenv("RESEND_FROM", "").strip()
                    or "FileMyTax <onboarding@resend.dev>"
                ),
                smtp_host=os.getenv("SMTP_HOST", "").strip(),
                smtp_port=int(os.getenv("SMTP_PORT", "587")),
                smtp_service=os.getenv("SMTP_SERVICE", "").strip(),
                smtp_user=_env_secret("SMTP_USER"),
                smtp_password=_env_secret("SMTP_PASS"),
                smtp_from=os.getenv("SMTP_FROM", "").strip(),
            ),
            storage=StorageConfig(
                sqlite_path=sqlite_path,
                mongo_uri=os.getenv("MONGODB_URI", "").strip(),
                mongo_db=os.getenv("MONGODB_DB", "filemytax").strip() or "filemytax",
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
                login_rate_limit_max_attempts=int(
                    os.getenv("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", "5")
                ),
                login_rate_limit_window_seconds=int(
                    os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "300")
                ),
                login_rate_limit_lock_seconds=int(
                    os.getenv("LOGIN_RATE_LIMIT_LOCK_SECONDS", "600")
                ),
            ),
        )
