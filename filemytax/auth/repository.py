"""Credential store for users, refresh tokens and password reset tokens."""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from threading import Lock
from typing import Protocol

from filemytax.auth.models import PasswordResetRecord, RefreshTokenRecord, User
from filemytax.core.config import StorageConfig
from filemytax.core.migrations import apply_migrations

LOGGER = logging.getLogger(__name__)

_USER_COLUMNS = tuple(User.model_fields)


class DuplicateUserError(Exception):
    """Raised when a user row would violate the email or google id uniqueness."""


class CredentialStore(Protocol):
    """Persistence contract used by token issuer, identity verifier and service.

    Every method is atomic for the single record it touches.
    """

    def get_user_by_id(self, user_id: str) -> User | None: ...

    def get_user_by_email(self, email: str) -> User | None: ...

    def get_user_by_google_id(self, google_id: str) -> User | None: ...

    def create_user(self, user: User) -> User: ...

    def update_user(self, user: User) -> User: ...

    def create_refresh_token(self, record: RefreshTokenRecord) -> None: ...

    def get_refresh_token(self, token: str) -> RefreshTokenRecord | None: ...

    def rotate_refresh_token(
        self, old_token: str, new_token: str, *, expires_at: int, now: int
    ) -> RefreshTokenRecord | None: ...

    def delete_refresh_token(self, token: str) -> bool: ...

    def delete_expired_refresh_tokens(self, now: int) -> int: ...

    def replace_password_reset_token(self, record: PasswordResetRecord) -> None: ...

    def get_password_reset_token(self, token: str) -> PasswordResetRecord | None: ...

    def delete_password_reset_token(self, token: str) -> bool: ...


def normalize_email(email: str) -> str:
    """Return the canonical lookup key for an email address."""
    return email.strip().lower()


def find_user_for_federated_login(
    store: CredentialStore, google_id: str, email: str
) -> User | None:
    """Look a federated login up by google id first, then by email."""
    user = store.get_user_by_google_id(google_id)
    if user is not None:
        return user
    return store.get_user_by_email(email)


class SqliteCredentialStore:
    """SQLite-backed credential store shared across request threads."""

    def __init__(self, database_path: Path) -> None:
        """Open the database and apply pending schema migrations."""
        apply_migrations(database_path)
        self._connection = sqlite3.connect(str(database_path), check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA foreign_keys = ON")
        self._lock = Lock()

    def _fetch_user(self, where: str, value: str) -> User | None:
        with self._lock:
            row = self._connection.execute(
                f"SELECT * FROM auth_users WHERE {where} = ?", (value,)
            ).fetchone()
        return User.model_validate(dict(row)) if row else None

    def get_user_by_id(self, user_id: str) -> User | None:
        return self._fetch_user("user_id", user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return self._fetch_user("email", normalize_email(email))

    def get_user_by_google_id(self, google_id: str) -> User | None:
        if not google_id:
            return None
        return self._fetch_user("google_id", google_id)

    def create_user(self, user: User) -> User:
        """Insert a new user, raising ``DuplicateUserError`` on unique violations."""
        now = int(time.time())
        stored = user.model_copy(
            update={
                "email": normalize_email(user.email),
                "created_at": user.created_at or now,
                "updated_at": now,
            }
        )
        doc = stored.model_dump()
        placeholders = ", ".join("?" for _ in _USER_COLUMNS)
        with self._lock:
            try:
                self._connection.execute(
                    f"INSERT INTO auth_users({', '.join(_USER_COLUMNS)}) VALUES ({placeholders})",
                    tuple(doc[column] for column in _USER_COLUMNS),
                )
                self._connection.commit()
            except sqlite3.IntegrityError as exc:
                self._connection.rollback()
                raise DuplicateUserError(str(exc)) from exc
        return stored

    def update_user(self, user: User) -> User:
        """Replace mutable columns of an existing user row."""
        stored = user.model_copy(
            update={"email": normalize_email(user.email), "updated_at": int(time.time())}
        )
        doc = stored.model_dump()
        columns = [column for column in _USER_COLUMNS if column not in ("user_id", "created_at")]
        assignments = ", ".join(f"{column} = ?" for column in columns)
        with self._lock:
            try:
                self._connection.execute(
                    f"UPDATE auth_users SET {assignments} WHERE user_id = ?",
                    (*(doc[column] for column in columns), stored.user_id),
                )
                self._connection.commit()
            except sqlite3.IntegrityError as exc:
                self._connection.rollback()
                raise DuplicateUserError(str(exc)) from exc
        return stored

    def create_refresh_token(self, record: RefreshTokenRecord) -> None:
        with self._lock:
            self._connection.execute(
                """
                INSERT INTO auth_refresh_tokens(token, user_id, expires_at, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    record.token,
                    record.user_id,
                    record.expires_at,
                    record.created_at or int(time.time()),
                ),
            )
            self._connection.commit()

    def get_refresh_token(self, token: str) -> RefreshTokenRecord | None:
        with self._lock:
            row = self._connection.execute(
                "SELECT * FROM auth_refresh_tokens WHERE token = ?", (token,)
            ).fetchone()
        return RefreshTokenRecord.model_validate(dict(row)) if row else None

    def rotate_refresh_token(
        self, old_token: str, new_token: str, *, expires_at: int, now: int
    ) -> RefreshTokenRecord | None:
        """Swap token value and expiry on the same row.

        The guarded UPDATE matches only a live row, so of several concurrent
        rotations of one token exactly one succeeds.
        """
        with self._lock:
            cursor = self._connection.execute(
                """
                UPDATE auth_refresh_tokens
                SET token = ?, expires_at = ?, created_at = ?
                WHERE token = ? AND expires_at >= ?
                """,
                (new_token, expires_at, now, old_token, now),
            )
            self._connection.commit()
            if cursor.rowcount != 1:
                return None
            row = self._connection.execute(
                "SELECT * FROM auth_refresh_tokens WHERE token = ?", (new_token,)
            ).fetchone()
        return RefreshTokenRecord.model_validate(dict(row)) if row else None

    def delete_refresh_token(self, token: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(
                "DELETE FROM auth_refresh_tokens WHERE token = ?", (token,)
            )
            self._connection.commit()
        return cursor.rowcount > 0

    def delete_expired_refresh_tokens(self, now: int) -> int:
        with self._lock:
            cursor = self._connection.execute(
                "DELETE FROM auth_refresh_tokens WHERE expires_at < ?", (now,)
            )
            self._connection.commit()
        return cursor.rowcount

    def replace_password_reset_token(self, record: PasswordResetRecord) -> None:
        """Drop every reset token of the user and store the new one in one transaction."""
        with self._lock:
            try:
                self._connection.execute(
                    "DELETE FROM auth_password_reset_tokens WHERE user_id = ?",
                    (record.user_id,),
                )
                self._connection.execute(
                    """
                    INSERT INTO auth_password_reset_tokens(token, user_id, expires_at, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        record.token,
                        record.user_id,
                        record.expires_at,
                        record.created_at or int(time.time()),
                    ),
                )
                self._connection.commit()
            except sqlite3.Error:
                self._connection.rollback()
                raise

    def get_password_reset_token(self, token: str) -> PasswordResetRecord | None:
        with self._lock:
            row = self._connection.execute(
                "SELECT * FROM auth_password_reset_tokens WHERE token = ?", (token,)
            ).fetchone()
        return PasswordResetRecord.model_validate(dict(row)) if row else None

    def delete_password_reset_token(self, token: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(
                "DELETE FROM auth_password_reset_tokens WHERE token = ?", (token,)
            )
            self._connection.commit()
        return cursor.rowcount > 0

    def close(self) -> None:
        """Close SQLite resources."""
        with self._lock:
            self._connection.close()


def build_credential_store(config: StorageConfig, app_root: Path) -> CredentialStore:
    """Return MongoDB store when configured, SQLite store otherwise."""
    if config.mongo_uri:
        from filemytax.auth.mongo_repository import MongoCredentialStore

        LOGGER.info("credential_store_backend: mongodb")
        return MongoCredentialStore.connect(config.mongo_uri, config.mongo_db)

    database_path = Path(config.sqlite_path)
    if not database_path.is_absolute():
        database_path = app_root / database_path
    LOGGER.info("credential_store_backend: sqlite")
    return SqliteCredentialStore(database_path)
