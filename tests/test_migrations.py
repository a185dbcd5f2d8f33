from __future__ import annotations

import sqlite3
from pathlib import Path

from filemytax.core.migrations import apply_migrations


def test_apply_migrations_creates_credential_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"

    applied = apply_migrations(db_path)

    connection = sqlite3.connect(str(db_path))
    try:
        cursor = connection.cursor()
        tables = {
            row[0]
            for row in cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }

        assert {
            "schema_migrations",
            "auth_users",
            "auth_refresh_tokens",
            "auth_password_reset_tokens",
            "auth_login_attempts",
        } <= tables

        migration_ids = {
            row[0]
            for row in cursor.execute(
                "SELECT migration_id FROM schema_migrations"
            ).fetchall()
        }
        assert migration_ids == set(applied)
        assert "0001_auth_users.sql" in migration_ids
        assert "0004_auth_login_rate_limit.sql" in migration_ids
    finally:
        connection.close()


def test_apply_migrations_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"

    apply_migrations(db_path)

    assert apply_migrations(db_path) == []
