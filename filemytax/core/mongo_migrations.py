"""Versioned MongoDB index migrations for credential collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from filemytax.core.logging import CORRELATION_ID_CTX

MigrationFn = Callable[[Any], None]
LOGGER = logging.getLogger(__name__)


def _migration_0001_auth_indexes(db: Any) -> None:
    db["auth_users"].create_index("user_id", unique=True)
    db["auth_users"].create_index("email", unique=True)
    db["auth_users"].create_index(
        "google_id",
        unique=True,
        partialFilterExpression={"google_id": {"$type": "string"}},
    )
    db["auth_refresh_tokens"].create_index("token", unique=True)
    db["auth_refresh_tokens"].create_index("user_id")
    db["auth_password_reset_tokens"].create_index("token", unique=True)
    db["auth_password_reset_tokens"].create_index("user_id")


def _migration_0002_token_ttl(db: Any) -> None:
    db["auth_refresh_tokens"].create_index(
        "expires_at_dt",
        expireAfterSeconds=0,
        name="idx_auth_refresh_tokens_expires_at_ttl",
    )
    db["auth_password_reset_tokens"].create_index(
        "expires_at_dt",
        expireAfterSeconds=0,
        name="idx_auth_password_reset_tokens_expires_at_ttl",
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("0001_auth_indexes", _migration_0001_auth_indexes),
    ("0002_token_ttl", _migration_0002_token_ttl),
]


def apply_mongo_migrations(db: Any) -> list[str]:
    """Apply pending migrations to ``db`` and return their ids."""
    migration_collection = db["schema_migrations"]
    migration_collection.create_index("migration_id", unique=True)

    applied: list[str] = []
    for migration_id, migration_fn in MIGRATIONS:
        if migration_collection.find_one({"migration_id": migration_id}):
            continue
        migration_fn(db)
        migration_collection.insert_one(
            {
                "migration_id": migration_id,
                "applied_at": datetime.now(timezone.utc),
                "correlation_id": CORRELATION_ID_CTX.get(),
            }
        )
        applied.append(migration_id)

    if applied:
        LOGGER.info("mongo_migrations_applied: %s", ", ".join(applied))
    return applied
