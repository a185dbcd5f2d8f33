#!/usr/bin/env python3
"""One-shot copy of auth users from the SQLite credential store to MongoDB."""

from __future__ import annotations

import argparse
import os
import sqlite3
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from pymongo import MongoClient

from filemytax.auth.models import User
from filemytax.auth.repository import normalize_email
from filemytax.core.mongo_migrations import apply_mongo_migrations

DEFAULT_SQLITE_PATH = Path("runtime") / "auth_state.db"
DEFAULT_DB_NAME = "filemytax"
USERS_COLLECTION = "auth_users"
MAX_PREVIEW_ITEMS = 10


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Check and migrate auth users from SQLite to MongoDB."
    )
    parser.add_argument(
        "--sqlite-path",
        type=Path,
        default=DEFAULT_SQLITE_PATH,
        help="Path to the SQLite credential store.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only print diff/check report and do not write into MongoDB.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and print migration plan without writing into MongoDB.",
    )
    return parser.parse_args(argv)


def load_source_rows(sqlite_path: Path) -> list[dict[str, Any]]:
    """Read raw user rows; a missing database yields no rows."""
    if not sqlite_path.exists():
        return []
    connection = sqlite3.connect(str(sqlite_path))
    connection.row_factory = sqlite3.Row
    try:
        return [dict(row) for row in connection.execute("SELECT * FROM auth_users")]
    finally:
        connection.close()


def normalize_source_users(rows: list[dict[str, Any]]) -> tuple[list[User], int]:
    """Validate rows as users and count the ones that do not parse."""
    users: list[User] = []
    invalid_count = 0
    for row in rows:
        try:
            user = User.model_validate(row)
        except PydanticValidationError:
            invalid_count += 1
            continue
        if user.password_hash is None and user.google_id is None:
            invalid_count += 1
            continue
        users.append(user.model_copy(update={"email": normalize_email(user.email)}))
    return users, invalid_count


def target_email_set(collection: Any) -> set[str]:
    """Return normalized email set from target collection."""
    return {
        normalize_email(str(row.get("email", "")))
        for row in collection.find({}, {"_id": 0, "email": 1})
    }


def migrate_users(users: list[User], collection: Any, dry_run: bool) -> tuple[int, int]:
    """Upsert users by email and return (processed, newly inserted) counts."""
    if not users:
        return 0, 0
    missing_before = {user.email for user in users} - target_email_set(collection)
    if dry_run:
        return len(users), len(missing_before)

    for user in users:
        collection.update_one(
            {"email": user.email},
            {"$set": user.model_dump()},
            upsert=True,
        )
    return len(users), len(missing_before)


def _print_check_report(
    sqlite_path: Path,
    source_total_rows: int,
    invalid_count: int,
    users: list[User],
    target_emails: set[str],
) -> None:
    source_emails = {user.email for user in users}
    missing_in_target = sorted(source_emails - target_emails)
    extra_in_target = sorted(target_emails - source_emails)

    print(f"Source database: {sqlite_path}")
    print(f"Source rows total: {source_total_rows}")
    print(f"Source valid users: {len(users)}")
    print(f"Source invalid rows skipped: {invalid_count}")
    print(f"Target users total: {len(target_emails)}")
    print(f"Missing in target: {len(missing_in_target)}")
    if missing_in_target:
        print(f"Missing preview: {', '.join(missing_in_target[:MAX_PREVIEW_ITEMS])}")
    print(f"Extra in target: {len(extra_in_target)}")
    if extra_in_target:
        print(f"Extra preview: {', '.join(extra_in_target[:MAX_PREVIEW_ITEMS])}")


def main(argv: list[str] | None = None) -> int:
    """Execute check or migration flow."""
    args = _parse_args(argv)
    mongo_uri = os.getenv("MONGODB_URI", "").strip()
    mongo_db = os.getenv("MONGODB_DB", DEFAULT_DB_NAME).strip() or DEFAULT_DB_NAME
    if not mongo_uri:
        print("ERROR: MONGODB_URI is empty. Set env var before running script.", file=sys.stderr)
        return 1

    source_rows = load_source_rows(args.sqlite_path)
    users, invalid_count = normalize_source_users(source_rows)

    client: Any = MongoClient(mongo_uri, serverSelectionTimeoutMS=5000)
    try:
        client.admin.command("ping")
        db = client[mongo_db]
        collection = db[USERS_COLLECTION]
        if args.check:
            _print_check_report(
                args.sqlite_path, len(source_rows), invalid_count, users, target_email_set(collection)
            )
            return 0

        if not args.dry_run:
            apply_mongo_migrations(db)
        processed, inserted = migrate_users(users, collection, dry_run=args.dry_run)
        print(f"Source rows total: {len(source_rows)}")
        print(f"Source invalid rows skipped: {invalid_count}")
        print(f"Processed users: {processed}")
        print(f"Potentially inserted users: {inserted}")
        print(f"Mode: {'dry-run' if args.dry_run else 'write'}")
        print(f"Target users total now: {collection.count_documents({})}")
        return 0
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        client.close()


if __name__ == "__main__":
    raise SystemExit(main())
