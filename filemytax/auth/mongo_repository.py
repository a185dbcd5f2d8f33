"""MongoDB credential store."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from pymongo import MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

from filemytax.auth.models import PasswordResetRecord, RefreshTokenRecord, User
from filemytax.auth.repository import DuplicateUserError, normalize_email
from filemytax.core.mongo_migrations import apply_mongo_migrations

_NO_ID = {"_id": 0, "expires_at_dt": 0}


def _expiry_datetime(expires_at: int) -> datetime:
    """TTL indexes only act on BSON dates."""
    return datetime.fromtimestamp(expires_at, tz=timezone.utc)


class MongoCredentialStore:
    """Credential store over ``auth_users``, ``auth_refresh_tokens`` and
    ``auth_password_reset_tokens`` collections."""

    def __init__(self, db: Any, client: Any = None) -> None:
        self._client = client
        self._users = db["auth_users"]
        self._refresh = db["auth_refresh_tokens"]
        self._resets = db["auth_password_reset_tokens"]

    @classmethod
    def connect(cls, mongo_uri: str, mongo_db: str) -> "MongoCredentialStore":
        """Connect, verify reachability and apply index migrations."""
        client: Any = MongoClient(mongo_uri, serverSelectionTimeoutMS=3000)
        client.admin.command("ping")
        db = client[mongo_db]
        apply_mongo_migrations(db)
        return cls(db, client=client)

    def _find_user(self, query: dict[str, Any]) -> User | None:
        doc = self._users.find_one(query, _NO_ID)
        return User.model_validate(doc) if doc else None

    def get_user_by_id(self, user_id: str) -> User | None:
        return self._find_user({"user_id": user_id})

    def get_user_by_email(self, email: str) -> User | None:
        return self._find_user({"email": normalize_email(email)})

    def get_user_by_google_id(self, google_id: str) -> User | None:
        if not google_id:
            return None
        return self._find_user({"google_id": google_id})

    def create_user(self, user: User) -> User:
        now = int(time.time())
        stored = user.model_copy(
            update={
                "email": normalize_email(user.email),
                "created_at": user.created_at or now,
                "updated_at": now,
            }
        )
        try:
            self._users.insert_one(stored.model_dump())
        except DuplicateKeyError as exc:
            raise DuplicateUserError(str(exc)) from exc
        return stored

    def update_user(self, user: User) -> User:
        stored = user.model_copy(
            update={"email": normalize_email(user.email), "updated_at": int(time.time())}
        )
        doc = stored.model_dump(exclude={"user_id", "created_at"})
        try:
            self._users.update_one({"user_id": stored.user_id}, {"$set": doc})
        except DuplicateKeyError as exc:
            raise DuplicateUserError(str(exc)) from exc
        return stored

    def create_refresh_token(self, record: RefreshTokenRecord) -> None:
        doc = record.model_dump()
        doc["created_at"] = record.created_at or int(time.time())
        doc["expires_at_dt"] = _expiry_datetime(record.expires_at)
        self._refresh.insert_one(doc)

    def get_refresh_token(self, token: str) -> RefreshTokenRecord | None:
        doc = self._refresh.find_one({"token": token}, _NO_ID)
        return RefreshTokenRecord.model_validate(doc) if doc else None

    def rotate_refresh_token(
        self, old_token: str, new_token: str, *, expires_at: int, now: int
    ) -> RefreshTokenRecord | None:
        doc = self._refresh.find_one_and_update(
            {"token": old_token, "expires_at": {"$gte": now}},
            {
                "$set": {
                    "token": new_token,
                    "expires_at": expires_at,
                    "expires_at_dt": _expiry_datetime(expires_at),
                    "created_at": now,
                }
            },
            projection=_NO_ID,
            return_document=ReturnDocument.AFTER,
        )
        return RefreshTokenRecord.model_validate(doc) if doc else None

    def delete_refresh_token(self, token: str) -> bool:
        return self._refresh.delete_one({"token": token}).deleted_count > 0

    def delete_expired_refresh_tokens(self, now: int) -> int:
        return self._refresh.delete_many({"expires_at": {"$lt": now}}).deleted_count

    def replace_password_reset_token(self, record: PasswordResetRecord) -> None:
        self._resets.delete_many({"user_id": record.user_id})
        doc = record.model_dump()
        doc["created_at"] = record.created_at or int(time.time())
        doc["expires_at_dt"] = _expiry_datetime(record.expires_at)
        self._resets.insert_one(doc)

    def get_password_reset_token(self, token: str) -> PasswordResetRecord | None:
        doc = self._resets.find_one({"token": token}, _NO_ID)
        return PasswordResetRecord.model_validate(doc) if doc else None

    def delete_password_reset_token(self, token: str) -> bool:
        return self._resets.delete_one({"token": token}).deleted_count > 0

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
