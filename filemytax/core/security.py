"""Security primitives for password hashing and opaque token generation."""

from __future__ import annotations

import secrets

import bcrypt

# bcrypt only consumes the first 72 bytes; newer releases reject longer input.
_BCRYPT_MAX_BYTES = 72

DEFAULT_BCRYPT_ROUNDS = 12


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash password with bcrypt using a random salt at the given cost factor."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify password against a stored bcrypt hash."""
    if not stored_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), stored_hash.encode("utf-8"))
    except ValueError:
        # Malformed salt in the stored value.
        return False


def generate_opaque_token() -> str:
    """Return a URL-safe random token with 384 bits of entropy."""
    return secrets.token_urlsafe(48)


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
