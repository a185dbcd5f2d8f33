"""SQLite schema migrations for auth runtime state."""

from filemytax.core.migrations.runner import apply_migrations

__all__ = ["apply_migrations"]
