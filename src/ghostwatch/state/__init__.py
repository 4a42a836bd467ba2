"""State persistence backends (SQLite and PostgreSQL)."""

from .backends import (
    DatabaseBackend,
    PostgresBackend,
    SQLiteBackend,
    create_backend,
)

__all__ = [
    "DatabaseBackend",
    "SQLiteBackend",
    "PostgresBackend",
    "create_backend",
]
