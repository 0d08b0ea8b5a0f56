"""SQLite-backed job queue storage."""

from promoworker.storage.base import JobStore
from promoworker.storage.database import DEFAULT_DB_PATH, MEMORY_PATH, create_schema, open_db
from promoworker.storage.repository import JobRepository

__all__ = [
    "DEFAULT_DB_PATH",
    "MEMORY_PATH",
    "open_db",
    "create_schema",
    "JobStore",
    "JobRepository",
]
