"""Storage backends and records."""

from leadhunter.config import settings
from leadhunter.storage.base import SearchStore
from leadhunter.storage.memory import InMemorySearchStore
from leadhunter.storage.records import CacheRecord, LedgerRecord, ResultRecord, TaskRecord
from leadhunter.storage.sql import SqlSearchStore


def build_store(backend: str | None = None) -> SearchStore:
    """Create the configured store (``sql`` uses the shared session factory)."""
    backend = backend or settings.storage_backend
    if backend == "memory":
        return InMemorySearchStore()
    if backend == "sql":
        from leadhunter.database import async_session_factory

        return SqlSearchStore(async_session_factory)
    raise ValueError(f"Unknown storage backend: {backend}")


__all__ = [
    "CacheRecord",
    "InMemorySearchStore",
    "LedgerRecord",
    "ResultRecord",
    "SearchStore",
    "SqlSearchStore",
    "TaskRecord",
    "build_store",
]
