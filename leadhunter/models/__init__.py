"""SQLAlchemy ORM models."""

from leadhunter.models.base import Base
from leadhunter.models.cached_search import CachedSearch
from leadhunter.models.credit_ledger import CreditLedgerEntry
from leadhunter.models.search_result import SearchResult
from leadhunter.models.search_task import SearchTask
from leadhunter.models.system_config import SystemConfig
from leadhunter.models.user import User

__all__ = [
    "Base",
    "CachedSearch",
    "CreditLedgerEntry",
    "SearchResult",
    "SearchTask",
    "SystemConfig",
    "User",
]
