"""Storage interface consumed by the search engine."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol

from leadhunter.storage.records import CacheRecord, LedgerRecord, ResultRecord, TaskRecord


class SearchStore(Protocol):
    async def create_task(
        self,
        user_id: int,
        search_hash: str,
        params: dict[str, Any],
        requested_count: int,
    ) -> TaskRecord: ...

    async def get_task(self, task_id: str) -> TaskRecord | None: ...

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> TaskRecord | None:
        """Apply a partial update.

        A ``status`` that would move the task backwards (or out of a terminal
        state) is dropped while the other fields are still written.
        ``actual_count`` is only written while it is still unset.
        """
        ...

    async def set_task_status(self, task_id: str, status: str) -> bool:
        """Returns False if the task is missing or the transition is not allowed."""
        ...

    async def save_result(
        self,
        task_pk: int,
        record_id: str,
        data: dict[str, Any],
        verified: bool,
        score: int | None,
        details: dict[str, Any] | None,
    ) -> ResultRecord:
        """Raises ValueError when a verified result lacks a score or source."""
        ...

    async def list_results(self, task_pk: int) -> list[ResultRecord]: ...

    async def get_result(self, result_id: int) -> ResultRecord | None: ...

    async def update_result(
        self,
        result_id: int,
        verified: bool,
        score: int | None,
        details: dict[str, Any] | None,
        data: dict[str, Any] | None = None,
    ) -> ResultRecord | None:
        """Attach a (late) verification outcome; ``data`` replaces the stored payload when given.

        Returns None when the result is unknown.
        """
        ...

    async def get_cache(self, key: str, count_hit: bool = True) -> CacheRecord | None:
        """Expired entries are reported as absent. ``count_hit=False`` leaves the row untouched."""
        ...

    async def set_cache(
        self, key: str, payload: dict[str, Any], kind: str, ttl_days: int,
    ) -> None: ...

    async def create_user(self, email: str, credits: Decimal = Decimal("0")) -> int: ...

    async def get_balance(self, user_id: int) -> Decimal | None: ...

    async def adjust_balance(
        self,
        user_id: int,
        delta: Decimal,
        kind: str,
        reason: str = "",
        task_id: str | None = None,
    ) -> Decimal | None:
        """Apply ``delta`` and append its ledger entry as one atomic unit.

        Returns the new balance, or None when the user is unknown or the
        change would make the balance negative (nothing is written then).
        """
        ...

    async def list_ledger_entries(self, user_id: int) -> list[LedgerRecord]: ...

    async def get_config(self, key: str) -> str | None: ...

    async def set_config(self, key: str, value: str) -> None: ...
