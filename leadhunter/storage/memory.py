"""In-memory storage backend for tests and local runs without PostgreSQL."""

from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from leadhunter.orchestrator.schemas import can_transition
from leadhunter.storage.records import CacheRecord, LedgerRecord, ResultRecord, TaskRecord, check_verification


class InMemorySearchStore:
    """Dict-backed store. Balance changes never await, so each one is atomic on the event loop."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskRecord] = {}
        self._results: list[ResultRecord] = []
        self._cache: dict[str, CacheRecord] = {}
        self._balances: dict[int, Decimal] = {}
        self._ledger: list[LedgerRecord] = []
        self._config: dict[str, str] = {}
        self._next_task_pk = 1
        self._next_result_pk = 1
        self._next_user_id = 1

    # ═══════════════ TASKS ═══════════════

    async def create_task(
        self,
        user_id: int,
        search_hash: str,
        params: dict[str, Any],
        requested_count: int,
    ) -> TaskRecord:
        record = TaskRecord(
            id=self._next_task_pk,
            task_id=uuid4().hex,
            user_id=user_id,
            search_hash=search_hash,
            params=dict(params),
            status="initializing",
            requested_count=requested_count,
            created_at=datetime.now(timezone.utc),
        )
        self._next_task_pk += 1
        self._tasks[record.task_id] = record
        return record.model_copy(deep=True)

    async def get_task(self, task_id: str) -> TaskRecord | None:
        record = self._tasks.get(task_id)
        return record.model_copy(deep=True) if record else None

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> TaskRecord | None:
        current = self._tasks.get(task_id)
        if current is None:
            return None
        changes = copy.deepcopy(fields)
        status = changes.pop("status", None)
        if status is not None and can_transition(current.status, status):
            changes["status"] = status
        if current.actual_count is not None:
            changes.pop("actual_count", None)
        updated = current.model_copy(update=changes)
        self._tasks[task_id] = updated
        return updated.model_copy(deep=True)

    async def set_task_status(self, task_id: str, status: str) -> bool:
        current = self._tasks.get(task_id)
        if current is None or not can_transition(current.status, status):
            return False
        self._tasks[task_id] = current.model_copy(update={"status": status})
        return True

    # ═══════════════ RESULTS ═══════════════

    async def save_result(
        self,
        task_pk: int,
        record_id: str,
        data: dict[str, Any],
        verified: bool,
        score: int | None,
        details: dict[str, Any] | None,
    ) -> ResultRecord:
        check_verification(verified, score, details)
        record = ResultRecord(
            id=self._next_result_pk,
            task_id=task_pk,
            record_id=record_id,
            data=copy.deepcopy(data),
            verified=verified,
            verification_score=score,
            verification_details=copy.deepcopy(details),
            created_at=datetime.now(timezone.utc),
        )
        self._next_result_pk += 1
        self._results.append(record)
        return record

    async def list_results(self, task_pk: int) -> list[ResultRecord]:
        return [r for r in self._results if r.task_id == task_pk]

    async def get_result(self, result_id: int) -> ResultRecord | None:
        for record in self._results:
            if record.id == result_id:
                return record.model_copy(deep=True)
        return None

    async def update_result(
        self,
        result_id: int,
        verified: bool,
        score: int | None,
        details: dict[str, Any] | None,
        data: dict[str, Any] | None = None,
    ) -> ResultRecord | None:
        check_verification(verified, score, details)
        for i, record in enumerate(self._results):
            if record.id != result_id:
                continue
            changes = {
                "verified": verified,
                "verification_score": score,
                "verification_details": copy.deepcopy(details),
            }
            if data is not None:
                changes["data"] = copy.deepcopy(data)
            self._results[i] = record.model_copy(update=changes)
            return self._results[i].model_copy(deep=True)
        return None

    # ═══════════════ CACHE ═══════════════

    async def get_cache(self, key: str, count_hit: bool = True) -> CacheRecord | None:
        record = self._cache.get(key)
        if record is None or record.expires_at <= datetime.now(timezone.utc):
            return None
        if count_hit:
            record.hit_count += 1
        return record.model_copy(deep=True)

    async def set_cache(
        self, key: str, payload: dict[str, Any], kind: str, ttl_days: int,
    ) -> None:
        self._cache[key] = CacheRecord(
            cache_key=key,
            kind=kind,
            payload=copy.deepcopy(payload),
            expires_at=datetime.now(timezone.utc) + timedelta(days=ttl_days),
        )

    # ═══════════════ USERS & LEDGER ═══════════════

    async def create_user(self, email: str, credits: Decimal = Decimal("0")) -> int:
        user_id = self._next_user_id
        self._next_user_id += 1
        self._balances[user_id] = Decimal(credits)
        return user_id

    async def get_balance(self, user_id: int) -> Decimal | None:
        return self._balances.get(user_id)

    async def adjust_balance(
        self,
        user_id: int,
        delta: Decimal,
        kind: str,
        reason: str = "",
        task_id: str | None = None,
    ) -> Decimal | None:
        balance = self._balances.get(user_id)
        if balance is None or balance + delta < 0:
            return None
        new_balance = balance + delta
        self._balances[user_id] = new_balance
        self._ledger.append(
            LedgerRecord(
                id=len(self._ledger) + 1,
                user_id=user_id,
                amount=delta,
                balance_after=new_balance,
                kind=kind,
                reason=reason,
                related_task_id=task_id,
                created_at=datetime.now(timezone.utc),
            )
        )
        return new_balance

    async def list_ledger_entries(self, user_id: int) -> list[LedgerRecord]:
        return [e for e in self._ledger if e.user_id == user_id]

    # ═══════════════ SYSTEM CONFIG ═══════════════

    async def get_config(self, key: str) -> str | None:
        return self._config.get(key)

    async def set_config(self, key: str, value: str) -> None:
        self._config[key] = value
