"""SQLAlchemy-backed storage (PostgreSQL via asyncpg in production).

Balance changes are one conditional UPDATE ... RETURNING plus the ledger
insert, committed together; there is no read-then-write round trip.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadhunter.exceptions import StoreError
from leadhunter.models import CachedSearch, CreditLedgerEntry, SearchResult, SearchTask, SystemConfig, User
from leadhunter.orchestrator.schemas import STATUS_RANK, can_transition
from leadhunter.storage.records import CacheRecord, LedgerRecord, ResultRecord, TaskRecord, check_verification

logger = logging.getLogger(__name__)

_TASK_FIELDS = {
    "status", "progress", "logs", "credits_used", "actual_count",
    "error_message", "completed_at",
}
_ONE_DECIMAL = Decimal("0.1")


def _credits(value: Any) -> Decimal:
    # SQLite hands Numeric back through float
    return Decimal(str(value)).quantize(_ONE_DECIMAL)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _task_record(row: SearchTask) -> TaskRecord:
    return TaskRecord(
        id=row.id,
        task_id=row.task_id,
        user_id=row.user_id,
        search_hash=row.search_hash,
        params=row.params,
        status=row.status,
        requested_count=row.requested_count,
        actual_count=row.actual_count,
        credits_used=_credits(row.credits_used),
        progress=row.progress,
        logs=row.logs or [],
        error_message=row.error_message,
        created_at=_aware(row.created_at),
        completed_at=_aware(row.completed_at) if row.completed_at else None,
    )


def _result_record(row: SearchResult) -> ResultRecord:
    return ResultRecord(
        id=row.id,
        task_id=row.task_id,
        record_id=row.record_id,
        data=row.data,
        verified=row.verified,
        verification_score=row.verification_score,
        verification_details=row.verification_details,
        created_at=_aware(row.created_at),
    )


class SqlSearchStore:
    """Persist tasks, results, cache rows and the credit ledger through SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ═══════════════ TASKS ═══════════════

    async def create_task(
        self,
        user_id: int,
        search_hash: str,
        params: dict[str, Any],
        requested_count: int,
    ) -> TaskRecord:
        try:
            async with self._session_factory() as session:
                row = SearchTask(
                    task_id=uuid4().hex,
                    user_id=user_id,
                    search_hash=search_hash,
                    params=params,
                    requested_count=requested_count,
                    credits_used=Decimal("0"),
                    status="initializing",
                    progress=0,
                    logs=[],
                )
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return _task_record(row)
        except SQLAlchemyError as e:
            raise StoreError(f"create_task failed: {str(e)[:200]}") from e

    async def get_task(self, task_id: str) -> TaskRecord | None:
        try:
            async with self._session_factory() as session:
                row = await session.scalar(select(SearchTask).where(SearchTask.task_id == task_id))
                return _task_record(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"get_task failed: {str(e)[:200]}") from e

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> TaskRecord | None:
        unknown = set(fields) - _TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")

        values = dict(fields)
        status = values.pop("status", None)
        if "actual_count" in values:
            values["actual_count"] = func.coalesce(SearchTask.actual_count, values["actual_count"])

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if status is not None:
                        await session.execute(
                            update(SearchTask)
                            .where(
                                SearchTask.task_id == task_id,
                                SearchTask.status.in_(_statuses_allowing(status)),
                            )
                            .values(status=status)
                        )
                    if values:
                        await session.execute(
                            update(SearchTask).where(SearchTask.task_id == task_id).values(**values)
                        )
                row = await session.scalar(
                    select(SearchTask)
                    .where(SearchTask.task_id == task_id)
                    .execution_options(populate_existing=True)
                )
                return _task_record(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"update_task failed: {str(e)[:200]}") from e

    async def set_task_status(self, task_id: str, status: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(SearchTask)
                        .where(
                            SearchTask.task_id == task_id,
                            SearchTask.status.in_(_statuses_allowing(status)),
                        )
                        .values(status=status)
                    )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StoreError(f"set_task_status failed: {str(e)[:200]}") from e

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
        try:
            async with self._session_factory() as session:
                row = SearchResult(
                    task_id=task_pk,
                    record_id=record_id,
                    data=data,
                    verified=verified,
                    verification_score=score,
                    verification_details=details,
                )
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return _result_record(row)
        except SQLAlchemyError as e:
            raise StoreError(f"save_result failed: {str(e)[:200]}") from e

    async def list_results(self, task_pk: int) -> list[ResultRecord]:
        try:
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(SearchResult).where(SearchResult.task_id == task_pk).order_by(SearchResult.id)
                )
                return [_result_record(r) for r in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"list_results failed: {str(e)[:200]}") from e

    async def get_result(self, result_id: int) -> ResultRecord | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(SearchResult, result_id)
                return _result_record(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"get_result failed: {str(e)[:200]}") from e

    async def update_result(
        self,
        result_id: int,
        verified: bool,
        score: int | None,
        details: dict[str, Any] | None,
        data: dict[str, Any] | None = None,
    ) -> ResultRecord | None:
        check_verification(verified, score, details)
        try:
            async with self._session_factory() as session:
                row = await session.get(SearchResult, result_id)
                if row is None:
                    return None
                row.verified = verified
                row.verification_score = score
                row.verification_details = details
                if data is not None:
                    row.data = data
                await session.commit()
                await session.refresh(row)
                return _result_record(row)
        except SQLAlchemyError as e:
            raise StoreError(f"update_result failed: {str(e)[:200]}") from e

    # ═══════════════ CACHE ═══════════════

    async def get_cache(self, key: str, count_hit: bool = True) -> CacheRecord | None:
        try:
            async with self._session_factory() as session:
                row = await session.scalar(select(CachedSearch).where(CachedSearch.cache_key == key))
                if row is None:
                    return None
                expires_at = _aware(row.expires_at)
                if expires_at <= datetime.now(timezone.utc):
                    return None
                if count_hit:
                    row.hit_count = (row.hit_count or 0) + 1
                    await session.commit()
                return CacheRecord(
                    cache_key=row.cache_key,
                    kind=row.kind,
                    payload=row.payload,
                    expires_at=expires_at,
                    hit_count=row.hit_count,
                )
        except SQLAlchemyError as e:
            raise StoreError(f"get_cache failed: {str(e)[:200]}") from e

    async def set_cache(
        self, key: str, payload: dict[str, Any], kind: str, ttl_days: int,
    ) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(days=ttl_days)
        try:
            async with self._session_factory() as session:
                row = await session.scalar(select(CachedSearch).where(CachedSearch.cache_key == key))
                if row is None:
                    session.add(CachedSearch(
                        cache_key=key, kind=kind, payload=payload, expires_at=expires_at, hit_count=0,
                    ))
                else:
                    row.kind = kind
                    row.payload = payload
                    row.expires_at = expires_at
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"set_cache failed: {str(e)[:200]}") from e

    # ═══════════════ USERS & LEDGER ═══════════════

    async def create_user(self, email: str, credits: Decimal = Decimal("0")) -> int:
        try:
            async with self._session_factory() as session:
                user = User(email=email, credits=credits)
                session.add(user)
                await session.commit()
                return user.id
        except SQLAlchemyError as e:
            raise StoreError(f"create_user failed: {str(e)[:200]}") from e

    async def get_balance(self, user_id: int) -> Decimal | None:
        try:
            async with self._session_factory() as session:
                value = await session.scalar(select(User.credits).where(User.id == user_id))
                return _credits(value) if value is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"get_balance failed: {str(e)[:200]}") from e

    async def adjust_balance(
        self,
        user_id: int,
        delta: Decimal,
        kind: str,
        reason: str = "",
        task_id: str | None = None,
    ) -> Decimal | None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    new_balance = await session.scalar(
                        update(User)
                        .where(User.id == user_id, User.credits + delta >= 0)
                        .values(credits=User.credits + delta)
                        .returning(User.credits)
                        .execution_options(synchronize_session=False)
                    )
                    if new_balance is None:
                        return None
                    new_balance = _credits(new_balance)
                    session.add(CreditLedgerEntry(
                        user_id=user_id,
                        amount=delta,
                        balance_after=new_balance,
                        kind=kind,
                        reason=reason,
                        related_task_id=task_id,
                    ))
                logger.debug(
                    "Balance adjusted | user=%d | delta=%s | balance=%s | kind=%s",
                    user_id, delta, new_balance, kind,
                )
                return new_balance
        except SQLAlchemyError as e:
            raise StoreError(f"adjust_balance failed: {str(e)[:200]}") from e

    async def list_ledger_entries(self, user_id: int) -> list[LedgerRecord]:
        try:
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(CreditLedgerEntry)
                    .where(CreditLedgerEntry.user_id == user_id)
                    .order_by(CreditLedgerEntry.id)
                )
                return [
                    LedgerRecord(
                        id=r.id,
                        user_id=r.user_id,
                        amount=_credits(r.amount),
                        balance_after=_credits(r.balance_after),
                        kind=r.kind,
                        reason=r.reason,
                        related_task_id=r.related_task_id,
                        created_at=_aware(r.created_at),
                    )
                    for r in rows
                ]
        except SQLAlchemyError as e:
            raise StoreError(f"list_ledger_entries failed: {str(e)[:200]}") from e

    # ═══════════════ SYSTEM CONFIG ═══════════════

    async def get_config(self, key: str) -> str | None:
        try:
            async with self._session_factory() as session:
                return await session.scalar(select(SystemConfig.value).where(SystemConfig.key == key))
        except SQLAlchemyError as e:
            raise StoreError(f"get_config failed: {str(e)[:200]}") from e

    async def set_config(self, key: str, value: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.merge(SystemConfig(key=key, value=value))
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"set_config failed: {str(e)[:200]}") from e


def _statuses_allowing(new_status: str) -> list[str]:
    return [s for s in STATUS_RANK if can_transition(s, new_status)]
