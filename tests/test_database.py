"""Tests for database models and the SQLAlchemy store (SQLite via aiosqlite)."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadhunter.database import build_engine, init_db
from leadhunter.models import CachedSearch, CreditLedgerEntry, SearchTask, User
from leadhunter.storage.sql import SqlSearchStore


@pytest.fixture
async def sql_store(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'leadhunter.db'}")
    assert await init_db(engine)
    yield SqlSearchStore(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    await engine.dispose()


class TestModels:
    def test_search_task_instance(self):
        task = SearchTask(
            task_id="abc",
            user_id=1,
            search_hash="f" * 32,
            params={"name": "John"},
            requested_count=50,
            status="initializing",
        )
        assert task.params["name"] == "John"
        assert task.requested_count == 50
        assert task.actual_count is None

    def test_cached_search_instance(self):
        expires = datetime(2027, 1, 1, tzinfo=timezone.utc)
        row = CachedSearch(cache_key="search_fuzzy_x", kind="search", payload={}, expires_at=expires, hit_count=3)
        assert row.expires_at == expires
        assert row.hit_count == 3

    def test_ledger_and_user_instances(self):
        user = User(email="a@b.com", credits=Decimal("10"))
        entry = CreditLedgerEntry(user_id=1, amount=Decimal("-1"), balance_after=Decimal("9"), kind="debit")
        assert user.credits == Decimal("10")
        assert entry.kind == "debit"


class TestSqlBalance:
    async def test_adjust_writes_ledger(self, sql_store):
        user = await sql_store.create_user("a@b.com", Decimal("10"))

        assert await sql_store.adjust_balance(user, Decimal("-2.5"), "debit", "fee", "task-1") == Decimal("7.5")
        assert await sql_store.get_balance(user) == Decimal("7.5")

        [entry] = await sql_store.list_ledger_entries(user)
        assert entry.amount == Decimal("-2.5")
        assert entry.balance_after == Decimal("7.5")
        assert entry.related_task_id == "task-1"

    async def test_overdraft_rejected_without_entry(self, sql_store):
        user = await sql_store.create_user("a@b.com", Decimal("3"))

        assert await sql_store.adjust_balance(user, Decimal("-5"), "debit") is None
        assert await sql_store.get_balance(user) == Decimal("3")
        assert await sql_store.list_ledger_entries(user) == []

    async def test_unknown_user(self, sql_store):
        assert await sql_store.get_balance(999) is None
        assert await sql_store.adjust_balance(999, Decimal("1"), "admin_adjust") is None

    async def test_concurrent_debits_never_overspend(self, sql_store):
        user = await sql_store.create_user("a@b.com", Decimal("10"))

        results = await asyncio.gather(*[
            sql_store.adjust_balance(user, Decimal("-3"), "debit") for _ in range(5)
        ])

        assert sum(r is not None for r in results) == 3
        assert await sql_store.get_balance(user) == Decimal("1")


class TestSqlTasks:
    async def test_status_only_moves_forward(self, sql_store):
        task = await sql_store.create_task(1, "hash", {"name": "John"}, 10)
        assert task.status == "initializing"

        assert await sql_store.set_task_status(task.task_id, "processing")
        assert not await sql_store.set_task_status(task.task_id, "searching")
        assert await sql_store.set_task_status(task.task_id, "stopped")
        assert not await sql_store.set_task_status(task.task_id, "completed")
        assert not await sql_store.set_task_status("missing", "stopped")

    async def test_update_keeps_other_fields_when_status_rejected(self, sql_store):
        task = await sql_store.create_task(1, "hash", {}, 10)
        await sql_store.set_task_status(task.task_id, "stopped")

        updated = await sql_store.update_task(task.task_id, {
            "status": "completed", "progress": 100, "logs": [{"message": "done"}],
        })

        assert updated.status == "stopped"
        assert updated.progress == 100
        assert updated.logs == [{"message": "done"}]

    async def test_actual_count_written_once(self, sql_store):
        task = await sql_store.create_task(1, "hash", {}, 10)
        await sql_store.update_task(task.task_id, {"actual_count": 7})
        updated = await sql_store.update_task(task.task_id, {"actual_count": 3})
        assert updated.actual_count == 7

    async def test_unknown_field_rejected(self, sql_store):
        task = await sql_store.create_task(1, "hash", {}, 10)
        with pytest.raises(ValueError):
            await sql_store.update_task(task.task_id, {"user_id": 2})

    async def test_results_in_insert_order(self, sql_store):
        task = await sql_store.create_task(1, "hash", {}, 10)
        for i in range(3):
            details = {"source": "TruePeopleSearch"} if i == 1 else None
            await sql_store.save_result(task.id, f"lead-{i}", {"i": i}, i == 1, 90 if i == 1 else None, details)

        rows = await sql_store.list_results(task.id)
        assert [r.record_id for r in rows] == ["lead-0", "lead-1", "lead-2"]
        assert rows[1].verified and rows[1].verification_score == 90

    async def test_update_result(self, sql_store):
        task = await sql_store.create_task(1, "hash", {}, 10)
        saved = await sql_store.save_result(task.id, "lead-1", {"phone_status": "received"}, False, None, None)

        updated = await sql_store.update_result(
            saved.id, True, 95, {"source": "FastPeopleSearch"}, data={"phone_status": "verified"},
        )

        assert updated.verified and updated.verification_score == 95
        fetched = await sql_store.get_result(saved.id)
        assert fetched.verification_details == {"source": "FastPeopleSearch"}
        assert fetched.data == {"phone_status": "verified"}

    async def test_unknown_result(self, sql_store):
        assert await sql_store.get_result(999) is None
        assert await sql_store.update_result(999, False, 10, None) is None

    async def test_verified_requires_score_and_source(self, sql_store):
        task = await sql_store.create_task(1, "hash", {}, 10)
        with pytest.raises(ValueError):
            await sql_store.save_result(task.id, "lead-1", {}, True, None, {"source": "TruePeopleSearch"})
        saved = await sql_store.save_result(task.id, "lead-1", {}, False, None, None)
        with pytest.raises(ValueError):
            await sql_store.update_result(saved.id, True, 90, {"age": 60})
        assert not (await sql_store.get_result(saved.id)).verified


class TestSqlCacheAndConfig:
    async def test_cache_hit_count(self, sql_store):
        await sql_store.set_cache("k", {"records": []}, "search", 1)
        await sql_store.get_cache("k")
        second = await sql_store.get_cache("k")
        assert second.hit_count == 2
        assert second.payload == {"records": []}

    async def test_uncounted_read(self, sql_store):
        await sql_store.set_cache("k", {"v": 1}, "search", 1)
        assert (await sql_store.get_cache("k", count_hit=False)).hit_count == 0
        assert (await sql_store.get_cache("k")).hit_count == 1

    async def test_expired_entry_absent(self, sql_store):
        await sql_store.set_cache("old", {"x": 1}, "person", -1)
        assert await sql_store.get_cache("old") is None

    async def test_overwrite(self, sql_store):
        await sql_store.set_cache("k", {"v": 1}, "search", 1)
        await sql_store.set_cache("k", {"v": 2}, "search", 1)
        assert (await sql_store.get_cache("k")).payload == {"v": 2}

    async def test_config_upsert(self, sql_store):
        assert await sql_store.get_config("FUZZY_SEARCH_CREDITS") is None
        await sql_store.set_config("FUZZY_SEARCH_CREDITS", "2")
        await sql_store.set_config("FUZZY_SEARCH_CREDITS", "3")
        assert await sql_store.get_config("FUZZY_SEARCH_CREDITS") == "3"
