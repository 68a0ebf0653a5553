"""Tests for the credit ledger: conservation, no overspend, settlement."""

import asyncio
from decimal import Decimal

import pytest

from leadhunter.orchestrator.schemas import round_credits
from leadhunter.services.credit_ledger import CreditLedger


@pytest.fixture
def ledger(store):
    return CreditLedger(store)


class TestRounding:
    def test_rounds_up_to_one_decimal(self):
        assert round_credits(0.11) == Decimal("0.2")
        assert round_credits("2") == Decimal("2.0")
        assert round_credits(Decimal("3.30")) == Decimal("3.3")

    async def test_batch_total_rounds_unit_first(self, ledger, funded_user):
        user = await funded_user("100")
        result = await ledger.debit_batch(user, 1.05, 3, "t1")
        assert result.ok
        # 1.05 -> 1.1 per unit, x3 = 3.3
        assert result.new_balance == Decimal("96.7")


class TestReserveSettle:
    async def test_reserve_ok(self, ledger, funded_user):
        user = await funded_user("200")
        result = await ledger.reserve(user, 101, "t1")
        assert result.ok
        assert result.reserved_amount == Decimal("101.0")
        assert result.balance_after == Decimal("99.0")

    async def test_reserve_insufficient_changes_nothing(self, ledger, funded_user, store):
        user = await funded_user("50")
        result = await ledger.reserve(user, 101, "t1")
        assert not result.ok
        assert "Insufficient" in result.message
        assert await ledger.get_balance(user) == Decimal("50")
        assert await store.list_ledger_entries(user) == []

    async def test_settle_refunds_difference_once(self, ledger, funded_user, store):
        user = await funded_user("100")
        await ledger.reserve(user, 100, "t1")
        settled = await ledger.settle(user, 100, 37, "t1")

        assert settled.refund_amount == Decimal("63.0")
        assert settled.actual_cost == Decimal("37.0")
        assert settled.new_balance == Decimal("63.0")
        refunds = [e for e in await store.list_ledger_entries(user) if e.kind == "refund"]
        assert len(refunds) == 1
        assert refunds[0].amount == Decimal("63.0")

    async def test_settle_full_use_writes_no_refund(self, ledger, funded_user, store):
        user = await funded_user("100")
        await ledger.reserve(user, 100, "t1")
        settled = await ledger.settle(user, 100, 100, "t1")

        assert settled.refund_amount == Decimal("0")
        assert settled.new_balance == Decimal("0")
        assert [e.kind for e in await store.list_ledger_entries(user)] == ["reserve"]


class TestRealtimeDebits:
    async def test_debit_rejected_when_short(self, ledger, funded_user):
        user = await funded_user("5")
        result = await ledger.debit_batch(user, 2, 3, "t1")
        assert not result.ok
        assert result.new_balance == Decimal("5")

    async def test_affordable_count(self, ledger, funded_user):
        user = await funded_user("9")
        assert await ledger.affordable_count(user, 2, 16) == 4
        assert await ledger.affordable_count(user, 2, 3) == 3
        assert await ledger.affordable_count(user, 0, 7) == 7
        assert await ledger.affordable_count(user, 10, 5) == 0

    async def test_can_afford_unit(self, ledger, funded_user):
        user = await funded_user("1.5")
        assert await ledger.can_afford_unit(user, 1.5)
        assert not await ledger.can_afford_unit(user, 1.6)

    async def test_unknown_user_has_zero_balance(self, ledger):
        assert await ledger.get_balance(999) == Decimal("0")
        assert not (await ledger.debit_unit(999, 1, "t1")).ok

    async def test_concurrent_debits_never_overspend(self, ledger, funded_user):
        user = await funded_user("100")
        results = await asyncio.gather(*(ledger.debit_unit(user, 15, f"t{i}") for i in range(10)))

        assert sum(1 for r in results if r.ok) == 6
        assert await ledger.get_balance(user) == Decimal("10")

    async def test_refund(self, ledger, funded_user):
        user = await funded_user("10")
        await ledger.debit_unit(user, 5, "t1")
        result = await ledger.refund(user, 5, "t1", "provider failure")
        assert result.ok
        assert result.new_balance == Decimal("10")


class TestConservation:
    async def test_balance_equals_initial_plus_entries(self, ledger, funded_user, store):
        user = await funded_user("200")
        await ledger.reserve(user, 21, "t1")
        await ledger.settle(user, 21, 7, "t1")
        await ledger.debit_unit(user, 1, "t2")
        await ledger.debit_batch(user, 2, 16, "t2")
        await ledger.debit_batch(user, 2, 500, "t2")  # rejected
        await ledger.refund(user, 1, "t2")

        entries = await store.list_ledger_entries(user)
        assert Decimal("200") + sum(e.amount for e in entries) == await ledger.get_balance(user)
        assert entries[-1].balance_after == await ledger.get_balance(user)
        assert all(e.balance_after >= 0 for e in entries)
