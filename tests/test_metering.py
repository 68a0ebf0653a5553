"""Tests for the real-time and reservation credit meters."""

from decimal import Decimal

import pytest

from leadhunter.orchestrator.schemas import CreditsConfig
from leadhunter.services.credit_ledger import CreditLedger
from leadhunter.services.metering import RealtimeMeter, ReservationMeter, build_meter

FUZZY = CreditsConfig(mode="fuzzy", search_credits=Decimal("1"), credits_per_person=Decimal("2"))


@pytest.fixture
def ledger(store):
    return CreditLedger(store)


class TestRealtimeMeter:
    async def test_fee_then_records(self, ledger, funded_user):
        user = await funded_user("200")
        meter = RealtimeMeter(ledger, user, "t1", 1, 2)

        assert await meter.start()
        assert await meter.charge_search_fee()
        assert await meter.charge_records(16) == 16
        breakdown = await meter.finish()

        assert breakdown.search_fee == Decimal("1.0")
        assert breakdown.data_records == 16
        assert breakdown.total_cost == Decimal("33.0")
        assert breakdown.balance == Decimal("167.0")

    async def test_batch_shrinks_to_balance(self, ledger, funded_user):
        user = await funded_user("10")
        meter = RealtimeMeter(ledger, user, "t1", 1, 2)
        await meter.charge_search_fee()

        assert await meter.charge_records(16) == 4
        assert await meter.charge_records(16) == 0
        assert meter.balance == Decimal("1.0")

    async def test_start_fails_below_fee(self, ledger, funded_user):
        user = await funded_user("0.5")
        meter = RealtimeMeter(ledger, user, "t1", 1, 2)
        assert not await meter.start()

    async def test_refund_search_fee(self, ledger, funded_user):
        user = await funded_user("10")
        meter = RealtimeMeter(ledger, user, "t1", 5, 10)
        await meter.charge_search_fee()
        await meter.refund_search_fee("no results")
        breakdown = await meter.finish()

        assert breakdown.total_cost == Decimal("0")
        assert breakdown.refunded == Decimal("5.0")
        assert breakdown.balance == Decimal("10.0")

    async def test_finish_is_idempotent(self, ledger, funded_user):
        user = await funded_user("10")
        meter = RealtimeMeter(ledger, user, "t1", 1, 2)
        await meter.charge_search_fee()
        first = await meter.finish()
        second = await meter.finish()
        assert first == second


class TestReservationMeter:
    async def test_settles_to_actual_cost(self, ledger, funded_user, store):
        user = await funded_user("200")
        meter = ReservationMeter(ledger, user, "t1", 1, 2, max_records=50)

        assert await meter.start()
        assert await ledger.get_balance(user) == Decimal("99.0")
        await meter.charge_search_fee()
        assert await meter.charge_records(10) == 10
        breakdown = await meter.finish()

        assert breakdown.total_cost == Decimal("21.0")
        assert breakdown.refunded == Decimal("80.0")
        assert breakdown.balance == Decimal("179.0")
        kinds = [e.kind for e in await store.list_ledger_entries(user)]
        assert kinds == ["reserve", "refund"]

    async def test_records_capped_at_reservation(self, ledger, funded_user):
        user = await funded_user("200")
        meter = ReservationMeter(ledger, user, "t1", 1, 2, max_records=20)
        await meter.start()

        assert await meter.charge_records(16) == 16
        assert await meter.charge_records(16) == 4
        assert await meter.charge_records(16) == 0

    async def test_empty_run_refunds_everything(self, ledger, funded_user):
        user = await funded_user("200")
        meter = ReservationMeter(ledger, user, "t1", 1, 2, max_records=50)
        await meter.start()
        await meter.charge_search_fee()
        await meter.refund_search_fee()
        breakdown = await meter.finish()

        assert breakdown.total_cost == Decimal("0")
        assert breakdown.balance == Decimal("200.0")

    async def test_reservation_rejected(self, ledger, funded_user):
        user = await funded_user("50")
        meter = ReservationMeter(ledger, user, "t1", 1, 2, max_records=50)
        assert not await meter.start()
        assert not await meter.charge_search_fee()


class TestBuildMeter:
    def test_disciplines(self, ledger):
        assert isinstance(build_meter("realtime", ledger, 1, "t1", FUZZY, 10), RealtimeMeter)
        assert isinstance(build_meter("reserve", ledger, 1, "t1", FUZZY, 10), ReservationMeter)

    def test_unknown_discipline(self, ledger):
        with pytest.raises(ValueError):
            build_meter("postpaid", ledger, 1, "t1", FUZZY, 10)
