"""Credit metering disciplines. A task uses exactly one meter for its whole run.

  - RealtimeMeter: search fee up front, data cost debited per unit of work
    just before it is dispatched; stops when the balance runs out.
  - ReservationMeter: freezes the worst-case cost at start, tracks the
    actual cost in memory and settles the difference at the end.
"""

import logging
from decimal import Decimal
from typing import Protocol

from leadhunter.orchestrator.schemas import CostBreakdown, CreditsConfig, round_credits
from leadhunter.services.credit_ledger import ZERO, CreditLedger

logger = logging.getLogger(__name__)


class CreditMeter(Protocol):
    full_refund_on_empty: bool

    @property
    def total_cost(self) -> Decimal: ...

    @property
    def balance(self) -> Decimal: ...

    async def start(self) -> bool: ...

    async def charge_search_fee(self) -> bool: ...

    async def charge_records(self, count: int) -> int: ...

    async def refund_search_fee(self, reason: str = "") -> None: ...

    async def finish(self) -> CostBreakdown: ...

    def breakdown(self) -> CostBreakdown: ...


class _BaseMeter:
    def __init__(self, ledger: CreditLedger, user_id: int, task_id: str, search_cost, unit_cost):
        self.ledger = ledger
        self.user_id = user_id
        self.task_id = task_id
        self.search_cost = round_credits(search_cost)
        self.unit_cost = round_credits(unit_cost)
        self._fee_charged = False
        self._records = 0
        self._refunded = ZERO
        self._balance = ZERO
        self._finished: CostBreakdown | None = None

    @property
    def data_cost(self) -> Decimal:
        return self.unit_cost * self._records

    @property
    def total_cost(self) -> Decimal:
        fee = self.search_cost if self._fee_charged else ZERO
        return fee + self.data_cost

    @property
    def balance(self) -> Decimal:
        return self._balance

    def breakdown(self) -> CostBreakdown:
        return CostBreakdown(
            search_fee=self.search_cost if self._fee_charged else ZERO,
            data_records=self._records,
            data_cost=self.data_cost,
            total_cost=self.total_cost,
            refunded=self._refunded,
            balance=self._balance,
        )


class RealtimeMeter(_BaseMeter):
    """Debit each unit of work as it is dispatched."""

    full_refund_on_empty = False

    async def start(self) -> bool:
        self._balance = await self.ledger.get_balance(self.user_id)
        return self._balance >= self.search_cost

    async def charge_search_fee(self) -> bool:
        result = await self.ledger.debit_unit(
            self.user_id, self.search_cost, self.task_id, f"Search fee for task {self.task_id}",
        )
        self._balance = result.new_balance
        if result.ok:
            self._fee_charged = True
        return result.ok

    async def charge_records(self, count: int) -> int:
        """Debit up to ``count`` records; returns how many were paid for."""
        if count <= 0:
            return 0
        affordable = await self.ledger.affordable_count(self.user_id, self.unit_cost, count)
        if affordable == 0:
            return 0
        result = await self.ledger.debit_batch(
            self.user_id, self.unit_cost, affordable, self.task_id,
            f"Data cost for task {self.task_id}: {affordable} records",
        )
        self._balance = result.new_balance
        if not result.ok:
            # Another task spent the balance between the count and the debit
            return 0
        self._records += affordable
        return affordable

    async def refund_search_fee(self, reason: str = "") -> None:
        if not self._fee_charged:
            return
        result = await self.ledger.refund(
            self.user_id, self.search_cost, self.task_id, reason or f"Search fee refund for task {self.task_id}",
        )
        if result.ok:
            self._balance = result.new_balance
            self._fee_charged = False
            self._refunded += self.search_cost

    async def finish(self) -> CostBreakdown:
        if self._finished is None:
            self._balance = await self.ledger.get_balance(self.user_id)
            self._finished = self.breakdown()
        return self._finished


class ReservationMeter(_BaseMeter):
    """Freeze the worst-case cost at start and settle down to the actual cost."""

    full_refund_on_empty = True

    def __init__(self, ledger: CreditLedger, user_id: int, task_id: str, search_cost, unit_cost, max_records: int):
        super().__init__(ledger, user_id, task_id, search_cost, unit_cost)
        self.max_records = max_records
        self.reserved = ZERO

    async def start(self) -> bool:
        amount = self.search_cost + self.unit_cost * self.max_records
        result = await self.ledger.reserve(self.user_id, amount, self.task_id)
        self._balance = result.balance_after
        if result.ok:
            self.reserved = result.reserved_amount
        return result.ok

    async def charge_search_fee(self) -> bool:
        if self.reserved <= 0 and self.search_cost > 0:
            return False
        self._fee_charged = True
        return True

    async def charge_records(self, count: int) -> int:
        if count <= 0:
            return 0
        granted = min(count, self.max_records - self._records)
        self._records += max(0, granted)
        return max(0, granted)

    async def refund_search_fee(self, reason: str = "") -> None:
        # Nothing was debited separately; settle gives it back.
        self._fee_charged = False

    async def finish(self) -> CostBreakdown:
        if self._finished is None:
            if self.reserved > 0:
                settled = await self.ledger.settle(self.user_id, self.reserved, self.total_cost, self.task_id)
                self._refunded += settled.refund_amount
                self._balance = settled.new_balance
            else:
                self._balance = await self.ledger.get_balance(self.user_id)
            self._finished = self.breakdown()
        return self._finished


def build_meter(
    discipline: str,
    ledger: CreditLedger,
    user_id: int,
    task_id: str,
    credits: CreditsConfig,
    max_records: int,
) -> CreditMeter:
    if discipline == "reserve":
        return ReservationMeter(
            ledger, user_id, task_id, credits.search_credits, credits.credits_per_person, max_records,
        )
    if discipline == "realtime":
        return RealtimeMeter(ledger, user_id, task_id, credits.search_credits, credits.credits_per_person)
    raise ValueError(f"Unknown credit discipline: {discipline}")
