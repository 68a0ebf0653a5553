"""Credit Ledger: atomic, auditable balance changes.

Every amount is rounded UP to one decimal place before it is compared or
applied. Insufficient balance is reported as ``ok=False``; only store
failures raise (``StoreError``).
"""

import logging
from decimal import Decimal

from leadhunter.orchestrator.schemas import DebitResult, ReserveResult, SettleResult, round_credits
from leadhunter.storage.base import SearchStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class CreditLedger:
    """Debit / reserve / settle / refund against a user's stored balance."""

    def __init__(self, store: SearchStore):
        self.store = store

    async def get_balance(self, user_id: int) -> Decimal:
        balance = await self.store.get_balance(user_id)
        return balance if balance is not None else ZERO

    # ═══════════════ PRE-AUTHORIZATION ═══════════════

    async def reserve(self, user_id: int, max_amount: Decimal | float, task_id: str) -> ReserveResult:
        amount = round_credits(max_amount)
        new_balance = await self.store.adjust_balance(
            user_id, -amount, "reserve", f"Reserve for search task {task_id}", task_id,
        )
        if new_balance is None:
            balance = await self.get_balance(user_id)
            logger.info(
                "Reserve rejected | user=%d | task=%s | need=%s | balance=%s",
                user_id, task_id, amount, balance,
            )
            return ReserveResult(
                ok=False,
                balance_after=balance,
                message=f"Insufficient credits: need {amount}, have {balance}",
            )

        logger.info("Reserve OK | user=%d | task=%s | amount=%s | balance=%s", user_id, task_id, amount, new_balance)
        return ReserveResult(ok=True, reserved_amount=amount, balance_after=new_balance)

    async def settle(
        self,
        user_id: int,
        reserved_amount: Decimal | float,
        actual_cost: Decimal | float,
        task_id: str,
    ) -> SettleResult:
        reserved = round_credits(reserved_amount)
        actual = round_credits(actual_cost)
        refund = max(ZERO, reserved - actual)

        if refund > 0:
            new_balance = await self.store.adjust_balance(
                user_id, refund, "refund",
                f"Settle search task {task_id}: reserved {reserved}, used {actual}", task_id,
            )
            if new_balance is None:
                logger.error("Settle refund failed | user=%d | task=%s | refund=%s", user_id, task_id, refund)
                new_balance = await self.get_balance(user_id)
        else:
            new_balance = await self.get_balance(user_id)

        logger.info(
            "Settle | user=%d | task=%s | reserved=%s | actual=%s | refund=%s",
            user_id, task_id, reserved, actual, refund,
        )
        return SettleResult(refund_amount=refund, actual_cost=actual, new_balance=new_balance)

    # ═══════════════ REAL-TIME METERING ═══════════════

    async def can_afford_unit(self, user_id: int, unit_cost: Decimal | float) -> bool:
        return await self.get_balance(user_id) >= round_credits(unit_cost)

    async def affordable_count(self, user_id: int, unit_cost: Decimal | float, wanted: int) -> int:
        """How many units of ``unit_cost`` the current balance covers, capped at ``wanted``."""
        unit = round_credits(unit_cost)
        if wanted <= 0:
            return 0
        if unit <= 0:
            return wanted
        balance = await self.get_balance(user_id)
        return max(0, min(wanted, int(balance // unit)))

    async def debit_unit(
        self, user_id: int, unit_cost: Decimal | float, task_id: str, reason: str = "",
    ) -> DebitResult:
        return await self.debit_batch(user_id, unit_cost, 1, task_id, reason)

    async def debit_batch(
        self, user_id: int, unit_cost: Decimal | float, count: int, task_id: str, reason: str = "",
    ) -> DebitResult:
        total = round_credits(round_credits(unit_cost) * count)
        if total <= 0:
            return DebitResult(ok=True, new_balance=await self.get_balance(user_id))

        new_balance = await self.store.adjust_balance(
            user_id, -total, "debit", reason or f"Search task {task_id}: {count} x {unit_cost}", task_id,
        )
        if new_balance is None:
            logger.info("Debit rejected | user=%d | task=%s | amount=%s", user_id, task_id, total)
            return DebitResult(ok=False, new_balance=await self.get_balance(user_id))
        return DebitResult(ok=True, new_balance=new_balance)

    async def refund(
        self, user_id: int, amount: Decimal | float, task_id: str, reason: str = "",
    ) -> DebitResult:
        """Credit back a fee for work that was never performed."""
        value = round_credits(amount)
        if value <= 0:
            return DebitResult(ok=True, new_balance=await self.get_balance(user_id))
        new_balance = await self.store.adjust_balance(
            user_id, value, "refund", reason or f"Refund for search task {task_id}", task_id,
        )
        if new_balance is None:
            # Only possible when the user row is gone
            logger.error("Refund failed | user=%d | task=%s | amount=%s", user_id, task_id, value)
            return DebitResult(ok=False, new_balance=ZERO)
        logger.info("Refund | user=%d | task=%s | amount=%s | balance=%s", user_id, task_id, value, new_balance)
        return DebitResult(ok=True, new_balance=new_balance)
