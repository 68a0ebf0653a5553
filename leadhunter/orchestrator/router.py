"""Orchestrator: entry point for previews, task starts, progress and stops.

Responsibilities:
  - Price a search (preview) from the cache without touching providers
  - Reject starts the user cannot afford, create the task row
  - Run the search pipeline in the background, never letting it raise
  - Report progress, accept stop requests, list stored results
  - Re-verify a stored result on request (not billed)
"""

import asyncio
import logging
from decimal import Decimal

from leadhunter.config import settings
from leadhunter.exceptions import ResultNotFoundError, TaskNotFoundError
from leadhunter.orchestrator.schemas import (
    CreditsConfig,
    PreviewResult,
    ProgressReport,
    ResultItem,
    SearchParams,
    StartTaskResult,
    TERMINAL_STATUSES,
    VerificationCandidate,
)
from leadhunter.pipelines.search import SearchPipeline
from leadhunter.pipelines.search.batch_executor import ExecutorConfig, apply_verification, verification_details
from leadhunter.services.cache import CacheService
from leadhunter.services.cache_gate import CacheGate, search_hash
from leadhunter.services.credit_ledger import ZERO, CreditLedger
from leadhunter.services.pricing import get_credits_config
from leadhunter.services.provider_adapter import ProviderAdapter
from leadhunter.services.task_recorder import human_logs, stats_from_logs
from leadhunter.storage.base import SearchStore
from leadhunter.storage.records import ResultRecord, TaskRecord

logger = logging.getLogger(__name__)


def max_affordable(balance: Decimal, credits: CreditsConfig, cap: int) -> int:
    """How many people the balance pays for after the search fee, at most ``cap``."""
    remaining = balance - credits.search_credits
    if remaining < 0:
        return 0
    if credits.credits_per_person <= 0:
        return cap
    return min(cap, int(remaining // credits.credits_per_person))


class SearchOrchestrator:
    """Main dispatcher between the HTTP layer and the search pipeline."""

    def __init__(
        self,
        store: SearchStore,
        adapter: ProviderAdapter | None = None,
        cache_gate: CacheGate | None = None,
        hot_cache: CacheService | None = None,
        config: ExecutorConfig | None = None,
        discipline: str | None = None,
    ):
        self.store = store
        self.ledger = CreditLedger(store)
        self.adapter = adapter or ProviderAdapter()
        self.cache_gate = cache_gate or CacheGate(store, hot_cache)
        self.pipeline = SearchPipeline(
            store, self.adapter, self.cache_gate, self.ledger, config=config, discipline=discipline,
        )
        self._running: set[asyncio.Task] = set()

    # ═══════════════ PRICING ═══════════════

    async def credits_config(self) -> dict[str, CreditsConfig]:
        return {mode: await get_credits_config(self.store, mode) for mode in ("fuzzy", "exact")}

    async def preview(self, user_id: int, params: SearchParams) -> PreviewResult:
        """Estimate cost from the cache only; providers are never called."""
        credits = await get_credits_config(self.store, params.mode)
        balance = await self.ledger.get_balance(user_id)
        lookup = await self.cache_gate.lookup(params.mode, params, read_only=True)

        if lookup.hit:
            count = min(params.limit, lookup.total_available)
            message = f"{lookup.total_available} people available from recent searches"
        else:
            count = params.limit
            message = "Availability is known once the search runs"

        estimated = credits.search_credits + credits.credits_per_person * count
        return PreviewResult(
            total_available=lookup.total_available if lookup.hit else 0,
            estimated_cost=estimated,
            search_cost=credits.search_credits,
            unit_cost=credits.credits_per_person,
            can_afford=balance >= estimated,
            user_credits=balance,
            max_affordable=max_affordable(balance, credits, params.limit),
            cache_hit=lookup.hit,
            message=message,
        )

    # ═══════════════ TASK LIFECYCLE ═══════════════

    async def start_task(self, user_id: int, params: SearchParams) -> StartTaskResult:
        credits = await get_credits_config(self.store, params.mode)
        balance = await self.ledger.get_balance(user_id)
        required = credits.search_credits + credits.credits_per_person * params.limit
        affordable = max_affordable(balance, credits, params.limit)

        if required > balance:
            logger.info(
                "Start rejected | user=%d | mode=%s | need=%s | balance=%s",
                user_id, params.mode, required, balance,
            )
            return StartTaskResult(
                accepted=False,
                message=f"Insufficient credits: need {required}, have {balance}",
                max_affordable=affordable,
            )

        task = await self.store.create_task(
            user_id,
            search_hash(params.name, params.title, params.state, params.limit),
            params.task_params(),
            params.limit,
        )
        background = asyncio.create_task(self.run_task(task, params))
        self._running.add(background)
        background.add_done_callback(self._running.discard)

        logger.info("Task started | task=%s | user=%d | mode=%s | limit=%d", task.task_id, user_id, params.mode, params.limit)
        return StartTaskResult(
            accepted=True,
            task_id=task.task_id,
            message="Search started",
            max_affordable=affordable,
        )

    async def run_task(self, task: TaskRecord, params: SearchParams) -> str:
        """End-to-end execution of one task. Never raises."""
        try:
            return await self.pipeline.execute(task, params)
        except Exception as e:
            logger.exception("Task crashed | task=%s", task.task_id)
            try:
                await self.store.update_task(task.task_id, {
                    "status": "failed",
                    "error_message": str(e)[:1000],
                    "progress": 100,
                })
            except Exception as inner:
                logger.error("Task %s could not be marked failed: %s", task.task_id, str(inner)[:200])
            return "failed"

    async def drain(self) -> None:
        """Wait for every background task started by this orchestrator."""
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def request_stop(self, task_id: str) -> bool:
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.status in TERMINAL_STATUSES:
            return False
        stopped = await self.store.set_task_status(task_id, "stopped")
        if stopped:
            logger.info("Stop requested | task=%s | was=%s", task_id, task.status)
        return stopped

    # ═══════════════ READ SIDE ═══════════════

    async def get_progress(self, task_id: str) -> ProgressReport:
        task = await self._get_task(task_id)
        return ProgressReport(
            task_id=task.task_id,
            status=task.status,
            progress=task.progress,
            logs=human_logs(task.logs),
            stats=stats_from_logs(task.logs),
            credits_used=float(task.credits_used or ZERO),
            requested_count=task.requested_count,
            actual_count=task.actual_count,
            error_message=task.error_message,
        )

    async def list_results(self, task_id: str) -> list[ResultItem]:
        task = await self._get_task(task_id)
        rows = await self.store.list_results(task.id)
        return [_result_item(row) for row in rows]

    async def verify_result(self, task_id: str, result_id: int) -> ResultItem:
        """Re-run phone verification for one stored result and attach the outcome.

        Lookup API errors leave the stored result unchanged.
        """
        task = await self._get_task(task_id)
        row = await self.store.get_result(result_id)
        if row is None or row.task_id != task.id:
            raise ResultNotFoundError(f"{task_id}/{result_id}")

        phone = row.data.get("phone")
        if not phone:
            return _result_item(row)

        min_age = task.params.get("min_age") or settings.default_min_age
        max_age = task.params.get("max_age") or settings.default_max_age
        outcome = await self.adapter.verify(VerificationCandidate(
            first_name=row.data.get("first_name") or "",
            last_name=row.data.get("last_name") or "",
            city=row.data.get("city") or "",
            state=row.data.get("state") or "",
            phone=phone,
            min_age=min_age,
            max_age=max_age,
        ))
        if outcome.api_error is not None:
            logger.warning("Re-verify skipped | task=%s | result=%d | %s", task_id, result_id, outcome.api_error)
            return _result_item(row)

        in_range = outcome.age is None or min_age <= outcome.age <= max_age
        verified = outcome.verified and in_range
        data = apply_verification(row.data, outcome, verified)
        updated = await self.store.update_result(
            row.id, verified, outcome.match_score, verification_details(outcome), data=data,
        )
        await self.cache_gate.store_person(row.record_id, data)
        logger.info(
            "Re-verify | task=%s | result=%d | verified=%s | score=%d | source=%s",
            task_id, result_id, verified, outcome.match_score, outcome.source,
        )
        return _result_item(updated or row)

    async def _get_task(self, task_id: str) -> TaskRecord:
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task


def _result_item(row: ResultRecord) -> ResultItem:
    return ResultItem(
        id=row.id,
        record_id=row.record_id,
        data=row.data,
        verified=row.verified,
        verification_score=row.verification_score,
        verification_details=row.verification_details,
    )
