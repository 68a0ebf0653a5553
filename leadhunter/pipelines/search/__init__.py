"""Pipeline: Search Task Execution.

Flow: meter start → search fee → Cache Gate → [Provider fetch → cache store]
      → Batch Executor (classify → pay → verify → save) → finalize
"""

import logging

from leadhunter.config import settings
from leadhunter.exceptions import ProviderError
from leadhunter.orchestrator.schemas import CreditsConfig, SearchParams
from leadhunter.pipelines.search.batch_executor import BatchExecutor, ExecutorConfig, SearchRun
from leadhunter.pipelines.search.classifier import Classification, PhoneCandidate, classify_records
from leadhunter.services.cache_gate import CacheGate, shuffled
from leadhunter.services.credit_ledger import CreditLedger
from leadhunter.services.metering import build_meter
from leadhunter.services.pricing import get_credits_config
from leadhunter.services.provider_adapter import ProviderAdapter
from leadhunter.services.task_recorder import TaskRecorder
from leadhunter.storage.base import SearchStore
from leadhunter.storage.records import TaskRecord

logger = logging.getLogger(__name__)


class SearchPipeline:
    """Runs one search task from fee to terminal status."""

    def __init__(
        self,
        store: SearchStore,
        adapter: ProviderAdapter,
        cache_gate: CacheGate,
        ledger: CreditLedger | None = None,
        config: ExecutorConfig | None = None,
        discipline: str | None = None,
    ):
        self.store = store
        self.adapter = adapter
        self.cache_gate = cache_gate
        self.ledger = ledger or CreditLedger(store)
        self.executor = BatchExecutor(store, adapter, cache_gate, config)
        self.discipline = discipline or settings.credit_discipline

    async def execute(self, task: TaskRecord, params: SearchParams) -> str:
        """Returns the stored terminal status.

        Provider failures end the task as ``failed`` with the search fee
        refunded. Any other failure still settles credits and writes the
        cost breakdown before the task is marked ``failed``; only a failure
        of that final write propagates.
        """
        credits = await get_credits_config(self.store, params.mode)
        meter = build_meter(self.discipline, self.ledger, task.user_id, task.task_id, credits, params.limit)
        run = SearchRun(task=task, params=params, meter=meter, recorder=TaskRecorder(self.store, task))

        try:
            return await self._run(run, credits)
        except Exception as e:
            if run.finalizing:
                raise
            logger.exception("Pipeline | task=%s | crashed", task.task_id)
            return await self.executor.finalize(run, "failed", str(e))

    async def _run(self, run: SearchRun, credits: CreditsConfig) -> str:
        task, params, meter, recorder = run.task, run.params, run.meter, run.recorder
        mode = params.mode

        logger.info(
            "Pipeline | task=%s | mode=%s | name=%s | title=%s | state=%s | limit=%d",
            task.task_id, mode, params.name, params.title, params.state, params.limit,
        )
        recorder.log(
            f"Search started | {params.name} / {params.title} / {params.state} | limit: {params.limit} | mode: {mode}",
            "info", "init",
        )

        # Step 1: credits
        if not await meter.start() or not await meter.charge_search_fee():
            recorder.log(
                f"Insufficient credits | need {meter.search_cost} to start | balance: {meter.balance}",
                "error", "init",
            )
            return await self.executor.finalize(run, "insufficient_credits", "Insufficient credits")
        recorder.log(f"Search fee charged: {meter.search_cost} credits", "info", "init")
        await recorder.flush(status="searching", progress=10, credits_used=meter.total_cost)

        # Step 2: cache, then provider
        lookup = await self.cache_gate.lookup(mode, params)
        if lookup.hit:
            records = lookup.records
            recorder.log(lookup.message, "success", "search")
        else:
            recorder.log(f"{lookup.message} | querying {params.data_source}", "info", "search")
            run.stats.provider_api_calls += 1
            try:
                fetched = await self.adapter.fetch(mode, params.name, params.title, params.state, params.limit)
            except ProviderError as e:
                logger.error("Pipeline | task=%s | provider failed | %s", task.task_id, str(e)[:200])
                recorder.log(f"Data provider error: {str(e)[:200]}", "error", "search")
                await meter.refund_search_fee(f"Provider failure for task {task.task_id}")
                return await self.executor.finalize(run, "failed", str(e))

            await self.cache_gate.store(mode, params, fetched)
            records = shuffled(fetched)[:params.limit]
            recorder.log(f"Provider returned {len(fetched)} records", "info", "search")

        run.stats.provider_returned = len(records)
        await recorder.flush(progress=40)

        # Step 3: nothing found
        if not records:
            if meter.full_refund_on_empty or credits.refund_on_no_result:
                await meter.refund_search_fee(f"No results for task {task.task_id}")
            recorder.log("No matching people found", "warning", "search")
            return await self.executor.finalize(run, "completed")

        # Step 4: classify, verify, save
        halt = await self.executor.execute(run, records)
        return await self.executor.finalize(run, halt or "completed")


__all__ = [
    "BatchExecutor",
    "Classification",
    "ExecutorConfig",
    "PhoneCandidate",
    "SearchPipeline",
    "SearchRun",
    "classify_records",
]
