"""Batch Executor: classifies fetched records and drives verification.

Records without a phone are handled one by one; records with a phone run in
fixed-size batches: parallel inside a batch, sequential across batches.
Before every batch the executor checks for a stop request, pays for the
batch (shrinking it to what the user can afford) and only then dispatches
the verification calls.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from leadhunter.config import settings
from leadhunter.orchestrator.schemas import (
    LeadRecord,
    SearchParams,
    SearchStats,
    TaskStatus,
    VerificationCandidate,
    VerificationOutcome,
)
from leadhunter.pipelines.search.classifier import PhoneCandidate, classify_records
from leadhunter.services.cache_gate import CacheGate
from leadhunter.services.metering import CreditMeter
from leadhunter.services.provider_adapter import ProviderAdapter
from leadhunter.services.task_recorder import TaskRecorder
from leadhunter.storage.base import SearchStore
from leadhunter.storage.records import TaskRecord

logger = logging.getLogger(__name__)


class ExecutorConfig(BaseModel):
    batch_size: int = Field(default=16, ge=1)
    progress_log_every_batches: int = Field(default=5, ge=1)
    default_min_age: int = 50
    default_max_age: int = 79

    @classmethod
    def from_settings(cls) -> "ExecutorConfig":
        return cls(
            batch_size=settings.verify_batch_size,
            progress_log_every_batches=settings.progress_log_every_batches,
            default_min_age=settings.default_min_age,
            default_max_age=settings.default_max_age,
        )


@dataclass
class SearchRun:
    """Mutable state of one task execution."""

    task: TaskRecord
    params: SearchParams
    meter: CreditMeter
    recorder: TaskRecorder
    stats: SearchStats = field(default_factory=SearchStats)
    started_at: float = field(default_factory=time.monotonic)
    finalizing: bool = False


@dataclass
class _Processed:
    candidate: PhoneCandidate
    outcome: VerificationOutcome | None = None
    excluded: str | None = None  # age | api_credits | error


class BatchExecutor:
    """Runs the classify → pay → verify → save loop for one task."""

    def __init__(
        self,
        store: SearchStore,
        adapter: ProviderAdapter,
        cache_gate: CacheGate,
        config: ExecutorConfig | None = None,
    ):
        self.store = store
        self.adapter = adapter
        self.cache_gate = cache_gate
        self.config = config or ExecutorConfig.from_settings()

    async def execute(self, run: SearchRun, records: list[LeadRecord]) -> TaskStatus | None:
        """Process records. Returns a halt status (stopped / insufficient_credits) or None."""
        stats = run.stats
        recorder = run.recorder
        classification = classify_records(records)

        recorder.log(
            f"Processing {len(records)} records | with phone: {len(classification.with_phone)} "
            f"| without phone: {len(classification.without_phone)}",
            "info", "process",
        )
        await recorder.flush(status="processing", progress=50, credits_used=run.meter.total_cost)

        halt: TaskStatus | None = None
        no_phone_done = 0

        # ── Records without a phone ──
        for record in classification.without_phone:
            if await recorder.stop_requested():
                halt = "stopped"
                break
            if not record.email:
                stats.records_processed += 1
                stats.excluded_no_phone += 1
                stats.excluded_no_contact += 1
                no_phone_done += 1
                continue
            if await run.meter.charge_records(1) == 0:
                halt = "insufficient_credits"
                recorder.log("Insufficient credits for further records", "warning", "process")
                break
            await self.store.save_result(
                run.task.id, record.id, _result_data(run, record, None, "", "no_phone", None), False, None, None,
            )
            stats.records_processed += 1
            stats.excluded_no_phone += 1
            stats.total_results += 1
            stats.results_with_email += 1
            no_phone_done += 1

        # ── Records with a phone, in batches ──
        pending = classification.with_phone
        done = 0
        batch_index = 0
        total_batches = -(-len(pending) // self.config.batch_size)
        total_work = max(1, len(records))

        while halt is None and done < len(pending):
            if await recorder.stop_requested():
                halt = "stopped"
                break

            batch = pending[done:done + self.config.batch_size]
            paid = await run.meter.charge_records(len(batch))
            if paid == 0:
                halt = "insufficient_credits"
                recorder.log("Insufficient credits for the next batch", "warning", "process")
                break
            short = paid < len(batch)
            if short:
                batch = batch[:paid]
                recorder.log(f"Insufficient credits: processing {paid} more records", "warning", "process")

            processed = await asyncio.gather(*(self._process(run, c) for c in batch))
            done += len(batch)
            batch_index += 1

            for item in processed:
                await self._save(run, item)

            if batch_index % self.config.progress_log_every_batches == 0 or done == len(pending):
                recorder.log(
                    f"Processed {done}/{len(pending)} | cost: {run.meter.total_cost} credits",
                    "info", "process",
                )
            progress = 50 + int(49 * (no_phone_done + done) / total_work)
            await recorder.flush(status="processing", progress=progress, credits_used=run.meter.total_cost)

            if any(item.excluded == "api_credits" for item in processed):
                stats.api_credits_exhausted = True
                recorder.log(
                    f"Verification service credits exhausted | cost so far: {run.meter.total_cost} credits",
                    "error", "verify",
                )
                halt = "stopped"
                break
            if short:
                halt = "insufficient_credits"
                break

        stats.unprocessed_count = (len(classification.without_phone) - no_phone_done) + (len(pending) - done)
        logger.info(
            "Executor done | task=%s | batches=%d/%d | results=%d | halt=%s | unprocessed=%d",
            run.task.task_id, batch_index, total_batches, stats.total_results, halt, stats.unprocessed_count,
        )
        return halt

    async def finalize(self, run: SearchRun, status: TaskStatus, error_message: str | None = None) -> str:
        """Settle credits, write the summary and stats entries and the terminal status."""
        run.finalizing = True
        stats = run.stats
        stats.total_duration_ms = int((time.monotonic() - run.started_at) * 1000)
        if stats.records_processed:
            stats.avg_process_time_ms = stats.total_duration_ms // stats.records_processed
        if stats.results_with_phone:
            stats.verify_success_rate = round(stats.results_verified / stats.results_with_phone * 100)

        breakdown = await run.meter.finish()
        stats.credits_used = float(breakdown.total_cost)
        stats.credits_refunded = float(breakdown.refunded)
        stats.credits_final = float(breakdown.total_cost)

        tail = f"cost: {breakdown.total_cost} credits | balance: {breakdown.balance} credits"
        counts = f"results: {stats.total_results} | with phone: {stats.results_with_phone}"
        if status == "completed":
            run.recorder.log(f"Completed | {counts} | {tail}", "success", "complete")
        elif status == "stopped":
            run.recorder.log(f"Stopped | {counts} | {tail}", "warning", "complete")
        elif status == "insufficient_credits":
            run.recorder.log(f"Insufficient credits | {counts} | {tail}", "warning", "complete")
        else:
            run.recorder.log(f"Failed: {error_message or 'unknown error'} | {tail}", "error", "complete")

        final = await run.recorder.finalize(
            status, stats, breakdown.total_cost, stats.total_results, error_message,
        )
        logger.info(
            "Task finished | task=%s | status=%s | results=%d | cost=%s | refunded=%s | %dms",
            run.task.task_id, final, stats.total_results, breakdown.total_cost, breakdown.refunded,
            stats.total_duration_ms,
        )
        return final

    # ═══════════════ INTERNALS ═══════════════

    async def _process(self, run: SearchRun, candidate: PhoneCandidate) -> _Processed:
        params = run.params
        run.stats.records_processed += 1
        if not params.enable_verification:
            return _Processed(candidate)

        record = candidate.record
        min_age = params.min_age or self.config.default_min_age
        max_age = params.max_age or self.config.default_max_age
        run.stats.verify_api_calls += 1
        try:
            outcome = await self.adapter.verify(VerificationCandidate(
                first_name=record.first_name,
                last_name=record.last_name,
                city=record.city,
                state=record.state,
                phone=candidate.phone,
                min_age=min_age,
                max_age=max_age,
            ))
        except Exception as e:
            logger.warning("Verify failed | task=%s | record=%s | %s", run.task.task_id, record.id, str(e)[:200])
            run.stats.excluded_error += 1
            return _Processed(candidate, excluded="error")

        if outcome.credits_exhausted:
            run.stats.excluded_api_error += 1
            return _Processed(candidate, outcome, excluded="api_credits")
        if outcome.age is not None and not min_age <= outcome.age <= max_age:
            run.stats.excluded_age_filter += 1
            return _Processed(candidate, outcome, excluded="age")
        return _Processed(candidate, outcome)

    async def _save(self, run: SearchRun, item: _Processed) -> None:
        if item.excluded:
            return
        record = item.candidate.record
        outcome = item.outcome
        verified = bool(outcome and outcome.verified)
        score = outcome.match_score if outcome is not None else None
        details = verification_details(outcome) if outcome is not None else None
        phone_status = "verified" if verified else "received"
        data = _result_data(run, record, item.candidate.phone, item.candidate.phone_type, phone_status, outcome)

        await self.store.save_result(run.task.id, record.id, data, verified, score, details)
        await self.cache_gate.store_person(record.id, data)

        stats = run.stats
        stats.total_results += 1
        stats.results_with_phone += 1
        if record.email:
            stats.results_with_email += 1
        if verified:
            stats.results_verified += 1


def _result_data(
    run: SearchRun,
    record: LeadRecord,
    phone: str | None,
    phone_type: str,
    phone_status: str,
    outcome: VerificationOutcome | None,
) -> dict[str, Any]:
    return {
        "record_id": record.id,
        "first_name": record.first_name,
        "last_name": record.last_name,
        "full_name": record.display_name,
        "title": record.title,
        "company": record.company,
        "industry": record.industry,
        "city": record.city,
        "state": record.state,
        "country": record.country,
        "email": record.email,
        "phone": phone,
        "phone_type": phone_type or None,
        "phone_status": phone_status,
        "linkedin_url": record.linkedin_url,
        "age": outcome.age if outcome else None,
        "carrier": outcome.carrier if outcome else None,
        "verification_source": outcome.source if outcome else None,
        "verification_score": outcome.match_score if outcome else None,
        "data_source": run.params.data_source,
    }


def verification_details(outcome: VerificationOutcome) -> dict[str, Any]:
    return {
        "source": outcome.source,
        "age": outcome.age,
        "carrier": outcome.carrier,
        "phone_type": outcome.phone_type,
        "matched_name": outcome.name,
    }


def apply_verification(data: dict[str, Any], outcome: VerificationOutcome, verified: bool) -> dict[str, Any]:
    """Copy of a stored result payload carrying a newer verification outcome."""
    updated = dict(data)
    updated.update({
        "phone_status": "verified" if verified else "received",
        "age": outcome.age,
        "carrier": outcome.carrier,
        "verification_source": outcome.source,
        "verification_score": outcome.match_score,
    })
    return updated
