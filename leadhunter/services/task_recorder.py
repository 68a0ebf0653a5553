"""Task/Progress Recorder: owns one task's log list, progress and stats.

Log entries are append-only; only the newest ``task_log_retention`` entries
are persisted. The reserved ``__STATS__`` entry carries the final stats
snapshot and is filtered out of human-readable logs.

Store writes follow a fixed fallback order:

    full update  ->  same update without ``logs``  ->  log and give up
"""

import logging
from datetime import datetime, timezone
from typing import Any

from leadhunter.config import settings
from leadhunter.exceptions import StoreError
from leadhunter.orchestrator.schemas import (
    STATS_MESSAGE,
    LogLevel,
    LogPhase,
    SearchLogEntry,
    SearchStats,
    TaskStatus,
)
from leadhunter.storage.base import SearchStore
from leadhunter.storage.records import TaskRecord

logger = logging.getLogger(__name__)

# (attempt name, fields to drop)
UPDATE_ATTEMPTS: tuple[tuple[str, frozenset[str]], ...] = (
    ("full", frozenset()),
    ("without_logs", frozenset({"logs"})),
)


class TaskRecorder:
    """Buffered progress writer for a single search task."""

    def __init__(self, store: SearchStore, task: TaskRecord, retention: int | None = None):
        self.store = store
        self.task = task
        self.retention = retention or settings.task_log_retention
        self.logs: list[SearchLogEntry] = [SearchLogEntry.model_validate(e) for e in task.logs]
        self.status: str = task.status
        self.progress: int = task.progress

    @property
    def task_id(self) -> str:
        return self.task.task_id

    def log(
        self,
        message: str,
        level: LogLevel = "info",
        phase: LogPhase = "init",
        details: dict[str, Any] | None = None,
    ) -> SearchLogEntry:
        now = datetime.now(timezone.utc)
        entry = SearchLogEntry(
            timestamp=now.isoformat(),
            time=now.strftime("%H:%M:%S"),
            level=level,
            phase=phase,
            message=message,
            details=details,
        )
        self.logs.append(entry)
        logger.debug("Task %s | [%s] %s", self.task_id, phase.upper(), message)
        return entry

    def persisted_logs(self) -> list[dict[str, Any]]:
        return [e.model_dump(exclude_none=True) for e in self.logs[-self.retention:]]

    async def flush(
        self,
        status: TaskStatus | None = None,
        progress: int | None = None,
        credits_used: float | None = None,
    ) -> bool:
        """Persist logs plus any status/progress change. Returns False if nothing was written."""
        if status is not None:
            self.status = status
        if progress is not None:
            self.progress = max(self.progress, min(100, progress))

        fields: dict[str, Any] = {"logs": self.persisted_logs(), "progress": self.progress}
        if status is not None:
            fields["status"] = status
        if credits_used is not None:
            fields["credits_used"] = credits_used
        return await self._write(fields)

    async def stop_requested(self) -> bool:
        """Re-read the stored status; an external stop is the only signal."""
        task = await self.store.get_task(self.task_id)
        return task is not None and task.status == "stopped"

    async def finalize(
        self,
        status: TaskStatus,
        stats: SearchStats,
        credits_used: float,
        actual_count: int,
        error_message: str | None = None,
    ) -> str:
        """Append the stats entry and write the terminal state. Returns the stored status."""
        self.log(STATS_MESSAGE, "info", "complete", details=stats.model_dump())
        self.status = status
        self.progress = 100
        fields: dict[str, Any] = {
            "status": status,
            "logs": self.persisted_logs(),
            "progress": 100,
            "credits_used": credits_used,
            "actual_count": actual_count,
            "completed_at": datetime.now(timezone.utc),
        }
        if error_message:
            fields["error_message"] = error_message[:1000]
        await self._write(fields)

        stored = await self.store.get_task(self.task_id)
        return stored.status if stored else status

    async def _write(self, fields: dict[str, Any]) -> bool:
        for attempt, dropped in UPDATE_ATTEMPTS:
            payload = {k: v for k, v in fields.items() if k not in dropped}
            try:
                await self.store.update_task(self.task_id, payload)
                if dropped:
                    logger.warning("Task %s update succeeded only %s", self.task_id, attempt)
                return True
            except StoreError as e:
                logger.warning("Task %s update (%s) failed: %s", self.task_id, attempt, str(e)[:200])
        logger.error("Task %s update abandoned after %d attempts", self.task_id, len(UPDATE_ATTEMPTS))
        return False


def human_logs(entries: list[dict[str, Any]]) -> list[SearchLogEntry]:
    return [SearchLogEntry.model_validate(e) for e in entries if e.get("message") != STATS_MESSAGE]


def stats_from_logs(entries: list[dict[str, Any]]) -> SearchStats | None:
    for entry in reversed(entries):
        if entry.get("message") == STATS_MESSAGE and entry.get("details"):
            return SearchStats.model_validate(entry["details"])
    return None
