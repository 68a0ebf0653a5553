"""Storage records shared by the engine and persistence backends."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class TaskRecord(BaseModel):
    """Persisted search task."""

    id: int
    task_id: str
    user_id: int
    search_hash: str
    params: dict[str, Any]
    status: str
    requested_count: int
    actual_count: int | None = None
    credits_used: Decimal = Decimal("0")
    progress: int = 0
    logs: list[dict[str, Any]] = Field(default_factory=list)
    error_message: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class ResultRecord(BaseModel):
    id: int
    task_id: int
    record_id: str
    data: dict[str, Any]
    verified: bool = False
    verification_score: int | None = None
    verification_details: dict[str, Any] | None = None
    created_at: datetime


class CacheRecord(BaseModel):
    """A non-expired cache row. ``payload`` may be a legacy bare list."""

    cache_key: str
    kind: str
    payload: dict[str, Any] | list[Any]
    expires_at: datetime
    hit_count: int = 0


class LedgerRecord(BaseModel):
    id: int
    user_id: int
    amount: Decimal
    balance_after: Decimal
    kind: str
    reason: str = ""
    related_task_id: str | None = None
    created_at: datetime


def check_verification(verified: bool, score: int | None, details: dict[str, Any] | None) -> None:
    """A verified result must say how well and by whom it was verified."""
    if verified and (score is None or not (details or {}).get("source")):
        raise ValueError("verified results need a score and a verification source")
