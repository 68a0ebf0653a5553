"""Pydantic models for API input/output and for data passed between components.

Split into: request inputs, provider records, verification, ledger results,
task progress, and final API responses.
"""

from __future__ import annotations

from decimal import ROUND_CEILING, Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

SearchMode = Literal["fuzzy", "exact"]
TaskStatus = Literal[
    "initializing",
    "searching",
    "processing",
    "completed",
    "stopped",
    "insufficient_credits",
    "failed",
]
LogLevel = Literal["info", "success", "warning", "error", "debug"]
LogPhase = Literal["init", "search", "process", "verify", "complete"]
PhoneStatus = Literal["received", "verified", "no_phone", "failed"]
ApiErrorType = Literal["INSUFFICIENT_CREDITS", "RATE_LIMITED", "NETWORK_ERROR", "UNKNOWN_ERROR"]

TERMINAL_STATUSES: frozenset[str] = frozenset(
    {"completed", "stopped", "insufficient_credits", "failed"}
)

# Non-terminal states only move forward; every terminal state ranks above them.
STATUS_RANK: dict[str, int] = {
    "initializing": 0,
    "searching": 1,
    "processing": 2,
    "completed": 3,
    "stopped": 3,
    "insufficient_credits": 3,
    "failed": 3,
}

STATS_MESSAGE = "__STATS__"

_CREDIT_STEP = Decimal("0.1")


def round_credits(value: Decimal | float | int | str) -> Decimal:
    """Round an amount UP to one decimal place."""
    return Decimal(str(value)).quantize(_CREDIT_STEP, rounding=ROUND_CEILING)


def can_transition(current: str, new: str) -> bool:
    """Whether a task in ``current`` may be moved to ``new``."""
    if current in TERMINAL_STATUSES:
        return new == current
    return STATUS_RANK[new] >= STATUS_RANK[current]


# ═══════════════ SEARCH REQUEST ═══════════════

class SearchParams(BaseModel):
    name: str = Field(min_length=1)
    title: str = Field(min_length=1)
    state: str = Field(min_length=1)
    limit: int = Field(default=10, ge=10, le=10000)
    min_age: int = Field(default=50, ge=18, le=80)
    max_age: int = Field(default=79, ge=18, le=80)
    mode: SearchMode = "fuzzy"
    enable_verification: bool = True

    @model_validator(mode="after")
    def _check_age_range(self) -> "SearchParams":
        if self.min_age > self.max_age:
            raise ValueError("min_age must not exceed max_age")
        return self

    @property
    def data_source(self) -> str:
        return "apify" if self.mode == "fuzzy" else "brightdata"

    def task_params(self) -> dict[str, Any]:
        """Parameters as persisted on the task row."""
        data = self.model_dump()
        data["data_source"] = self.data_source
        return data


# ═══════════════ PROVIDER RECORDS ═══════════════

class PhoneNumber(BaseModel):
    raw_number: str = ""
    sanitized_number: str = ""
    type: Literal["mobile", "work", "other"] = "other"
    position: int = 0


class LeadRecord(BaseModel):
    """Canonical person record produced by every data provider."""
    id: str
    first_name: str = ""
    last_name: str = ""
    name: str = ""
    title: str = ""
    email: str | None = None
    phone_numbers: list[PhoneNumber] = Field(default_factory=list)
    linkedin_url: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    company: str = ""
    industry: str | None = None
    source: str = ""

    @property
    def display_name(self) -> str:
        return self.name or f"{self.first_name} {self.last_name}".strip() or "Unknown"


# ═══════════════ VERIFICATION ═══════════════

class VerificationCandidate(BaseModel):
    first_name: str = ""
    last_name: str = ""
    city: str = ""
    state: str = ""
    phone: str
    min_age: int = 50
    max_age: int = 79


class VerificationOutcome(BaseModel):
    verified: bool = False
    match_score: int = 0
    source: str = "none"
    age: int | None = None
    carrier: str | None = None
    phone_type: str | None = None
    name: str | None = None
    api_error: ApiErrorType | None = None

    @property
    def credits_exhausted(self) -> bool:
        return self.api_error == "INSUFFICIENT_CREDITS"


# ═══════════════ CREDIT LEDGER ═══════════════

class ReserveResult(BaseModel):
    ok: bool
    reserved_amount: Decimal = Decimal("0")
    balance_after: Decimal = Decimal("0")
    message: str = ""


class SettleResult(BaseModel):
    refund_amount: Decimal
    actual_cost: Decimal
    new_balance: Decimal


class DebitResult(BaseModel):
    ok: bool
    new_balance: Decimal


class CostBreakdown(BaseModel):
    search_fee: Decimal = Decimal("0")
    data_records: int = 0
    data_cost: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    refunded: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")


class CreditsConfig(BaseModel):
    mode: SearchMode
    search_credits: Decimal
    credits_per_person: Decimal
    refund_on_no_result: bool = False


# ═══════════════ CACHE ═══════════════

class CacheLookup(BaseModel):
    hit: bool
    records: list[LeadRecord] = Field(default_factory=list)
    total_available: int = 0
    cached_count: int = 0
    fulfillment: float = 0.0
    message: str = ""


# ═══════════════ TASK PROGRESS ═══════════════

class SearchLogEntry(BaseModel):
    timestamp: str
    time: str
    level: LogLevel = "info"
    phase: LogPhase = "init"
    message: str
    details: dict[str, Any] | None = None


class SearchStats(BaseModel):
    provider_api_calls: int = 0
    verify_api_calls: int = 0
    provider_returned: int = 0
    records_processed: int = 0
    total_results: int = 0
    results_with_phone: int = 0
    results_with_email: int = 0
    results_verified: int = 0
    excluded_no_phone: int = 0
    excluded_no_contact: int = 0
    excluded_age_filter: int = 0
    excluded_error: int = 0
    excluded_api_error: int = 0
    credits_used: float = 0.0
    credits_refunded: float = 0.0
    credits_final: float = 0.0
    total_duration_ms: int = 0
    avg_process_time_ms: int = 0
    verify_success_rate: int = 0
    api_credits_exhausted: bool = False
    unprocessed_count: int = 0


class ProgressReport(BaseModel):
    task_id: str
    status: TaskStatus
    progress: int = 0
    logs: list[SearchLogEntry] = Field(default_factory=list)
    stats: SearchStats | None = None
    credits_used: float = 0.0
    requested_count: int = 0
    actual_count: int | None = None
    error_message: str | None = None


# ═══════════════ FINAL API RESPONSES ═══════════════

class PreviewResult(BaseModel):
    total_available: int
    estimated_cost: Decimal
    search_cost: Decimal
    unit_cost: Decimal
    can_afford: bool
    user_credits: Decimal
    max_affordable: int
    cache_hit: bool
    message: str = ""


class StartTaskResult(BaseModel):
    accepted: bool
    task_id: str | None = None
    message: str = ""
    max_affordable: int = 0


class ResultItem(BaseModel):
    """Single stored search result as returned to the dashboard."""
    id: int
    record_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    verified: bool = False
    verification_score: int | None = None
    verification_details: dict[str, Any] | None = None
