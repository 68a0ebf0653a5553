"""Reverse phone lookup verification backends.

Each backend resolves a phone number to the people listed for it and the
candidate is scored against them:

  - name contains first AND last name   +40 (required)
  - age within [min_age, max_age]       +30 (outside range -> unverified)
  - state matches                       +20
  - city matches                        +10

A candidate is verified at 70 points or more. HTTP 401 from a backend means
its own prepaid balance is spent and is reported as INSUFFICIENT_CREDITS.
"""

import logging
import re
import time
from typing import Any

import httpx

from leadhunter.config import settings
from leadhunter.orchestrator.schemas import ApiErrorType, VerificationCandidate, VerificationOutcome
from leadhunter.utils.us_states import same_state

logger = logging.getLogger(__name__)

VERIFIED_SCORE = 70


def digits_only(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def dashed_phone(phone: str) -> str:
    """4155480165 -> 415-548-0165 (leading US country code dropped)."""
    clean = digits_only(phone)
    if len(clean) == 11 and clean.startswith("1"):
        clean = clean[1:]
    if len(clean) == 10:
        return f"{clean[:3]}-{clean[3:6]}-{clean[6:]}"
    return clean


def api_error_for_status(status_code: int) -> ApiErrorType:
    if status_code == 401:
        return "INSUFFICIENT_CREDITS"
    if status_code == 429:
        return "RATE_LIMITED"
    return "UNKNOWN_ERROR"


def score_person(person: dict[str, Any], candidate: VerificationCandidate, source: str) -> VerificationOutcome:
    """Score one listed person against the candidate."""
    outcome = VerificationOutcome(
        source=source,
        carrier=person.get("carrier"),
        phone_type=person.get("phone_type"),
    )
    name = (person.get("name") or "").lower()
    if not (candidate.first_name and candidate.last_name):
        return outcome
    if candidate.first_name.lower() not in name or candidate.last_name.lower() not in name:
        return outcome

    score = 40
    outcome.name = person.get("name")

    age = person.get("age")
    if isinstance(age, str) and age.isdigit():
        age = int(age)
    if isinstance(age, int):
        outcome.age = age
        if not candidate.min_age <= age <= candidate.max_age:
            outcome.match_score = score
            return outcome
        score += 30

    if candidate.state and same_state(person.get("state"), candidate.state):
        score += 20
    if candidate.city and (person.get("city") or "").strip().lower() == candidate.city.strip().lower():
        score += 10

    outcome.match_score = min(score, 100)
    outcome.verified = score >= VERIFIED_SCORE
    return outcome


def best_match(people: list[dict[str, Any]], candidate: VerificationCandidate, source: str) -> VerificationOutcome:
    best = VerificationOutcome(source=source)
    for person in people:
        outcome = score_person(person, candidate, source)
        if (outcome.verified, outcome.match_score) > (best.verified, best.match_score):
            best = outcome
    return best


class PhoneLookupClient:
    """Async client for one JSON reverse-phone lookup backend."""

    def __init__(
        self,
        source: str,
        url: str,
        api_key: str | None = None,
        timeout: int | None = None,
        dashed: bool = False,
    ):
        self.source = source
        self.url = url
        self.api_key = settings.scrape_do_api_key if api_key is None else api_key
        self.timeout = timeout or settings.verify_timeout_seconds
        self.dashed = dashed

    async def verify(self, candidate: VerificationCandidate) -> VerificationOutcome:
        """Never raises: transport and HTTP failures come back as ``api_error``."""
        phone = dashed_phone(candidate.phone) if self.dashed else digits_only(candidate.phone)

        start = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self.url, params={"token": self.api_key, "phone": phone})
        except httpx.HTTPError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("%s lookup error | %dms | %s", self.source, elapsed_ms, str(e)[:200])
            return VerificationOutcome(source=self.source, api_error="NETWORK_ERROR")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if resp.status_code != 200:
            api_error = api_error_for_status(resp.status_code)
            log = logger.error if api_error == "INSUFFICIENT_CREDITS" else logger.warning
            log("%s lookup | status=%d | %s | %dms", self.source, resp.status_code, api_error, elapsed_ms)
            return VerificationOutcome(source=self.source, api_error=api_error)

        try:
            people = resp.json().get("people") or []
        except (ValueError, AttributeError):
            logger.warning("%s lookup | invalid JSON | %dms", self.source, elapsed_ms)
            return VerificationOutcome(source=self.source, api_error="UNKNOWN_ERROR")

        outcome = best_match([p for p in people if isinstance(p, dict)], candidate, self.source)
        logger.info(
            "Verify %s | source=%s | score=%d | verified=%s | %dms",
            "OK" if outcome.verified else "miss", self.source, outcome.match_score, outcome.verified, elapsed_ms,
        )
        return outcome
