"""Apify Leads Finder integration (fuzzy mode).

Runs the lead-finder actor synchronously and reads its dataset items.
Docs: https://docs.apify.com/api/v2#/reference/actors/run-actor-synchronously-and-get-dataset-items
"""

import hashlib
import logging
import re
import time
from typing import Any

import httpx

from leadhunter.config import settings
from leadhunter.exceptions import ProviderError
from leadhunter.orchestrator.schemas import LeadRecord, PhoneNumber
from leadhunter.utils.us_states import parse_location, provider_location

logger = logging.getLogger(__name__)

RUN_SYNC_URL = "https://api.apify.com/v2/acts/{actor_id}/run-sync-get-dataset-items"


def sanitize_phone(number: str) -> str:
    return re.sub(r"\D", "", number or "")


def lead_id(raw: dict[str, Any]) -> str:
    """md5 of the LinkedIn URL, else of the identifying fields."""
    linkedin_url = raw.get("linkedin") or raw.get("linkedin_url")
    if linkedin_url:
        return hashlib.md5(linkedin_url.encode()).hexdigest()
    combined = "|".join([
        raw.get("first_name") or "",
        raw.get("last_name") or "",
        raw.get("email") or "",
        raw.get("company_name") or "",
        raw.get("job_title") or "",
    ]).lower()
    return hashlib.md5(combined.encode()).hexdigest()


def map_apify_lead(raw: dict[str, Any]) -> LeadRecord:
    """Map one leads-finder dataset item into a LeadRecord."""
    city, state, country = parse_location(raw.get("person_location") or raw.get("company_location"))

    phones: list[PhoneNumber] = []
    mobile = raw.get("mobile_number")
    if mobile:
        phones.append(PhoneNumber(
            raw_number=mobile, sanitized_number=sanitize_phone(mobile), type="mobile", position=0,
        ))
    work = raw.get("phone_number")
    if work and work != mobile:
        phones.append(PhoneNumber(
            raw_number=work, sanitized_number=sanitize_phone(work), type="work", position=1,
        ))

    first_name = raw.get("first_name") or ""
    last_name = raw.get("last_name") or ""
    return LeadRecord(
        id=lead_id(raw),
        first_name=first_name,
        last_name=last_name,
        name=raw.get("full_name") or f"{first_name} {last_name}".strip(),
        title=raw.get("job_title") or "",
        email=raw.get("email") or None,
        phone_numbers=phones,
        linkedin_url=raw.get("linkedin") or raw.get("linkedin_url") or "",
        city=raw.get("city") or city,
        state=raw.get("state") or state,
        country=raw.get("country") or country,
        company=raw.get("company_name") or "",
        industry=raw.get("industry") or raw.get("company_industry") or None,
        source="apify",
    )


class ApifyLeadsClient:
    """Async client for the Apify lead-finder actor."""

    def __init__(
        self,
        token: str | None = None,
        actor_id: str | None = None,
        timeout: int | None = None,
    ):
        self.token = settings.apify_api_token if token is None else token
        self.actor_id = actor_id or settings.apify_actor_id
        self.timeout = timeout or settings.provider_timeout_seconds

    def build_input(self, name: str, title: str, state: str, count: int) -> dict[str, Any]:
        # The actor cannot filter by person name; name only labels the run.
        actor_input: dict[str, Any] = {
            "fetch_count": count,
            "file_name": f"LeadHunter_{title or 'Search'}_{state or 'All'}",
        }
        if title.strip():
            actor_input["contact_job_title"] = [title.strip()]
        if state.strip():
            actor_input["contact_location"] = [provider_location(state)]
        return actor_input

    async def search(self, name: str, title: str, state: str, count: int) -> list[LeadRecord]:
        """Run the actor and return normalized records. Raises ProviderError on failure."""
        if not self.token:
            raise ProviderError("apify", "APIFY_API_TOKEN not configured")

        url = RUN_SYNC_URL.format(actor_id=self.actor_id)
        actor_input = self.build_input(name, title, state, count)

        start = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    url,
                    params={"token": self.token, "timeout": str(self.timeout)},
                    json=actor_input,
                )
        except httpx.HTTPError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.error("Apify error | %dms | %s", elapsed_ms, str(e)[:200])
            raise ProviderError("apify", f"network error: {str(e)[:200]}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if resp.status_code not in (200, 201):
            logger.warning("Apify run | status=%d | %dms | %s", resp.status_code, elapsed_ms, resp.text[:200])
            raise ProviderError("apify", f"actor run failed: HTTP {resp.status_code}", resp.status_code)

        try:
            items = resp.json()
        except ValueError as e:
            raise ProviderError("apify", "invalid JSON in dataset response") from e
        if not isinstance(items, list):
            raise ProviderError("apify", "unexpected dataset response shape")

        records = [map_apify_lead(item) for item in items if isinstance(item, dict)]
        logger.info(
            "Apify OK | records=%d | %dms | title=%s | state=%s",
            len(records), elapsed_ms, title[:60], state,
        )
        return records
