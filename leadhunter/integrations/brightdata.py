"""Bright Data LinkedIn people dataset integration (exact mode, step 1).

Triggers a keyword discovery collection, then polls the snapshot until it
is ready. Docs: https://docs.brightdata.com/scraping-automation/web-scraper-api
"""

import asyncio
import hashlib
import logging
import time
from typing import Any

import httpx

from leadhunter.config import settings
from leadhunter.exceptions import ProviderError
from leadhunter.orchestrator.schemas import LeadRecord, PhoneNumber
from leadhunter.utils.us_states import parse_location

logger = logging.getLogger(__name__)

TRIGGER_URL = "https://api.brightdata.com/datasets/v3/trigger"
SNAPSHOT_URL = "https://api.brightdata.com/datasets/v3/snapshot/{snapshot_id}"


def profile_id(profile: dict[str, Any]) -> str:
    linkedin_url = profile.get("linkedin_url") or profile.get("profile_url")
    if linkedin_url:
        return hashlib.md5(linkedin_url.encode()).hexdigest()
    combined = "|".join([
        profile.get("full_name") or profile.get("name") or "",
        profile.get("current_company_name") or profile.get("company") or "",
        profile.get("current_job_title") or profile.get("title") or "",
    ]).lower()
    return hashlib.md5(combined.encode()).hexdigest()


def map_brightdata_profile(profile: dict[str, Any], enrichment: dict[str, Any] | None = None) -> LeadRecord:
    """Map a discovered profile, plus optional phone/email enrichment, into a LeadRecord."""
    enrichment = enrichment or {}

    first_name = profile.get("first_name") or enrichment.get("first_name") or ""
    last_name = profile.get("last_name") or enrichment.get("last_name") or ""
    full_name = profile.get("full_name") or profile.get("name") or enrichment.get("full_name") or ""
    if not first_name and not last_name and full_name:
        first_name, _, last_name = full_name.partition(" ")

    city = profile.get("city") or ""
    state = profile.get("state") or ""
    country = profile.get("country") or ""
    if profile.get("location") and (not city or not state):
        loc_city, loc_state, loc_country = parse_location(profile["location"])
        city = city or loc_city
        state = state or loc_state
        country = country or loc_country

    numbers = list(enrichment.get("phone_numbers") or [])
    if not numbers and profile.get("phone"):
        numbers = [profile["phone"]]
    phones = [
        PhoneNumber(
            raw_number=number,
            sanitized_number="".join(ch for ch in number if ch.isdigit()),
            type="mobile",
            position=index,
        )
        for index, number in enumerate(numbers)
    ]

    emails = enrichment.get("emails") or []
    email = emails[0] if emails else profile.get("email") or None

    return LeadRecord(
        id=profile_id(profile),
        first_name=first_name,
        last_name=last_name,
        name=full_name or f"{first_name} {last_name}".strip(),
        title=profile.get("current_job_title") or profile.get("title") or profile.get("headline") or "",
        email=email,
        phone_numbers=phones,
        linkedin_url=profile.get("linkedin_url") or profile.get("profile_url") or "",
        city=city,
        state=state,
        country=country or "United States",
        company=(
            profile.get("current_company_name")
            or profile.get("company")
            or profile.get("organization_name")
            or ""
        ),
        industry=profile.get("industry") or None,
        source="brightdata",
    )


class BrightDataClient:
    """Async client for Bright Data dataset collection."""

    def __init__(
        self,
        api_key: str | None = None,
        dataset_id: str | None = None,
        timeout: int = 30,
        poll_interval: float | None = None,
        max_wait: float | None = None,
    ):
        self.api_key = settings.bright_data_api_key if api_key is None else api_key
        self.dataset_id = dataset_id or settings.bright_data_dataset_id
        self.timeout = timeout
        self.poll_interval = settings.bright_data_poll_interval_seconds if poll_interval is None else poll_interval
        self.max_wait = settings.bright_data_max_wait_seconds if max_wait is None else max_wait

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def search(self, name: str, title: str, state: str, count: int) -> list[dict[str, Any]]:
        """Return raw discovered profiles. Raises ProviderError on failure."""
        if not self.api_key:
            raise ProviderError("brightdata", "BRIGHT_DATA_API_KEY not configured")

        start = time.monotonic()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            snapshot_id = await self._trigger(client, f"{name} {title} {state}", count)
            profiles = await self._poll(client, snapshot_id)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info("Bright Data OK | profiles=%d | %dms | snapshot=%s", len(profiles), elapsed_ms, snapshot_id)
        return profiles

    async def _trigger(self, client: httpx.AsyncClient, keyword: str, count: int) -> str:
        """Step 1: start a discovery collection and return its snapshot id."""
        params = {
            "dataset_id": self.dataset_id,
            "type": "discover_new",
            "discover_by": "keyword",
            "limit_per_input": str(count),
            "format": "json",
            "include_errors": "false",
        }
        try:
            resp = await client.post(TRIGGER_URL, params=params, headers=self._headers, json=[{"keyword": keyword}])
        except httpx.HTTPError as e:
            logger.error("Bright Data trigger error | %s", str(e)[:200])
            raise ProviderError("brightdata", f"network error: {str(e)[:200]}") from e

        if resp.status_code != 200:
            logger.warning("Bright Data trigger | status=%d | %s", resp.status_code, resp.text[:200])
            raise ProviderError("brightdata", f"trigger failed: HTTP {resp.status_code}", resp.status_code)

        snapshot_id = resp.json().get("snapshot_id")
        if not snapshot_id:
            raise ProviderError("brightdata", "trigger response has no snapshot_id")
        return snapshot_id

    async def _poll(self, client: httpx.AsyncClient, snapshot_id: str) -> list[dict[str, Any]]:
        """Step 2: poll the snapshot until it is ready, failed or the wait cap is hit."""
        url = SNAPSHOT_URL.format(snapshot_id=snapshot_id)
        deadline = time.monotonic() + self.max_wait

        while True:
            try:
                resp = await client.get(url, params={"format": "json"}, headers=self._headers)
            except httpx.HTTPError as e:
                logger.warning("Bright Data poll error | snapshot=%s | %s", snapshot_id, str(e)[:200])
                resp = None

            if resp is not None:
                if resp.status_code in (401, 403):
                    raise ProviderError("brightdata", f"snapshot access denied: HTTP {resp.status_code}", resp.status_code)
                if resp.status_code in (200, 202):
                    body = resp.json()
                    # A ready snapshot is delivered as the bare record list
                    if isinstance(body, list):
                        return [p for p in body if isinstance(p, dict)]
                    status = body.get("status")
                    if status == "ready":
                        return [p for p in body.get("data") or [] if isinstance(p, dict)]
                    if status == "failed":
                        raise ProviderError("brightdata", f"snapshot failed: {str(body.get('error'))[:200]}")
                else:
                    logger.warning("Bright Data poll | status=%d | snapshot=%s", resp.status_code, snapshot_id)

            if time.monotonic() + self.poll_interval > deadline:
                raise ProviderError("brightdata", f"snapshot {snapshot_id} not ready after {self.max_wait:.0f}s")
            await asyncio.sleep(self.poll_interval)
