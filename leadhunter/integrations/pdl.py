"""People Data Labs person enrichment (exact mode, step 2).

Adds phone numbers and emails to discovered profiles by LinkedIn URL.
Enrichment is best-effort: a profile that cannot be enriched is kept as is.
Docs: https://docs.peopledatalabs.com/docs/enrichment-api
"""

import asyncio
import logging
import time
from typing import Any

import httpx

from leadhunter.config import settings

logger = logging.getLogger(__name__)

ENRICH_URL = "https://api.peopledatalabs.com/v5/person/enrich"
CONCURRENT_LIMIT = 10


def extract_contacts(data: dict[str, Any]) -> dict[str, Any]:
    """Pull phones (mobile first) and emails (work first) out of a PDL person."""
    phones: list[str] = []
    if data.get("mobile_phone"):
        phones.append(data["mobile_phone"])
    for phone in data.get("phones") or []:
        number = phone.get("number") if isinstance(phone, dict) else phone
        if number and number not in phones:
            phones.append(number)

    emails: list[str] = []
    if data.get("work_email"):
        emails.append(data["work_email"])
    for email in data.get("personal_emails") or []:
        if email and email not in emails:
            emails.append(email)
    for email in data.get("emails") or []:
        address = email.get("address") if isinstance(email, dict) else email
        if address and address not in emails:
            emails.append(address)

    return {
        "phone_numbers": phones,
        "emails": emails,
        "first_name": data.get("first_name"),
        "last_name": data.get("last_name"),
        "full_name": data.get("full_name"),
    }


class PDLClient:
    """Async client for the PDL person enrichment endpoint."""

    def __init__(self, api_key: str | None = None, timeout: int = 30):
        self.api_key = settings.pdl_api_key if api_key is None else api_key
        self.timeout = timeout

    async def enrich_profiles(self, profiles: list[dict[str, Any]]) -> list[dict[str, Any] | None]:
        """Enrich profiles in bounded concurrent batches; result i belongs to profile i."""
        if not self.api_key:
            logger.warning("PDL API key not configured, skipping enrichment")
            return [None] * len(profiles)

        start = time.monotonic()
        results: list[dict[str, Any] | None] = []
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for i in range(0, len(profiles), CONCURRENT_LIMIT):
                batch = profiles[i:i + CONCURRENT_LIMIT]
                results.extend(await asyncio.gather(*(self._enrich_one(client, p) for p in batch)))

        elapsed_ms = int((time.monotonic() - start) * 1000)
        with_phone = sum(1 for r in results if r and r["phone_numbers"])
        logger.info("PDL enrich | profiles=%d | with_phone=%d | %dms", len(profiles), with_phone, elapsed_ms)
        return results

    async def _enrich_one(self, client: httpx.AsyncClient, profile: dict[str, Any]) -> dict[str, Any] | None:
        linkedin_url = profile.get("linkedin_url") or profile.get("profile_url")
        if not linkedin_url:
            return None

        try:
            resp = await client.get(
                ENRICH_URL,
                params={"profile": linkedin_url, "titlecase": "true", "pretty": "false"},
                headers={"X-Api-Key": self.api_key, "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.warning("PDL network error | %s", str(e)[:200])
            return None

        if resp.status_code == 200:
            return extract_contacts(resp.json().get("data") or {})
        if resp.status_code == 404:
            return None
        if resp.status_code == 402:
            logger.error("PDL insufficient credits")
        elif resp.status_code == 429:
            logger.warning("PDL rate limit exceeded")
        else:
            logger.warning("PDL enrich | status=%d | %s", resp.status_code, resp.text[:200])
        return None
