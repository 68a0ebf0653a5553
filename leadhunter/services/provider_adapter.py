"""Provider Adapter: one interface over the data sources and the verification chain.

  - fetch_fuzzy: Apify lead finder (bulk, long cache)
  - fetch_exact: Bright Data discovery + PDL phone enrichment (real time)
  - verify:      primary reverse-phone lookup, falling back to the secondary

Fetch calls either return records (possibly none) or raise ProviderError.
"""

import logging

from leadhunter.config import settings
from leadhunter.integrations.apify_leads import ApifyLeadsClient
from leadhunter.integrations.brightdata import BrightDataClient, map_brightdata_profile
from leadhunter.integrations.pdl import PDLClient
from leadhunter.integrations.phone_lookup import PhoneLookupClient
from leadhunter.orchestrator.schemas import LeadRecord, SearchMode, VerificationCandidate, VerificationOutcome

logger = logging.getLogger(__name__)


class ProviderAdapter:
    """Uniform access to data providers and phone verification backends."""

    def __init__(
        self,
        apify: ApifyLeadsClient | None = None,
        brightdata: BrightDataClient | None = None,
        pdl: PDLClient | None = None,
        primary_verifier: PhoneLookupClient | None = None,
        secondary_verifier: PhoneLookupClient | None = None,
        pass_score: int | None = None,
    ):
        self.apify = apify or ApifyLeadsClient()
        self.brightdata = brightdata or BrightDataClient()
        self.pdl = pdl or PDLClient()
        self.primary_verifier = primary_verifier or PhoneLookupClient(
            "TruePeopleSearch", settings.verify_primary_url,
        )
        self.secondary_verifier = secondary_verifier or PhoneLookupClient(
            "FastPeopleSearch", settings.verify_secondary_url, dashed=True,
        )
        self.pass_score = settings.verify_pass_score if pass_score is None else pass_score

    # ═══════════════ DATA PROVIDERS ═══════════════

    async def fetch_fuzzy(self, name: str, title: str, state: str, count: int) -> list[LeadRecord]:
        return await self.apify.search(name, title, state, count)

    async def fetch_exact(self, name: str, title: str, state: str, count: int) -> list[LeadRecord]:
        profiles = await self.brightdata.search(name, title, state, count)
        if not profiles:
            return []
        enrichments = await self.pdl.enrich_profiles(profiles)
        return [
            map_brightdata_profile(profile, enrichment)
            for profile, enrichment in zip(profiles, enrichments)
        ]

    async def fetch(self, mode: SearchMode, name: str, title: str, state: str, count: int) -> list[LeadRecord]:
        if mode == "exact":
            return await self.fetch_exact(name, title, state, count)
        return await self.fetch_fuzzy(name, title, state, count)

    # ═══════════════ VERIFICATION ═══════════════

    async def verify(self, candidate: VerificationCandidate) -> VerificationOutcome:
        """Primary lookup first; the secondary runs unless the primary passed.

        A spent verification balance (INSUFFICIENT_CREDITS) is returned
        immediately from either backend.
        """
        primary = await self.primary_verifier.verify(candidate)
        if primary.credits_exhausted:
            logger.error("Verification credits exhausted | source=%s", primary.source)
            return primary
        if primary.verified and primary.match_score >= self.pass_score:
            return primary

        secondary = await self.secondary_verifier.verify(candidate)
        if secondary.credits_exhausted:
            logger.error("Verification credits exhausted | source=%s", secondary.source)
            return secondary
        if secondary.verified and secondary.match_score >= self.pass_score:
            return secondary

        return primary if primary.match_score > secondary.match_score else secondary
