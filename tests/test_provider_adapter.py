"""Tests for the provider adapter: fetch dispatch and the verification chain."""

from unittest.mock import AsyncMock

import pytest

from leadhunter.exceptions import ProviderError
from leadhunter.integrations.apify_leads import ApifyLeadsClient
from leadhunter.integrations.brightdata import BrightDataClient
from leadhunter.integrations.pdl import PDLClient, extract_contacts
from leadhunter.integrations.phone_lookup import PhoneLookupClient
from leadhunter.orchestrator.schemas import VerificationCandidate, VerificationOutcome
from leadhunter.services.provider_adapter import ProviderAdapter

CANDIDATE = VerificationCandidate(first_name="John", last_name="Smith", state="CA", phone="4155480165")


def _adapter(primary: VerificationOutcome, secondary: VerificationOutcome | None = None, **clients):
    primary_verifier = AsyncMock(spec=PhoneLookupClient)
    primary_verifier.verify.return_value = primary
    secondary_verifier = AsyncMock(spec=PhoneLookupClient)
    secondary_verifier.verify.return_value = secondary or VerificationOutcome(source="FastPeopleSearch")
    adapter = ProviderAdapter(
        apify=clients.get("apify") or AsyncMock(spec=ApifyLeadsClient),
        brightdata=clients.get("brightdata") or AsyncMock(spec=BrightDataClient),
        pdl=clients.get("pdl") or AsyncMock(spec=PDLClient),
        primary_verifier=primary_verifier,
        secondary_verifier=secondary_verifier,
        pass_score=60,
    )
    return adapter, primary_verifier, secondary_verifier


class TestVerificationChain:
    async def test_primary_pass_skips_secondary(self):
        adapter, _, secondary = _adapter(
            VerificationOutcome(verified=True, match_score=90, source="TruePeopleSearch"),
        )
        outcome = await adapter.verify(CANDIDATE)
        assert outcome.source == "TruePeopleSearch"
        secondary.verify.assert_not_called()

    async def test_primary_miss_falls_back(self):
        adapter, _, secondary = _adapter(
            VerificationOutcome(match_score=40, source="TruePeopleSearch"),
            VerificationOutcome(verified=True, match_score=70, source="FastPeopleSearch"),
        )
        outcome = await adapter.verify(CANDIDATE)
        assert outcome.verified
        assert outcome.source == "FastPeopleSearch"
        secondary.verify.assert_awaited_once()

    async def test_best_score_wins_when_neither_passes(self):
        adapter, _, _ = _adapter(
            VerificationOutcome(match_score=40, source="TruePeopleSearch"),
            VerificationOutcome(match_score=0, source="FastPeopleSearch", api_error="RATE_LIMITED"),
        )
        outcome = await adapter.verify(CANDIDATE)
        assert outcome.source == "TruePeopleSearch"
        assert not outcome.verified

    async def test_primary_credit_exhaustion_never_falls_back(self):
        adapter, _, secondary = _adapter(
            VerificationOutcome(source="TruePeopleSearch", api_error="INSUFFICIENT_CREDITS"),
        )
        outcome = await adapter.verify(CANDIDATE)
        assert outcome.credits_exhausted
        secondary.verify.assert_not_called()

    async def test_secondary_credit_exhaustion_propagates(self):
        adapter, _, _ = _adapter(
            VerificationOutcome(match_score=60, source="TruePeopleSearch"),
            VerificationOutcome(source="FastPeopleSearch", api_error="INSUFFICIENT_CREDITS"),
        )
        assert (await adapter.verify(CANDIDATE)).credits_exhausted


class TestFetch:
    async def test_fuzzy_uses_apify(self, make_lead):
        apify = AsyncMock(spec=ApifyLeadsClient)
        apify.search.return_value = [make_lead(1)]
        adapter, _, _ = _adapter(VerificationOutcome(), apify=apify)

        records = await adapter.fetch("fuzzy", "John", "Owner", "California", 10)

        assert [r.id for r in records] == ["lead-1"]
        apify.search.assert_awaited_once_with("John", "Owner", "California", 10)

    async def test_exact_enriches_profiles(self, sample_brightdata_profile, sample_pdl_person):
        brightdata = AsyncMock(spec=BrightDataClient)
        brightdata.search.return_value = [sample_brightdata_profile, {"name": "No Data"}]
        pdl = AsyncMock(spec=PDLClient)
        pdl.enrich_profiles.return_value = [extract_contacts(sample_pdl_person), None]
        adapter, _, _ = _adapter(VerificationOutcome(), brightdata=brightdata, pdl=pdl)

        records = await adapter.fetch("exact", "Robert", "Owner", "Texas", 10)

        assert len(records) == 2
        assert records[0].phone_numbers[0].sanitized_number == "15125550199"
        assert records[1].phone_numbers == []
        assert records[1].first_name == "No"

    async def test_exact_no_profiles_skips_enrichment(self):
        brightdata = AsyncMock(spec=BrightDataClient)
        brightdata.search.return_value = []
        pdl = AsyncMock(spec=PDLClient)
        adapter, _, _ = _adapter(VerificationOutcome(), brightdata=brightdata, pdl=pdl)

        assert await adapter.fetch_exact("a", "b", "Texas", 10) == []
        pdl.enrich_profiles.assert_not_called()

    async def test_provider_error_propagates(self):
        apify = AsyncMock(spec=ApifyLeadsClient)
        apify.search.side_effect = ProviderError("apify", "down")
        adapter, _, _ = _adapter(VerificationOutcome(), apify=apify)

        with pytest.raises(ProviderError):
            await adapter.fetch_fuzzy("a", "b", "California", 10)
