"""Shared test fixtures and configuration."""

import os
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

# Tests never talk to PostgreSQL or real providers
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("APIFY_API_TOKEN", "")
os.environ.setdefault("BRIGHT_DATA_API_KEY", "")
os.environ.setdefault("PDL_API_KEY", "")
os.environ.setdefault("SCRAPE_DO_API_KEY", "")

from leadhunter.orchestrator.router import SearchOrchestrator  # noqa: E402
from leadhunter.orchestrator.schemas import LeadRecord, PhoneNumber, SearchParams, VerificationOutcome  # noqa: E402
from leadhunter.pipelines.search.batch_executor import ExecutorConfig  # noqa: E402
from leadhunter.services.provider_adapter import ProviderAdapter  # noqa: E402
from leadhunter.storage.memory import InMemorySearchStore  # noqa: E402


@pytest.fixture
def store():
    return InMemorySearchStore()


@pytest.fixture
def funded_user(store):
    """Factory: create a user holding the given balance, return its id."""
    async def _create(credits="200", email="user@example.com"):
        return await store.create_user(email, Decimal(credits))
    return _create


@pytest.fixture
def make_lead():
    """Factory for canonical records with or without phone / email."""
    def _make(i: int, phone: bool = True, email: bool = True, phone_type: str = "mobile") -> LeadRecord:
        numbers = []
        if phone:
            number = f"415555{i:04d}"
            numbers.append(PhoneNumber(
                raw_number=f"(415) 555-{i:04d}", sanitized_number=number, type=phone_type, position=0,
            ))
        return LeadRecord(
            id=f"lead-{i}",
            first_name="John",
            last_name=f"Smith{i}",
            name=f"John Smith{i}",
            title="Owner",
            email=f"john{i}@example.com" if email else None,
            phone_numbers=numbers,
            city="San Francisco",
            state="California",
            country="United States",
            company=f"Company {i}",
            source="apify",
        )
    return _make


@pytest.fixture
def search_params():
    return SearchParams(name="John", title="Owner", state="California", limit=50)


@pytest.fixture
def sample_apify_lead():
    """Sample leads-finder dataset item."""
    return {
        "first_name": "Jane",
        "last_name": "Doe",
        "full_name": "Jane Doe",
        "job_title": "Chief Executive Officer",
        "email": "jane@acme.com",
        "mobile_number": "+1 (415) 548-0165",
        "phone_number": "+1 415 555 0100",
        "linkedin": "https://www.linkedin.com/in/janedoe",
        "person_location": "San Francisco, California, United States",
        "company_name": "Acme Inc",
        "industry": "Software",
    }


@pytest.fixture
def sample_brightdata_profile():
    """Sample Bright Data LinkedIn people profile."""
    return {
        "name": "Robert Brown",
        "first_name": "Robert",
        "last_name": "Brown",
        "linkedin_url": "https://www.linkedin.com/in/robertbrown",
        "current_job_title": "Owner",
        "current_company_name": "Brown Plumbing",
        "location": "Austin, Texas",
    }


@pytest.fixture
def sample_pdl_person():
    """Sample PDL person enrichment payload (``data`` field)."""
    return {
        "first_name": "robert",
        "last_name": "brown",
        "full_name": "robert brown",
        "mobile_phone": "+15125550199",
        "phones": [{"number": "+15125550100"}, {"number": "+15125550199"}],
        "work_email": "rob@brownplumbing.com",
        "personal_emails": ["rob@gmail.com"],
    }


@pytest.fixture
def verified_outcome():
    return VerificationOutcome(
        verified=True, match_score=100, source="TruePeopleSearch", age=60, carrier="AT&T", phone_type="mobile",
    )


@pytest.fixture
def make_adapter(verified_outcome):
    """Factory for a mocked provider adapter returning fixed records."""
    def _make(records=None, outcome=None, fetch_error=None):
        adapter = AsyncMock(spec=ProviderAdapter)
        if fetch_error is not None:
            adapter.fetch.side_effect = fetch_error
        else:
            adapter.fetch.return_value = list(records or [])
        adapter.verify.return_value = outcome or verified_outcome
        return adapter
    return _make


@pytest.fixture
def make_orchestrator(store):
    def _make(adapter, discipline="realtime"):
        return SearchOrchestrator(store, adapter=adapter, config=ExecutorConfig(), discipline=discipline)
    return _make
