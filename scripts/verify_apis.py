#!/usr/bin/env python3
"""Real API verification script: run outside sandbox with actual API keys.

Usage:
  1. Fill in APIFY_API_TOKEN, BRIGHT_DATA_API_KEY, PDL_API_KEY, SCRAPE_DO_API_KEY in .env
  2. Run: python scripts/verify_apis.py [--exact]

Steps:
  Step 1: Verify .env configuration
  Step 2: Test Apify Leads Finder (fuzzy mode, 10 records)
  Step 3: Test Bright Data discovery + PDL enrichment (only with --exact)
  Step 4: Test phone verification chain on the first record with a phone
"""

import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

SAMPLE = {"name": "John", "title": "Owner", "state": "California", "count": 10}


def step_header(n: int, title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  Step {n}: {title}")
    print(f"{'='*60}\n")


def ok(msg: str) -> None:
    print(f"  ✅ {msg}")


def fail(msg: str) -> None:
    print(f"  ❌ {msg}")


def info(msg: str) -> None:
    print(f"  ℹ️  {msg}")


async def step1_verify_env():
    step_header(1, "Verify .env Configuration")
    from leadhunter.config import settings

    required = {
        "APIFY_API_TOKEN": settings.apify_api_token,
        "SCRAPE_DO_API_KEY": settings.scrape_do_api_key,
    }
    optional = {
        "BRIGHT_DATA_API_KEY": settings.bright_data_api_key,
        "PDL_API_KEY": settings.pdl_api_key,
    }

    passed = True
    for name, value in required.items():
        if value:
            ok(f"{name}: set ({value[:6]}...)")
        else:
            fail(f"{name}: NOT SET")
            passed = False
    for name, value in optional.items():
        if value:
            ok(f"{name}: set ({value[:6]}...)")
        else:
            info(f"{name}: not set (exact mode unavailable)")

    ok(f"Credit discipline: {settings.credit_discipline}")
    ok(f"Storage backend: {settings.storage_backend}")
    return passed


async def step2_test_apify():
    step_header(2, "Test Apify Leads Finder")
    from leadhunter.exceptions import ProviderError
    from leadhunter.integrations.apify_leads import ApifyLeadsClient

    client = ApifyLeadsClient()
    info(f"Searching: {SAMPLE['name']} / {SAMPLE['title']} / {SAMPLE['state']} (count={SAMPLE['count']})")
    try:
        records = await client.search(SAMPLE["name"], SAMPLE["title"], SAMPLE["state"], SAMPLE["count"])
    except ProviderError as e:
        fail(f"Apify error: {e}")
        return False, []

    if not records:
        fail("No records returned, check the actor id and token")
        return False, []
    ok(f"Got {len(records)} records")
    for r in records[:3]:
        phones = ", ".join(p.sanitized_number for p in r.phone_numbers) or "no phone"
        print(f"    - {r.display_name[:30]} | {r.title[:30]} | {r.city}, {r.state} | {phones}")
    return True, records


async def step3_test_exact():
    step_header(3, "Test Bright Data + PDL")
    from leadhunter.exceptions import ProviderError
    from leadhunter.services.provider_adapter import ProviderAdapter

    adapter = ProviderAdapter()
    info("Triggering discovery (this can take up to 3 minutes)")
    try:
        records = await adapter.fetch_exact(SAMPLE["name"], SAMPLE["title"], SAMPLE["state"], SAMPLE["count"])
    except ProviderError as e:
        fail(f"Bright Data error: {e}")
        return False, []

    if not records:
        fail("No profiles returned")
        return False, []
    with_phone = sum(1 for r in records if r.phone_numbers)
    ok(f"Got {len(records)} profiles | {with_phone} enriched with a phone")
    return True, records


async def step4_test_verification(records):
    step_header(4, "Test Phone Verification Chain")
    from leadhunter.orchestrator.schemas import VerificationCandidate
    from leadhunter.pipelines.search.classifier import classify_records
    from leadhunter.services.provider_adapter import ProviderAdapter

    candidates = classify_records(records).with_phone
    if not candidates:
        fail("No record with a phone number to verify")
        return False

    candidate = candidates[0]
    record = candidate.record
    info(f"Verifying {record.display_name} | {candidate.phone}")
    outcome = await ProviderAdapter().verify(VerificationCandidate(
        first_name=record.first_name,
        last_name=record.last_name,
        city=record.city,
        state=record.state,
        phone=candidate.phone,
    ))

    if outcome.api_error:
        fail(f"{outcome.source}: {outcome.api_error}")
        return False
    ok(f"Source: {outcome.source} | score: {outcome.match_score} | verified: {outcome.verified}")
    if outcome.age is not None:
        ok(f"Age: {outcome.age} | carrier: {outcome.carrier}")
    return True


async def main():
    print("\n🔎 LeadHunter Backend: Real API Verification")
    print("=" * 60)

    results = {}
    results[1] = await step1_verify_env()

    results[2], records = await step2_test_apify()

    if "--exact" in sys.argv:
        results[3], exact_records = await step3_test_exact()
        records = records or exact_records

    results[4] = await step4_test_verification(records) if records else False

    # Summary
    print(f"\n{'='*60}")
    print("  SUMMARY")
    print(f"{'='*60}")
    for step_n, passed in sorted(results.items()):
        status = "✅ PASS" if passed else "❌ FAIL"
        print(f"  Step {step_n}: {status}")

    total_passed = sum(1 for v in results.values() if v)
    print(f"\n  {total_passed}/{len(results)} steps passed")
    print(f"{'='*60}\n")

    sys.exit(0 if all(results.values()) else 1)


if __name__ == "__main__":
    asyncio.run(main())
