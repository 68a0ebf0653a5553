"""Cache Gate: decides whether a prior provider result pool can serve a search.

A pool serves the request only when the cached subset covers at least the
fulfillment threshold of what the provider reported as available. Hits are
drawn from a shuffled copy of the pool so repeated searches surface
different people.
"""

import hashlib
import logging
import random
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from leadhunter.config import settings
from leadhunter.orchestrator.schemas import CacheLookup, LeadRecord, SearchMode, SearchParams
from leadhunter.services.cache import CacheService
from leadhunter.storage.base import SearchStore

logger = logging.getLogger(__name__)


def search_hash(name: str, title: str, state: str, limit: int) -> str:
    normalized = f"{name.lower().strip()}|{title.lower().strip()}|{state.lower().strip()}|{limit}"
    return hashlib.md5(normalized.encode()).hexdigest()


def search_cache_key(mode: SearchMode, params: SearchParams) -> str:
    return f"search:{mode}:{search_hash(params.name, params.title, params.state, params.limit)}"


def person_cache_key(record_id: str) -> str:
    return f"person:{record_id}"


def shuffled(items: list) -> list:
    """Uniformly shuffled copy (Fisher–Yates via random.shuffle)."""
    copy = list(items)
    random.shuffle(copy)
    return copy


class CacheGate:
    """Cache lookup / store policy in front of the data providers."""

    def __init__(
        self,
        store: SearchStore,
        hot_cache: CacheService | None = None,
        threshold: float | None = None,
    ):
        self._store = store
        self.hot_cache = hot_cache
        self.threshold = settings.cache_fulfillment_threshold if threshold is None else threshold

    def ttl_days(self, mode: SearchMode) -> int:
        return settings.cache_ttl_exact_days if mode == "exact" else settings.cache_ttl_fuzzy_days

    async def lookup(
        self, mode: SearchMode, params: SearchParams, requested: int | None = None, read_only: bool = False,
    ) -> CacheLookup:
        """``read_only`` lookups neither count a hit nor refill the hot tier."""
        requested = params.limit if requested is None else requested
        key = search_cache_key(mode, params)
        payload = await self._read(key, read_only)
        if payload is None:
            return CacheLookup(hit=False, message="No cached results")

        records, total_available = self._parse_payload(payload)
        cached_count = len(records)
        if total_available <= 0:
            return CacheLookup(hit=False, cached_count=cached_count, message="Cached pool is empty")

        fulfillment = cached_count / total_available
        if fulfillment < self.threshold:
            logger.info(
                "Cache MISS (insufficient) | key=%s | %d/%d | %.0f%%",
                key, cached_count, total_available, fulfillment * 100,
            )
            return CacheLookup(
                hit=False,
                total_available=total_available,
                cached_count=cached_count,
                fulfillment=fulfillment,
                message=(
                    f"Cached pool insufficient ({cached_count}/{total_available}, "
                    f"{fulfillment:.0%} < {self.threshold:.0%}), refetching"
                ),
            )

        selected = shuffled(records)[:requested]
        logger.info(
            "Cache HIT | key=%s | %d/%d | %.0f%% | returned=%d",
            key, cached_count, total_available, fulfillment * 100, len(selected),
        )
        return CacheLookup(
            hit=True,
            records=selected,
            total_available=total_available,
            cached_count=cached_count,
            fulfillment=fulfillment,
            message=f"Cache hit: {cached_count} records ({fulfillment:.0%} fulfillment)",
        )

    async def store(
        self,
        mode: SearchMode,
        params: SearchParams,
        records: list[LeadRecord],
        total_available: int | None = None,
    ) -> bool:
        """Write a provider result pool. Empty exact-mode pools are never cached."""
        if mode == "exact" and not records:
            return False

        key = search_cache_key(mode, params)
        payload = {
            "records": [r.model_dump() for r in records],
            "total_available": len(records) if total_available is None else total_available,
            "requested_count": params.limit,
            "search_params": {
                "name": params.name,
                "title": params.title,
                "state": params.state,
                "limit": params.limit,
            },
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        await self._write(key, payload, "search", self.ttl_days(mode))
        return True

    async def store_person(self, record_id: str, data: dict[str, Any]) -> None:
        await self._write(person_cache_key(record_id), data, "person", settings.cache_ttl_person_days)

    # ═══════════════ INTERNALS ═══════════════

    async def _read(self, key: str, read_only: bool = False) -> dict | list | None:
        if self.hot_cache is not None:
            entry = await self.hot_cache.get(key)
            if entry and _not_expired(entry.get("expires_at")):
                return entry.get("payload")

        record = await self._store.get_cache(key, count_hit=not read_only)
        if record is None:
            return None

        if self.hot_cache is not None and not read_only:
            remaining = int((record.expires_at - datetime.now(timezone.utc)).total_seconds())
            await self.hot_cache.set(
                key,
                {"payload": record.payload, "expires_at": record.expires_at.isoformat()},
                ttl=remaining,
            )
        return record.payload

    async def _write(self, key: str, payload: dict, kind: str, ttl_days: int) -> None:
        await self._store.set_cache(key, payload, kind, ttl_days)
        if self.hot_cache is not None:
            await self.hot_cache.delete(key)

    def _parse_payload(self, payload: dict | list) -> tuple[list[LeadRecord], int]:
        # Older entries stored the bare record list
        if isinstance(payload, list):
            raw_records, total = payload, len(payload)
        else:
            raw_records = payload.get("records") or []
            total = payload.get("total_available")
            if total is None:
                total = len(raw_records)

        records = []
        for raw in raw_records:
            try:
                records.append(LeadRecord.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping malformed cached record: %s", str(e)[:200])
        return records, int(total)


def _not_expired(expires_at: str | None) -> bool:
    if not expires_at:
        return False
    try:
        return datetime.fromisoformat(expires_at) > datetime.now(timezone.utc)
    except ValueError:
        return False
