"""Per-mode credit prices: settings defaults, overridable at runtime via system_config."""

import logging
from decimal import Decimal, InvalidOperation

from leadhunter.config import settings
from leadhunter.orchestrator.schemas import CreditsConfig, SearchMode, round_credits
from leadhunter.storage.base import SearchStore

logger = logging.getLogger(__name__)

CONFIG_KEYS = {
    "fuzzy": ("FUZZY_SEARCH_CREDITS", "FUZZY_CREDITS_PER_PERSON"),
    "exact": ("EXACT_SEARCH_CREDITS", "EXACT_CREDITS_PER_PERSON"),
}

# Exact-mode searches give the base fee back when the provider finds nobody.
REFUND_ON_NO_RESULT = {"fuzzy": False, "exact": True}


def _defaults(mode: SearchMode) -> tuple[float, float]:
    if mode == "exact":
        return settings.exact_search_credits, settings.exact_credits_per_person
    return settings.fuzzy_search_credits, settings.fuzzy_credits_per_person


async def _read_price(store: SearchStore, key: str, default: float) -> Decimal:
    raw = await store.get_config(key)
    if raw is None:
        return round_credits(default)
    try:
        value = Decimal(raw)
    except InvalidOperation:
        logger.warning("Invalid credit config | key=%s | value=%s", key, raw[:50])
        return round_credits(default)
    if value < 0:
        logger.warning("Negative credit config ignored | key=%s | value=%s", key, raw[:50])
        return round_credits(default)
    return round_credits(value)


async def get_credits_config(store: SearchStore, mode: SearchMode) -> CreditsConfig:
    search_key, unit_key = CONFIG_KEYS[mode]
    default_search, default_unit = _defaults(mode)
    return CreditsConfig(
        mode=mode,
        search_credits=await _read_price(store, search_key, default_search),
        credits_per_person=await _read_price(store, unit_key, default_unit),
        refund_on_no_result=REFUND_ON_NO_RESULT[mode],
    )
