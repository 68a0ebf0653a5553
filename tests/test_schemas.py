"""Tests for request validation, credit rounding, status transitions and pricing."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from leadhunter.orchestrator.schemas import SearchParams, can_transition, round_credits
from leadhunter.services.pricing import get_credits_config


class TestSearchParams:
    def test_defaults(self):
        params = SearchParams(name="John", title="Owner", state="Texas")
        assert params.limit == 10
        assert (params.min_age, params.max_age) == (50, 79)
        assert params.mode == "fuzzy"
        assert params.enable_verification

    @pytest.mark.parametrize("limit", [9, 10001])
    def test_limit_bounds(self, limit):
        with pytest.raises(ValidationError):
            SearchParams(name="John", title="Owner", state="Texas", limit=limit)

    @pytest.mark.parametrize("field,value", [("min_age", 17), ("max_age", 81)])
    def test_age_bounds(self, field, value):
        with pytest.raises(ValidationError):
            SearchParams(name="John", title="Owner", state="Texas", **{field: value})

    def test_min_age_above_max(self):
        with pytest.raises(ValidationError, match="min_age"):
            SearchParams(name="John", title="Owner", state="Texas", min_age=70, max_age=60)

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            SearchParams(name="", title="Owner", state="Texas")

    def test_data_source_follows_mode(self):
        fuzzy = SearchParams(name="a", title="b", state="Texas")
        exact = SearchParams(name="a", title="b", state="Texas", mode="exact")
        assert fuzzy.data_source == "apify"
        assert exact.data_source == "brightdata"
        assert exact.task_params()["data_source"] == "brightdata"
        assert exact.task_params()["limit"] == 10


class TestRoundCredits:
    @pytest.mark.parametrize("value,expected", [
        (1, "1.0"),
        ("0.11", "0.2"),
        (2.25, "2.3"),
        (Decimal("3.10"), "3.1"),
        (0, "0.0"),
    ])
    def test_rounds_up_to_tenth(self, value, expected):
        assert round_credits(value) == Decimal(expected)


class TestTransitions:
    def test_forward_only(self):
        assert can_transition("initializing", "searching")
        assert can_transition("searching", "processing")
        assert not can_transition("processing", "searching")

    def test_any_active_state_may_end(self):
        for status in ("initializing", "searching", "processing"):
            assert can_transition(status, "stopped")
            assert can_transition(status, "failed")

    def test_terminal_states_are_final(self):
        assert not can_transition("stopped", "completed")
        assert not can_transition("completed", "processing")
        assert can_transition("stopped", "stopped")


class TestPricing:
    async def test_defaults(self, store):
        fuzzy = await get_credits_config(store, "fuzzy")
        exact = await get_credits_config(store, "exact")
        assert (fuzzy.search_credits, fuzzy.credits_per_person) == (Decimal("1"), Decimal("2"))
        assert (exact.search_credits, exact.credits_per_person) == (Decimal("5"), Decimal("10"))

    async def test_override_rounded_up(self, store):
        await store.set_config("EXACT_CREDITS_PER_PERSON", "7.21")
        assert (await get_credits_config(store, "exact")).credits_per_person == Decimal("7.3")

    @pytest.mark.parametrize("raw", ["abc", "-4"])
    async def test_bad_override_falls_back(self, store, raw):
        await store.set_config("FUZZY_SEARCH_CREDITS", raw)
        assert (await get_credits_config(store, "fuzzy")).search_credits == Decimal("1")
