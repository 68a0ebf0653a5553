"""Tests for the in-memory store's result rows."""

import pytest


class TestResults:
    async def test_update_result(self, store):
        task = await store.create_task(1, "hash", {}, 10)
        saved = await store.save_result(task.id, "lead-1", {"phone_status": "received"}, False, None, None)

        updated = await store.update_result(
            saved.id, True, 95, {"source": "FastPeopleSearch"}, data={"phone_status": "verified"},
        )

        assert updated.verified and updated.verification_score == 95
        [row] = await store.list_results(task.id)
        assert row.verification_details == {"source": "FastPeopleSearch"}
        assert row.data == {"phone_status": "verified"}

    async def test_returned_rows_are_copies(self, store):
        task = await store.create_task(1, "hash", {}, 10)
        saved = await store.save_result(task.id, "lead-1", {"phone": "4155550001"}, False, None, None)

        fetched = await store.get_result(saved.id)
        fetched.data["phone"] = None

        assert (await store.get_result(saved.id)).data["phone"] == "4155550001"

    async def test_unknown_result(self, store):
        assert await store.get_result(42) is None
        assert await store.update_result(42, False, 10, None) is None

    @pytest.mark.parametrize("score, details", [
        (None, {"source": "TruePeopleSearch"}),
        (90, None),
        (90, {"source": ""}),
    ])
    async def test_verified_requires_score_and_source(self, store, score, details):
        task = await store.create_task(1, "hash", {}, 10)
        with pytest.raises(ValueError):
            await store.save_result(task.id, "lead-1", {}, True, score, details)

        saved = await store.save_result(task.id, "lead-1", {}, False, score, details)
        with pytest.raises(ValueError):
            await store.update_result(saved.id, True, score, details)
        assert not (await store.get_result(saved.id)).verified
