"""
Tests for the cascade orchestrator.

Tests cover:
- Empty fan-out
- Aggregation when deletions finish out of order
- Failures being counted without aborting the rest
"""

import asyncio

from medialinks.cascade import CascadeOrchestrator, CascadeResult

from tests.fakes import MemoryStore

COLLECTION = "media"


def seeded_store(ids):
    store = MemoryStore()
    for record_id in ids:
        store.collections[COLLECTION][record_id] = {"id": record_id}
    return store


class TestCascade:

    def test_empty_input_succeeds_without_store_calls(self):
        store = MemoryStore()
        result = asyncio.run(CascadeOrchestrator(store).delete_all([]))

        assert result == CascadeResult(succeeded=0, failed=0)
        assert result.ok
        assert store.calls == []

    def test_all_deleted(self):
        ids = ["a", "b", "c", "d"]
        store = seeded_store(ids)

        result = asyncio.run(CascadeOrchestrator(store).delete_all(ids))

        assert result == CascadeResult(succeeded=4, failed=0)
        assert store.collections[COLLECTION] == {}

    def test_out_of_order_completion_counted_once(self):
        ids = ["first", "second", "third"]
        store = seeded_store(ids)
        # Later ids finish first
        store.delays = {"first": 6, "second": 3, "third": 0}

        result = asyncio.run(CascadeOrchestrator(store).delete_all(ids))

        completion_order = [key for op, _, key in store.calls if op == "delete"]
        assert completion_order == ["third", "second", "first"]
        assert result.total == 3
        assert result == CascadeResult(succeeded=3, failed=0)

    def test_failures_do_not_abort_remaining_deletes(self):
        ids = ["a", "b", "c", "d", "e"]
        store = seeded_store(ids)
        store.fail("delete", COLLECTION, "a")
        store.fail("delete", COLLECTION, "d")
        store.delays = {"a": 0, "e": 5}

        result = asyncio.run(CascadeOrchestrator(store).delete_all(ids))

        assert result == CascadeResult(succeeded=3, failed=2)
        assert not result.ok
        assert set(store.collections[COLLECTION]) == {"a", "d"}

    def test_missing_records_are_failures(self):
        store = seeded_store(["a"])

        result = asyncio.run(CascadeOrchestrator(store).delete_all(["a", "ghost"]))

        assert result == CascadeResult(succeeded=1, failed=1)

    def test_result_waits_for_slowest_delete(self):
        ids = ["fast", "slow"]
        store = seeded_store(ids)
        store.delays = {"slow": 20}

        result = asyncio.run(CascadeOrchestrator(store).delete_all(ids))

        assert result.succeeded == 2
        assert store.collections[COLLECTION] == {}
