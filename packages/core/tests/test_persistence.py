"""Tests for the cache and remote adapters."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

from callrate_core.persistence import FLAGS_SLOT, RATINGS_SLOT, RatingCache, RemoteSync
from callrate_core.rating import MetricSpec, Rating, RatingSchema
from callrate_store.base import BaseRatingStore, BaseSlotCache
from callrate_store.cache import MemorySlotCache
from callrate_store.models import RatingRow

SCHEMA = RatingSchema(metrics=(MetricSpec("stars"),), text_key="comment")


def _slots_with(ratings) -> MemorySlotCache:
    return MemorySlotCache({RATINGS_SLOT: json.dumps(ratings).encode()})


# ---------------------------------------------------------------------------
# RatingCache
# ---------------------------------------------------------------------------


class TestRatingCache:
    def test_absent_slot_loads_empty(self):
        assert RatingCache(MemorySlotCache(), SCHEMA).load_ratings() == {}

    def test_loads_well_formed_collection(self):
        cache = RatingCache(_slots_with({"call-1": {"2": {"stars": 5, "comment": "great"}}}), SCHEMA)
        collection = cache.load_ratings()
        assert collection == {"call-1": {2: Rating(scores={"stars": 5}, text="great")}}

    def test_corrupt_slot_loads_empty(self):
        slots = MemorySlotCache({RATINGS_SLOT: b"{not json"})
        assert RatingCache(slots, SCHEMA).load_ratings() == {}

    def test_non_mapping_loads_empty(self):
        assert RatingCache(_slots_with([1, 2, 3]), SCHEMA).load_ratings() == {}

    def test_malformed_entries_are_skipped(self):
        cache = RatingCache(
            _slots_with(
                {
                    "call-1": {"x": {"stars": 1}, "-1": {"stars": 1}, "3": "nope", "4": {"stars": 2}},
                    "call-2": [],
                }
            ),
            SCHEMA,
        )
        assert cache.load_ratings() == {"call-1": {4: Rating(scores={"stars": 2}, text="")}}

    def test_out_of_range_cached_values_are_clamped(self):
        cache = RatingCache(_slots_with({"c": {"0": {"stars": 99}}}), SCHEMA)
        assert cache.load_ratings()["c"][0].score("stars") == 5

    def test_read_failure_loads_empty(self):
        slots = MagicMock(spec=BaseSlotCache)
        slots.read.side_effect = OSError("disk gone")
        assert RatingCache(slots, SCHEMA).load_ratings() == {}

    def test_save_then_load(self):
        slots = MemorySlotCache()
        cache = RatingCache(slots, SCHEMA)
        assert cache.save_ratings({"c": {1: Rating(scores={"stars": 3}, text="x")}}) is True
        assert json.loads(slots.read(RATINGS_SLOT)) == {"c": {"1": {"stars": 3, "comment": "x"}}}
        assert cache.load_ratings() == {"c": {1: Rating(scores={"stars": 3}, text="x")}}

    def test_write_failure_is_swallowed(self, caplog):
        slots = MagicMock(spec=BaseSlotCache)
        slots.write.side_effect = OSError("quota exceeded")
        cache = RatingCache(slots, SCHEMA)

        assert cache.save_ratings({"c": {1: SCHEMA.empty()}}) is False  # must not raise
        assert "quota exceeded" in caplog.text

    def test_flags_roundtrip_and_bad_values_dropped(self):
        slots = MemorySlotCache({FLAGS_SLOT: b'{"a": true, "b": "yes"}'})
        cache = RatingCache(slots, SCHEMA)
        assert cache.load_flags() == {"a": True}
        cache.save_flags({"c": False})
        assert cache.load_flags() == {"c": False}


# ---------------------------------------------------------------------------
# RemoteSync
# ---------------------------------------------------------------------------


def _backend(rows=None, error=None):
    backend = MagicMock(spec=BaseRatingStore)
    if error is not None:
        backend.fetch_rows.side_effect = error
    else:
        backend.fetch_rows.return_value = rows or []
    return backend


class TestRemoteSync:
    def test_fetch_failure_is_an_explicit_signal(self):
        result = RemoteSync(_backend(error=ConnectionError("offline")), SCHEMA).fetch_ratings("alice")
        assert not result.ok
        assert result.rows == []
        assert "offline" in result.error

    def test_fetch_coerces_rows(self):
        rows = [
            RatingRow("call-1", 2, "alice", {"stars": 5}, "great"),
            RatingRow("call-1", "3", "alice", {"stars": "4"}, None),
            RatingRow("call-1", 4, "alice", {"stars": "lots"}, 12),
        ]
        result = RemoteSync(_backend(rows), SCHEMA).fetch_ratings("alice")
        assert result.ok
        assert [(r.turn_position, r.scores["stars"], r.text) for r in result.rows] == [
            (2, 5, "great"),
            (3, 4, None),
            (4, None, None),
        ]

    def test_fetch_keeps_out_of_range_for_reconciler(self):
        rows = [RatingRow("call-1", 2, "alice", {"stars": 9}, "")]
        result = RemoteSync(_backend(rows), SCHEMA).fetch_ratings("alice")
        assert result.rows[0].scores["stars"] == 9

    def test_fetch_drops_rows_without_key(self):
        rows = [
            RatingRow("", 1, "alice", {"stars": 3}, ""),
            RatingRow("call-1", -1, "alice", {"stars": 3}, ""),
            RatingRow("call-1", None, "alice", {"stars": 3}, ""),
        ]
        assert RemoteSync(_backend(rows), SCHEMA).fetch_ratings("alice").rows == []

    def test_upsert_sends_full_record(self):
        backend = _backend()
        ok = RemoteSync(backend, SCHEMA).upsert_rating("alice", "call-1", 2, Rating({"stars": 4}, "hm"))
        assert ok is True
        row = backend.upsert_row.call_args[0][0]
        assert row.key == ("call-1", 2, "alice")
        assert row.scores == {"stars": 4}
        assert row.text == "hm"

    def test_upsert_failure_is_logged_not_raised(self, caplog):
        backend = _backend()
        backend.upsert_row.side_effect = TimeoutError("slow")
        ok = RemoteSync(backend, SCHEMA).upsert_rating("alice", "call-1", 2, SCHEMA.empty())
        assert ok is False
        assert "slow" in caplog.text
