"""Rating store: the one owner of the in-memory rating collection.

Ratings arrive from three places: the local cache (read at startup), the
shared remote store (fetched in the background, possibly after the reviewer
has started editing) and the reviewer's own edits. The store merges them
with a fixed precedence:

    local edit in this session  >  remote value  >  cached value

Per (call, turn, field) it records which fields were edited locally and
which were adopted from the remote store, so a late remote fetch never
overwrites a fresh edit and a late cache load never overwrites either.

Every edit is applied in memory under the store lock and then propagated as
two background side effects: a save of the whole collection to the cache and
an upsert of the one record to the remote store. Each side-effect channel is
a single-worker executor, so writes on one channel complete in the order they
were issued. The upserted record is read when it is sent, after any remote
fetch queued ahead of it has merged. Failures are logged and counted, never
raised to the editor.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Iterable, Mapping

from callrate_core.persistence import FetchResult, RatingCache, RatingCollection, RemoteRating, RemoteSync
from callrate_core.rating import Rating, RatingSchema

logger = logging.getLogger(__name__)

FieldKey = tuple[str, int, str]


class RatingStore:
    """Authoritative call -> turn -> Rating mapping with cache and remote propagation.

    ``cache`` and ``remote`` are optional; without them the store is purely
    in-memory. Readers only ever receive copies.
    """

    def __init__(
        self,
        schema: RatingSchema,
        cache: RatingCache | None = None,
        remote: RemoteSync | None = None,
        identity: str = "demo-user",
    ):
        self._schema = schema
        self._cache = cache
        self._remote = remote
        self._identity = identity

        self._lock = threading.RLock()
        self._ratings: RatingCollection = {}
        self._flags: dict[str, bool] = {}
        self._edited: set[FieldKey] = set()
        self._from_remote: set[FieldKey] = set()
        self._edited_flags: set[str] = set()

        self._cache_worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="callrate-cache")
        self._remote_worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="callrate-remote")
        self._pending: set[Future] = set()
        self._failures = 0
        self._remote_load: Future | None = None
        self._closed = False

    @property
    def schema(self) -> RatingSchema:
        return self._schema

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def failed_side_effects(self) -> int:
        """Number of cache or remote writes that failed since the store was created."""
        with self._lock:
            return self._failures

    # ------------------------------------------------------------------
    # Startup merges
    # ------------------------------------------------------------------

    def initialize(
        self, cache_snapshot: Mapping[str, Mapping[int, Rating]], remote_rows: Iterable[RemoteRating]
    ) -> None:
        """Apply a cache snapshot, then remote rows, to the collection."""
        self.merge_cache(cache_snapshot)
        self.merge_remote(remote_rows)

    def merge_cache(self, snapshot: Mapping[str, Mapping[int, Rating]]) -> None:
        """Adopt cached fields that were neither edited locally nor set from the remote store."""
        with self._lock:
            for call_id, turns in snapshot.items():
                for position, cached in turns.items():
                    incoming: dict[str, Any] = {k: cached.score(k) for k in self._schema.metric_keys}
                    incoming[self._schema.text_key] = cached.text
                    self._merge_entry(call_id, position, incoming, skip=self._from_remote)

    def merge_remote(self, rows: Iterable[RemoteRating]) -> int:
        """Merge remote rows field by field. Returns how many fields were adopted.

        A metric is adopted only if it holds a valid in-range value, the text
        only if it is non-empty, and neither if the reviewer has already
        edited that field in this session.
        """
        adopted = 0
        with self._lock:
            for row in rows:
                incoming: dict[str, Any] = {
                    k: v for k, v in row.scores.items() if self._schema.is_valid(k, v)
                }
                if isinstance(row.text, str) and row.text:
                    incoming[self._schema.text_key] = row.text
                taken = self._merge_entry(row.call_id, row.turn_position, incoming, skip=set())
                for key in taken:
                    self._from_remote.add((row.call_id, row.turn_position, key))
                adopted += len(taken)
        return adopted

    def merge_flags(self, flags: Mapping[str, bool]) -> None:
        with self._lock:
            for call_id, value in flags.items():
                if call_id not in self._edited_flags:
                    self._flags[call_id] = bool(value)

    def _merge_entry(self, call_id: str, position: int, incoming: Mapping[str, Any], skip: set[FieldKey]) -> list[str]:
        # Caller holds the lock.
        current = self._current(call_id, position)
        updated = current
        taken = []
        for key, value in incoming.items():
            field_key = (call_id, position, key)
            if field_key in self._edited or field_key in skip:
                continue
            updated = self._schema.with_field(updated, key, value)
            taken.append(key)
        if taken:
            self._ratings.setdefault(call_id, {})[position] = updated
        return taken

    def load(self) -> Future | None:
        """Read the cache now and start the remote fetch in the background.

        Returns the future of the remote fetch-and-merge (None when no remote
        store is configured). The store is usable immediately; remote data
        merges in whenever it arrives.
        """
        if self._cache is not None:
            self.merge_cache(self._cache.load_ratings())
            self.merge_flags(self._cache.load_flags())
        if self._remote is None:
            return None
        self._remote_load = self._remote_worker.submit(self._fetch_and_merge)
        return self._remote_load

    def _fetch_and_merge(self) -> FetchResult:
        result = self._remote.fetch_ratings(self._identity)
        if result.ok:
            adopted = self.merge_remote(result.rows)
            logger.info("Merged %d remote rating fields from %d rows", adopted, len(result.rows))
        else:
            logger.warning("Shared ratings unavailable, continuing with local state: %s", result.error)
        return result

    def wait_for_remote(self, timeout: float | None = None) -> FetchResult | None:
        """Block until the background remote merge finishes.

        Returns its FetchResult, or None if there is no remote load or it did
        not finish within ``timeout``.
        """
        if self._remote_load is None:
            return None
        done, _ = wait([self._remote_load], timeout=timeout)
        if not done:
            return None
        return self._remote_load.result()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _current(self, call_id: str, position: int) -> Rating:
        return self._ratings.get(call_id, {}).get(position) or self._schema.empty()

    def get_rating(self, call_id: str, turn_position: int) -> Rating:
        with self._lock:
            return self._current(call_id, turn_position).copy()

    def snapshot(self) -> RatingCollection:
        """Deep copy of the whole collection."""
        with self._lock:
            return {c: {p: r.copy() for p, r in turns.items()} for c, turns in self._ratings.items()}

    def flags_snapshot(self) -> dict[str, bool]:
        with self._lock:
            return dict(self._flags)

    def is_call_flagged(self, call_id: str) -> bool:
        with self._lock:
            return self._flags.get(call_id, False)

    def rated_positions(self, call_id: str) -> list[int]:
        with self._lock:
            return sorted(p for p, r in self._ratings.get(call_id, {}).items() if not r.is_empty())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_field(self, call_id: str, turn_position: int, field_key: str, value: Any) -> Rating:
        """Update one field and propagate it. Returns the new Rating.

        The in-memory update is complete when this returns; the cache save and
        remote upsert run in the background. Raises UnknownField before any
        state changes if ``field_key`` is not in the schema.
        """
        with self._lock:
            updated = self._schema.with_field(self._current(call_id, turn_position), field_key, value)
            self._ratings.setdefault(call_id, {})[turn_position] = updated
            self._edited.add((call_id, turn_position, field_key))

            # Dispatch under the lock so cache snapshots queue in edit order.
            if self._cache is not None:
                self._dispatch(self._cache_worker, "cache save", self._cache.save_ratings, self._copy_ratings())
            if self._remote is not None:
                self._dispatch(self._remote_worker, "remote upsert", self._upsert_current, call_id, turn_position)
            return updated.copy()

    def set_call_flag(self, call_id: str, value: bool) -> bool:
        """Set the per-call completion flag. Persisted to the cache only."""
        with self._lock:
            self._flags[call_id] = bool(value)
            self._edited_flags.add(call_id)
            if self._cache is not None:
                self._dispatch(self._cache_worker, "cache flag save", self._cache.save_flags, dict(self._flags))
            return self._flags[call_id]

    def toggle_call_flag(self, call_id: str) -> bool:
        with self._lock:
            return self.set_call_flag(call_id, not self._flags.get(call_id, False))

    def _upsert_current(self, call_id: str, turn_position: int) -> bool:
        # Runs on the remote worker, queued behind any pending fetch-and-merge,
        # so the record sent carries remote fields merged since the edit.
        with self._lock:
            rating = self._current(call_id, turn_position)
        return self._remote.upsert_rating(self._identity, call_id, turn_position, rating)

    def _copy_ratings(self) -> RatingCollection:
        # Ratings are immutable, so copying the two dict levels is enough.
        return {c: dict(turns) for c, turns in self._ratings.items()}

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _dispatch(self, worker: ThreadPoolExecutor, label: str, fn: Callable[..., Any], *args: Any) -> Future | None:
        if self._closed:
            logger.warning("Store is closed; dropping %s", label)
            return None
        try:
            future = worker.submit(self._run_side_effect, label, fn, *args)
        except RuntimeError as e:
            logger.warning("Could not schedule %s: %s", label, e)
            self._failures += 1
            return None
        self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _run_side_effect(self, label: str, fn: Callable[..., Any], *args: Any) -> bool:
        # Runs on a worker thread. Counted here, not in a done-callback, so a
        # caller returning from flush() already sees the failure.
        try:
            ok = fn(*args) is not False
        except Exception as e:
            logger.warning("%s failed (%s): %s", label, type(e).__name__, e)
            ok = False
        if not ok:
            with self._lock:
                self._failures += 1
        return ok

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for queued side effects and the remote load. True if all finished."""
        with self._lock:
            futures = list(self._pending)
        if self._remote_load is not None:
            futures.append(self._remote_load)
        _, not_done = wait(futures, timeout=timeout)
        if not_done:
            logger.warning("%d rating writes still pending after %ss", len(not_done), timeout)
        return not not_done

    def close(self, timeout: float | None = None) -> bool:
        """Flush pending writes and stop the workers. Safe to call twice."""
        finished = self.flush(timeout)
        with self._lock:
            self._closed = True
        self._cache_worker.shutdown(wait=finished)
        self._remote_worker.shutdown(wait=finished)
        return finished
