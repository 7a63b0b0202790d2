"""Adapters between the reconciler and the store backends.

RatingCache turns the whole rating collection into one JSON blob in a local
slot and back. RemoteSync reads and writes single rows in the shared store and
validates what comes back before the reconciler ever sees it.

Neither adapter raises: the cache is scratch storage and the shared store is
an enhancement, so their failures are logged and reported as return values.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping

from callrate_store.models import RatingRow

from callrate_core.rating import Rating, RatingSchema

if TYPE_CHECKING:
    from callrate_store.base import BaseRatingStore, BaseSlotCache

logger = logging.getLogger(__name__)

RATINGS_SLOT = "call_rating_dashboard_ratings_v1"
FLAGS_SLOT = "call_rating_dashboard_completed_v1"

RatingCollection = dict[str, dict[int, Rating]]


def _as_turn_index(value: Any) -> int | None:
    """Accept ints and digit strings (JSON object keys); reject everything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    return None


def _as_metric(value: Any) -> int | None:
    """Coerce a raw column value to an int, or None when it carries no number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# Local cache
# ---------------------------------------------------------------------------


class RatingCache:
    """Loads and saves the rating collection and call flags as JSON slots."""

    def __init__(self, slots: BaseSlotCache, schema: RatingSchema):
        self._slots = slots
        self._schema = schema

    def load_ratings(self) -> RatingCollection:
        """Return the cached collection, or {} if the slot is absent or unusable."""
        data = self._read_json(RATINGS_SLOT)
        if not isinstance(data, dict):
            if data is not None:
                logger.warning("Cached ratings are not a mapping; starting empty")
            return {}

        collection: RatingCollection = {}
        skipped = 0
        for call_id, turns in data.items():
            if not isinstance(turns, dict):
                skipped += 1
                continue
            for raw_index, record in turns.items():
                index = _as_turn_index(raw_index)
                if index is None or not isinstance(record, dict):
                    skipped += 1
                    continue
                collection.setdefault(str(call_id), {})[index] = self._schema.rating_from_dict(record)
        if skipped:
            logger.warning("Skipped %d malformed cached rating entries", skipped)
        return collection

    def save_ratings(self, collection: Mapping[str, Mapping[int, Rating]]) -> bool:
        payload = {
            call_id: {str(index): self._schema.rating_to_dict(r) for index, r in turns.items()}
            for call_id, turns in collection.items()
        }
        return self._write_json(RATINGS_SLOT, payload)

    def load_flags(self) -> dict[str, bool]:
        data = self._read_json(FLAGS_SLOT)
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, bool)}

    def save_flags(self, flags: Mapping[str, bool]) -> bool:
        return self._write_json(FLAGS_SLOT, dict(flags))

    def _read_json(self, slot: str) -> Any:
        try:
            raw = self._slots.read(slot)
        except Exception as e:
            logger.warning("Cache read of %s failed (%s): %s", slot, type(e).__name__, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Cache slot %s is corrupt (%s); ignoring it", slot, e)
            return None

    def _write_json(self, slot: str, payload: Any) -> bool:
        try:
            self._slots.write(slot, json.dumps(payload).encode("utf-8"))
        except Exception as e:
            # In-memory state stays authoritative.
            logger.warning("Cache write of %s failed (%s): %s", slot, type(e).__name__, e)
            return False
        return True


# ---------------------------------------------------------------------------
# Shared remote store
# ---------------------------------------------------------------------------


@dataclass
class RemoteRating:
    """A shared-store row after validation.

    A metric of None means the row carries no usable number for it.
    Out-of-range integers are kept so the reconciler can reject them.
    """

    call_id: str
    turn_position: int
    scores: dict[str, int | None] = field(default_factory=dict)
    text: str | None = None


@dataclass
class FetchResult:
    rows: list[RemoteRating] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RemoteSync:
    """Bulk fetch and single-record upsert against the shared rating store."""

    def __init__(self, backend: BaseRatingStore, schema: RatingSchema):
        self._backend = backend
        self._schema = schema

    @property
    def backend(self) -> BaseRatingStore:
        return self._backend

    def fetch_ratings(self, identity: str) -> FetchResult:
        """Fetch every row for ``identity``. Failures come back as FetchResult.error."""
        try:
            raw_rows = self._backend.fetch_rows(identity)
        except Exception as e:
            logger.warning("Remote fetch failed (%s): %s", type(e).__name__, e)
            return FetchResult(error=f"{type(e).__name__}: {e}")

        rows = []
        for raw in raw_rows:
            row = self._coerce(raw)
            if row is None:
                logger.debug("Dropping malformed remote row %r", raw)
                continue
            rows.append(row)
        logger.info("Fetched %d remote ratings for %s", len(rows), identity)
        return FetchResult(rows=rows)

    def upsert_rating(self, identity: str, call_id: str, turn_position: int, rating: Rating) -> bool:
        """Write one full record. Returns False (and logs) if the write failed."""
        row = RatingRow(
            call_id=call_id,
            turn_index=turn_position,
            user_id=identity,
            scores={k: rating.score(k) for k in self._schema.metric_keys},
            text=rating.text,
        )
        try:
            self._backend.upsert_row(row)
        except Exception as e:
            logger.warning(
                "Remote upsert of %s turn %d failed (%s): %s", call_id, turn_position, type(e).__name__, e
            )
            return False
        return True

    def _coerce(self, raw: RatingRow) -> RemoteRating | None:
        call_id = raw.call_id
        if call_id is None or str(call_id) == "":
            return None
        index = _as_turn_index(raw.turn_index)
        if index is None:
            return None
        scores = raw.scores if isinstance(raw.scores, dict) else {}
        return RemoteRating(
            call_id=str(call_id),
            turn_position=index,
            scores={k: _as_metric(scores.get(k)) for k in self._schema.metric_keys},
            text=raw.text if isinstance(raw.text, str) else None,
        )
