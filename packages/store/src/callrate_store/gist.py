"""GistRatingStore — zero-infrastructure shared ratings via GitHub Gist.

Why Gist as the team rating store:
- Zero infra: no database to provision, no server to maintain.
- Built-in access control: every reviewer with access to the Gist can read
  and write the shared ratings with their own GitHub token.
- Plain JSON: anyone can inspect or download the ratings from the Gist page.

Data format: a single JSON file named `callrate_ratings.json` inside the
Gist. The file contains a JSON array of flat row dicts:

    {"call_id": "...", "turn_index": 3, "user_id": "...",
     "<metric>": 4, ..., "<text column>": "..."}

Rows are unique by (call_id, turn_index, user_id); an upsert replaces the
matching row in place or appends a new one.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Sequence

from callrate_store.base import BaseRatingStore
from callrate_store.models import RatingRow

logger = logging.getLogger(__name__)

_GIST_FILENAME = "callrate_ratings.json"


class GistRatingStore(BaseRatingStore):
    """Stores rating rows in a GitHub Gist as one JSON array.

    fetch_rows() reads the full array and filters in memory — suitable for
    a few thousand rated turns. For larger teams, switch to
    SQLiteRatingStore on shared storage.

    The Gist ID is stored in .callrate.yml under `gist_id`. Running
    `callrate init` creates the Gist and writes the ID automatically.
    """

    def __init__(
        self,
        gist_id: str,
        token: str,
        metric_keys: Sequence[str] = ("stars",),
        text_column: str = "comment",
    ):
        try:
            from github import Github
        except ImportError:
            raise ImportError("PyGithub is required for GistRatingStore. Install callrate.")
        self._gist_id = gist_id
        self._gh = Github(token)
        self._metric_keys = list(metric_keys)
        self._text_column = text_column
        # Upserts are read-modify-write on the whole file.
        self._lock = threading.Lock()

    def _get_gist(self):
        return self._gh.get_gist(self._gist_id)

    def fetch_rows(self, user_id: str) -> list[RatingRow]:
        """Return the rows written by ``user_id``. Raises on network errors."""
        rows = self._read_rows(self._get_gist())
        return [self._from_dict(r) for r in rows if isinstance(r, dict) and r.get("user_id") == user_id]

    def upsert_row(self, row: RatingRow) -> None:
        """Replace the row with the same key, or append it."""
        from github import InputFileContent

        with self._lock:
            gist = self._get_gist()
            rows = [r for r in self._read_rows(gist) if isinstance(r, dict)]
            payload = self._to_dict(row)
            for i, existing in enumerate(rows):
                if self._key(existing) == row.key:
                    rows[i] = payload
                    break
            else:
                rows.append(payload)
            gist.edit(files={_GIST_FILENAME: InputFileContent(json.dumps(rows, indent=2))})
        logger.debug("Upserted rating row %s into gist %s", row.key, self._gist_id)

    def _read_rows(self, gist) -> list:
        """Read the current JSON array from the Gist file, or return []."""
        file_obj = gist.files.get(_GIST_FILENAME)
        if file_obj is None:
            return []
        try:
            data = json.loads(file_obj.content) or []
        except (json.JSONDecodeError, TypeError, AttributeError):
            logger.warning("Gist %s holds unreadable rating data; treating it as empty", self._gist_id)
            return []
        return data if isinstance(data, list) else []

    @staticmethod
    def _key(d: dict) -> tuple:
        return (d.get("call_id"), d.get("turn_index"), d.get("user_id"))

    def _to_dict(self, row: RatingRow) -> dict:
        d: dict = {"call_id": row.call_id, "turn_index": row.turn_index, "user_id": row.user_id}
        for key in self._metric_keys:
            d[key] = row.scores.get(key, 0)
        d[self._text_column] = row.text
        return d

    def _from_dict(self, d: dict) -> RatingRow:
        return RatingRow(
            call_id=d.get("call_id", ""),
            turn_index=d.get("turn_index", -1),
            user_id=d.get("user_id", ""),
            scores={k: d.get(k) for k in self._metric_keys},
            text=d.get(self._text_column),
        )
