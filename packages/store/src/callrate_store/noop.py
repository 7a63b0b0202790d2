"""No-op rating store — the default when no shared store is configured.

Ratings still persist in the local cache. Using a NoOpRatingStore rather
than None lets the reconciler always dispatch upserts without conditional
checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from callrate_store.base import BaseRatingStore

if TYPE_CHECKING:
    from callrate_store.models import RatingRow


class NoOpRatingStore(BaseRatingStore):
    """Silently discards all rows — zero configuration required.

    Reviewers who want to share ratings switch to SQLiteRatingStore
    (remote: sqlite) or GistRatingStore (callrate init).
    """

    def fetch_rows(self, user_id: str) -> list[RatingRow]:
        return []

    def upsert_row(self, row: RatingRow) -> None:
        pass  # intentional no-op
