"""Abstract store interfaces.

Two kinds of persistence back a rating session:

- BaseSlotCache: a local key/value byte store (one blob per slot). Used as
  scratch storage so ratings survive a restart.
- BaseRatingStore: the shared multi-row rating table, keyed by
  (call_id, turn_index, user_id).

callrate_core depends on these interfaces — not on a concrete backend —
so backends are swappable without touching the reconciler.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from callrate_store.models import RatingRow


class BaseSlotCache(ABC):
    """Local key/value byte store.

    Implementations may raise on I/O failure; the caller decides whether a
    failure matters. Nothing stored here is relied upon as the only copy.
    """

    @abstractmethod
    def read(self, slot: str) -> bytes | None:
        """Return the bytes stored in a slot, or None if the slot is empty."""

    @abstractmethod
    def write(self, slot: str, data: bytes) -> None:
        """Replace the contents of a slot."""

    def close(self) -> None:
        """Release any resources held by the cache. Default is a no-op."""


class BaseRatingStore(ABC):
    """Pluggable shared rating table.

    Implementations raise on transport or server errors. Retry and
    degradation policy belongs to the caller, which treats the shared store
    as an enhancement and keeps working from local state when it fails.
    """

    @abstractmethod
    def fetch_rows(self, user_id: str) -> list[RatingRow]:
        """Return every row written by ``user_id``."""

    @abstractmethod
    def upsert_row(self, row: RatingRow) -> None:
        """Insert a row, overwriting any existing row with the same key."""

    def close(self) -> None:
        """Release any resources held by the store (connections, clients).

        Optional — subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
