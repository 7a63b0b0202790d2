"""Rating row model shared by the remote store backends.

Decoupled from callrate_core so the store layer can be used independently:
a row carries raw column values and knows nothing about metric ranges.
Validation into a typed Rating happens in callrate_core.persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RatingRow:
    """One row of the shared rating table.

    Keyed by (call_id, turn_index, user_id). Upserting a row with an existing
    key overwrites the previous row instead of adding a second one.
    """

    call_id: str
    turn_index: int
    user_id: str
    scores: dict[str, object] = field(default_factory=dict)  # metric column -> raw value
    text: object = ""

    @property
    def key(self) -> tuple[str, int, str]:
        return (self.call_id, self.turn_index, self.user_id)
