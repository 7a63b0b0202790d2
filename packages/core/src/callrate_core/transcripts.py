"""Transcript source: the read-only calls a reviewer rates.

A transcript file is a JSON array. Each item is a call mapping, optionally
wrapped as ``{"data": {...}}``:

    {"call_id": "call-1",
     "dialogue": [{"author": "User", "text": "..."},
                  {"author": "Assistant", "text": "..."}]}

Fields beyond ``author`` / ``text`` (and beyond ``call_id`` / ``dialogue`` on
the call) are kept verbatim so an annotated export reproduces the source
schema.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

from callrate_core.errors import SourceUnavailable

logger = logging.getLogger(__name__)

ASSISTANT = "Assistant"
USER = "User"


@dataclass(frozen=True)
class Turn:
    position: int
    author: str
    text: str
    source: dict = field(default_factory=dict, repr=False, compare=False)

    def to_dict(self) -> dict:
        """Return a fresh copy of the original turn mapping."""
        return copy.deepcopy(self.source) if self.source else {"author": self.author, "text": self.text}


@dataclass(frozen=True)
class Call:
    call_id: str
    turns: tuple[Turn, ...]
    source: dict = field(default_factory=dict, repr=False, compare=False)

    def __len__(self) -> int:
        return len(self.turns)


def parse_calls(items: Iterable[Any]) -> list[Call]:
    """Validate raw call mappings into Calls. Raises SourceUnavailable on bad shape."""
    calls: list[Call] = []
    seen: set[str] = set()
    for n, item in enumerate(items):
        if isinstance(item, dict) and isinstance(item.get("data"), dict):
            item = item["data"]
        if not isinstance(item, dict):
            raise SourceUnavailable(f"Transcript item {n} is not an object")

        call_id = item.get("call_id")
        if call_id is None or str(call_id) == "":
            raise SourceUnavailable(f"Transcript item {n} has no call_id")
        call_id = str(call_id)
        if call_id in seen:
            raise SourceUnavailable(f"Duplicate call_id {call_id!r} in transcripts")
        seen.add(call_id)

        dialogue = item.get("dialogue")
        if not isinstance(dialogue, list):
            raise SourceUnavailable(f"Call {call_id!r} has no dialogue list")

        turns = []
        for pos, utt in enumerate(dialogue):
            if not isinstance(utt, dict) or not isinstance(utt.get("author"), str):
                raise SourceUnavailable(f"Call {call_id!r} turn {pos} has no author")
            text = utt.get("text")
            turns.append(
                Turn(
                    position=pos,
                    author=utt["author"],
                    text=text if isinstance(text, str) else "",
                    source=copy.deepcopy(utt),
                )
            )
        calls.append(Call(call_id=call_id, turns=tuple(turns), source=copy.deepcopy(item)))
    return calls


def load_transcripts(path: str | Path) -> list[Call]:
    """Load and validate a transcript file.

    Every failure (missing file, invalid JSON, wrong shape) is reported as
    SourceUnavailable so the caller can show a readable message.
    """
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise SourceUnavailable(f"Transcript file not found: {p}")
    except (OSError, UnicodeDecodeError) as e:
        raise SourceUnavailable(f"Could not read transcripts from {p}: {e}") from e
    except json.JSONDecodeError as e:
        raise SourceUnavailable(f"Transcript file {p} is not valid JSON: {e}") from e

    if not isinstance(raw, list):
        raise SourceUnavailable(f"Transcript file {p} must contain a JSON array of calls")

    calls = parse_calls(raw)
    logger.info("Loaded %d calls from %s", len(calls), p)
    return calls


def find_call(calls: Sequence[Call], call_id: str) -> Call | None:
    for call in calls:
        if call.call_id == call_id:
            return call
    return None


def rateable_turns(call: Call, author: str = ASSISTANT) -> list[Turn]:
    return [t for t in call.turns if t.author == author]
