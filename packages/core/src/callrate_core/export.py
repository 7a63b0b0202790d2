"""Annotated transcript export.

Rebuilds the transcript with rating fields merged onto rated assistant
turns. Every metric is emitted (0 included) so the shape of an annotated turn
does not depend on which metrics happen to be set. Assistant turns without a
rating, or with an empty one, lose any annotation keys the source already
carried; every other field, and every other turn, comes out as it went in.

The builder is pure: it never mutates its inputs, and feeding its own output
back in with the same ratings gives the same document.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Mapping, Sequence

from callrate_core.rating import Rating, RatingSchema, is_empty
from callrate_core.transcripts import ASSISTANT, Call

DEFAULT_PREFIX = "rating_"
ALL_CALLS_FILENAME = "annotated_transcripts_all_calls.json"


def annotation_fields(rating: Rating, schema: RatingSchema, prefix: str = DEFAULT_PREFIX) -> dict:
    fields: dict[str, Any] = {f"{prefix}{m.key}": rating.score(m.key) for m in schema.metrics}
    fields[f"{prefix}{schema.text_key}"] = rating.text
    return fields


def _annotate_call(
    call: Call,
    ratings: Mapping[str, Mapping[int, Rating]],
    schema: RatingSchema,
    rateable_author: str,
    prefix: str,
) -> dict:
    call_ratings = ratings.get(call.call_id, {})
    dialogue = []
    for turn in call.turns:
        out = turn.to_dict()
        rating = call_ratings.get(turn.position)
        if turn.author == rateable_author:
            fields = annotation_fields(rating or schema.empty(), schema, prefix)
            if is_empty(rating):
                # A cleared rating drops annotations carried in from the source.
                out = {k: v for k, v in out.items() if k not in fields}
            else:
                # Existing annotation keys are overwritten in place, never duplicated.
                out.update(fields)
        dialogue.append(out)

    if not call.source:
        return {"call_id": call.call_id, "dialogue": dialogue}
    # Keep the source's key order; "dialogue" is swapped for the annotated one.
    return {k: (dialogue if k == "dialogue" else copy.deepcopy(v)) for k, v in call.source.items()}


def build_annotated(
    calls: Sequence[Call],
    ratings: Mapping[str, Mapping[int, Rating]],
    schema: RatingSchema,
    rateable_author: str = ASSISTANT,
    prefix: str = DEFAULT_PREFIX,
) -> list[dict]:
    """Annotate every call, preserving call and turn order."""
    return [_annotate_call(call, ratings, schema, rateable_author, prefix) for call in calls]


def export_for_call(
    calls: Sequence[Call],
    ratings: Mapping[str, Mapping[int, Rating]],
    call_id: str,
    schema: RatingSchema,
    rateable_author: str = ASSISTANT,
    prefix: str = DEFAULT_PREFIX,
) -> dict | None:
    """The entry of build_annotated() for one call, or None if the call is unknown."""
    for call in calls:
        if call.call_id == call_id:
            return _annotate_call(call, ratings, schema, rateable_author, prefix)
    return None


def ratings_from_annotated(
    annotated: Sequence[Mapping[str, Any]],
    schema: RatingSchema,
    prefix: str = DEFAULT_PREFIX,
) -> dict[str, dict[int, Rating]]:
    """Recover the rating collection from an annotated export.

    Only turns carrying at least one annotation key contribute, and empty
    ratings are dropped, so the result round-trips through build_annotated().
    """
    keys = {f"{prefix}{k}": k for k in schema.field_keys}
    collection: dict[str, dict[int, Rating]] = {}
    for item in annotated:
        if isinstance(item.get("data"), dict):
            item = item["data"]
        call_id = str(item.get("call_id", ""))
        for position, turn in enumerate(item.get("dialogue") or []):
            if not isinstance(turn, dict):
                continue
            present = {keys[k]: v for k, v in turn.items() if k in keys}
            if not present:
                continue
            rating = schema.rating_from_dict(present)
            if not rating.is_empty():
                collection.setdefault(call_id, {})[position] = rating
    return collection


def default_export_filename(call_id: str | None = None) -> str:
    if call_id is None:
        return ALL_CALLS_FILENAME
    return f"annotated_{call_id}.json"


def write_export(document: Any, path: str | Path) -> Path:
    """Write an export document as indented UTF-8 JSON and return the path."""
    p = Path(path)
    if p.parent != Path("."):
        p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(document, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return p
