"""Tests for the annotated transcript export."""

import copy
import json

from callrate_core.export import (
    ALL_CALLS_FILENAME,
    build_annotated,
    default_export_filename,
    export_for_call,
    ratings_from_annotated,
    write_export,
)
from callrate_core.rating import MetricSpec, Rating, RatingSchema
from callrate_core.transcripts import parse_calls

SCHEMA = RatingSchema(metrics=(MetricSpec("stars"), MetricSpec("tone", 1, 3)), text_key="comment")

RAW = [
    {
        "call_id": "call-1",
        "channel": "phone",
        "dialogue": [
            {"author": "User", "text": "Where is my order?"},
            {"author": "Assistant", "text": "Let me check.", "latency_ms": 80},
            {"author": "User", "text": "Thanks"},
            {"author": "Assistant", "text": "It ships today."},
        ],
    },
    {"call_id": "call-2", "dialogue": [{"author": "Assistant", "text": "Hello"}]},
]


def _rating(stars=0, tone=0, text=""):
    return Rating(scores={"stars": stars, "tone": tone}, text=text)


def test_rated_turn_gets_every_field():
    calls = parse_calls(RAW)
    out = build_annotated(calls, {"call-1": {1: _rating(stars=5, text="great")}}, SCHEMA)

    turn = out[0]["dialogue"][1]
    assert turn == {
        "author": "Assistant",
        "text": "Let me check.",
        "latency_ms": 80,
        "rating_stars": 5,
        "rating_tone": 0,
        "rating_comment": "great",
    }


def test_unrated_and_empty_turns_are_unchanged():
    calls = parse_calls(RAW)
    out = build_annotated(calls, {"call-1": {3: _rating()}, "call-2": {}}, SCHEMA)
    assert out == RAW


def test_ratings_on_non_rateable_turns_are_ignored():
    calls = parse_calls(RAW)
    out = build_annotated(calls, {"call-1": {0: _rating(stars=2)}}, SCHEMA)
    assert out[0]["dialogue"][0] == {"author": "User", "text": "Where is my order?"}


def test_call_fields_and_order_preserved():
    calls = parse_calls(RAW)
    out = build_annotated(calls, {}, SCHEMA)
    assert [c["call_id"] for c in out] == ["call-1", "call-2"]
    assert list(out[0]) == ["call_id", "channel", "dialogue"]


def test_data_wrapper_is_flattened():
    calls = parse_calls([{"data": RAW[1]}])
    assert build_annotated(calls, {}, SCHEMA) == [RAW[1]]


def test_custom_prefix():
    calls = parse_calls(RAW)
    out = build_annotated(calls, {"call-2": {0: _rating(tone=2)}}, SCHEMA, prefix="qa_")
    assert out[1]["dialogue"][0]["qa_tone"] == 2
    assert "rating_tone" not in out[1]["dialogue"][0]


def test_inputs_are_not_mutated():
    raw = copy.deepcopy(RAW)
    calls = parse_calls(raw)
    ratings = {"call-1": {1: _rating(stars=3)}}
    ratings_before = copy.deepcopy(ratings)

    out = build_annotated(calls, ratings, SCHEMA)
    out[0]["dialogue"][1]["text"] = "edited"
    out[0]["channel"] = "chat"

    assert raw == RAW
    assert ratings == ratings_before
    assert build_annotated(calls, ratings, SCHEMA)[0]["dialogue"][1]["text"] == "Let me check."


def test_reexport_is_idempotent():
    ratings = {"call-1": {1: _rating(stars=4, tone=3, text="ok"), 3: _rating(text="short")}}
    first = build_annotated(parse_calls(RAW), ratings, SCHEMA)

    second = build_annotated(parse_calls(first), ratings, SCHEMA)

    assert second == first
    assert json.dumps(second) == json.dumps(first)


def test_ratings_recovered_from_export():
    ratings = {"call-1": {1: _rating(stars=4, text="ok")}, "call-2": {0: _rating(tone=1)}}
    exported = build_annotated(parse_calls(RAW), ratings, SCHEMA)
    assert ratings_from_annotated(exported, SCHEMA) == ratings


def test_ratings_from_annotated_skips_unannotated_turns():
    assert ratings_from_annotated(RAW, SCHEMA) == {}


def test_export_for_call_matches_full_export():
    calls = parse_calls(RAW)
    ratings = {"call-1": {3: _rating(stars=1)}}
    assert export_for_call(calls, ratings, "call-1", SCHEMA) == build_annotated(calls, ratings, SCHEMA)[0]


def test_export_for_unknown_call_is_none():
    assert export_for_call(parse_calls(RAW), {}, "missing", SCHEMA) is None


def test_default_filenames():
    assert default_export_filename() == ALL_CALLS_FILENAME == "annotated_transcripts_all_calls.json"
    assert default_export_filename("call-1") == "annotated_call-1.json"


def test_write_export(tmp_path):
    doc = [{"call_id": "ç", "dialogue": []}]
    path = write_export(doc, tmp_path / "out" / "export.json")

    text = path.read_text(encoding="utf-8")
    assert text.endswith("\n")
    assert '"ç"' in text
    assert json.loads(text) == doc


def test_cleared_rating_drops_annotations_from_source():
    rated = build_annotated(parse_calls(RAW), {"call-1": {1: _rating(stars=4, text="ok")}}, SCHEMA)

    cleared = build_annotated(parse_calls(rated), {"call-1": {1: _rating()}}, SCHEMA)

    assert cleared == RAW


def test_annotation_like_keys_on_other_turns_are_kept():
    raw = [{"call_id": "c", "dialogue": [{"author": "User", "text": "hi", "rating_stars": 3}]}]
    assert build_annotated(parse_calls(raw), {}, SCHEMA) == raw
