"""Tests for the rating record model."""

import pytest

from callrate_core.errors import UnknownField
from callrate_core.rating import MetricSpec, Rating, RatingSchema, is_empty, schema_from_config

SCHEMA = RatingSchema(metrics=(MetricSpec("stars"), MetricSpec("accuracy", 1, 3)), text_key="comment")


class TestEmpty:
    def test_empty_has_every_metric_unset(self):
        r = SCHEMA.empty()
        assert r.scores == {"stars": 0, "accuracy": 0}
        assert r.text == ""

    def test_empty_is_empty(self):
        assert SCHEMA.empty().is_empty()
        assert is_empty(SCHEMA.empty())

    def test_none_is_empty(self):
        assert is_empty(None)

    def test_whitespace_text_is_still_empty(self):
        assert Rating(scores={"stars": 0}, text="  \n ").is_empty()

    def test_any_metric_makes_it_non_empty(self):
        assert not SCHEMA.with_field(SCHEMA.empty(), "accuracy", 1).is_empty()

    def test_text_makes_it_non_empty(self):
        assert not SCHEMA.with_field(SCHEMA.empty(), "comment", "great").is_empty()


class TestWithField:
    def test_sets_one_field_and_keeps_the_rest(self):
        r = SCHEMA.with_field(SCHEMA.empty(), "stars", 4)
        r = SCHEMA.with_field(r, "comment", "fine")
        r2 = SCHEMA.with_field(r, "accuracy", 2)
        assert r2.scores == {"stars": 4, "accuracy": 2}
        assert r2.text == "fine"

    def test_does_not_mutate_input(self):
        original = SCHEMA.empty()
        SCHEMA.with_field(original, "stars", 5)
        assert original.scores["stars"] == 0

    @pytest.mark.parametrize(
        "value,expected",
        [
            (9, 5), (5, 5), (3, 3), (0, 0), (-2, 0), ("4", 4), (2.7, 2), ("4.5", 4), (" 3.0 ", 3),
            ("abc", 0), (None, 0), ("nan", 0), (float("inf"), 0),
        ],
    )
    def test_metric_values_are_clamped(self, value, expected):
        assert SCHEMA.with_field(SCHEMA.empty(), "stars", value).score("stars") == expected

    def test_clamps_to_low_bound_when_below(self):
        spec = MetricSpec("x", low=2, high=4)
        assert spec.clamp(1) == 2

    def test_text_none_becomes_empty_string(self):
        r = SCHEMA.with_field(SCHEMA.with_field(SCHEMA.empty(), "comment", "x"), "comment", None)
        assert r.text == ""

    def test_unknown_field_raises(self):
        with pytest.raises(UnknownField) as exc:
            SCHEMA.with_field(SCHEMA.empty(), "speed", 3)
        assert "speed" in str(exc.value)
        assert "stars" in str(exc.value)


class TestValidity:
    def test_in_range_int_is_valid(self):
        assert SCHEMA.is_valid("stars", 5)
        assert SCHEMA.is_valid("accuracy", 1)

    @pytest.mark.parametrize("value", [0, 6, -1, "3", 3.0, None, True])
    def test_other_values_are_not_valid(self, value):
        assert not SCHEMA.is_valid("stars", value)

    def test_unknown_key_is_not_valid(self):
        assert not SCHEMA.is_valid("speed", 3)


class TestSchema:
    def test_duplicate_metric_keys_rejected(self):
        with pytest.raises(ValueError):
            RatingSchema(metrics=(MetricSpec("stars"), MetricSpec("stars")))

    def test_text_key_clash_rejected(self):
        with pytest.raises(ValueError):
            RatingSchema(metrics=(MetricSpec("comment"),), text_key="comment")

    def test_bad_range_rejected(self):
        with pytest.raises(ValueError):
            RatingSchema(metrics=(MetricSpec("stars", low=0, high=5),))

    def test_dict_shape(self):
        r = SCHEMA.with_field(SCHEMA.empty(), "stars", 3)
        assert SCHEMA.rating_to_dict(r) == {"stars": 3, "accuracy": 0, "comment": ""}

    def test_from_dict_tolerates_missing_and_bad_values(self):
        r = SCHEMA.rating_from_dict({"stars": 12, "comment": 7, "extra": 1})
        assert r.scores == {"stars": 5, "accuracy": 0}
        assert r.text == ""

    def test_schema_from_config(self):
        schema = schema_from_config(
            {"metrics": ["stars", {"key": "tone", "low": 1, "high": 3}], "text_field": "ideal_response"}
        )
        assert schema.metric_keys == ["stars", "tone"]
        assert schema.metric("tone").high == 3
        assert schema.field_keys == ["stars", "tone", "ideal_response"]

    def test_schema_from_config_requires_a_metric(self):
        with pytest.raises(ValueError):
            schema_from_config({"metrics": []})
