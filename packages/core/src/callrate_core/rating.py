"""Rating record model.

A Rating is the judgment attached to one assistant turn: an integer per
configured metric (0 means unset) plus one free-text field. The metric set is
configuration, described by a RatingSchema, so metrics can be added without
touching the merge or export logic.

Ratings are immutable; every update returns a new Rating.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from callrate_core.errors import UnknownField

DEFAULT_TEXT_KEY = "comment"
UNSET = 0


@dataclass(frozen=True)
class MetricSpec:
    """One metric field and its allowed range. 0 is always allowed as "unset"."""

    key: str
    low: int = 1
    high: int = 5

    def clamp(self, value: Any) -> int:
        """Coerce ``value`` into {0} ∪ [low, high], clamping to the nearest bound.

        Fractions truncate toward zero ("4.5" -> 4); values that are not
        numbers at all read as unset.
        """
        try:
            number = int(value)
        except (TypeError, ValueError, OverflowError):
            try:
                number = int(float(value))
            except (TypeError, ValueError, OverflowError):
                return UNSET
        if number <= 0:
            return UNSET
        return max(self.low, min(self.high, number))

    def is_valid(self, value: Any) -> bool:
        """True only for a set, in-range integer (bools and 0 are not valid)."""
        return isinstance(value, int) and not isinstance(value, bool) and self.low <= value <= self.high


@dataclass(frozen=True)
class Rating:
    """Immutable per-turn judgment. Missing metric keys read as 0."""

    scores: Mapping[str, int] = field(default_factory=dict)
    text: str = ""

    def score(self, key: str) -> int:
        return self.scores.get(key, UNSET)

    def is_empty(self) -> bool:
        return all(v == UNSET for v in self.scores.values()) and not self.text.strip()

    def copy(self) -> Rating:
        return Rating(scores=dict(self.scores), text=self.text)


def is_empty(rating: Rating | None) -> bool:
    """True when there is no rating or the rating carries no judgment."""
    return rating is None or rating.is_empty()


@dataclass(frozen=True)
class RatingSchema:
    """The configured set of rating fields."""

    metrics: tuple[MetricSpec, ...] = (MetricSpec("stars"),)
    text_key: str = DEFAULT_TEXT_KEY

    def __post_init__(self):
        keys = [m.key for m in self.metrics]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Duplicate metric keys: {keys}")
        if self.text_key in keys:
            raise ValueError(f"Text field {self.text_key!r} clashes with a metric key")
        for m in self.metrics:
            if m.low < 1 or m.high < m.low:
                raise ValueError(f"Metric {m.key!r} needs 1 <= low <= high, got {m.low}..{m.high}")

    @property
    def metric_keys(self) -> list[str]:
        return [m.key for m in self.metrics]

    @property
    def field_keys(self) -> list[str]:
        return self.metric_keys + [self.text_key]

    def metric(self, key: str) -> MetricSpec | None:
        for m in self.metrics:
            if m.key == key:
                return m
        return None

    def empty(self) -> Rating:
        return Rating(scores={m.key: UNSET for m in self.metrics}, text="")

    def with_field(self, rating: Rating, key: str, value: Any) -> Rating:
        """Return a copy of ``rating`` with one field replaced.

        Metric values are clamped, never rejected. Raises UnknownField for a
        key outside the schema.
        """
        scores = {m.key: rating.score(m.key) for m in self.metrics}
        if key == self.text_key:
            return Rating(scores=scores, text="" if value is None else str(value))
        spec = self.metric(key)
        if spec is None:
            raise UnknownField(key, self.field_keys)
        scores[key] = spec.clamp(value)
        return Rating(scores=scores, text=rating.text)

    def is_valid(self, key: str, value: Any) -> bool:
        spec = self.metric(key)
        return spec is not None and spec.is_valid(value)

    def normalize(self, rating: Rating) -> Rating:
        """Clamp every metric and drop keys the schema does not know."""
        return Rating(
            scores={m.key: m.clamp(rating.score(m.key)) for m in self.metrics},
            text=rating.text if isinstance(rating.text, str) else "",
        )

    def rating_to_dict(self, rating: Rating) -> dict:
        d: dict = {m.key: rating.score(m.key) for m in self.metrics}
        d[self.text_key] = rating.text
        return d

    def rating_from_dict(self, d: Mapping[str, Any]) -> Rating:
        text = d.get(self.text_key, "")
        return Rating(
            scores={m.key: m.clamp(d.get(m.key, UNSET)) for m in self.metrics},
            text=text if isinstance(text, str) else "",
        )


def schema_from_config(config: Mapping[str, Any]) -> RatingSchema:
    """Build the RatingSchema described by the ``metrics`` and ``text_field`` settings.

    Each metric entry is either a bare key or a mapping with ``key`` and
    optional ``low`` / ``high``.
    """
    metrics = []
    for entry in config.get("metrics") or []:
        if isinstance(entry, str):
            metrics.append(MetricSpec(entry))
        else:
            metrics.append(MetricSpec(str(entry["key"]), int(entry.get("low", 1)), int(entry.get("high", 5))))
    if not metrics:
        raise ValueError("At least one rating metric must be configured")
    return RatingSchema(metrics=tuple(metrics), text_key=str(config.get("text_field") or DEFAULT_TEXT_KEY))
