"""Exceptions raised by callrate_core.

Cache and shared-store failures never appear here: they are recovered inside
the adapters and only logged. What remains is the one failure a reviewer must
see (no transcripts to show) and programming errors.
"""

from __future__ import annotations


class CallrateError(Exception):
    """Base class for callrate errors."""


class SourceUnavailable(CallrateError):
    """The transcript source could not be read or has the wrong shape."""


class UnknownField(CallrateError, KeyError):
    """A rating field key that is not part of the configured schema."""

    def __init__(self, key: str, known: list[str]):
        self.key = key
        self.known = known
        super().__init__(f"Unknown rating field {key!r}. Known fields: {', '.join(known)}")

    def __str__(self) -> str:
        return self.args[0]
