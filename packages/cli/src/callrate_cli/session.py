"""Helpers shared by the commands: config, rating store and transcripts from the click context."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from callrate_core.errors import SourceUnavailable
from callrate_core.transcripts import Call, find_call, load_transcripts

if TYPE_CHECKING:
    from callrate_core.reconciler import RatingStore


def get_config(ctx: click.Context) -> dict:
    return (ctx.obj or {}).get("config") or {}


def get_store(ctx: click.Context) -> RatingStore:
    store = (ctx.obj or {}).get("store")
    if store is None:
        raise click.UsageError("No rating store available. Run callrate through its main command.")
    return store


def load_calls(ctx: click.Context) -> list[Call]:
    """Load transcripts, turning SourceUnavailable into a user-visible error."""
    path = get_config(ctx).get("transcripts") or "transcripts.json"
    try:
        calls = load_transcripts(path)
    except SourceUnavailable as e:
        raise click.ClickException(f"{e}\nNothing to rate. Set 'transcripts' in .callrate.yml.")
    if not calls:
        raise click.ClickException(f"No calls found in {path}.")
    return calls


def require_call(calls: list[Call], call_id: str) -> Call:
    call = find_call(calls, call_id)
    if call is None:
        raise click.UsageError(f"Unknown call id {call_id!r}. Run `callrate calls` to list them.")
    return call
