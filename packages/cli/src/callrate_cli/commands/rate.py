"""rate / complete commands — edit ratings and call completion flags."""

from __future__ import annotations

import math

import click
from rich.console import Console
from rich.markup import escape

from callrate_cli.session import get_config, get_store, load_calls, require_call
from callrate_core.errors import UnknownField

console = Console()


def _parse_assignment(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise click.BadParameter(f"Expected key=value, got {text!r}", param_hint="--set")
    return key.strip(), value


def _parse_metric(key: str, text: str) -> float:
    try:
        number = float(text)
    except ValueError:
        number = math.nan
    if not math.isfinite(number):
        raise click.BadParameter(f"{key} must be a number, got {text!r}", param_hint="--set")
    return number


@click.command("rate")
@click.option("--call", "call_id", required=True, help="Call identifier.")
@click.option("--turn", "turn_position", type=int, required=True, help="0-based turn position within the call.")
@click.option(
    "--set",
    "assignments",
    multiple=True,
    required=True,
    metavar="FIELD=VALUE",
    help="Rating field to set, e.g. --set stars=4 --set comment='Too long'. Repeatable.",
)
@click.pass_context
def rate_cmd(ctx, call_id: str, turn_position: int, assignments: tuple[str, ...]):
    """Set rating fields on one assistant turn.

    Metric values must be numbers. Fractions are truncated, values outside
    the configured range are clamped, and 0 clears a metric. The edit is
    saved to the local cache and the shared store in the background.
    """
    config = get_config(ctx)
    store = get_store(ctx)
    call = require_call(load_calls(ctx), call_id)
    author = config.get("rateable_author", "Assistant")

    if not 0 <= turn_position < len(call):
        raise click.UsageError(f"Call {call_id!r} has turns 0..{len(call) - 1}, not {turn_position}.")
    turn = call.turns[turn_position]
    if turn.author != author:
        raise click.UsageError(f"Turn {turn_position} is authored by {turn.author}; only {author} turns are rated.")

    edits = [_parse_assignment(a) for a in assignments]
    schema = store.schema
    for key, _ in edits:
        if key not in schema.field_keys:
            raise click.UsageError(str(UnknownField(key, schema.field_keys)))
    edits = [(key, _parse_metric(key, value) if key in schema.metric_keys else value) for key, value in edits]

    rating = None
    for key, value in edits:
        rating = store.set_field(call_id, turn_position, key, value)

    parts = [f"{m.key}={rating.score(m.key)}" for m in schema.metrics]
    if rating.text:
        parts.append(f"{schema.text_key}={rating.text!r}")
    console.print(f"[green]Rated {call_id} turn {turn_position}:[/green] {escape(', '.join(parts))}", highlight=False)


@click.command("complete")
@click.option("--call", "call_id", required=True, help="Call identifier.")
@click.option("--undo", is_flag=True, help="Clear the completion mark instead of setting it.")
@click.pass_context
def complete_cmd(ctx, call_id: str, undo: bool):
    """Mark a call as completely reviewed (kept in the local cache only)."""
    store = get_store(ctx)
    require_call(load_calls(ctx), call_id)
    done = store.set_call_flag(call_id, not undo)
    state = "[green]complete[/green]" if done else "[yellow]not complete[/yellow]"
    console.print(f"{call_id} marked {state}")
