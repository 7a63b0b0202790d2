"""calls / show commands — browse calls and their current ratings."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from callrate_cli.session import get_config, get_store, load_calls, require_call
from callrate_core.transcripts import rateable_turns

console = Console()


def _stars(value: int, high: int) -> str:
    if not value:
        return "[dim]unrated[/dim]"
    return f"[yellow]{'★' * value}[/yellow][dim]{'☆' * (high - value)}[/dim]"


@click.command("calls")
@click.option("--pending", is_flag=True, help="Only show calls not marked complete.")
@click.pass_context
def calls_cmd(ctx, pending: bool):
    """List calls with their rating progress."""
    config = get_config(ctx)
    store = get_store(ctx)
    calls = load_calls(ctx)
    author = config.get("rateable_author", "Assistant")

    table = Table(title=f"Calls — reviewer {store.identity}", show_header=True, header_style="bold cyan")
    table.add_column("Task", style="bold", width=6)
    table.add_column("Call ID", max_width=40)
    table.add_column("Turns", justify="right", width=6)
    table.add_column("Rated", justify="right", width=10)
    table.add_column("Done", width=6)

    shown = 0
    for index, call in enumerate(calls, start=1):
        done = store.is_call_flagged(call.call_id)
        if pending and done:
            continue
        rateable = {t.position for t in rateable_turns(call, author)}
        rated = len(rateable.intersection(store.rated_positions(call.call_id)))
        table.add_row(
            str(index),
            call.call_id,
            str(len(call)),
            f"{rated}/{len(rateable)}",
            "[green]✓[/green]" if done else "",
        )
        shown += 1

    if not shown:
        console.print("[yellow]No calls to show.[/yellow]")
        return
    console.print(table)


@click.command("show")
@click.option("--call", "call_id", required=True, help="Call identifier.")
@click.pass_context
def show_cmd(ctx, call_id: str):
    """Print a call's transcript with the current rating of each assistant turn."""
    config = get_config(ctx)
    store = get_store(ctx)
    call = require_call(load_calls(ctx), call_id)
    author = config.get("rateable_author", "Assistant")
    schema = store.schema

    status = " [green](complete)[/green]" if store.is_call_flagged(call.call_id) else ""
    console.print(f"\n[bold]{call.call_id}[/bold]{status}  [dim]{len(call)} turns[/dim]\n")

    for turn in call.turns:
        is_rateable = turn.author == author
        style = "bold blue" if is_rateable else "bold"
        console.print(f"[dim]{turn.position:>3}[/dim] [{style}]{turn.author.upper()}[/{style}]")
        console.print(f"    {escape(turn.text)}", highlight=False)
        if not is_rateable:
            continue
        rating = store.get_rating(call.call_id, turn.position)
        for metric in schema.metrics:
            console.print(f"    {metric.key}: {_stars(rating.score(metric.key), metric.high)}")
        if rating.text.strip():
            console.print(f"    {schema.text_key}: [italic]{escape(rating.text)}[/italic]", highlight=False)
