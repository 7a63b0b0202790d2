"""stats command — rating distribution and coverage."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from callrate_cli.session import get_config, get_store, load_calls
from callrate_core.transcripts import rateable_turns

console = Console()


@click.command("stats")
@click.pass_context
def stats_cmd(ctx):
    """Show how many assistant turns are rated and how scores are distributed.

    Useful for spotting calls nobody has reviewed yet and metrics that are
    consistently low.
    """
    config = get_config(ctx)
    store = get_store(ctx)
    calls = load_calls(ctx)
    author = config.get("rateable_author", "Assistant")
    schema = store.schema
    ratings = store.snapshot()

    total_turns = 0
    rated = []
    for call in calls:
        call_ratings = ratings.get(call.call_id, {})
        for turn in rateable_turns(call, author):
            total_turns += 1
            rating = call_ratings.get(turn.position)
            if rating is not None and not rating.is_empty():
                rated.append(rating)

    flags = store.flags_snapshot()
    completed = sum(1 for c in calls if flags.get(c.call_id))

    # --- Summary ---
    console.print(f"\n[bold]Rating stats for reviewer [cyan]{store.identity}[/cyan][/bold]")
    console.print(f"  Calls:            {len(calls)} ({completed} complete)")
    console.print(f"  {author} turns:  {total_turns}")
    pct = f"{len(rated) / total_turns * 100:.1f}%" if total_turns else "0%"
    console.print(f"  Rated turns:      {len(rated)} ({pct})")
    commented = sum(1 for r in rated if r.text.strip())
    console.print(f"  With {schema.text_key}:     {commented}")

    if not rated:
        console.print("[yellow]No ratings yet.[/yellow]")
        return

    # --- Per-metric distribution ---
    for metric in schema.metrics:
        counter: Counter[int] = Counter(r.score(metric.key) for r in rated)
        scored = sum(n for value, n in counter.items() if value)
        table = Table(title=f"{metric.key} distribution", show_header=True)
        table.add_column("Value", style="bold")
        table.add_column("Count", justify="right")
        table.add_column("% of scored", justify="right")
        for value in range(metric.high, metric.low - 1, -1):
            count = counter.get(value, 0)
            share = f"{count / scored * 100:.1f}%" if scored else "0%"
            table.add_row(str(value), str(count), share)
        table.add_row("[dim]unset[/dim]", str(counter.get(0, 0)), "")
        console.print(table)
        if scored:
            mean = sum(v * n for v, n in counter.items()) / scored
            console.print(f"  Mean {metric.key}: {mean:.2f}")
