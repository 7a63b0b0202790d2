"""export / import commands — annotated transcript files."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console

from callrate_cli.session import get_config, get_store, load_calls, require_call
from callrate_core.export import (
    build_annotated,
    default_export_filename,
    export_for_call,
    ratings_from_annotated,
    write_export,
)
from callrate_core.transcripts import find_call

console = Console(stderr=True)


@click.command("export")
@click.option("--call", "call_id", default=None, help="Export only this call. Omit to export all calls.")
@click.option(
    "--out",
    "out_path",
    default=None,
    help="Output file ('-' for stdout). Defaults to annotated_<call>.json or annotated_transcripts_all_calls.json.",
)
@click.pass_context
def export_cmd(ctx, call_id: str | None, out_path: str | None):
    """Write transcripts annotated with the current ratings.

    Waits (up to sync_timeout seconds) for the shared store to answer so the
    export includes ratings made elsewhere; if it does not, local ratings are
    exported.
    """
    config = get_config(ctx)
    store = get_store(ctx)
    calls = load_calls(ctx)

    result = store.wait_for_remote(timeout=float(config.get("sync_timeout") or 10))
    if result is not None and not result.ok:
        console.print(f"[yellow]Shared store unavailable ({result.error}); exporting local ratings only.[/yellow]")

    kwargs = {
        "schema": store.schema,
        "rateable_author": config.get("rateable_author", "Assistant"),
        "prefix": config.get("export_prefix", "rating_"),
    }
    ratings = store.snapshot()
    if call_id is not None:
        require_call(calls, call_id)
        document = export_for_call(calls, ratings, call_id, **kwargs)
    else:
        document = build_annotated(calls, ratings, **kwargs)

    if out_path == "-":
        click.echo(json.dumps(document, indent=2, ensure_ascii=False))
        return
    path = write_export(document, out_path or default_export_filename(call_id))
    console.print(f"[green]Wrote {path}[/green]")


@click.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_cmd(ctx, path: Path):
    """Apply the ratings found in an annotated export file.

    Each imported field counts as a local edit: it is written to the cache
    and the shared store like any other rating change.
    """
    config = get_config(ctx)
    store = get_store(ctx)
    calls = load_calls(ctx)
    author = config.get("rateable_author", "Assistant")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}")
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise click.ClickException(f"{path} must contain an annotated call or a list of them.")

    schema = store.schema
    imported = ratings_from_annotated(
        [d for d in data if isinstance(d, dict)], schema, prefix=config.get("export_prefix", "rating_")
    )

    applied = skipped = 0
    for call_id, turns in imported.items():
        call = find_call(calls, call_id)
        for position, rating in sorted(turns.items()):
            if call is None or position >= len(call) or call.turns[position].author != author:
                skipped += 1
                continue
            for key, value in schema.rating_to_dict(rating).items():
                store.set_field(call_id, position, key, value)
            applied += 1

    console.print(f"[green]Imported {applied} rating(s) from {path}[/green]")
    if skipped:
        console.print(f"[yellow]Skipped {skipped} rating(s) for unknown calls or non-{author} turns.[/yellow]")
