"""CLI entry point for callrate.

Commands:
  init      — interactive setup wizard (reviewer, shared store)
  calls     — list calls with rating progress
  show      — print one call with the current ratings of its assistant turns
  rate      — set rating fields on an assistant turn
  complete  — mark a call as done (or undo)
  export    — write transcripts annotated with the current ratings
  import    — apply ratings from a previously exported file
  stats     — rating distribution and coverage
"""

from __future__ import annotations

import importlib.metadata

import click
import yaml
from rich.console import Console

from callrate_cli.commands.calls import calls_cmd, show_cmd
from callrate_cli.commands.export import export_cmd, import_cmd
from callrate_cli.commands.init import init_cmd
from callrate_cli.commands.rate import complete_cmd, rate_cmd
from callrate_cli.commands.stats import stats_cmd

console = Console(stderr=True)


def _build_remote(config: dict, schema):
    """Instantiate the configured shared rating store from .callrate.yml settings.

    Store selection hierarchy:
      remote: gist   → GistRatingStore   (requires gist_id and a GitHub token)
      remote: sqlite → SQLiteRatingStore (uses remote_path or .callrate.db)
      (default)      → NoOpRatingStore   (local cache only)

    This factory lives in cli.py so neither callrate_core nor callrate_store
    know about the CLI config format.
    """
    from callrate_store.noop import NoOpRatingStore

    remote_type = config.get("remote") or "none"

    if remote_type == "gist":
        from callrate_store.gist import GistRatingStore

        gist_id = config.get("gist_id")
        token = config.get("github_token")
        if not gist_id or not token:
            console.print(
                "[yellow]Gist rating store requires gist_id and a GitHub token. "
                "Ratings will only be kept locally.[/yellow]"
            )
            return NoOpRatingStore()
        return GistRatingStore(
            gist_id=gist_id, token=token, metric_keys=schema.metric_keys, text_column=schema.text_key
        )

    if remote_type == "sqlite":
        from callrate_store.sqlite import SQLiteRatingStore

        return SQLiteRatingStore(
            db_path=config.get("remote_path") or ".callrate.db",
            metric_keys=schema.metric_keys,
            text_column=schema.text_key,
        )

    return NoOpRatingStore()


def _build_rating_store(config: dict):
    """Wire cache, shared store and reconciler together. Returns (store, backends)."""
    from callrate_core.persistence import RatingCache, RemoteSync
    from callrate_core.rating import schema_from_config
    from callrate_core.reconciler import RatingStore
    from callrate_store.cache import FileSlotCache
    from callrate_store.noop import NoOpRatingStore

    schema = schema_from_config(config)
    slots = FileSlotCache(config.get("cache_dir") or ".callrate/cache")
    backend = _build_remote(config, schema)
    remote = None if isinstance(backend, NoOpRatingStore) else RemoteSync(backend, schema)

    store = RatingStore(
        schema,
        cache=RatingCache(slots, schema),
        remote=remote,
        identity=str(config.get("reviewer") or "demo-user"),
    )
    return store, [slots, backend]


@click.group()
@click.version_option(
    version=importlib.metadata.version("callrate"),
    prog_name="callrate",
)
@click.option(
    "--config",
    "config_path",
    default=".callrate.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="CALLRATE_CONFIG",
)
@click.option("--reviewer", default=None, help="Reviewer identity. Overrides config file.")
@click.pass_context
def main(ctx: click.Context, config_path: str, reviewer: str | None):
    """Rate assistant turns in recorded calls and export annotated transcripts."""
    from callrate_core.config import load_config
    from callrate_cli.auth import resolve_github_token
    from callrate_cli.logging_setup import setup_logging

    ctx.ensure_object(dict)

    try:
        config = load_config(config_path, cli_overrides={"reviewer": reviewer})
    except (OSError, yaml.YAMLError) as e:
        raise click.UsageError(f"Could not read {config_path}: {e}")
    setup_logging(config)

    if config.get("remote") == "gist":
        token = resolve_github_token()
        if token:
            config["github_token"] = token

    try:
        store, backends = _build_rating_store(config)
    except ValueError as e:
        raise click.UsageError(str(e))
    store.load()

    def _close() -> None:
        finished = store.close(timeout=float(config.get("sync_timeout") or 10))
        for backend in backends:
            backend.close()
        if not finished:
            console.print("[yellow]Some rating updates were still being written when callrate exited.[/yellow]")
        elif store.failed_side_effects:
            console.print(
                f"[yellow]{store.failed_side_effects} rating update(s) could not be saved to the "
                "shared store or local cache. Re-run the edit to retry.[/yellow]"
            )

    ctx.obj["config"] = config
    ctx.obj["store"] = store
    ctx.call_on_close(_close)


main.add_command(init_cmd)
main.add_command(calls_cmd)
main.add_command(show_cmd)
main.add_command(rate_cmd)
main.add_command(complete_cmd)
main.add_command(export_cmd)
main.add_command(import_cmd)
main.add_command(stats_cmd)
