"""init command — interactive setup wizard for a reviewer or a team.

Writes .callrate.yml with the reviewer identity, the transcript file and the
shared rating store. For a Gist store it creates the Gist through the GitHub
CLI so nobody has to touch the GitHub API by hand.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from pathlib import Path

import click
import yaml
from rich.console import Console

console = Console()
logger = logging.getLogger(__name__)

_GIST_FILENAME = "callrate_ratings.json"


@click.command("init")
@click.option(
    "--path",
    "config_out",
    default=".callrate.yml",
    show_default=True,
    help="Where to write the configuration file.",
)
def init_cmd(config_out: str):
    """Set up callrate for this directory.

    Creates .callrate.yml and, for team use, a shared GitHub Gist holding
    everyone's ratings.
    """
    console.print("\n[bold cyan]callrate init[/bold cyan] — setup wizard\n")

    reviewer = click.prompt("Reviewer identity", default=os.environ.get("USER") or "demo-user")
    transcripts = click.prompt("Transcript file", default="transcripts.json")
    if not Path(transcripts).exists():
        console.print(f"[yellow]{transcripts} does not exist yet — callrate will ask for it when you rate.[/yellow]")

    # --- Choose shared store ---
    console.print("\nShared rating store:")
    console.print("  [bold]none[/bold]    — ratings stay in the local cache (default)")
    console.print("  [bold]sqlite[/bold]  — SQLite file, e.g. on a shared drive")
    console.print("  [bold]gist[/bold]    — shared GitHub Gist, zero infrastructure (recommended for teams)")
    remote = click.prompt(
        "Store backend",
        type=click.Choice(["none", "sqlite", "gist"]),
        default="none",
    )

    config: dict = {"reviewer": reviewer, "transcripts": transcripts, "remote": remote}

    if remote == "sqlite":
        db_path = click.prompt("SQLite database path", default=".callrate.db")
        config["remote_path"] = db_path
        console.print(f"[green]SQLite rating store configured at {db_path}[/green]")

    elif remote == "gist":
        console.print(
            "\n[yellow]Note:[/yellow] the Gist store needs a token with [bold]gist[/bold] scope "
            "(CALLRATE_GITHUB_TOKEN, GITHUB_TOKEN or `gh auth login`)."
        )
        gist_id = click.prompt("Existing Gist ID (leave empty to create one)", default="", show_default=False)
        if not gist_id:
            gist_id = _create_team_gist()
        if gist_id:
            console.print(f"[green]Using rating Gist: {gist_id}[/green]")
            config["gist_id"] = gist_id
        else:
            config["remote"] = "none"
            console.print("[yellow]Gist creation failed — add gist_id manually to .callrate.yml[/yellow]")

    _write_config(config, Path(config_out))
    console.print(f"[green]Created {config_out}[/green]")

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("List calls with: [bold]callrate calls[/bold]")


def _create_team_gist() -> str | None:
    """Create a private Gist holding an empty rating table and return its ID."""
    try:
        # gh names Gist files after their path, so the temp file must carry
        # the exact name the store reads.
        with tempfile.TemporaryDirectory() as tmp_dir:
            named_path = os.path.join(tmp_dir, _GIST_FILENAME)
            Path(named_path).write_text("[]")
            result = subprocess.run(
                ["gh", "gist", "create", "--desc", "callrate shared ratings", named_path],
                capture_output=True,
                text=True,
                timeout=15,
            )
        if result.returncode == 0:
            gist_url = result.stdout.strip()
            return gist_url.rstrip("/").split("/")[-1]
        logger.warning("gh gist create failed: %s", result.stderr.strip())
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pass
    return None


def _write_config(config: dict, path: Path) -> None:
    """Write or update the config file, preserving any existing keys."""
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))
