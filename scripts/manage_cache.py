#!/usr/bin/env python3
"""
Command-line interface for managing the analysis cache.

The analysis cache (outs/cache/analysis.db by default) holds one result per
content fingerprint. Entries never expire; this script lists, shows and
clears them.

Commands:
    list  - List cached analyses (optionally for one profile)
    show  - Show the latest cached analysis for a profile
    clear - Remove cached analyses
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

from elevate.contexts.analysis.cache_store import SQLiteCacheStore
from elevate.utils.timestamp import epoch_millis, format_cache_age, format_timestamp

load_dotenv()
ANALYSIS_CACHE_PATH = Path(os.getenv("ANALYSIS_CACHE_PATH", "outs/cache/analysis.db"))

app = typer.Typer(
    add_completion=False,
    help="Manage the analysis cache",
    invoke_without_command=True,
)


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("list")
def list_command(
    profile_id: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Only list entries for this profile"
    ),
):
    """
    List cached analyses, most recent first.

    Examples:\n

        $ manage_cache.py list

        $ manage_cache.py list -p jane-doe
    """
    store = SQLiteCacheStore(ANALYSIS_CACHE_PATH)
    entries = [e for e in store.entries() if profile_id is None or e.profile_id == profile_id]

    if not entries:
        typer.secho("No cached analyses", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)

    typer.secho(f"\n{len(entries)} cached analysis(es):", fg=typer.colors.BLUE)
    typer.echo("")
    current = epoch_millis()
    for entry in entries:
        score = entry.analysis.content_score
        score_str = "n/a" if score is None else f"{score}/10"
        typer.echo(
            f"  {entry.fingerprint[:12]}  {entry.profile_id:20} "
            f"completeness {entry.analysis.completeness:>3}%  content {score_str:>6}  "
            f"({format_cache_age(current - entry.stored_at)} old)"
        )
    typer.echo("")


@app.command("show")
def show_command(
    profile_id: str = typer.Argument(..., help="Profile identifier"),
):
    """
    Show the latest cached analysis for a profile as JSON.

    Examples:\n

        $ manage_cache.py show jane-doe
    """
    result = SQLiteCacheStore(ANALYSIS_CACHE_PATH).latest(profile_id)
    if result is None:
        typer.secho(f"No cached analysis for '{profile_id}'", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)

    typer.secho(
        f"\nLatest analysis for {profile_id} ({format_timestamp(result.timestamp)}):",
        fg=typer.colors.BLUE,
    )
    typer.echo(json.dumps(result.to_dict(), indent=2))


@app.command("clear")
def clear_command(
    profile_id: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Only clear entries for this profile"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """
    Remove cached analyses.

    Examples:\n

        $ manage_cache.py clear -p jane-doe

        $ manage_cache.py clear --yes      # Everything, no prompt
    """
    scope = f"profile '{profile_id}'" if profile_id else "ALL profiles"
    if not yes and not typer.confirm(f"Clear cached analyses for {scope}?"):
        typer.echo("Aborted")
        raise typer.Exit()

    removed = SQLiteCacheStore(ANALYSIS_CACHE_PATH).clear(profile_id)
    typer.secho(f"✓ Removed {removed} cached analysis(es)", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
