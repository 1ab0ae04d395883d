#!/usr/bin/env python3
"""
View and summarize analysis events from analysis_events.log.

Commands:
    main  - Recent events, filtered by profile and event type (default)
    stats - Outcome counts, cache and fallback rates
"""

import json
import sys
from collections import Counter
from typing import Optional

import typer

from elevate.utils.event_logging import get_recent_events
from elevate.utils.timestamp import format_timestamp

app = typer.Typer(
    add_completion=False,
    help="View recent analysis events",
)


@app.command()
def main(
    n: int = typer.Option(10, "--num", "-n", help="Number of recent events to show"),
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Filter to events for this profile"
    ),
    event_type: Optional[str] = typer.Option(
        None, "--event-type", "-e", help="Filter to events of this type (e.g., fallback_to_cache)"
    ),
    compact: bool = typer.Option(
        False, "--compact", "-c", help="Print one event per line (no pretty formatting)"
    ),
):
    """
    Show the last n events from the analysis log.

    Examples:\n

        $ python scripts/tail_log.py                      # Last 10 events

        $ python scripts/tail_log.py --num 20             # Last 20 events

        $ python scripts/tail_log.py -e error             # Last 10 failed runs

        $ python scripts/tail_log.py -n 5 -p jane-doe     # Last 5 events for one profile

        $ python scripts/tail_log.py -n 20 --compact      # Compact output (one line per event)
    """
    events = get_recent_events(n=n, profile_id=profile, event_type=event_type)

    if not events:
        typer.secho("No events found", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)

    if not compact:
        filters = []
        if profile:
            filters.append(f"profile={profile}")
        if event_type:
            filters.append(f"type={event_type}")

        suffix = f" [{', '.join(filters)}]" if filters else ""
        typer.secho(f"\nShowing last {len(events)} event(s){suffix}:", fg=typer.colors.BLUE)
        typer.echo("")

    for event in events:
        if compact:
            typer.echo(json.dumps(event))
        else:
            typer.secho(
                f"{format_timestamp(event.get('timestamp', ''))}  {event.get('event_type')}",
                bold=True,
            )
            typer.echo(json.dumps(event, indent=2))
            typer.echo("")


@app.command()
def stats(
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Only count events for this profile"
    ),
):
    """
    Summarize run outcomes recorded in the event log.

    Counts terminal events by type and reports how often runs were served
    from the cache or fell back to a previous analysis.

    Examples:\n

        $ python scripts/tail_log.py stats

        $ python scripts/tail_log.py stats -p jane-doe
    """
    events = get_recent_events(n=sys.maxsize, profile_id=profile)
    if not events:
        typer.secho("No events found", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)

    by_type = Counter(event.get("event_type") for event in events)
    completed = [e for e in events if e.get("event_type") == "complete"]
    fresh_scores = [
        e["content_score"]
        for e in completed
        if not e.get("from_cache") and e.get("content_score") is not None
    ]

    scope = f" for {profile}" if profile else ""
    typer.secho(f"\nAnalysis events{scope}", fg=typer.colors.BLUE, bold=True)
    typer.echo("=" * 80)
    for event_type, count in by_type.most_common():
        typer.echo(f"  {event_type:20} {count}")

    if completed:
        cached = sum(1 for e in completed if e.get("from_cache") and not e.get("fallback"))
        fallbacks = sum(1 for e in completed if e.get("fallback"))
        typer.echo("")
        typer.echo(f"  Runs completed:      {len(completed)}")
        typer.echo(f"  Served from cache:   {cached} ({cached / len(completed):.0%})")
        typer.echo(f"  Fallbacks:           {fallbacks} ({fallbacks / len(completed):.0%})")
    if fresh_scores:
        typer.echo(f"  Mean content score:  {sum(fresh_scores) / len(fresh_scores):.1f}/10")
    typer.echo("")


if __name__ == "__main__":
    # Default to 'main' so `tail_log.py -n 20` works without naming the command
    if len(sys.argv) == 1 or sys.argv[1].startswith("-"):
        sys.argv.insert(1, "main")
    app()
