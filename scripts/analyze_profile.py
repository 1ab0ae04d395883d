#!/usr/bin/env python3
"""
Command-line interface for analyzing profile exports.

Commands:
    run       - Analyze a profile export (completeness + optional AI evaluation)
    check-key - Validate the API key for a provider
"""

import asyncio
import json
import os
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from typing_extensions import Annotated

from elevate.contexts.analysis.cache_store import SQLiteCacheStore
from elevate.contexts.analysis.config import load_analysis_config
from elevate.contexts.analysis.data_structures import AnalysisResult
from elevate.contexts.analysis.exceptions import AnalysisFailedError
from elevate.contexts.analysis.logger import setup_analysis_logger
from elevate.contexts.analysis.orchestrator import ProfileAnalyzer
from elevate.contexts.analysis.presenters import LoggingPresenter
from elevate.contexts.intake.extractors import load_profile_export
from elevate.utils.credentials import EnvCredentialStore
from elevate.utils.llm import SUPPORTED_PROVIDERS, check_api_key, get_provider
from elevate.utils.rate_limiter import RateLimiter
from elevate.utils.timestamp import now

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))
ANALYSIS_CACHE_PATH = Path(os.getenv("ANALYSIS_CACHE_PATH", "outs/cache/analysis.db"))

app = typer.Typer(
    add_completion=False,
    help="Analyze profile exports",
    invoke_without_command=True,
)


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _print_result(result: AnalysisResult) -> None:
    if result.fallback:
        typer.secho("⚠ Showing previous analysis (fallback)", fg=typer.colors.YELLOW)
    elif result.from_cache:
        typer.secho("✓ Loaded from cache", fg=typer.colors.GREEN)

    typer.secho(f"\nProfile: {result.profile_id}", fg=typer.colors.BLUE, bold=True)
    typer.echo("=" * 80)
    typer.echo(f"Completeness:  {result.completeness}%")
    score = "n/a" if result.content_score is None else f"{result.content_score}/10"
    typer.echo(f"Content score: {score}")

    if result.section_scores:
        typer.echo("\nSections:")
        for name, section in result.section_scores.items():
            if not section.exists:
                status = "missing"
            elif section.error:
                status = f"not evaluated ({section.error.value})"
            else:
                status = "n/a" if section.score is None else f"{section.score}/10"
            typer.echo(f"  {name:18} {status}")

    buckets = result.recommendations
    for label, recs, color in (
        ("Critical", buckets.critical, typer.colors.RED),
        ("Important", buckets.important, typer.colors.YELLOW),
        ("Nice to have", buckets.nice_to_have, typer.colors.WHITE),
    ):
        if recs:
            typer.secho(f"\n{label}:", fg=color, bold=True)
            for rec in recs:
                typer.echo(f"  • {rec.what}")
                if rec.how:
                    typer.echo(f"    {rec.how}")

    if result.insights:
        typer.secho("\nInsights:", bold=True)
        typer.echo(f"  {result.insights}")
    if result.note:
        typer.secho(f"\nNote: {result.note}", fg=typer.colors.YELLOW)
    if result.needs_reconfiguration:
        typer.secho("API key was rejected. Update it and run again.", fg=typer.colors.RED)
    typer.echo("")


@app.command("run")
def run_command(
    profile_file: Annotated[
        Path,
        typer.Argument(
            help="Profile export (YAML or JSON)",
        ),
    ],
    force_refresh: Annotated[
        bool,
        typer.Option(
            "--force-refresh",
            "-f",
            help="Ignore cached results for unchanged content",
        ),
    ] = False,
    no_ai: Annotated[
        bool,
        typer.Option(
            "--no-ai",
            help="Completeness only (no provider calls)",
        ),
    ] = False,
    provider: Annotated[
        Optional[str],
        typer.Option(
            "--provider",
            "-p",
            help=f"AI provider ({', '.join(SUPPORTED_PROVIDERS)})",
        ),
    ] = None,
    target_role: Annotated[
        Optional[str],
        typer.Option(
            "--role",
            "-r",
            help="Target role",
        ),
    ] = None,
    config_file: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Analysis config YAML (default: ANALYSIS_CONFIG_PATH)",
        ),
    ] = None,
    overrides: Annotated[
        Optional[List[str]],
        typer.Option(
            "--set",
            "-s",
            help="Config override (e.g., --set run_timeout_seconds=60)",
        ),
    ] = None,
    output_json: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Print the result as JSON",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show debug logging on the console",
        ),
    ] = False,
):
    """
    Analyze a profile export.

    Examples:\n

        $ analyze_profile.py run data/sample_profile.yaml

        $ analyze_profile.py run data/sample_profile.yaml --no-ai

        $ analyze_profile.py run data/sample_profile.yaml -p anthropic -r "Data Scientist" -f

        $ analyze_profile.py run data/sample_profile.yaml --set section_delay_seconds=0 --json
    """
    dotlist = list(overrides or [])
    if no_ai:
        dotlist.append("ai_enabled=false")
    if provider:
        dotlist.append(f"provider={provider.lower()}")
    if target_role:
        dotlist.append(f"target_role={target_role}")

    try:
        config = load_analysis_config(config_file, overrides=dotlist)
        export = load_profile_export(profile_file)
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"✗ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    log_dir = LOGS_PATH / f"analysis_{now()}"
    log_file = setup_analysis_logger(
        log_dir, provider=config.provider if config.ai_enabled else "none", verbose=verbose
    )

    analyzer = ProfileAnalyzer(
        extractors=export.extractors(),
        cache=SQLiteCacheStore(ANALYSIS_CACHE_PATH),
        rate_limiter=RateLimiter(),
        credentials=EnvCredentialStore(),
        presenter=LoggingPresenter(source="cli"),
    )

    try:
        result = asyncio.run(
            analyzer.run_analysis(export.profile_id, config, force_refresh=force_refresh)
        )
    except AnalysisFailedError as e:
        typer.secho(f"\n✗ Analysis failed: {e.message}", fg=typer.colors.RED, err=True)
        typer.echo(f"Log: {log_file}")
        raise typer.Exit(code=1)

    if output_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_result(result)
        typer.echo(f"Log: {log_file}")


@app.command("check-key")
def check_key_command(
    provider: str = typer.Argument(..., help=f"Provider ({', '.join(SUPPORTED_PROVIDERS)})"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model override"),
):
    """
    Validate the API key configured for a provider.

    Examples:\n

        $ analyze_profile.py check-key openai

        $ analyze_profile.py check-key anthropic --model claude-3-5-haiku-latest
    """
    provider = provider.lower()
    if provider not in SUPPORTED_PROVIDERS:
        typer.secho(f"✗ Unknown provider: {provider}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    api_key = EnvCredentialStore().get_api_key(provider)
    if not api_key:
        typer.secho(f"✗ No API key configured for {provider}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    valid, message = asyncio.run(check_api_key(get_provider(provider, api_key, model)))
    if valid:
        typer.secho(f"✓ {message}", fg=typer.colors.GREEN)
    else:
        typer.secho(f"✗ {message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
