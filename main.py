#!/usr/bin/env python3
"""
BountyScope - Bug bounty code search cross-referencing

Main entry point for the CLI.

Usage:
    python main.py list --verbose
    python main.py search "delegatecall"
    python main.py search "unchecked" --repo aave/aave-v3-core
    python main.py search "ecrecover" --full --language solidity --exact
"""

import asyncio
import json
import logging
import os
import re
import sys
from pathlib import Path
from typing import Optional

import click
import structlog
from rich.console import Console
from rich.markup import escape
from rich.table import Table

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from bountyscope import __version__
from bountyscope.catalog import BountyCatalog, CatalogError
from bountyscope.core.config import ConfigError, SearchSettings
from bountyscope.integrated_search import IntegratedSearch
from bountyscope.reporting import ResultFormatter
from bountyscope.searchers import RepositorySearcher


REPO_SPEC_PATTERN = re.compile(r"\A[a-zA-Z0-9._-]+/[a-zA-Z0-9._-]+\Z")

console = Console()


def configure_logging(verbose: bool):
    """Structured logs go to stderr so stdout stays readable"""
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def load_settings(config_path: Optional[str], **overrides) -> SearchSettings:
    try:
        settings = SearchSettings.from_yaml(Path(config_path) if config_path else None)
        overrides = {key: value for key, value in overrides.items() if value is not None}
        return settings.with_overrides(**overrides) if overrides else settings
    except ConfigError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        sys.exit(1)


def require_token(query: str, repo: Optional[str], full: bool) -> str:
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    console.print("[bold red]Error:[/bold red] GITHUB_TOKEN environment variable is required for search mode")
    console.print("Please set your GitHub token:")
    console.print("  export GITHUB_TOKEN=your_github_token_here\n")
    console.print("Or run with the token:")
    if repo:
        console.print(f"  GITHUB_TOKEN=your_token bountyscope search '{query}' --repo {repo}", markup=False)
    elif full:
        console.print(f"  GITHUB_TOKEN=your_token bountyscope search '{query}' --full", markup=False)
    else:
        console.print(f"  GITHUB_TOKEN=your_token bountyscope search '{query}'", markup=False)
    sys.exit(1)


config_option = click.option(
    "--config", "config_path", type=click.Path(exists=True, dir_okay=False),
    help="YAML settings file",
)
verbose_logs_option = click.option(
    "--debug", is_flag=True, help="Show structured debug logs on stderr",
)


@click.group()
@click.version_option(version=__version__, prog_name="BountyScope")
def cli():
    """
    BountyScope - Bug bounty code search

    Lists qualifying bug bounty programs and searches their code.
    """
    pass


@cli.command("list")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed reward and asset information")
@config_option
@verbose_logs_option
def list_programs(verbose: bool, config_path: Optional[str], debug: bool):
    """List qualifying bug bounty programs."""
    configure_logging(debug)
    settings = load_settings(config_path)
    formatter = ResultFormatter(console, settings)

    console.print(
        f"Bug bounty search for {', '.join(settings.target_languages).upper()} programs"
    )
    console.print(
        f"Filtering for blockchain/DLT and smart contract bounties >${settings.min_bounty:,}\n"
    )

    async def run():
        async with BountyCatalog(settings) as catalog:
            projects = await catalog.fetch_projects()
            return await catalog.filter_projects_by_criteria(projects)

    try:
        programs = asyncio.run(run())
    except CatalogError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        sys.exit(1)

    for program in programs:
        formatter.display_project(program, verbose)


@cli.command()
@click.argument("query")
@click.option("--repo", "-r", metavar="OWNER/REPO", help="Search one specific repository")
@click.option("--full", "-f", is_flag=True, help="Run global and high-value repository phases")
@click.option("--language", "-l", help="Restrict the search to one language")
@click.option("--exact", is_flag=True, help="Search for the query as an exact phrase")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Save matches to a JSON file")
@click.option("--wait-on-rate-limit", is_flag=True,
              help="Wait for the quota to reset instead of pausing the scan")
@click.option("--cache-max-age", type=float, default=None, metavar="HOURS",
              help="Reuse completed scan results younger than this")
@config_option
@verbose_logs_option
def search(
    query: str,
    repo: Optional[str],
    full: bool,
    language: Optional[str],
    exact: bool,
    output: Optional[str],
    wait_on_rate_limit: Optional[bool],
    cache_max_age: Optional[float],
    config_path: Optional[str],
    debug: bool,
):
    """
    Search code and cross-reference it with bug bounty programs.

    Example:
        python main.py search "delegatecall"
        python main.py search "unchecked" --repo aave/aave-v3-core
    """
    configure_logging(debug)

    if not query.strip():
        console.print("[bold red]Error:[/bold red] Search query is required for search mode")
        sys.exit(1)

    if repo and full:
        console.print("[bold red]Error:[/bold red] --repo and --full flags cannot be used together")
        console.print("Use --repo for single repository search, or --full for comprehensive search")
        sys.exit(1)

    if repo and not REPO_SPEC_PATTERN.match(repo):
        console.print("[bold red]Error:[/bold red] Repository must be in OWNER/REPO format")
        console.print("Example: --repo wormhole-foundation/wormhole")
        sys.exit(1)

    settings = load_settings(
        config_path,
        wait_on_rate_limit=wait_on_rate_limit or None,
        cache_max_age_hours=cache_max_age,
    )

    if language and language.lower() not in settings.search_languages:
        console.print(
            f"[bold red]Error:[/bold red] --language must be one of: {', '.join(settings.search_languages)}"
        )
        sys.exit(1)
    language = language.lower() if language else None

    token = require_token(query, repo, full)

    try:
        matches = asyncio.run(run_search(query, repo, full, language, exact, settings, token))
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Search interrupted by user - the last checkpoint will be resumed[/yellow]")
        sys.exit(1)
    except CatalogError as e:
        console.print(f"\n[bold red]Error:[/bold red] {escape(str(e))}")
        sys.exit(1)

    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump([match.to_dict() for match in matches], f, indent=2)
        console.print(f"\n[green]Results saved to:[/green] {output_path}")


async def run_search(
    query: str,
    repo: Optional[str],
    full: bool,
    language: Optional[str],
    exact: bool,
    settings: SearchSettings,
    token: str,
):
    """
    Run a single-repository or multi-phase search and render it.
    """
    formatter = ResultFormatter(console, settings)

    async with IntegratedSearch(token=token, settings=settings) as pipeline:
        formatter.display_rate_limit_status(await pipeline.searcher.get_rate_limit_status())
        console.print()

        if repo:
            console.print(f"Searching repository {repo} for: {escape(query)}\n")
            report = await pipeline.search_repository(query, repo, language=language, exact=exact)
            outcome = report.single_outcome
            if outcome is not None and outcome.is_rate_limited:
                console.print("[yellow]Search failed due to rate limiting[/yellow]")
            formatter.display_search_results(report.matches)
            return report.matches

        console.print(f"Searching GitHub for: {escape(query)}")
        console.print("Cross-referencing with bug bounty programs...\n")
        pipeline.subscribe(formatter.progress_observer)

        report = await pipeline.search(query, language=language, exact=exact, full=full)

        console.print("\n" + "=" * 80)
        console.print(pipeline.get_summary(report))

        if report.matches:
            table = Table(title="Matches by Repository")
            table.add_column("Repository", style="cyan", no_wrap=True)
            table.add_column("Matches", style="green", justify="right")
            for repository, count in formatter.summarize(report.matches).items():
                table.add_row(repository, str(count))
            console.print(table)
            console.print()

        formatter.display_search_results(report.matches)
        return report.matches


@cli.command("rate-limit")
@config_option
@verbose_logs_option
def rate_limit(config_path: Optional[str], debug: bool):
    """Show the remaining code search quota."""
    configure_logging(debug)
    settings = load_settings(config_path)
    token = require_token("", None, False)

    async def run():
        async with RepositorySearcher(token, settings) as searcher:
            return await searcher.get_rate_limit_status()

    ResultFormatter(console, settings).display_rate_limit_status(asyncio.run(run()))


if __name__ == '__main__':
    cli()
