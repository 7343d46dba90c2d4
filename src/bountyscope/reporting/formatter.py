"""
Result Formatter - Terminal rendering of programs, matches and progress.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax

from ..catalog import QualifyingProgram
from ..core.config import SearchSettings
from ..models import Match, OutcomeKind


def format_currency(amount: Optional[int]) -> str:
    """Thousands-separated amount, 'N/A' when unknown"""
    if amount is None:
        return "N/A"
    return f"{int(amount):,}"


class ResultFormatter:
    """Renders listings and search output with rich"""

    def __init__(self, console: Optional[Console] = None, settings: Optional[SearchSettings] = None):
        self.console = console or Console()
        self.settings = settings or SearchSettings()

    def display_project(self, program: QualifyingProgram, verbose: bool = False):
        matching = [lang for lang in self.settings.target_languages if lang in program.languages]
        language_display = ", ".join(lang.upper() for lang in matching)
        name = program.program.get("project", "")
        url = self.settings.bounty_page_url.format(project_id=program.program.get("id", ""))

        if not verbose:
            self.console.print(
                f"[bold]{escape(name)}[/bold] {escape('[' + language_display + ']')} - "
                f"${format_currency(program.max_bounty)} ({len(program.target_assets)} assets)",
                markup=True,
                highlight=False,
            )
            self.console.print(f"  {url}\n")
            return

        self.console.print("=" * 60)
        self.console.print(f"[bold cyan]PROJECT:[/bold cyan] {escape(name)} {escape('[' + language_display + ']')}")
        self.console.print(f"URL: {url}")
        self.console.print(f"Max Bounty: ${format_currency(program.max_bounty)}")
        self.console.print("=" * 60)

        self.console.print("\n[bold]BOUNTIES:[/bold]")
        for reward in program.target_rewards:
            asset_type = "Blockchain/DLT" if reward.get("assetType") == "blockchain_dlt" else "Smart Contract"
            min_reward = format_currency(reward.get("minReward")) if reward.get("minReward") else "0"
            self.console.print(
                f"  • {asset_type}: ${min_reward} - ${format_currency(reward.get('maxReward'))} "
                f"({reward.get('severity', 'unknown')})"
            )

        self.console.print("\n[bold]ASSETS:[/bold]")
        for asset in program.target_assets:
            self.console.print(f"  • {asset.get('description', '')}")
            self.console.print(f"    Type: {asset.get('type')}")
            self.console.print(f"    URL: {asset.get('url')}\n")
        self.console.print()

    def display_search_results(self, matches: List[Match]):
        if not matches:
            self.display_no_results_message()
            return

        for match in matches:
            self.display_single_result(match)

    def display_single_result(self, match: Match):
        self.console.print("=" * 60)
        self.console.print(
            f"[bold green]BOUNTY MATCH:[/bold green] {match.repository} ({match.language.upper()})"
        )
        self.console.print(f"File: {match.file_path}")
        self.console.print(f"GitHub: {match.file_url}")
        if match.matching_bounty:
            self.console.print(f"Bounty: {match.matching_bounty}")
        self.console.print("-" * 40)

        if match.spans:
            self.console.print("Matched text:")
            for span in match.spans:
                self.console.print(f'  - "{span.text}"', markup=False)

        if match.fragment:
            self.console.print("Code fragment:")
            lexer = match.language if match.language != "unknown" else "text"
            self.console.print(Syntax(match.fragment, lexer, word_wrap=True))
        self.console.print()

    def display_no_results_message(self):
        languages = ", ".join(self.settings.target_languages)
        self.console.print("[yellow]No matches found in bounty repositories.[/yellow]")
        self.console.print("This could mean:")
        self.console.print("- The search term doesn't exist in any accessible bounty repositories")
        self.console.print("- The search term uses different syntax or casing")
        self.console.print(f"- The repositories don't contain the pattern in target languages ({languages})")

    def display_rate_limit_status(self, status: Optional[Dict[str, int]]):
        if status is None:
            self.console.print("[dim]Note: Could not check GitHub rate limit status[/dim]")
            return

        self.console.print(
            f"GitHub API Status: {status['remaining']}/{status['limit']} search requests remaining"
        )
        if status["remaining"] < len(self.settings.search_languages):
            reset = datetime.fromtimestamp(status["reset"]).strftime("%H:%M:%S")
            self.console.print(f"[yellow]Warning: Low rate limit remaining. Reset at {reset}[/yellow]")

    def progress_observer(self, event: str, data: Dict[str, Any]):
        """Observer printing one line per scan event"""
        if event == "language_started":
            self.console.print(
                f"Searching {data['language'].upper()} repositories... ({data['index']}/{data['total']})"
            )
        elif event == "phase_started" and data["phase"] == 2:
            self.console.print(
                f"\n[bold]Phase 2:[/bold] searching {data['units']} high-value bounty repositories "
                "(sorted by bounty size)\n"
            )
        elif event == "cache_hit":
            self.console.print(
                f"[green]Using cached results from {data['cached_at']:%Y-%m-%d %H:%M:%S} "
                f"({data['results']} results)[/green]"
            )
        elif event == "scan_resumed":
            self.console.print(
                f"[cyan]Resuming scan: {data['completed']} repositories done, "
                f"{data['remaining']} remaining ({data['results']} results so far)[/cyan]"
            )
        elif event == "unit_started":
            unit = data["unit"]
            self.console.print(
                f"{data['index']}. Searching {unit.key} "
                f"(${format_currency(unit.bounty_amount)} - {unit.project_name or 'n/a'})... ",
                end="",
                highlight=False,
            )
        elif event == "unit_finished":
            self.console.print(self._outcome_line(data["outcome"]), highlight=False)
        elif event == "rate_limited":
            suffix = "waiting for reset" if data["waiting"] else "stopping"
            self.console.print(f"[yellow]Rate limited - {suffix}[/yellow]")
        elif event == "scan_halted":
            self.console.print(
                f"\n[yellow]Scan paused at {data['completed']}/{data['total']} repositories "
                f"({data['results']} results). Run the same search again to resume.[/yellow]"
            )
        elif event == "scan_completed":
            self.console.print(
                f"\nPhase 2 completed. Found {data['results']} total matches in high-value repositories."
            )

    @staticmethod
    def _outcome_line(outcome) -> str:
        if outcome.kind is OutcomeKind.MATCHES:
            return f"[green]✓ Found {len(outcome.matches)} matches[/green]"
        if outcome.kind is OutcomeKind.SKIPPED_INACCESSIBLE:
            return f"[dim]- Skipped ({outcome.reason})[/dim]"
        return "[dim]✗ No matches[/dim]"

    def summarize(self, matches: Iterable[Match]) -> Dict[str, int]:
        """Match counts per repository"""
        counts: Dict[str, int] = {}
        for match in matches:
            counts[match.repository] = counts.get(match.repository, 0) + 1
        return counts
