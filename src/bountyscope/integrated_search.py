"""
Integrated Search - Multi-phase search pipeline.

1. Global code search per language, cross-referenced with bounty assets
2. Resumable scan of high-value bounty repositories (when phase 1 finds
   nothing, or always in full mode)

Usage:
    search = IntegratedSearch(token=token, settings=settings)
    report = await search.search("delegatecall")
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog

from .catalog import BountyCatalog, RepositoryFilter
from .core.config import SearchSettings
from .core.fingerprint import build_search_query
from .core.orchestrator import ScanOrchestrator, ScanResult
from .core.rate_limiter import DelayKind, RateBudget
from .models import Match, OutcomeKind, SearchOutcome, SearchUnit
from .searchers import RepositorySearcher


Observer = Callable[[str, Dict[str, Any]], None]


@dataclass
class SearchReport:
    """Everything one search invocation produced"""
    query: str
    matches: List[Match] = field(default_factory=list)
    phase1_hits: int = 0
    phase1_matches: List[Match] = field(default_factory=list)
    scan: Optional[ScanResult] = None
    single_outcome: Optional[SearchOutcome] = None

    @property
    def halted(self) -> bool:
        return self.scan is not None and not self.scan.is_complete


def merge_matches(*groups: List[Match]) -> List[Match]:
    """Concatenate match lists, dropping exact repeats"""
    merged = []
    seen = set()
    for group in groups:
        for match in group:
            key = (match.repository, match.file_path, match.sha, match.fragment)
            if key in seen:
                continue
            seen.add(key)
            merged.append(match)
    return merged


class IntegratedSearch:
    """
    Main search pipeline wiring catalog, searcher and orchestrator.

    Example:
        >>> pipeline = IntegratedSearch(token, settings)
        >>> report = await pipeline.search("delegatecall", full=True)
        >>> print(f"Found {len(report.matches)} matches")
    """

    def __init__(
        self,
        token: str,
        settings: Optional[SearchSettings] = None,
        catalog: Optional[BountyCatalog] = None,
        searcher: Optional[RepositorySearcher] = None,
        orchestrator: Optional[ScanOrchestrator] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            token: Bearer credential for the search API
            settings: Search settings
            catalog: Bounty catalog (created from settings if None)
            searcher: Code searcher (created from settings if None)
            orchestrator: Scan orchestrator (created from settings if None)
        """
        self.settings = settings or SearchSettings()
        self.rate_budget = RateBudget(self.settings)
        self.catalog = catalog or BountyCatalog(self.settings)
        self.searcher = searcher or RepositorySearcher(token, self.settings, rate_budget=self.rate_budget)
        self.orchestrator = orchestrator or ScanOrchestrator(
            self.searcher,
            settings=self.settings,
            rate_budget=self.rate_budget,
        )
        self.repository_filter = RepositoryFilter(self.settings)

        self.observers: List[Observer] = []
        self.logger = structlog.get_logger(__name__)
        self.search_id = f"search_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

    def subscribe(self, observer: Observer):
        """Receive phase events and the orchestrator's unit events"""
        self.observers.append(observer)
        self.orchestrator.subscribe(observer)

    def _notify_observers(self, event: str, data: Dict[str, Any]):
        for observer in self.observers:
            try:
                observer(event, data)
            except Exception as e:
                self.logger.error("observer_error", error=str(e))

    async def close(self):
        await self.searcher.close()
        await self.catalog.close()

    async def __aenter__(self) -> "IntegratedSearch":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def search(
        self,
        query: str,
        language: Optional[str] = None,
        exact: bool = False,
        full: bool = False,
    ) -> SearchReport:
        """
        Run the multi-phase search.

        Args:
            query: Unquoted query text
            language: Restrict both phases to one language
            exact: Search for the query as an exact phrase
            full: Run phase 2 even when phase 1 found bounty matches

        Returns:
            SearchReport with the combined matches
        """
        self.logger.info(
            "search_started",
            search_id=self.search_id,
            query=query,
            language=language,
            exact=exact,
            full=full,
        )
        report = SearchReport(query=query)

        # Phase 1: Global search
        report.phase1_matches = await self._phase_global(query, language, exact)
        report.phase1_hits = len(report.phase1_matches)

        # Phase 2: High-value repositories
        if full or not report.phase1_matches:
            report.scan = await self._phase_high_value(query, language, exact)
            report.matches = merge_matches(report.phase1_matches, report.scan.matches)
        else:
            report.matches = list(report.phase1_matches)

        self.logger.info(
            "search_complete",
            search_id=self.search_id,
            phase1=report.phase1_hits,
            total=len(report.matches),
        )
        return report

    async def _phase_global(
        self,
        query: str,
        language: Optional[str],
        exact: bool,
    ) -> List[Match]:
        """Phase 1: per-language global search, cross-referenced"""
        languages = [language] if language else list(self.settings.search_languages)
        search_query = build_search_query(query, exact)
        hits: List[Match] = []

        self._notify_observers("phase_started", {"phase": 1, "languages": languages})

        for index, lang in enumerate(languages):
            self._notify_observers("language_started", {
                "language": lang,
                "index": index + 1,
                "total": len(languages),
            })

            outcome = await self.searcher.search_global(search_query, lang)
            if outcome.kind is OutcomeKind.MATCHES:
                hits.extend(outcome.matches)
            elif outcome.is_rate_limited:
                self.logger.warning("global_search_rate_limited", language=lang, reset_at=outcome.reset_at)

            if index < len(languages) - 1:
                await self.rate_budget.fixed_delay(DelayKind.LANGUAGE)

        bounty_urls = self.catalog.load_bounty_repositories()
        cross_referenced = self.repository_filter.find_cross_referenced_results(hits, bounty_urls)

        self.logger.info(
            "phase_global_complete",
            hits=len(hits),
            cross_referenced=len(cross_referenced),
        )
        self._notify_observers("phase_finished", {
            "phase": 1,
            "hits": len(hits),
            "results": len(cross_referenced),
        })
        return cross_referenced

    async def _phase_high_value(
        self,
        query: str,
        language: Optional[str],
        exact: bool,
    ) -> ScanResult:
        """Phase 2: orchestrated scan of high-value bounty repositories"""
        projects = await self.catalog.fetch_projects()
        high_value = await self.catalog.get_high_value_projects_sorted(projects)
        units = self.repository_filter.extract_units_from_high_value_projects(high_value)

        self._notify_observers("phase_started", {"phase": 2, "units": len(units)})
        result = await self.orchestrator.run(query, units, language=language, exact=exact)
        self._notify_observers("phase_finished", {
            "phase": 2,
            "results": len(result.matches),
            "state": result.state.value,
        })
        return result

    async def search_repository(
        self,
        query: str,
        repo_spec: str,
        language: Optional[str] = None,
        exact: bool = False,
    ) -> SearchReport:
        """Search a single 'owner/repo' without caching or checkpoints"""
        unit = SearchUnit.from_spec(repo_spec)
        self.logger.info("repository_search_started", repository=unit.key, query=query)

        outcome = await self.searcher.search(build_search_query(query, exact), unit, language)
        report = SearchReport(query=query, single_outcome=outcome)
        if outcome.kind is OutcomeKind.MATCHES:
            report.matches = [
                match.with_bounty(f"Found in repository {unit.key}") for match in outcome.matches
            ]
        return report

    def get_summary(self, report: SearchReport) -> str:
        """
        Get human-readable summary of a search.

        Returns:
            Formatted summary string
        """
        summary = f"""
========================================
BountyScope Search Results
========================================
Search ID: {self.search_id}
Query: {report.query}

Phase 1 (global search):
  • Cross-referenced matches: {report.phase1_hits}
"""
        if report.scan is not None:
            summary += f"""
Phase 2 (high-value repositories):
  • Repositories searched: {report.scan.completed}/{report.scan.total}
  • State: {report.scan.state.value}
  • Matches: {len(report.scan.matches)}
"""
        summary += f"\nTotal matches: {len(report.matches)}\n"
        summary += "========================================\n"
        return summary
