"""
Scan Orchestrator - Drives a resumable, cached scan over many repositories.

State machine:

    CHECK_CACHE -> CACHE_HIT                               (no requests issued)
    CHECK_CACHE -> LOAD_PROGRESS -> ITERATING
    ITERATING   -> HALTED_ON_RATE_LIMIT  (progress persisted, resumable)
    ITERATING   -> COMPLETED             (results cached, progress discarded)

Units run strictly one at a time; the search API's quota is global, so
there is nothing to gain from overlapping requests.

Design Pattern: State Machine + Observer
"""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

import structlog

from ..models import Match, OutcomeKind, SearchUnit
from ..storage import ProgressStore, ResultCache
from .config import SearchSettings
from .fingerprint import build_search_query, scan_fingerprint
from .rate_limiter import DelayKind, RateBudget

if TYPE_CHECKING:
    from ..searchers.github_searcher import RepositorySearcher


class ScanState(Enum):
    """Orchestrator states"""
    IDLE = "idle"
    CHECK_CACHE = "check_cache"
    CACHE_HIT = "cache_hit"
    LOAD_PROGRESS = "load_progress"
    ITERATING = "iterating"
    HALTED_ON_RATE_LIMIT = "halted_on_rate_limit"
    COMPLETED = "completed"


@dataclass
class ScanResult:
    """Terminal result of one orchestrator run"""
    fingerprint: str
    state: ScanState
    matches: List[Match] = field(default_factory=list)
    completed: int = 0
    total: int = 0
    reset_at: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.state in (ScanState.CACHE_HIT, ScanState.COMPLETED)


def order_units(units: Sequence[SearchUnit]) -> List[SearchUnit]:
    """
    Deduplicate by owner/repo and sort by bounty, highest first.

    The sort is stable, so equal bounties keep their catalog order and
    every restart walks the units in the same sequence.
    """
    seen = set()
    unique = []
    for unit in units:
        if unit.key in seen:
            continue
        seen.add(unit.key)
        unique.append(unit)

    return sorted(unique, key=lambda unit: -(unit.bounty_amount or 0))


class ScanOrchestrator:
    """
    Coordinates cache, checkpoints, searcher and rate budget for one scan.

    Example:
        >>> orchestrator = ScanOrchestrator(searcher, settings=settings)
        >>> orchestrator.subscribe(print_progress)
        >>> result = await orchestrator.run("delegatecall", units)
    """

    def __init__(
        self,
        searcher: "RepositorySearcher",
        settings: Optional[SearchSettings] = None,
        rate_budget: Optional[RateBudget] = None,
        progress_store: Optional[ProgressStore] = None,
        result_cache: Optional[ResultCache] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            searcher: Executes one unit's search
            settings: Search settings (uses defaults if None)
            rate_budget: Pacing policy (shares the searcher's if None)
            progress_store: Resume checkpoints (under settings.cache_dir if None)
            result_cache: Completed results (under settings.cache_dir if None)
        """
        self.settings = settings or SearchSettings()
        self.searcher = searcher
        self.rate_budget = rate_budget or getattr(searcher, "rate_budget", None) or RateBudget(self.settings)
        self.progress_store = progress_store or ProgressStore(self.settings.cache_dir)
        self.result_cache = result_cache or ResultCache(
            self.settings.cache_dir,
            max_age=timedelta(hours=self.settings.cache_max_age_hours),
        )

        # State tracking
        self.state = ScanState.IDLE
        self.fingerprint: Optional[str] = None
        self.completed_units: List[str] = []
        self.matches: List[Match] = []
        self.total_units = 0

        self.logger = structlog.get_logger(__name__)

        # Observer pattern - callbacks
        self.observers: List[Callable[[str, Dict[str, Any]], None]] = []

    def subscribe(self, observer: Callable[[str, Dict[str, Any]], None]):
        """
        Subscribe to scan events.

        Args:
            observer: Callback receiving (event, data)
        """
        self.observers.append(observer)
        self.logger.debug("observer_subscribed", observer=getattr(observer, "__name__", repr(observer)))

    def _notify_observers(self, event: str, data: Dict[str, Any]):
        """Notify all observers of an event"""
        for observer in self.observers:
            try:
                observer(event, data)
            except Exception as e:
                self.logger.error(
                    "observer_error",
                    observer=getattr(observer, "__name__", repr(observer)),
                    error=str(e),
                )

    async def run(
        self,
        query: str,
        units: Sequence[SearchUnit],
        language: Optional[str] = None,
        exact: bool = False,
    ) -> ScanResult:
        """
        Run (or resume) a scan.

        Args:
            query: Unquoted query text
            units: Prioritized repositories to search
            language: Optional language filter
            exact: Search for the query as an exact phrase

        Returns:
            ScanResult with the accumulated matches and terminal state
        """
        self.fingerprint = scan_fingerprint(query, units, language, exact)
        ordered = order_units(units)
        self.total_units = len(ordered)

        self.state = ScanState.CHECK_CACHE
        cached = self.result_cache.load(self.fingerprint)
        if cached is not None:
            self.state = ScanState.CACHE_HIT
            self.matches = list(cached.results)
            self.completed_units = [unit.key for unit in ordered]
            self.logger.info("scan_cache_hit", fingerprint=self.fingerprint, results=len(self.matches))
            self._notify_observers("cache_hit", {
                "fingerprint": self.fingerprint,
                "cached_at": cached.cached_at,
                "results": len(self.matches),
            })
            return self._result()

        self.state = ScanState.LOAD_PROGRESS
        record = self.progress_store.load(self.fingerprint)
        self.completed_units = list(record.completed_units)
        self.matches = list(record.results)
        completed = set(self.completed_units)

        pending = [unit for unit in ordered if unit.key not in completed]
        if completed:
            self.logger.info(
                "scan_resumed",
                fingerprint=self.fingerprint,
                completed=len(completed),
                remaining=len(pending),
            )
            self._notify_observers("scan_resumed", {
                "completed": len(completed),
                "remaining": len(pending),
                "results": len(self.matches),
            })

        self.state = ScanState.ITERATING
        self.logger.info(
            "scan_started",
            fingerprint=self.fingerprint,
            units=self.total_units,
            pending=len(pending),
            language=language,
            exact=exact,
        )

        search_query = build_search_query(query, exact)
        reset_at = None
        since_checkpoint = 0

        for index, unit in enumerate(pending):
            position = self.total_units - len(pending) + index + 1
            self._notify_observers("unit_started", {
                "index": position,
                "total": self.total_units,
                "unit": unit,
            })

            outcome = await self.searcher.search(search_query, unit, language)
            reset_waits = 0
            while (
                outcome.is_rate_limited
                and self.settings.wait_on_rate_limit
                and outcome.reset_at
                and reset_waits < self.settings.transient_max_retries
            ):
                reset_waits += 1
                self._checkpoint()
                self._notify_observers("rate_limited", {"unit": unit, "reset_at": outcome.reset_at, "waiting": True})
                await self.rate_budget.wait_for_reset(outcome.reset_at)
                outcome = await self.searcher.search(search_query, unit, language)

            if outcome.is_rate_limited:
                reset_at = outcome.reset_at
                self._checkpoint()
                self.state = ScanState.HALTED_ON_RATE_LIMIT
                self._notify_observers("rate_limited", {"unit": unit, "reset_at": reset_at, "waiting": False})
                break

            self.completed_units.append(unit.key)
            completed.add(unit.key)
            if outcome.kind is OutcomeKind.MATCHES:
                self.matches.extend(outcome.matches)

            self._notify_observers("unit_finished", {
                "index": position,
                "total": self.total_units,
                "unit": unit,
                "outcome": outcome,
                "results": len(self.matches),
            })

            since_checkpoint += 1
            if since_checkpoint >= self.settings.checkpoint_interval:
                self._checkpoint()
                since_checkpoint = 0

            if index < len(pending) - 1:
                await self.rate_budget.fixed_delay(DelayKind.REPOSITORY)

        if all(unit.key in completed for unit in ordered):
            self.state = ScanState.COMPLETED
            self.result_cache.store(self.fingerprint, self.matches)
            self.progress_store.delete(self.fingerprint)
            self.logger.info(
                "scan_completed",
                fingerprint=self.fingerprint,
                units=self.total_units,
                results=len(self.matches),
            )
            self._notify_observers("scan_completed", {
                "total": self.total_units,
                "results": len(self.matches),
            })
        else:
            self.state = ScanState.HALTED_ON_RATE_LIMIT
            self.logger.warning(
                "scan_halted",
                fingerprint=self.fingerprint,
                completed=len(completed),
                total=self.total_units,
                reset_at=reset_at,
            )
            self._notify_observers("scan_halted", {
                "completed": len(completed),
                "total": self.total_units,
                "results": len(self.matches),
                "reset_at": reset_at,
            })

        return self._result(reset_at)

    def _checkpoint(self):
        """Persist completed units and accumulated matches"""
        self.progress_store.save(self.fingerprint, self.completed_units, self.matches)
        self._notify_observers("checkpoint", {
            "completed": len(self.completed_units),
            "results": len(self.matches),
        })

    def _result(self, reset_at: Optional[int] = None) -> ScanResult:
        return ScanResult(
            fingerprint=self.fingerprint,
            state=self.state,
            matches=list(self.matches),
            completed=len(self.completed_units),
            total=self.total_units,
            reset_at=reset_at,
        )

    def get_status(self) -> Dict[str, Any]:
        """
        Get current orchestrator status.

        Returns:
            Status dictionary
        """
        return {
            "fingerprint": self.fingerprint,
            "state": self.state.value,
            "completed": len(self.completed_units),
            "total": self.total_units,
            "results": len(self.matches),
        }
