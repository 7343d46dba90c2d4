"""
Searchers module - Code search against the external search API.

- RepositorySearcher: repository-scoped and global code search
- SearchUnit / Match / SearchOutcome: data exchanged with the orchestrator
"""

from ..models import Match, OutcomeKind, SearchOutcome, SearchUnit, TextSpan
from .github_searcher import RepositorySearcher, SearchResponse, parse_items


__all__ = [
    # Searcher
    "RepositorySearcher",
    "SearchResponse",
    "parse_items",
    # Data structures
    "SearchUnit",
    "Match",
    "TextSpan",
    "SearchOutcome",
    "OutcomeKind",
]
