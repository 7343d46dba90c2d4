"""
Search data structures - units of work, matches and tagged outcomes.
"""

from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple


@dataclass(frozen=True)
class TextSpan:
    """A literally matched piece of text inside a fragment"""
    text: str
    start: Optional[int] = None
    end: Optional[int] = None


@dataclass(frozen=True)
class Match:
    """
    One located code fragment.

    A file with several highlighted fragments yields several matches.
    """
    repository: str  # owner/repo
    file_path: str
    file_url: str
    sha: str
    language: str
    fragment: str = ""
    spans: Tuple[TextSpan, ...] = ()
    repo_url: Optional[str] = None
    matching_bounty: Optional[str] = None

    @property
    def file_name(self) -> str:
        return self.file_path.rsplit("/", 1)[-1]

    def with_bounty(self, bounty: str) -> "Match":
        return replace(self, matching_bounty=bounty)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        data["spans"] = [asdict(span) for span in self.spans]
        return data


@dataclass(frozen=True)
class SearchUnit:
    """One repository to search plus the bounty context it came from"""
    owner: str
    repo: str
    bounty_amount: Optional[int] = None
    project_name: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.repo}"

    @classmethod
    def from_spec(cls, repo_spec: str, **kwargs) -> "SearchUnit":
        """Build a unit from an 'owner/repo' string"""
        owner, repo = repo_spec.split("/", 1)
        return cls(owner=owner, repo=repo, **kwargs)


class OutcomeKind(Enum):
    """Result classes of one unit's search"""
    MATCHES = "matches"
    NO_MATCHES = "no_matches"
    RATE_LIMITED = "rate_limited"
    SKIPPED_INACCESSIBLE = "skipped_inaccessible"


@dataclass(frozen=True)
class SearchOutcome:
    """
    Tagged result of one unit's execution.

    RATE_LIMITED carries the epoch second at which the quota resets;
    SKIPPED_INACCESSIBLE carries a short reason for the log.
    """
    kind: OutcomeKind
    matches: Tuple[Match, ...] = ()
    reset_at: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def found(cls, matches: Iterable[Match]) -> "SearchOutcome":
        matches = tuple(matches)
        if not matches:
            return cls(OutcomeKind.NO_MATCHES)
        return cls(OutcomeKind.MATCHES, matches=matches)

    @classmethod
    def rate_limited(cls, reset_at: Optional[int]) -> "SearchOutcome":
        return cls(OutcomeKind.RATE_LIMITED, reset_at=reset_at)

    @classmethod
    def skipped(cls, reason: str) -> "SearchOutcome":
        return cls(OutcomeKind.SKIPPED_INACCESSIBLE, reason=reason)

    @property
    def is_rate_limited(self) -> bool:
        return self.kind is OutcomeKind.RATE_LIMITED
