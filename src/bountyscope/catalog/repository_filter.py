"""
Repository Filter - GitHub repository extraction and cross-referencing.

Sits between the bounty catalog and the searchers: turns asset URLs into
searchable repositories and matches search hits back to bounty assets.
"""

import re
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from ..core.config import ACCESSIBLE_OWNER_HINTS, SearchSettings
from ..models import Match, SearchUnit
from .bounty_catalog import HighValueProject


GITHUB_REPO_PATTERN = re.compile(r"https://github\.com/([^/]+)/([^/]+)")
GITHUB_BASE_PATTERN = re.compile(r"(https://github\.com/[^/]+/[^/]+)")
NON_REPOSITORY_PATHS = ("/releases/", "/issues/", "/wiki/")
PSEUDO_REPOSITORIES = ("tree", "blob")


class RepositoryFilter:
    """
    Extracts searchable repositories and cross-references search hits.

    Example:
        >>> repo_filter = RepositoryFilter(settings)
        >>> units = repo_filter.extract_units_from_high_value_projects(projects)
    """

    def __init__(self, settings: Optional[SearchSettings] = None):
        self.settings = settings or SearchSettings()
        self._accessible_orgs = {org.lower() for org in self.settings.accessible_orgs}
        self.logger = structlog.get_logger(__name__)

    def is_accessible_repo(self, owner: str, repo: str = "") -> bool:
        """Whether an organisation is known to publish searchable code"""
        owner = owner.lower()
        return owner in self._accessible_orgs or any(
            hint in owner for hint in ACCESSIBLE_OWNER_HINTS
        )

    def parse_repository_url(self, url: str) -> Optional[Tuple[str, str]]:
        """owner/repo of a GitHub repository URL, None for anything else"""
        if "github.com" not in url or "gist.github.com" in url:
            return None
        if any(path in url for path in NON_REPOSITORY_PATHS):
            return None

        match = GITHUB_REPO_PATTERN.match(url)
        if not match:
            return None

        owner, repo = match.group(1), match.group(2)
        if "#" in repo or "?" in repo or repo in PSEUDO_REPOSITORIES:
            return None
        if repo.endswith(".git"):
            repo = repo[:-4]

        return owner, repo

    def extract_github_repositories(self, urls: Iterable[str]) -> List[Tuple[str, str]]:
        """Accessible owner/repo pairs from a list of URLs, first seen order"""
        repos: List[Tuple[str, str]] = []
        seen = set()

        for url in urls:
            parsed = self.parse_repository_url(url or "")
            if parsed is None or parsed in seen:
                continue
            if not self.is_accessible_repo(*parsed):
                continue
            seen.add(parsed)
            repos.append(parsed)

        return repos

    def extract_units_from_high_value_projects(
        self,
        projects: Sequence[HighValueProject],
    ) -> List[SearchUnit]:
        """
        Search units for every accessible repository of the projects.

        Duplicates keep their first occurrence; the result is ordered by
        bounty, highest first, with catalog order on ties.
        """
        units = []
        seen = set()

        for project in projects:
            urls = [asset.get("url") for asset in project.assets]
            for owner, repo in self.extract_github_repositories(urls):
                key = (owner, repo)
                if key in seen:
                    continue
                seen.add(key)
                units.append(SearchUnit(
                    owner=owner,
                    repo=repo,
                    bounty_amount=project.max_bounty,
                    project_name=project.name,
                ))

        self.logger.info("high_value_repositories", projects=len(projects), repositories=len(units))
        return sorted(units, key=lambda unit: -(unit.bounty_amount or 0))

    def find_cross_referenced_results(
        self,
        matches: Iterable[Match],
        bounty_urls: Sequence[str],
    ) -> List[Match]:
        """Matches whose repository is a bounty asset, annotated with it"""
        cross_referenced = []

        for match in matches:
            if not match.repo_url:
                continue

            matching_bounty = None
            for bounty_url in bounty_urls:
                if "github.com" in bounty_url:
                    base = GITHUB_BASE_PATTERN.match(bounty_url)
                    if base and base.group(1) == match.repo_url:
                        matching_bounty = bounty_url
                        break
                elif bounty_url.startswith(match.repo_url):
                    matching_bounty = bounty_url
                    break

            if matching_bounty:
                cross_referenced.append(match.with_bounty(matching_bounty))

        return cross_referenced
