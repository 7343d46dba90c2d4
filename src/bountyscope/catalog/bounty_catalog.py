"""
Bounty Catalog - Program index and per-program details.

Both documents are downloaded once and kept as JSON files under the
data directory: the index per calendar day, details per program id.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from ..core.config import SearchSettings


TARGET_ASSET_TYPES = ("blockchain_dlt", "smart_contract")


class CatalogError(Exception):
    """Raised when the program index cannot be fetched"""
    pass


def _bounty(details: Dict[str, Any]) -> Dict[str, Any]:
    return ((details or {}).get("pageProps") or {}).get("bounty") or {}


@dataclass
class QualifyingProgram:
    """A program with at least one qualifying reward"""
    program: Dict[str, Any]
    details: Dict[str, Any]
    target_rewards: List[Dict[str, Any]]
    languages: List[str]

    @property
    def max_bounty(self) -> Optional[int]:
        return _bounty(self.details).get("maxBounty")

    @property
    def target_assets(self) -> List[Dict[str, Any]]:
        return [
            asset for asset in _bounty(self.details).get("assets") or []
            if asset.get("type") in TARGET_ASSET_TYPES
        ]


@dataclass
class HighValueProject:
    """A program whose maximum bounty exceeds the threshold"""
    program: Dict[str, Any]
    details: Dict[str, Any]
    max_bounty: int
    languages: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.program.get("project", "")

    @property
    def assets(self) -> List[Dict[str, Any]]:
        return _bounty(self.details).get("assets") or []


class BountyCatalog:
    """
    Fetches and filters bug bounty programs.

    Example:
        >>> async with BountyCatalog(settings) as catalog:
        ...     projects = await catalog.fetch_projects()
        ...     programs = await catalog.filter_projects_by_criteria(projects)
    """

    def __init__(
        self,
        settings: Optional[SearchSettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        today: Optional[date] = None,
    ):
        self.settings = settings or SearchSettings()
        self._session = session
        self._owns_session = session is None

        day = (today or date.today()).strftime("%Y-%m-%d")
        self.project_file = self.settings.data_dir / f"projects-{day}.json"
        self.details_dir = self.settings.details_dir
        self.details_dir.mkdir(parents=True, exist_ok=True)

        self.logger = structlog.get_logger(__name__)

    async def __aenter__(self) -> "BountyCatalog":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout)
            )
            self._owns_session = True
        return self._session

    async def _get_json(self, url: str) -> Optional[Any]:
        """GET a JSON document; None on any non-200 status"""
        session = self._get_session()
        async with session.get(url) as response:
            if response.status != 200:
                self.logger.warning("catalog_http_error", url=url, status=response.status)
                return None
            return await response.json(content_type=None)

    async def fetch_projects(self) -> List[Dict[str, Any]]:
        """
        Load today's program index, downloading it if not cached.

        Raises:
            CatalogError: If the index cannot be downloaded
        """
        if self.project_file.exists():
            try:
                return json.loads(self.project_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                self.logger.warning("project_index_unreadable", path=str(self.project_file), error=str(e))

        self.logger.info("fetching_projects", url=self.settings.programs_url)
        try:
            projects = await self._get_json(self.settings.programs_url)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CatalogError(f"Could not fetch program index: {e}") from e

        if not isinstance(projects, list):
            raise CatalogError("Could not fetch program index")

        self._write_json(self.project_file, projects)
        return projects

    async def fetch_project_details(self, project_id: str) -> Optional[Dict[str, Any]]:
        """Load one program's details, downloading them if not cached"""
        details_file = self.details_dir / f"{project_id}.json"

        if details_file.exists():
            try:
                return json.loads(details_file.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                self.logger.warning("project_details_unreadable", project_id=project_id)
                return None

        url = self.settings.project_details_url.format(project_id=project_id)
        try:
            details = await self._get_json(url)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning("project_details_failed", project_id=project_id, error=str(e))
            return None

        if not isinstance(details, dict):
            return None

        self._write_json(details_file, details)
        return details

    def _write_json(self, path: Path, data: Any):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            self.logger.warning("catalog_write_failed", path=str(path), error=str(e))

    def program_languages(self, program: Dict[str, Any]) -> List[str]:
        tags = program.get("tags") or {}
        return [lang.lower() for lang in tags.get("language") or []]

    def _matches_target_language(self, languages: List[str]) -> bool:
        return any(lang in languages for lang in self.settings.target_languages)

    async def filter_projects_by_criteria(
        self,
        projects: List[Dict[str, Any]],
    ) -> List[QualifyingProgram]:
        """
        Programs in a target language with a large enough
        blockchain/DLT or smart contract reward.
        """
        matching = []

        for program in projects:
            languages = self.program_languages(program)
            if not self._matches_target_language(languages):
                continue

            details = await self.fetch_project_details(program["id"])
            if not details:
                continue

            target_rewards = [
                reward for reward in _bounty(details).get("rewards") or []
                if reward.get("assetType") in TARGET_ASSET_TYPES
                and reward.get("maxReward")
                and reward["maxReward"] > self.settings.min_bounty
            ]
            if not target_rewards:
                continue

            matching.append(QualifyingProgram(
                program=program,
                details=details,
                target_rewards=target_rewards,
                languages=languages,
            ))

        self.logger.info("programs_filtered", total=len(projects), matching=len(matching))
        return matching

    async def get_high_value_projects_sorted(
        self,
        projects: List[Dict[str, Any]],
    ) -> List[HighValueProject]:
        """Programs above the bounty threshold, highest bounty first"""
        high_value = []

        for program in projects:
            languages = self.program_languages(program)
            if not self._matches_target_language(languages):
                continue

            details = await self.fetch_project_details(program["id"])
            if not details:
                continue

            max_bounty = _bounty(details).get("maxBounty")
            if not max_bounty or max_bounty <= self.settings.min_bounty:
                continue

            high_value.append(HighValueProject(
                program=program,
                details=details,
                max_bounty=max_bounty,
                languages=languages,
            ))

        return sorted(high_value, key=lambda project: -project.max_bounty)

    def load_bounty_repositories(self) -> List[str]:
        """Every GitHub asset URL across the cached program details"""
        bounty_repos = []

        for details_file in sorted(self.details_dir.glob("*.json")):
            try:
                details = json.loads(details_file.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                self.logger.debug("project_details_skipped", path=str(details_file))
                continue

            for asset in _bounty(details).get("assets") or []:
                url = asset.get("url")
                if url and "github.com" in url:
                    bounty_repos.append(url)

        return bounty_repos
