"""
Repository Searcher - Code search against the GitHub search API.

Maps one search request onto a tagged SearchOutcome:

    200              -> MATCHES / NO_MATCHES
    403 + 0 quota    -> RATE_LIMITED (carries the reset epoch)
    403, 404, 422    -> SKIPPED_INACCESSIBLE (422 is never retried)
    429/502/503/504  -> retried with exponential backoff, then skipped
    transport error  -> retried with 2^attempt backoff, then skipped
    malformed body   -> same retry budget as transport errors, then skipped

The searcher holds no scan state; calling it twice with the same
arguments issues the same requests.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import aiohttp
import structlog

from ..core.config import SearchSettings
from ..core.rate_limiter import DelayKind, RateBudget
from ..models import Match, SearchOutcome, SearchUnit, TextSpan


# Raised while decoding or parsing a success body of unexpected shape
MALFORMED_RESPONSE_ERRORS = (AttributeError, TypeError, KeyError, ValueError)

EXTENSION_LANGUAGES = {
    ".sol": "solidity",
    ".rs": "rust",
    ".go": "go",
    ".move": "move",
}


@dataclass
class SearchResponse:
    """Raw transport result of one API request"""
    status: int
    headers: Mapping[str, str]
    payload: Optional[Dict[str, Any]] = None
    reason: str = ""


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup"""
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _int_or_none(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def extract_text_matches(text_matches: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep only file-content highlights as {fragment, spans}"""
    extracted = []
    for text_match in text_matches:
        if text_match.get("object_type") != "FileContent":
            continue

        spans = []
        for span in text_match.get("matches") or []:
            indices = span.get("indices") or [None, None]
            spans.append(TextSpan(
                text=span.get("text", ""),
                start=indices[0] if len(indices) > 0 else None,
                end=indices[1] if len(indices) > 1 else None,
            ))

        extracted.append({
            "fragment": text_match.get("fragment") or "",
            "spans": tuple(spans),
        })
    return extracted


def guess_language(path: str) -> str:
    for extension, language in EXTENSION_LANGUAGES.items():
        if path.endswith(extension):
            return language
    return "unknown"


def parse_items(
    items: List[Dict[str, Any]],
    repository: Optional[str] = None,
    language: Optional[str] = None,
) -> List[Match]:
    """
    Convert search API items into Match values.

    Args:
        items: The 'items' array of a search response
        repository: owner/repo for repository-scoped searches; global
            searches read it from each item
        language: Language tag to apply; guessed from the path if None
    """
    matches = []

    for item in items:
        repo_info = item.get("repository") or {}
        full_name = repository or repo_info.get("full_name", "")
        repo_url = (
            f"https://github.com/{repository}" if repository
            else repo_info.get("html_url")
        )
        path = item.get("path", "")
        base = {
            "repository": full_name,
            "file_path": path,
            "file_url": item.get("html_url", ""),
            "sha": item.get("sha", ""),
            "language": language or item.get("language") or guess_language(path),
            "repo_url": repo_url,
        }

        fragments = extract_text_matches(item.get("text_matches") or [])
        if not fragments:
            matches.append(Match(**base))
            continue

        for fragment in fragments:
            matches.append(Match(**base, **fragment))

    return matches


class RepositorySearcher:
    """
    Client for repository-scoped and global code search.

    Example:
        >>> async with RepositorySearcher(token, settings) as searcher:
        ...     outcome = await searcher.search("delegatecall", unit)
    """

    SEARCH_PATH = "/search/code"
    RATE_LIMIT_PATH = "/rate_limit"
    ACCEPT = "application/vnd.github.v3.text-match+json"
    TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})

    def __init__(
        self,
        token: str,
        settings: Optional[SearchSettings] = None,
        rate_budget: Optional[RateBudget] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the searcher.

        Args:
            token: Bearer credential for the search API
            settings: Search settings (uses defaults if None)
            rate_budget: Shared rate budget (a private one if None)
            session: Existing aiohttp session; one is created lazily if None
        """
        self.token = token
        self.settings = settings or SearchSettings()
        self.rate_budget = rate_budget or RateBudget(self.settings)
        self._session = session
        self._owns_session = session is None

        self.request_count = 0
        self.logger = structlog.get_logger(__name__)

    async def __aenter__(self) -> "RepositorySearcher":
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

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": self.ACCEPT,
            "Authorization": f"Bearer {self.token}",
        }

    async def search(
        self,
        query: str,
        unit: SearchUnit,
        language: Optional[str] = None,
    ) -> SearchOutcome:
        """
        Search one repository.

        Args:
            query: Query text, already quoted if an exact phrase is wanted
            unit: Repository to search
            language: Optional language qualifier

        Returns:
            Tagged outcome of the search
        """
        search_query = f"{query} repo:{unit.key}"
        if language:
            search_query += f" language:{language}"

        return await self._run_query(
            search_query,
            label=unit.key,
            parse=lambda items: parse_items(items, repository=unit.key, language=language),
        )

    async def search_global(self, query: str, language: str) -> SearchOutcome:
        """Search every public repository for files in one language"""
        search_query = f"{query} in:file language:{language}"
        return await self._run_query(
            search_query,
            label=f"language:{language}",
            parse=lambda items: parse_items(items, language=language),
        )

    async def _run_query(
        self,
        search_query: str,
        label: str,
        parse: Callable[[List[Dict[str, Any]]], List[Match]],
    ) -> SearchOutcome:
        """Fetch every permitted page of a query and merge the matches"""
        matches: List[Match] = []

        for page in range(1, self.settings.max_pages + 1):
            result = await self._fetch_page(search_query, page, label, parse)

            if isinstance(result, SearchOutcome):
                if result.is_rate_limited or page == 1:
                    return result
                self.logger.warning(
                    "search_page_skipped",
                    target=label,
                    page=page,
                    reason=result.reason,
                )
                break

            item_count, page_matches = result
            matches.extend(page_matches)

            if item_count < self.settings.per_page or page == self.settings.max_pages:
                break
            await self.rate_budget.fixed_delay(DelayKind.REPOSITORY)

        self.logger.debug("search_complete", target=label, matches=len(matches))
        return SearchOutcome.found(matches)

    async def _fetch_page(
        self,
        search_query: str,
        page: int,
        label: str,
        parse: Callable[[List[Dict[str, Any]]], List[Match]],
    ) -> Union[Tuple[int, List[Match]], SearchOutcome]:
        """
        Fetch and parse one result page, applying the retry policy.

        Transport failures and malformed success bodies share the same
        retry budget.

        Returns:
            (item count, matches) on success, otherwise a terminal outcome
        """
        transient_attempt = 0
        network_attempt = 0
        params = {
            "q": search_query,
            "per_page": str(self.settings.per_page),
            "page": str(page),
        }

        while True:
            try:
                response = await self._get(self.SEARCH_PATH, params)
                if response.status == 200:
                    items = (response.payload or {}).get("items") or []
                    return len(items), parse(items)
            except (aiohttp.ClientError, asyncio.TimeoutError, *MALFORMED_RESPONSE_ERRORS) as e:
                malformed = isinstance(e, MALFORMED_RESPONSE_ERRORS)
                if network_attempt < self.settings.network_max_retries:
                    self.logger.warning(
                        "search_malformed_response" if malformed else "search_network_error",
                        target=label,
                        attempt=network_attempt + 1,
                        error=str(e) or type(e).__name__,
                    )
                    await self.rate_budget.network_backoff(network_attempt)
                    network_attempt += 1
                    continue

                self.logger.warning(
                    "search_network_failed",
                    target=label,
                    attempts=network_attempt + 1,
                    error=str(e) or type(e).__name__,
                )
                return SearchOutcome.skipped("malformed response" if malformed else "network error")

            status = response.status

            if status == 403:
                remaining = _int_or_none(_header(response.headers, "X-RateLimit-Remaining"))
                if remaining == 0:
                    reset_at = _int_or_none(_header(response.headers, "X-RateLimit-Reset"))
                    self.logger.warning("search_rate_limited", target=label, reset_at=reset_at)
                    return SearchOutcome.rate_limited(reset_at)

                self.logger.warning(
                    "search_forbidden",
                    target=label,
                    reason=response.reason,
                    retry_after=_header(response.headers, "Retry-After"),
                    remaining=remaining,
                )
                return SearchOutcome.skipped("access forbidden")

            if status == 404:
                self.logger.warning("search_not_found", target=label)
                return SearchOutcome.skipped("not found")

            if status == 422:
                self.logger.warning("search_query_rejected", target=label, query=search_query)
                return SearchOutcome.skipped("query invalid or too complex")

            if status in self.TRANSIENT_STATUSES:
                retry = await self.rate_budget.exponential_backoff(
                    transient_attempt,
                    self.settings.transient_max_retries,
                )
                if retry:
                    transient_attempt += 1
                    continue

                self.logger.warning(
                    "search_retries_exhausted",
                    target=label,
                    status=status,
                    attempts=transient_attempt + 1,
                )
                return SearchOutcome.skipped(f"HTTP {status} after retries")

            self.logger.warning(
                "search_api_error",
                target=label,
                status=status,
                reason=response.reason,
            )
            return SearchOutcome.skipped(f"HTTP {status}")

    async def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> SearchResponse:
        """
        Issue one GET request.

        Raises:
            aiohttp.ClientError: On connection failures
            asyncio.TimeoutError: When the request times out
            ValueError: When a success body is not a JSON object
        """
        self.request_count += 1
        session = self._get_session()
        url = f"{self.settings.api_base_url.rstrip('/')}{path}"

        async with session.get(url, params=params, headers=self._headers) as response:
            payload = None
            if response.status == 200:
                payload = await response.json(content_type=None)
                if not isinstance(payload, dict):
                    raise ValueError("Unexpected search response body")

            return SearchResponse(
                status=response.status,
                headers=dict(response.headers),
                payload=payload,
                reason=response.reason or "",
            )

    async def get_rate_limit_status(self) -> Optional[Dict[str, int]]:
        """
        Read the remaining search quota.

        Returns:
            {remaining, limit, reset} for the search bucket, or None if
            the status could not be read
        """
        try:
            response = await self._get(self.RATE_LIMIT_PATH)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning("rate_limit_status_failed", error=str(e) or type(e).__name__)
            return None

        if response.status != 200 or not response.payload:
            self.logger.warning("rate_limit_status_failed", status=response.status)
            return None

        search_limit = (response.payload.get("resources") or {}).get("search")
        if not search_limit:
            return None

        return {
            "remaining": int(search_limit.get("remaining", 0)),
            "limit": int(search_limit.get("limit", 0)),
            "reset": int(search_limit.get("reset", 0)),
        }

    def __repr__(self) -> str:
        return f"RepositorySearcher(api={self.settings.api_base_url}, requests={self.request_count})"
