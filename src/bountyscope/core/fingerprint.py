"""
Scan parameter helpers - fingerprinting and query construction.
"""

import hashlib
import json
from typing import Iterable, Optional

from ..models import SearchUnit


def scan_fingerprint(
    query: str,
    units: Iterable[SearchUnit],
    language: Optional[str] = None,
    exact: bool = False,
) -> str:
    """
    Digest identifying a scan's parameter set.

    The repository list is reduced to a sorted set of owner/repo keys,
    so any ordering (or repetition) of the same repositories produces
    the same fingerprint.

    Args:
        query: Unquoted query text
        units: Repositories in the scan
        language: Optional language filter
        exact: Exact-phrase flag

    Returns:
        Hex digest usable as a file name
    """
    repo_keys = sorted({unit.key for unit in units})
    repo_list_hash = hashlib.md5(",".join(repo_keys).encode("utf-8")).hexdigest()

    key_data = {
        "query": query,
        "language": language,
        "exact": bool(exact),
        "repo_list_hash": repo_list_hash,
    }
    encoded = json.dumps(key_data, sort_keys=True, separators=(",", ":"))
    return hashlib.md5(encoded.encode("utf-8")).hexdigest()


def build_search_query(query: str, exact: bool = False) -> str:
    """Wrap the query in double quotes for exact-phrase searches"""
    if not exact:
        return query
    return f'"{query}"'
