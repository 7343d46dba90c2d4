"""
Integration test for the full search pipeline.

Verifies that the BountyScope pipeline works end-to-end:
1. Catalog filtering (program index + details from disk)
2. Global search cross-referenced with bounty assets
3. Resumable high-value repository scan (cache + checkpoints)

The search API is scripted by replacing RepositorySearcher._get.
"""

import json
from datetime import date

import pytest

from bountyscope.catalog import BountyCatalog
from bountyscope.core.config import SearchSettings
from bountyscope.core.orchestrator import ScanState
from bountyscope.integrated_search import IntegratedSearch, merge_matches
from bountyscope.models import OutcomeKind
from bountyscope.searchers import RepositorySearcher, SearchResponse, parse_items


TODAY = date(2024, 5, 1)

PROJECTS = [
    {"id": "aave", "project": "Aave", "tags": {"language": ["Solidity"]}},
    {"id": "lido", "project": "Lido", "tags": {"language": ["Solidity", "Go"]}},
]

DETAILS = {
    "aave": {"pageProps": {"bounty": {
        "maxBounty": 1_000_000,
        "rewards": [{"assetType": "smart_contract", "maxReward": 1_000_000}],
        "assets": [{"url": "https://github.com/aave/aave-v3-core", "type": "smart_contract"}],
    }}},
    "lido": {"pageProps": {"bounty": {
        "maxBounty": 2_000_000,
        "rewards": [{"assetType": "blockchain_dlt", "maxReward": 2_000_000}],
        "assets": [{"url": "https://github.com/lidofinance/core", "type": "blockchain_dlt"}],
    }}},
}


def code_item(full_name, path):
    return {
        "path": path,
        "html_url": f"https://github.com/{full_name}/blob/main/{path}",
        "sha": f"sha-{full_name}-{path}",
        "repository": {"full_name": full_name, "html_url": f"https://github.com/{full_name}"},
        "text_matches": [{
            "object_type": "FileContent",
            "fragment": "target.delegatecall(data);",
            "matches": [{"text": "delegatecall", "indices": [7, 19]}],
        }],
    }


class ScriptedApi:
    """Answers search requests from per-qualifier scripts and logs them"""

    def __init__(self, global_items=None, repo_items=None, rate_limited_repos=()):
        self.global_items = global_items or {}
        self.repo_items = repo_items or {}
        self.rate_limited_repos = set(rate_limited_repos)
        self.queries = []

    async def __call__(self, path, params=None):
        query = params["q"]
        self.queries.append(query)

        if "in:file" in query:
            language = query.rsplit("language:", 1)[1]
            items = self.global_items.get(language, [])
            return SearchResponse(status=200, headers={}, payload={"items": items})

        repo = query.split("repo:", 1)[1].split()[0]
        if repo in self.rate_limited_repos:
            return SearchResponse(
                status=403,
                headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000000"},
            )
        items = self.repo_items.get(repo, [])
        return SearchResponse(status=200, headers={}, payload={"items": items})

    def repository_queries(self):
        return [q.split("repo:", 1)[1].split()[0] for q in self.queries if "repo:" in q]


def build_pipeline(tmp_path, api, **overrides):
    settings = SearchSettings(
        data_dir=tmp_path / "data",
        cache_dir=tmp_path / "cache",
        api_request_delay=0,
        repository_search_delay=0,
        backoff_base=0,
        backoff_jitter_min=0,
        backoff_jitter_max=0,
        network_backoff_base=0,
        **overrides,
    )
    settings.details_dir.mkdir(parents=True, exist_ok=True)
    (settings.data_dir / f"projects-{TODAY:%Y-%m-%d}.json").write_text(json.dumps(PROJECTS))
    for project_id, document in DETAILS.items():
        (settings.details_dir / f"{project_id}.json").write_text(json.dumps(document))

    searcher = RepositorySearcher("token", settings)
    searcher._get = api
    catalog = BountyCatalog(settings, today=TODAY)
    return IntegratedSearch(token="token", settings=settings, catalog=catalog, searcher=searcher)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_global_hits_cross_referenced(tmp_path):
    """Test phase 1 keeps only hits in bounty repositories and skips phase 2"""
    api = ScriptedApi(global_items={"solidity": [
        code_item("aave/aave-v3-core", "contracts/Pool.sol"),
        code_item("someone/fork", "contracts/Pool.sol"),
    ]})
    pipeline = build_pipeline(tmp_path, api)

    report = await pipeline.search("delegatecall")

    assert [m.repository for m in report.matches] == ["aave/aave-v3-core"]
    assert report.matches[0].matching_bounty == "https://github.com/aave/aave-v3-core"
    assert report.scan is None
    assert api.repository_queries() == []
    assert len(api.queries) == 3


@pytest.mark.integration
@pytest.mark.asyncio
async def test_empty_global_phase_falls_back_to_high_value_scan(tmp_path):
    """Test phase 2 scans bounty repositories highest bounty first"""
    api = ScriptedApi(repo_items={
        "aave/aave-v3-core": [code_item("aave/aave-v3-core", "contracts/Pool.sol")],
    })
    pipeline = build_pipeline(tmp_path, api)
    events = []
    pipeline.subscribe(lambda event, data: events.append(event))

    report = await pipeline.search("delegatecall", language="solidity")

    assert api.repository_queries() == ["lidofinance/core", "aave/aave-v3-core"]
    assert report.scan.state is ScanState.COMPLETED
    assert [m.repository for m in report.matches] == ["aave/aave-v3-core"]
    assert events[0] == "phase_started"
    assert "scan_completed" in events


@pytest.mark.integration
@pytest.mark.asyncio
async def test_repeat_search_served_from_cache(tmp_path):
    """Test a completed scan is not repeated within the cache window"""
    api = ScriptedApi(repo_items={
        "lidofinance/core": [code_item("lidofinance/core", "contracts/Lido.sol")],
    })
    pipeline = build_pipeline(tmp_path, api)

    first = await pipeline.search("delegatecall", language="solidity")
    scanned = len(api.repository_queries())
    second = await pipeline.search("delegatecall", language="solidity")

    assert scanned == 2
    assert len(api.repository_queries()) == scanned
    assert second.scan.state is ScanState.CACHE_HIT
    assert second.matches == first.matches


@pytest.mark.integration
@pytest.mark.asyncio
async def test_rate_limited_scan_resumes(tmp_path):
    """Test a halted scan continues from its checkpoint on the next run"""
    api = ScriptedApi(rate_limited_repos={"aave/aave-v3-core"})
    pipeline = build_pipeline(tmp_path, api)

    halted = await pipeline.search("delegatecall", language="solidity")

    assert halted.halted
    assert halted.scan.state is ScanState.HALTED_ON_RATE_LIMIT
    assert halted.scan.completed == 1

    api.rate_limited_repos.clear()
    api.queries.clear()
    resumed = await pipeline.search("delegatecall", language="solidity")

    assert api.repository_queries() == ["aave/aave-v3-core"]
    assert resumed.scan.state is ScanState.COMPLETED
    assert not resumed.halted


@pytest.mark.integration
@pytest.mark.asyncio
async def test_full_mode_merges_both_phases(tmp_path):
    """Test full mode runs phase 2 even when phase 1 found matches"""
    api = ScriptedApi(
        global_items={"solidity": [code_item("aave/aave-v3-core", "contracts/Pool.sol")]},
        repo_items={
            "aave/aave-v3-core": [code_item("aave/aave-v3-core", "contracts/Pool.sol")],
            "lidofinance/core": [code_item("lidofinance/core", "contracts/Lido.sol")],
        },
    )
    pipeline = build_pipeline(tmp_path, api)

    report = await pipeline.search("delegatecall", language="solidity", full=True)

    assert report.phase1_hits == 1
    assert report.scan.state is ScanState.COMPLETED
    assert sorted(m.repository for m in report.matches) == ["aave/aave-v3-core", "lidofinance/core"]
    assert "Phase 2" in pipeline.get_summary(report)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_single_repository_search(tmp_path):
    """Test --repo mode searches exactly one repository"""
    api = ScriptedApi(repo_items={
        "uniswap/v3-core": [code_item("uniswap/v3-core", "contracts/UniswapV3Pool.sol")],
    })
    pipeline = build_pipeline(tmp_path, api)

    report = await pipeline.search_repository("delegatecall", "uniswap/v3-core", exact=True)

    assert api.queries == ['"delegatecall" repo:uniswap/v3-core']
    assert report.single_outcome.kind is OutcomeKind.MATCHES
    assert report.matches[0].matching_bounty == "Found in repository uniswap/v3-core"
    assert report.scan is None


def test_merge_matches_drops_repeats():
    """Test the same fragment found by both phases is kept once"""
    first = parse_items([code_item("a/b", "x.sol")])
    second = parse_items([code_item("a/b", "x.sol"), code_item("c/d", "y.sol")])

    merged = merge_matches(first, second)

    assert [m.repository for m in merged] == ["a/b", "c/d"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
