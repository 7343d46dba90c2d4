"""
Unit tests for command-line argument validation.

Only paths that stop before any network access are exercised.

Run with: pytest tests/unit/test_cli.py -v
"""

import pytest
from click.testing import CliRunner

from main import cli


@pytest.fixture
def runner():
    return CliRunner()


class TestSearchValidation:
    """Test suite for search command validation"""

    def test_empty_query(self, runner):
        result = runner.invoke(cli, ["search", "   "])

        assert result.exit_code == 1
        assert "Search query is required" in result.output

    def test_repo_and_full_conflict(self, runner):
        """Test --repo and --full cannot be combined"""
        result = runner.invoke(cli, ["search", "delegatecall", "--repo", "aave/aave-v3-core", "--full"])

        assert result.exit_code == 1
        assert "cannot be used together" in result.output

    @pytest.mark.parametrize("repo", ["aave", "aave/", "/core", "a/b/c", "a b/c"])
    def test_malformed_repository(self, runner, repo):
        result = runner.invoke(cli, ["search", "delegatecall", "--repo", repo])

        assert result.exit_code == 1
        assert "OWNER/REPO" in result.output

    def test_unsearchable_language(self, runner):
        """Test languages outside the searchable set are rejected"""
        result = runner.invoke(cli, ["search", "delegatecall", "--language", "move"])

        assert result.exit_code == 1
        assert "--language must be one of: go, rust, solidity" in result.output

    def test_missing_token(self, runner, monkeypatch):
        """Test search mode requires GITHUB_TOKEN"""
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)

        result = runner.invoke(cli, ["search", "delegatecall", "--repo", "aave/aave-v3-core"])

        assert result.exit_code == 1
        assert "GITHUB_TOKEN environment variable is required" in result.output

    def test_invalid_config_file(self, runner, tmp_path):
        config = tmp_path / "settings.yaml"
        config.write_text("per_page: 1000\n")

        result = runner.invoke(cli, ["search", "delegatecall", "--config", str(config)])

        assert result.exit_code == 1
        assert "Invalid settings" in result.output


class TestCliGroup:
    """Test suite for the command group"""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "1.0.0" in result.output

    def test_commands_listed(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("list", "search", "rate-limit"):
            assert command in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
