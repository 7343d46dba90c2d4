"""
Unit tests for SearchSettings.

Run with: pytest tests/unit/test_config.py -v
"""

from pathlib import Path

import pytest

from bountyscope.core.config import ConfigError, SearchSettings


class TestSearchSettings:
    """Test suite for SearchSettings"""

    def test_defaults(self):
        """Test default pacing and persistence values"""
        settings = SearchSettings()

        assert settings.min_bounty == 100_000
        assert settings.per_page == 100
        assert settings.transient_max_retries == 3
        assert settings.network_max_retries == 2
        assert settings.checkpoint_interval == 10
        assert settings.cache_max_age_hours == 24.0
        assert settings.wait_on_rate_limit is False

    def test_search_languages_exclude_move(self):
        """Test languages without a search qualifier are dropped"""
        settings = SearchSettings()

        assert "move" in settings.target_languages
        assert settings.search_languages == ("go", "rust", "solidity")

    def test_settings_are_frozen(self):
        """Test settings cannot be mutated after construction"""
        settings = SearchSettings()

        with pytest.raises(Exception):
            settings.per_page = 10

    def test_with_overrides(self):
        """Test overrides return a new validated copy"""
        settings = SearchSettings()
        changed = settings.with_overrides(wait_on_rate_limit=True, checkpoint_interval=5)

        assert changed.wait_on_rate_limit is True
        assert changed.checkpoint_interval == 5
        assert settings.wait_on_rate_limit is False

    def test_invalid_override_rejected(self):
        """Test out-of-range values raise ConfigError"""
        with pytest.raises(ConfigError):
            SearchSettings().with_overrides(per_page=500)

    def test_jitter_range_validated(self):
        """Test jitter minimum above maximum is rejected"""
        with pytest.raises(ConfigError):
            SearchSettings.from_mapping({"backoff_jitter_min": 6.0, "backoff_jitter_max": 5.0})

    def test_from_yaml(self, tmp_path):
        """Test loading a partial YAML file keeps the other defaults"""
        path = tmp_path / "settings.yaml"
        path.write_text(
            "min_bounty: 250000\n"
            "target_languages: [solidity, rust]\n"
            "cache_dir: /tmp/scans\n"
        )

        settings = SearchSettings.from_yaml(path)

        assert settings.min_bounty == 250_000
        assert settings.target_languages == ("solidity", "rust")
        assert settings.cache_dir == Path("/tmp/scans")
        assert settings.per_page == 100

    def test_from_yaml_none_returns_defaults(self):
        assert SearchSettings.from_yaml(None) == SearchSettings()

    def test_from_yaml_unknown_key(self, tmp_path):
        """Test typos in the settings file are reported"""
        path = tmp_path / "settings.yaml"
        path.write_text("min_bountyy: 5\n")

        with pytest.raises(ConfigError):
            SearchSettings.from_yaml(path)

    def test_from_yaml_not_a_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError):
            SearchSettings.from_yaml(path)

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            SearchSettings.from_yaml(tmp_path / "missing.yaml")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
