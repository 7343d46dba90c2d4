"""
Search settings - Immutable configuration shared by all components.

Every component receives the same frozen SearchSettings value at
construction time instead of reading module-level constants.
Settings can be loaded from a YAML file; missing keys fall back to
the defaults below.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class ConfigError(Exception):
    """Raised when a settings file cannot be read or validated"""
    pass


DEFAULT_ACCESSIBLE_ORGS: Tuple[str, ...] = (
    "wormhole-foundation", "layerzero-labs", "makerdao", "reserve-protocol",
    "compound-finance", "aave", "ethereum", "openzeppelin", "uniswap", "sushiswap",
    "chainlink", "smartcontractkit", "balancer-labs", "yearn", "tranchess",
    "olympusdao", "frax-finance", "convex-finance", "curve-fi", "synthetixio",
    "aavegotchi", "immutable-holdings", "swapr-org", "bgd-labs",
    "lidofinance", "rocket-pool", "stakewise", "trusttoken",
)

# Owner substrings that mark an organisation as publicly searchable
ACCESSIBLE_OWNER_HINTS: Tuple[str, ...] = ("wormhole", "layerzero", "defi", "protocol")

# The code host has no language qualifier for these
UNSEARCHABLE_LANGUAGES: Tuple[str, ...] = ("move",)


class SearchSettings(BaseModel):
    """Configuration for catalog filtering, code search and persistence"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Catalog
    programs_url: str = (
        "https://raw.githubusercontent.com/infosec-us-team/"
        "Immunefi-Bug-Bounty-Programs-Unofficial/main/projects.json"
    )
    project_details_url: str = (
        "https://raw.githubusercontent.com/infosec-us-team/"
        "Immunefi-Bug-Bounty-Programs-Unofficial/main/project/{project_id}.json"
    )
    bounty_page_url: str = "https://immunefi.com/bounty/{project_id}"
    target_languages: Tuple[str, ...] = ("go", "rust", "solidity", "move")
    min_bounty: int = Field(default=100_000, ge=0)
    accessible_orgs: Tuple[str, ...] = DEFAULT_ACCESSIBLE_ORGS
    data_dir: Path = Path("data")

    # Code search API
    api_base_url: str = "https://api.github.com"
    request_timeout: float = Field(default=30.0, gt=0)
    per_page: int = Field(default=100, ge=1, le=100)
    max_pages: int = Field(default=1, ge=1)

    # Rate budget
    api_request_delay: float = Field(default=1.0, ge=0)  # between languages
    repository_search_delay: float = Field(default=0.5, ge=0)  # between repositories
    backoff_base: float = Field(default=2.0, ge=0)
    backoff_jitter_min: float = Field(default=1.0, ge=0)
    backoff_jitter_max: float = Field(default=5.0, ge=0)
    transient_max_retries: int = Field(default=3, ge=0)
    network_max_retries: int = Field(default=2, ge=0)
    network_backoff_base: float = Field(default=1.0, ge=0)
    reset_buffer_seconds: float = Field(default=5.0, ge=0)
    wait_on_rate_limit: bool = False

    # Persistence
    cache_dir: Path = Path("data/search_cache")
    cache_max_age_hours: float = Field(default=24.0, ge=0)
    checkpoint_interval: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _check_jitter_range(self) -> "SearchSettings":
        if self.backoff_jitter_min > self.backoff_jitter_max:
            raise ValueError("backoff_jitter_min must not exceed backoff_jitter_max")
        return self

    @property
    def search_languages(self) -> Tuple[str, ...]:
        """Target languages the code search API can filter on"""
        return tuple(
            lang for lang in self.target_languages
            if lang not in UNSEARCHABLE_LANGUAGES
        )

    @property
    def details_dir(self) -> Path:
        return self.data_dir / "project-details"

    @classmethod
    def from_yaml(cls, path: Optional[Path]) -> "SearchSettings":
        """
        Load settings from a YAML mapping.

        Args:
            path: Settings file; None returns the defaults

        Raises:
            ConfigError: If the file is unreadable or holds invalid values
        """
        if path is None:
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Could not read settings file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")

        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "SearchSettings":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings: {e}") from e

    def with_overrides(self, **overrides: Any) -> "SearchSettings":
        """Return a copy with the given fields replaced (validated)"""
        return self.from_mapping({**self.model_dump(), **overrides})
