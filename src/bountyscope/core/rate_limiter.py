"""
Rate Budget - Delay, backoff and reset-wait policy for the code search API.

The code search API enforces one global quota per credential, so every
wait here runs to completion before the caller issues its next request.
Nothing is cancelled mid-wait; an operator interrupt kills the process
and the latest checkpoint becomes the recovery point.
"""

import asyncio
import random
import time
from enum import Enum
from datetime import datetime
from typing import Optional

import structlog

from .config import SearchSettings


class DelayKind(Enum):
    """Classes of operation separated by a fixed pause"""
    LANGUAGE = "language"      # between global per-language searches
    REPOSITORY = "repository"  # between repository-scoped searches


class RateBudget:
    """
    Enforces the pacing policy for one rate-limited API.

    Example:
        >>> budget = RateBudget(SearchSettings())
        >>> await budget.fixed_delay(DelayKind.REPOSITORY)
        >>> if await budget.exponential_backoff(attempt=0, max_attempts=3):
        ...     retry()
    """

    def __init__(self, settings: Optional[SearchSettings] = None):
        """
        Initialize the rate budget.

        Args:
            settings: Search settings (uses defaults if None)
        """
        self.settings = settings or SearchSettings()
        self.wait_count = 0
        self.total_waited = 0.0

        self.logger = structlog.get_logger(__name__)

    async def fixed_delay(self, kind: DelayKind):
        """Pause for the configured delay of the given operation class"""
        if kind is DelayKind.LANGUAGE:
            delay = self.settings.api_request_delay
        else:
            delay = self.settings.repository_search_delay

        self.logger.debug("fixed_delay", kind=kind.value, delay=f"{delay:.2f}s")
        await self._sleep(delay)

    async def exponential_backoff(self, attempt: int, max_attempts: int) -> bool:
        """
        Sleep base * 2^attempt + jitter if another attempt is permitted.

        Args:
            attempt: Zero-based number of retries already spent
            max_attempts: Retry ceiling

        Returns:
            True if the caller may retry, False once the ceiling is reached
        """
        if attempt >= max_attempts:
            return False

        jitter = random.uniform(
            self.settings.backoff_jitter_min,
            self.settings.backoff_jitter_max,
        )
        delay = self.settings.backoff_base * (2 ** attempt) + jitter

        self.logger.warning(
            "exponential_backoff",
            attempt=attempt + 1,
            max_attempts=max_attempts,
            delay=f"{delay:.2f}s",
        )
        await self._sleep(delay)
        return True

    async def network_backoff(self, attempt: int):
        """Pause before re-trying a request that failed in transport"""
        delay = self.settings.network_backoff_base * (2 ** attempt)
        self.logger.warning("network_backoff", attempt=attempt + 1, delay=f"{delay:.2f}s")
        await self._sleep(delay)

    async def wait_for_reset(self, reset_epoch_seconds: int):
        """
        Block until the rate window resets, plus a safety buffer.

        The buffer is waited even when the reset time has already passed.
        """
        wait_seconds = max(reset_epoch_seconds - time.time(), 0)

        self.logger.warning(
            "rate_limit_wait",
            reset_at=datetime.fromtimestamp(reset_epoch_seconds).strftime("%H:%M:%S"),
            wait_minutes=round(wait_seconds / 60.0, 1),
        )

        await self._sleep(wait_seconds + self.settings.reset_buffer_seconds)
        self.logger.info("rate_limit_reset")

    async def _sleep(self, seconds: float):
        self.wait_count += 1
        self.total_waited += seconds
        await asyncio.sleep(seconds)

    def get_stats(self) -> dict:
        """
        Get rate budget statistics.

        Returns:
            Dictionary with wait count and accumulated wait time
        """
        return {
            "wait_count": self.wait_count,
            "total_waited": f"{self.total_waited:.2f}s",
            "config": {
                "api_request_delay": self.settings.api_request_delay,
                "repository_search_delay": self.settings.repository_search_delay,
                "backoff_base": self.settings.backoff_base,
            },
        }
