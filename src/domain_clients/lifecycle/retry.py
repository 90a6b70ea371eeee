"""Exponential backoff schedule for broadcast retries."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain_clients.config.settings import RetryConfig


def backoff_delay(config: RetryConfig, attempt: int) -> float:
    """Delay after failed attempt ``attempt`` (1-based), capped at ``max_delay``."""
    if attempt < 1:
        msg = f"attempt must be >= 1, got {attempt}"
        raise ValueError(msg)
    return min(config.base_delay * config.multiplier ** (attempt - 1), config.max_delay)


def backoff_schedule(config: RetryConfig) -> list[float]:
    """Full non-decreasing schedule, one delay per allowed attempt.

    Only the first ``max_attempts - 1`` entries are ever slept: there is no
    wait after the final attempt.
    """
    return [backoff_delay(config, n) for n in range(1, config.max_attempts + 1)]
