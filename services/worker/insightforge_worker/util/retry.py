"""Backoff helpers for retrying transient task failures."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0


def exponential_backoff(attempt: int, config: RetryConfig) -> float:
    """Delay before retry number ``attempt`` (1-based), capped at ``max_delay``."""
    delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    return min(delay, config.max_delay)


# Infrastructure errors while processing a run (database, browser provisioning)
RUN_RETRY = RetryConfig(
    max_attempts=5,
    base_delay=30.0,
    max_delay=600.0,
    exponential_base=2.0,
)
