"""
Bounded retry for registry conflicts.

The registry rejects an update when the record changed since it was read.
The immediate caller of such a mutating operation re-reads and retries a
small fixed number of times with a short exponential backoff. Nothing in
the package retries any other kind of failure.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from idmigrate.exceptions import ConfigurationError, RegistryConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    How often and how patiently a conflicting update is retried.

    Attributes:
        max_retries: Extra attempts after the first one; 0 disables retrying
        initial_delay: Seconds to wait before the first retry
        max_delay: Upper bound for any single wait, in seconds
        exponential_base: Growth factor of the wait per attempt
        jitter: Relative spread applied to each wait, between 0 and 1
    """

    max_retries: int = 3
    initial_delay: float = 0.1
    max_delay: float = 2.0
    exponential_base: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        problems = []
        if self.max_retries < 0:
            problems.append(f"max_retries cannot be negative (got {self.max_retries})")
        if self.initial_delay < 0:
            problems.append(f"initial_delay cannot be negative (got {self.initial_delay})")
        if self.max_delay < self.initial_delay:
            problems.append(
                f"max_delay {self.max_delay} is below initial_delay {self.initial_delay}"
            )
        if self.exponential_base <= 1.0:
            problems.append(f"exponential_base has to exceed 1 (got {self.exponential_base})")
        if not 0.0 <= self.jitter <= 1.0:
            problems.append(f"jitter has to lie in [0, 1] (got {self.jitter})")
        if problems:
            raise ConfigurationError("Invalid retry settings: " + "; ".join(problems))


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait before retry number ``attempt + 1``."""
    base = min(config.initial_delay * config.exponential_base**attempt, config.max_delay)
    spread = base * config.jitter
    return max(0.0, base + random.uniform(-spread, spread))  # nosec B311 - not crypto


def retry_on_conflict(
    operation: Callable[[], T],
    config: RetryConfig | None = None,
    operation_name: str = "registry update",
) -> T:
    """
    Call ``operation`` until it stops raising RegistryConflictError.

    ``operation`` has to re-read the record it modifies on every call;
    retrying a write built from the same stale read conflicts again.

    Raises:
        RegistryConflictError: Once ``config.max_retries`` retries have conflicted
    """
    config = config or RetryConfig()
    attempt = 0
    while True:
        try:
            return operation()
        except RegistryConflictError as e:
            if attempt == config.max_retries:
                logger.error(
                    f"Giving up on {operation_name} after {attempt + 1} conflicting attempts",
                    extra={"operation": operation_name, "attempts": attempt + 1, "error": str(e)},
                )
                raise
            delay = calculate_backoff(attempt, config)
            logger.warning(
                f"Conflict on {operation_name}, retrying in {delay:.3f}s",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "delay_seconds": delay,
                    "error": str(e),
                },
            )
            time.sleep(delay)
            attempt += 1


__all__ = [
    "RetryConfig",
    "calculate_backoff",
    "retry_on_conflict",
]
