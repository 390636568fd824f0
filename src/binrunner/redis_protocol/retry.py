"""
Bounded retries for correlation store commands.

Each attempt runs under its own deadline, so a server that accepts the
connection but never answers holds a caller for at most
``max_attempts * attempt_timeout`` plus the backoff sleeps.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from redis.exceptions import RedisError

_ResultT = TypeVar("_ResultT")

RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    RedisError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    OSError,
)

DEFAULT_ATTEMPT_TIMEOUT_SECONDS = 2.0


@dataclass(frozen=True)
class RedisRetryPolicy:
    """How many times a store command is tried and how long each try may take."""

    max_attempts: int = 3
    attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT_SECONDS
    base_delay: float = 0.1
    max_delay: float = 1.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be positive")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")

    def backoff(self, attempt: int) -> float:
        """Seconds to sleep after failed attempt number ``attempt`` (1-based)."""
        delay = min(self.max_delay, self.base_delay * 2 ** (attempt - 1))
        if delay and self.jitter:
            delay *= 1 + random.uniform(-self.jitter, self.jitter)
        return max(0.0, delay)


class RedisRetryError(RuntimeError):
    """A store command failed on every attempt; ``__cause__`` holds the last error."""

    def __init__(self, description: str, attempts: int) -> None:
        super().__init__(f"{description} failed after {attempts} attempt(s)")
        self.description = description
        self.attempts = attempts


async def run_with_retry(
    command: Callable[[], Awaitable[_ResultT]],
    *,
    policy: RedisRetryPolicy,
    description: str,
    logger: logging.Logger,
) -> _ResultT:
    """
    Await ``command()`` until it succeeds or ``policy`` runs out of attempts.

    An attempt that exceeds ``policy.attempt_timeout`` is cancelled and counts
    as a failure. Errors outside :data:`RETRYABLE_ERRORS` propagate at once.

    Raises:
        RedisRetryError: When the last attempt fails
    """
    attempt = 1
    while True:
        try:
            return await asyncio.wait_for(command(), timeout=policy.attempt_timeout)
        except RETRYABLE_ERRORS as exc:
            if attempt >= policy.max_attempts:
                raise RedisRetryError(description, attempt) from exc
            delay = policy.backoff(attempt)
            logger.warning(
                "%s failed (attempt %s/%s): %s; retrying in %.2fs",
                description,
                attempt,
                policy.max_attempts,
                str(exc) or type(exc).__name__,
                delay,
            )
            await asyncio.sleep(delay)
        attempt += 1


__all__ = [
    "DEFAULT_ATTEMPT_TIMEOUT_SECONDS",
    "RETRYABLE_ERRORS",
    "RedisRetryError",
    "RedisRetryPolicy",
    "run_with_retry",
]
