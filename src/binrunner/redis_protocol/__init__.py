"""Redis access helpers: client lifecycle, bounded retries, error groupings."""

from .connection import RedisConnectionManager, connect, create_redis_client
from .error_types import PARSING_ERRORS, REDIS_ERRORS
from .retry import RETRYABLE_ERRORS, RedisRetryError, RedisRetryPolicy, run_with_retry
from .typing import RedisClient, ensure_awaitable

__all__ = [
    "PARSING_ERRORS",
    "REDIS_ERRORS",
    "RETRYABLE_ERRORS",
    "RedisClient",
    "RedisConnectionManager",
    "RedisRetryError",
    "RedisRetryPolicy",
    "connect",
    "create_redis_client",
    "ensure_awaitable",
    "run_with_retry",
]
