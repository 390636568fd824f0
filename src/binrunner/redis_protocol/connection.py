"""Redis client construction and lifecycle management."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

import redis.asyncio

from ..config import RedisSettings, load_redis_settings
from .error_types import REDIS_ERRORS
from .typing import RedisClient, ensure_awaitable

logger = logging.getLogger(__name__)


def create_redis_client(settings: RedisSettings) -> RedisClient:
    """Build an async Redis client that returns ``str`` values."""
    return redis.asyncio.Redis(
        host=settings.host,
        port=settings.port,
        db=settings.db,
        password=settings.password,
        ssl=settings.ssl,
        socket_timeout=settings.socket_timeout,
        socket_connect_timeout=settings.socket_connect_timeout,
        decode_responses=True,
    )


async def connect(settings: Optional[RedisSettings] = None) -> RedisClient:
    """Create a client from settings (environment when omitted) and verify it with PING."""
    resolved = settings or load_redis_settings()
    client = create_redis_client(resolved)
    try:
        await ensure_awaitable(client.ping())
    except REDIS_ERRORS as exc:
        logger.error("Redis connection to %s:%s failed: %s", resolved.host, resolved.port, exc)
        await ensure_awaitable(client.aclose())
        raise ConnectionError(f"Redis connection failed: {type(exc).__name__}: {exc}") from exc
    logger.debug("Redis connection established to %s:%s", resolved.host, resolved.port)
    return client


class RedisConnectionManager:
    """Owns one Redis client; the client is handed to stores explicitly."""

    def __init__(
        self,
        connection_factory: Optional[Callable[[], Awaitable[RedisClient]]] = None,
        *,
        not_initialized_message: str = "Redis client not initialized",
    ):
        self.redis_client: Optional[RedisClient] = None
        self._connection_factory = connection_factory or connect
        self._not_initialized_message = not_initialized_message

    async def initialize(self) -> RedisClient:
        """Open a fresh connection, closing any previous client first."""
        if self.redis_client is not None:
            await self.cleanup()

        try:
            self.redis_client = await self._connection_factory()
        except REDIS_ERRORS as exc:
            logger.exception("Redis connection failed: %s", type(exc).__name__)
            raise
        return self.redis_client

    async def cleanup(self) -> None:
        """Close the Redis connection to prevent resource leaks."""
        if self.redis_client is None:
            return
        try:
            await ensure_awaitable(self.redis_client.aclose())
        except REDIS_ERRORS:
            logger.warning("Error closing Redis connection during cleanup", exc_info=True)
        finally:
            self.redis_client = None

    def get_client(self) -> RedisClient:
        """Return the active Redis client or raise if uninitialized."""
        if self.redis_client is None:
            raise ConnectionError(self._not_initialized_message)
        return self.redis_client

    async def __aenter__(self) -> RedisClient:
        return await self.initialize()

    async def __aexit__(self, *exc_info) -> None:
        await self.cleanup()
