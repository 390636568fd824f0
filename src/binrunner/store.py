from __future__ import annotations

"""
Correlation store: maps a caller-chosen correlation id to the process
identity of a running command.

Entries live in Redis under ``<prefix><correlation id>`` with a fixed TTL
(``SET key value EX ttl`` / ``GET key``). A missing key means the id was
never registered or its entry expired; callers cannot tell the two apart.
Writes are best-effort so that a Redis outage only costs cancellability,
never the run itself, and every command runs under the retry policy's
per-attempt deadline so an unresponsive server delays a run only briefly.
"""

import logging
from typing import Any, Optional, Protocol

import orjson

from .config.settings import DEFAULT_KEY_PREFIX, DEFAULT_REGISTRY_TTL_SECONDS
from .errors import CorrelationStoreError
from .models import RegistryEntry, RunState
from .redis_protocol.error_types import PARSING_ERRORS
from .redis_protocol.retry import RedisRetryError, RedisRetryPolicy, run_with_retry
from .redis_protocol.typing import RedisClient, ensure_awaitable

logger = logging.getLogger(__name__)


class CorrelationStore(Protocol):
    """Contract used by the executor and the cancellation service."""

    async def put(self, correlation_id: str, entry: RegistryEntry) -> None: ...

    async def get(self, correlation_id: str) -> Optional[RegistryEntry]: ...

    async def mark_finished(self, correlation_id: str, entry: RegistryEntry) -> None: ...


def encode_entry(entry: RegistryEntry) -> bytes:
    return orjson.dumps({"pid": entry.pid, "create_time": entry.create_time, "state": entry.state.value})


def decode_entry(raw: Any) -> RegistryEntry:
    """
    Decode a stored value.

    Besides the JSON payload written by :func:`encode_entry`, a bare integer
    is accepted as an untagged running pid.

    Raises:
        ValueError: If the payload is not a valid registry entry
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if not isinstance(raw, str):
        raise ValueError(f"Unexpected registry payload type {type(raw).__name__}")

    text = raw.strip()
    if text.isdigit():
        return RegistryEntry(pid=int(text))

    payload = orjson.loads(text)
    if not isinstance(payload, dict):
        raise ValueError("Registry payload must be a JSON object")

    pid = payload.get("pid")
    if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
        raise ValueError(f"Registry payload has invalid pid {pid!r}")

    create_time = payload.get("create_time")
    if create_time is not None and not isinstance(create_time, (int, float)):
        raise ValueError(f"Registry payload has invalid create_time {create_time!r}")

    state = RunState(payload.get("state", RunState.RUNNING.value))
    return RegistryEntry(
        pid=pid,
        create_time=float(create_time) if create_time is not None else None,
        state=state,
    )


class RedisCorrelationStore:
    """Redis-backed :class:`CorrelationStore` with per-key TTL."""

    def __init__(
        self,
        client: RedisClient,
        *,
        ttl_seconds: int = DEFAULT_REGISTRY_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        retry_policy: Optional[RedisRetryPolicy] = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self._retry_policy = retry_policy or RedisRetryPolicy()

    def key_for(self, correlation_id: str) -> str:
        return f"{self.key_prefix}{correlation_id}"

    async def put(self, correlation_id: str, entry: RegistryEntry) -> None:
        """Insert or overwrite the entry and reset its TTL. Never raises on store errors."""
        await self._write(correlation_id, entry, context=f"register {correlation_id}")

    async def mark_finished(self, correlation_id: str, entry: RegistryEntry) -> None:
        """Replace the entry with a finished marker carrying a fresh TTL."""
        await self._write(correlation_id, entry.finished(), context=f"finish {correlation_id}")

    async def get(self, correlation_id: str) -> Optional[RegistryEntry]:
        """
        Resolve a correlation id.

        Returns None when the key is absent (never registered or expired).

        Raises:
            CorrelationStoreError: If Redis is unreachable or the payload is corrupt
        """
        key = self.key_for(correlation_id)

        async def _get() -> Any:
            return await ensure_awaitable(self._client.get(key))

        try:
            raw = await run_with_retry(
                _get,
                policy=self._retry_policy,
                description=f"Correlation lookup {correlation_id}",
                logger=logger,
            )
        except RedisRetryError as exc:
            raise CorrelationStoreError("get", correlation_id, exc.__cause__ or exc) from exc

        if raw is None:
            return None
        try:
            return decode_entry(raw)
        except PARSING_ERRORS as exc:
            logger.warning("Corrupt registry entry at %s: %r", key, raw)
            raise CorrelationStoreError("decode", correlation_id, exc) from exc

    async def _write(self, correlation_id: str, entry: RegistryEntry, *, context: str) -> None:
        key = self.key_for(correlation_id)
        payload = encode_entry(entry)

        async def _set() -> Any:
            return await ensure_awaitable(self._client.set(key, payload, ex=self.ttl_seconds))

        try:
            await run_with_retry(_set, policy=self._retry_policy, description=f"Correlation {context}", logger=logger)
        except RedisRetryError as exc:
            logger.error("Giving up on correlation %s (pid %s): %s (last error: %r)", context, entry.pid, exc, exc.__cause__)
            return
        logger.debug("Stored %s -> pid %s (%s, ttl=%ss)", key, entry.pid, entry.state.value, self.ttl_seconds)


class UnavailableCorrelationStore:
    """
    Stand-in used when Redis cannot be reached at startup.

    Runs still execute; they are simply never registered, so they cannot be
    cancelled by correlation id.
    """

    async def put(self, correlation_id: str, entry: RegistryEntry) -> None:
        logger.warning("Run %s (pid %s) is not registered; it cannot be cancelled", correlation_id, entry.pid)

    async def get(self, correlation_id: str) -> Optional[RegistryEntry]:
        return None

    async def mark_finished(self, correlation_id: str, entry: RegistryEntry) -> None:
        return None


__all__ = [
    "CorrelationStore",
    "RedisCorrelationStore",
    "UnavailableCorrelationStore",
    "decode_entry",
    "encode_entry",
]
