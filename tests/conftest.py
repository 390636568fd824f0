"""Root pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from binrunner.redis_protocol.retry import RedisRetryPolicy
from binrunner.store import RedisCorrelationStore
from tests.helpers.fake_redis import FakeRedis

FAST_RETRY = RedisRetryPolicy(max_attempts=3, attempt_timeout=0.2, base_delay=0.0, max_delay=0.0, jitter=0.0)


@pytest.fixture
def fast_retry() -> RedisRetryPolicy:
    return FAST_RETRY


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Provide a fake Redis instance."""
    return FakeRedis()


@pytest.fixture
def correlation_store(fake_redis: FakeRedis) -> RedisCorrelationStore:
    return RedisCorrelationStore(fake_redis, ttl_seconds=60 * 60 * 24, key_prefix="test:run:", retry_policy=FAST_RETRY)
