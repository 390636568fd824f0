from __future__ import annotations

import asyncio

import orjson
import pytest

from binrunner.errors import CorrelationStoreError
from binrunner.models import RegistryEntry, RunState
from binrunner.store import RedisCorrelationStore, decode_entry, encode_entry
from tests.helpers.fake_redis import FakeRedis, FlakyRedis, HangingRedis

DAY = 60 * 60 * 24


@pytest.mark.asyncio
async def test_put_writes_entry_with_ttl(correlation_store, fake_redis):
    await correlation_store.put("abc", RegistryEntry(pid=4321, create_time=1700000000.25))

    key, value, ex = fake_redis.set_calls[-1]
    assert key == "test:run:abc"
    assert ex == DAY
    assert orjson.loads(value) == {"pid": 4321, "create_time": 1700000000.25, "state": "running"}
    assert await fake_redis.ttl("test:run:abc") == DAY


@pytest.mark.asyncio
async def test_get_returns_registered_entry(correlation_store):
    await correlation_store.put("abc", RegistryEntry(pid=4321, create_time=12.5))

    entry = await correlation_store.get("abc")

    assert entry == RegistryEntry(pid=4321, create_time=12.5, state=RunState.RUNNING)


@pytest.mark.asyncio
async def test_get_unknown_id_returns_none(correlation_store):
    assert await correlation_store.get("never-registered") is None


@pytest.mark.asyncio
async def test_expired_entry_reads_like_unknown(correlation_store, fake_redis):
    await correlation_store.put("abc", RegistryEntry(pid=10))
    fake_redis.advance(DAY + 1)

    assert await correlation_store.get("abc") is None


@pytest.mark.asyncio
async def test_put_overwrites_and_resets_ttl(correlation_store, fake_redis):
    await correlation_store.put("abc", RegistryEntry(pid=10))
    fake_redis.advance(DAY - 5)
    await correlation_store.put("abc", RegistryEntry(pid=11))
    fake_redis.advance(10)

    entry = await correlation_store.get("abc")
    assert entry is not None
    assert entry.pid == 11


@pytest.mark.asyncio
async def test_distinct_ids_do_not_interfere(correlation_store):
    await correlation_store.put("first", RegistryEntry(pid=100))
    await correlation_store.put("second", RegistryEntry(pid=200))

    first = await correlation_store.get("first")
    second = await correlation_store.get("second")
    assert first is not None and first.pid == 100
    assert second is not None and second.pid == 200


@pytest.mark.asyncio
async def test_mark_finished_keeps_pid_and_flags_state(correlation_store, fake_redis):
    entry = RegistryEntry(pid=77, create_time=3.0)
    await correlation_store.put("abc", entry)
    fake_redis.advance(100)

    await correlation_store.mark_finished("abc", entry)

    stored = await correlation_store.get("abc")
    assert stored == RegistryEntry(pid=77, create_time=3.0, state=RunState.FINISHED)
    assert stored.is_finished
    assert await fake_redis.ttl("test:run:abc") == DAY


@pytest.mark.asyncio
async def test_bare_pid_payload_is_an_untagged_running_entry(correlation_store, fake_redis):
    await fake_redis.set("test:run:legacy", "9876", ex=DAY)

    entry = await correlation_store.get("legacy")

    assert entry == RegistryEntry(pid=9876)


@pytest.mark.asyncio
async def test_corrupt_payload_raises_store_error(correlation_store, fake_redis):
    await fake_redis.set("test:run:bad", '{"pid": "not-a-number"}', ex=DAY)

    with pytest.raises(CorrelationStoreError):
        await correlation_store.get("bad")


@pytest.mark.asyncio
async def test_put_retries_transient_failure(fast_retry):
    flaky = FlakyRedis(failures=1)
    store = RedisCorrelationStore(flaky, key_prefix="p:", retry_policy=fast_retry)

    await store.put("abc", RegistryEntry(pid=5))

    assert flaky.attempts == 2
    assert flaky.dump_string("p:abc") is not None


@pytest.mark.asyncio
async def test_put_swallows_persistent_outage(fast_retry):
    flaky = FlakyRedis(failures=100)
    store = RedisCorrelationStore(flaky, key_prefix="p:", retry_policy=fast_retry)

    await store.put("abc", RegistryEntry(pid=5))

    assert flaky.attempts == fast_retry.max_attempts
    assert flaky.dump_string("p:abc") is None


@pytest.mark.asyncio
async def test_get_raises_when_store_unreachable(fast_retry):
    store = RedisCorrelationStore(FlakyRedis(failures=100), retry_policy=fast_retry)

    with pytest.raises(CorrelationStoreError) as exc_info:
        await store.get("abc")

    assert isinstance(exc_info.value.original, ConnectionError)


@pytest.mark.asyncio
async def test_unanswered_write_gives_up_within_attempt_budget(fast_retry):
    hanging = HangingRedis()
    store = RedisCorrelationStore(hanging, key_prefix="p:", retry_policy=fast_retry)

    await asyncio.wait_for(store.put("abc", RegistryEntry(pid=5)), timeout=5)

    assert hanging.attempts == fast_retry.max_attempts
    assert hanging.dump_string("p:abc") is None


@pytest.mark.asyncio
async def test_unanswered_lookup_raises_store_error(fast_retry):
    store = RedisCorrelationStore(HangingRedis(), retry_policy=fast_retry)

    with pytest.raises(CorrelationStoreError) as exc_info:
        await asyncio.wait_for(store.get("abc"), timeout=5)

    assert isinstance(exc_info.value.original, asyncio.TimeoutError)

def test_rejects_non_positive_ttl():
    with pytest.raises(ValueError):
        RedisCorrelationStore(FakeRedis(), ttl_seconds=0)


def test_encode_decode_preserves_finished_state():
    entry = RegistryEntry(pid=42, create_time=None, state=RunState.FINISHED)

    assert decode_entry(encode_entry(entry)) == entry


@pytest.mark.parametrize("payload", ["[]", '{"pid": 0}', '{"pid": true}', '{"pid": 3, "state": "paused"}', "not json"])
def test_decode_entry_rejects_malformed_payloads(payload):
    with pytest.raises(ValueError):
        decode_entry(payload)
