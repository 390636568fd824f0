from __future__ import annotations

import asyncio
import os
import signal

import psutil
import pytest

from binrunner.errors import (
    CancellationError,
    CorrelationStoreError,
    ProcessNotFoundError,
    RunAlreadyFinishedError,
    UnknownCorrelationError,
)
from binrunner.models import RegistryEntry
from binrunner.process import cancellation as cancellation_module
from binrunner.process.cancellation import CancellationService
from binrunner.process.executor import CommandExecutor
from binrunner.store import RedisCorrelationStore
from tests.helpers.fake_redis import FlakyRedis
from tests.helpers.run_helpers import process_running, wait_for_entry


@pytest.fixture
def service(correlation_store) -> CancellationService:
    return CancellationService(correlation_store, graceful_timeout=1.0, force_timeout=2.0)


@pytest.fixture
def executor(correlation_store) -> CommandExecutor:
    return CommandExecutor(correlation_store, timeout_seconds=10, graceful_timeout=0.5, force_timeout=2.0)


@pytest.mark.asyncio
async def test_unknown_id_is_an_error(service):
    with pytest.raises(UnknownCorrelationError):
        await service.cancel("never-registered")


@pytest.mark.asyncio
async def test_expired_entry_is_an_error(service, correlation_store, fake_redis):
    await correlation_store.put("old", RegistryEntry(pid=os.getpid()))
    fake_redis.advance(correlation_store.ttl_seconds)

    with pytest.raises(UnknownCorrelationError):
        await service.cancel("old")


@pytest.mark.asyncio
async def test_cancel_running_command(service, executor, correlation_store):
    task = asyncio.create_task(executor.execute("sleep 5", "run-cancel"))
    entry = await wait_for_entry(correlation_store, "run-cancel")

    message = await service.cancel("run-cancel")

    assert message == f"Killed process with pid {entry.pid}"
    outcome = await task
    assert outcome.succeeded is False
    assert outcome.timed_out is False
    assert not process_running(entry)


@pytest.mark.asyncio
async def test_cancel_after_completion_reports_finished(service, executor):
    outcome = await executor.execute("echo quick", "run-done")
    assert outcome.succeeded

    with pytest.raises(RunAlreadyFinishedError) as exc_info:
        await service.cancel("run-done")

    assert isinstance(exc_info.value, UnknownCorrelationError)
    assert exc_info.value.pid is not None


@pytest.mark.asyncio
async def test_cancel_process_started_elsewhere(service, correlation_store):
    proc = await asyncio.create_subprocess_exec("sleep", "5")
    create_time = psutil.Process(proc.pid).create_time()
    await correlation_store.put("foreign", RegistryEntry(pid=proc.pid, create_time=create_time))

    message = await service.cancel("foreign")

    assert str(proc.pid) in message
    assert await asyncio.wait_for(proc.wait(), timeout=5) == -signal.SIGTERM


@pytest.mark.asyncio
async def test_reused_pid_is_never_signalled(service, correlation_store):
    # Our own pid with a start time that cannot match it.
    await correlation_store.put("reused", RegistryEntry(pid=os.getpid(), create_time=1.0))

    with pytest.raises(ProcessNotFoundError) as exc_info:
        await service.cancel("reused")

    assert exc_info.value.pid == os.getpid()


@pytest.mark.asyncio
async def test_exited_process_is_an_error(service, correlation_store):
    proc = await asyncio.create_subprocess_exec("sleep", "5")
    create_time = psutil.Process(proc.pid).create_time()
    proc.kill()
    await proc.wait()
    await correlation_store.put("gone", RegistryEntry(pid=proc.pid, create_time=create_time))

    with pytest.raises(ProcessNotFoundError):
        await service.cancel("gone")


@pytest.mark.asyncio
async def test_permission_denied_is_a_cancellation_error(service, correlation_store, monkeypatch):
    proc = await asyncio.create_subprocess_exec("sleep", "5")
    await correlation_store.put("denied", RegistryEntry(pid=proc.pid))

    async def deny(process, **kwargs):
        raise psutil.AccessDenied(process.pid)

    monkeypatch.setattr(cancellation_module, "terminate_process_tree", deny)
    try:
        with pytest.raises(CancellationError) as exc_info:
            await service.cancel("denied")
        assert "permission denied" in str(exc_info.value)
    finally:
        proc.kill()
        await proc.wait()


@pytest.mark.asyncio
async def test_store_failure_propagates(fast_retry):
    service = CancellationService(RedisCorrelationStore(FlakyRedis(failures=100), retry_policy=fast_retry))

    with pytest.raises(CorrelationStoreError):
        await service.cancel("anything")
