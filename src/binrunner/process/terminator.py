"""Resolve processes by pid and terminate process trees with escalation.

Waiting here never reaps: the spawned shell is a child of the executor's
event loop, and reaping it from psutil would steal its exit status from
asyncio. Liveness is polled instead, and zombies count as exited.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import List, Optional

import psutil

logger = logging.getLogger(__name__)

# psutil derives create_time from boot time plus start ticks; identical
# processes agree far more closely than this.
CREATE_TIME_TOLERANCE_SECONDS = 0.01
POLL_INTERVAL_SECONDS = 0.05


def resolve_process(pid: int, expected_create_time: Optional[float] = None) -> Optional[psutil.Process]:
    """
    Return the live process for ``pid``, or None if it is gone.

    When ``expected_create_time`` is given, a process whose start time differs
    is treated as gone: the pid has been reused by an unrelated process.
    """
    try:
        process = psutil.Process(pid)
    except psutil.NoSuchProcess:
        logger.debug("Process %s no longer exists", pid)
        return None

    try:
        create_time = process.create_time()
    except psutil.NoSuchProcess:
        logger.debug("Process %s exited during inspection", pid)
        return None
    except psutil.AccessDenied:
        # Still exists; the caller finds out about permissions when signalling.
        logger.debug("Access denied inspecting process %s", pid)
        return process

    if expected_create_time is not None and abs(create_time - expected_create_time) > CREATE_TIME_TOLERANCE_SECONDS:
        logger.warning(
            "Pid %s now belongs to a different process (started %.3f, expected %.3f); refusing to signal it",
            pid,
            create_time,
            expected_create_time,
        )
        return None

    if not is_alive(process):
        return None
    return process


def is_alive(process: psutil.Process) -> bool:
    """True while the process exists and has not become a zombie."""
    try:
        return process.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


def collect_tree(process: psutil.Process) -> List[psutil.Process]:
    """The process followed by all of its descendants."""
    try:
        children = process.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []
    return [process, *children]


async def wait_for_exit(processes: List[psutil.Process], timeout: float) -> List[psutil.Process]:
    """Poll until every process has exited or ``timeout`` elapses; returns survivors."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max(0.0, timeout)
    alive = [proc for proc in processes if is_alive(proc)]
    while alive and loop.time() < deadline:
        await asyncio.sleep(POLL_INTERVAL_SECONDS)
        alive = [proc for proc in alive if is_alive(proc)]
    return alive


def _send(process: psutil.Process, sig: int) -> bool:
    try:
        process.send_signal(sig)
    except psutil.NoSuchProcess:
        logger.debug("Process %s exited before signal %s", process.pid, sig)
        return False
    return True


async def terminate_process_tree(
    process: psutil.Process,
    *,
    sig: int = signal.SIGTERM,
    graceful_timeout: float,
    force_timeout: float,
) -> List[int]:
    """
    Signal ``process`` and its descendants, escalating to SIGKILL for survivors.

    Returns:
        Pids that received the initial signal; empty when everything had already exited

    Raises:
        psutil.AccessDenied: If the process may not be signalled
        RuntimeError: If a process persists after SIGKILL
    """
    targets = collect_tree(process)
    signalled = [proc.pid for proc in targets if _send(proc, sig)]
    if not signalled:
        return []

    alive = await wait_for_exit(targets, graceful_timeout)
    if not alive:
        logger.debug("Process tree %s exited after signal %s", signalled, sig)
        return signalled

    pids = [proc.pid for proc in alive]
    logger.warning("Processes %s did not exit within %ss; sending SIGKILL", pids, graceful_timeout)
    for proc in alive:
        _send(proc, signal.SIGKILL)

    alive = await wait_for_exit(alive, force_timeout)
    if alive:
        raise RuntimeError(
            f"Processes {[proc.pid for proc in alive]} persisted after SIGKILL for {force_timeout}s; manual intervention required."
        )
    return signalled


__all__ = [
    "collect_tree",
    "is_alive",
    "resolve_process",
    "terminate_process_tree",
    "wait_for_exit",
]
