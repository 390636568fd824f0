"""
Command executor.

Spawns one shell command per call, publishes ``correlation id -> process
identity`` to the correlation store, and races natural completion against a
hard runtime ceiling. Exactly one :class:`ExecutionOutcome` is produced per
call; nothing that goes wrong with the command or the store escapes as an
exception.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

import psutil

from ..config.settings import DEFAULT_FORCE_KILL_SECONDS, DEFAULT_GRACEFUL_KILL_SECONDS
from ..models import TIMED_OUT_MESSAGE, ExecutionOutcome, RegistryEntry, epoch_millis
from ..store import CorrelationStore
from .terminator import terminate_process_tree

logger = logging.getLogger(__name__)

# Resource-protection ceiling for a single run.
RUN_TIMEOUT_SECONDS = 60 * 60 * 24


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _failure_message(command_line: str, returncode: int, stderr: str) -> str:
    if returncode < 0:
        try:
            status = f"terminated by {signal.Signals(-returncode).name}"
        except ValueError:
            status = f"terminated by signal {-returncode}"
    else:
        status = f"exit code {returncode}"

    message = f"Command failed: {command_line} ({status})"
    detail = stderr.strip()
    if detail:
        return f"{message}\n{detail}"
    return message


def _identify(pid: int) -> Optional[psutil.Process]:
    try:
        process = psutil.Process(pid)
        process.create_time()
    except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
        logger.warning("Could not inspect spawned pid %s: %s", pid, exc)
        return None
    return process


class CommandExecutor:
    """Runs commands and keeps them cancellable through the correlation store."""

    def __init__(
        self,
        store: CorrelationStore,
        *,
        timeout_seconds: float = RUN_TIMEOUT_SECONDS,
        graceful_timeout: float = DEFAULT_GRACEFUL_KILL_SECONDS,
        force_timeout: float = DEFAULT_FORCE_KILL_SECONDS,
        timeout_signal: int = signal.SIGINT,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._store = store
        self.timeout_seconds = timeout_seconds
        self.graceful_timeout = graceful_timeout
        self.force_timeout = force_timeout
        self.timeout_signal = timeout_signal

    async def execute(self, command_line: str, correlation_id: str) -> ExecutionOutcome:
        started_at = epoch_millis()
        if not command_line.strip():
            return ExecutionOutcome.failure("Command line is empty", started_at_ms=started_at)

        try:
            proc = await asyncio.create_subprocess_shell(
                command_line,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            logger.error("Failed to spawn %r for run %s: %s", command_line, correlation_id, exc)
            return ExecutionOutcome.failure(f"Failed to start command: {exc}", started_at_ms=started_at)

        handle = _identify(proc.pid)
        entry = RegistryEntry(pid=proc.pid, create_time=handle.create_time() if handle is not None else None)
        logger.info("Run %s started pid %s: %s", correlation_id, proc.pid, command_line)

        # Registration runs alongside the process; the store never delays completion handling.
        registration = asyncio.create_task(self._store.put(correlation_id, entry))
        try:
            outcome = await self._await_outcome(proc, handle, command_line, started_at, correlation_id)
        except asyncio.CancelledError:
            logger.warning("Run %s abandoned by caller; terminating pid %s", correlation_id, proc.pid)
            await self._terminate(proc, handle, correlation_id)
            raise
        finally:
            await self._settle_registration(registration, correlation_id, entry)

        logger.info(
            "Run %s (pid %s) %s in %dms",
            correlation_id,
            proc.pid,
            "succeeded" if outcome.succeeded else "failed",
            outcome.duration_ms,
        )
        return outcome

    async def _await_outcome(
        self,
        proc: asyncio.subprocess.Process,
        handle: Optional[psutil.Process],
        command_line: str,
        started_at: int,
        correlation_id: str,
    ) -> ExecutionOutcome:
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Run %s (pid %s) exceeded %ss; terminating", correlation_id, proc.pid, self.timeout_seconds)
            await self._terminate(proc, handle, correlation_id)
            return ExecutionOutcome.failure(
                TIMED_OUT_MESSAGE,
                started_at_ms=started_at,
                exit_code=proc.returncode,
                timed_out=True,
            )

        returncode = proc.returncode if proc.returncode is not None else -1
        if returncode == 0:
            return ExecutionOutcome(
                succeeded=True,
                output=_decode(stdout),
                started_at_ms=started_at,
                finished_at_ms=epoch_millis(),
                exit_code=0,
            )
        return ExecutionOutcome.failure(
            _failure_message(command_line, returncode, _decode(stderr)),
            started_at_ms=started_at,
            exit_code=returncode,
        )

    async def _terminate(
        self,
        proc: asyncio.subprocess.Process,
        handle: Optional[psutil.Process],
        correlation_id: str,
    ) -> None:
        """Stop the process tree and reap the child; a no-op when it already exited."""
        if proc.returncode is None:
            if handle is not None:
                try:
                    await terminate_process_tree(
                        handle,
                        sig=self.timeout_signal,
                        graceful_timeout=self.graceful_timeout,
                        force_timeout=self.force_timeout,
                    )
                except psutil.AccessDenied as exc:
                    logger.error("Run %s: not permitted to terminate pid %s: %s", correlation_id, proc.pid, exc)
                except RuntimeError as exc:
                    logger.error("Run %s: %s", correlation_id, exc)
            else:
                try:
                    proc.kill()
                except ProcessLookupError:
                    logger.debug("Run %s: pid %s already gone", correlation_id, proc.pid)

        try:
            await asyncio.wait_for(proc.wait(), timeout=self.force_timeout)
        except asyncio.TimeoutError:
            logger.error("Run %s: pid %s was not reaped after termination", correlation_id, proc.pid)

    async def _settle_registration(
        self,
        registration: "asyncio.Task[None]",
        correlation_id: str,
        entry: RegistryEntry,
    ) -> None:
        """Wait for the registration write, then leave a finished marker behind it."""
        await registration
        await self._store.mark_finished(correlation_id, entry)


__all__ = ["RUN_TIMEOUT_SECONDS", "CommandExecutor"]
