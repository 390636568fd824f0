"""Cancel a running command using only its correlation id.

The service shares nothing with the executor that started the command: the
correlation store is the only link, so cancellation works from any request
or worker while the registry entry lives.
"""

from __future__ import annotations

import logging
import signal

import psutil

from ..config.settings import DEFAULT_FORCE_KILL_SECONDS, DEFAULT_GRACEFUL_KILL_SECONDS
from ..errors import (
    CancellationError,
    ProcessNotFoundError,
    RunAlreadyFinishedError,
    UnknownCorrelationError,
)
from ..store import CorrelationStore
from .terminator import resolve_process, terminate_process_tree

logger = logging.getLogger(__name__)


class CancellationService:
    def __init__(
        self,
        store: CorrelationStore,
        *,
        graceful_timeout: float = DEFAULT_GRACEFUL_KILL_SECONDS,
        force_timeout: float = DEFAULT_FORCE_KILL_SECONDS,
        sig: int = signal.SIGTERM,
    ) -> None:
        self._store = store
        self.graceful_timeout = graceful_timeout
        self.force_timeout = force_timeout
        self.sig = sig

    async def cancel(self, correlation_id: str) -> str:
        """
        Terminate the process registered under ``correlation_id``.

        Returns:
            Confirmation naming the pid that was killed

        Raises:
            UnknownCorrelationError: No live entry (never ran, or entry expired)
            RunAlreadyFinishedError: The run ended before the request arrived
            ProcessNotFoundError: The pid is gone or now names another process
            CancellationError: The process could not be terminated
            CorrelationStoreError: The store could not be read
        """
        entry = await self._store.get(correlation_id)
        if entry is None:
            logger.info("Cancel %s: no registry entry", correlation_id)
            raise UnknownCorrelationError(correlation_id)
        if entry.is_finished:
            logger.info("Cancel %s: run already finished (pid %s)", correlation_id, entry.pid)
            raise RunAlreadyFinishedError(correlation_id, entry.pid)

        process = resolve_process(entry.pid, entry.create_time)
        if process is None:
            raise ProcessNotFoundError(correlation_id, entry.pid, "no such process (exited or pid reused)")

        try:
            signalled = await terminate_process_tree(
                process,
                sig=self.sig,
                graceful_timeout=self.graceful_timeout,
                force_timeout=self.force_timeout,
            )
        except psutil.AccessDenied as exc:
            raise CancellationError(correlation_id, f"permission denied for pid {entry.pid}") from exc
        except RuntimeError as exc:
            raise CancellationError(correlation_id, str(exc)) from exc

        if not signalled:
            raise ProcessNotFoundError(correlation_id, entry.pid, "process exited before it could be signalled")

        logger.info("Cancel %s: killed pid %s (tree %s)", correlation_id, entry.pid, signalled)
        return f"Killed process with pid {entry.pid}"


__all__ = ["CancellationService"]
