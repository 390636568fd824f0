"""Asynchronous command execution and cancellation for the admin backend."""

from .errors import (
    ApplicationNotFoundError,
    BinrunnerError,
    CancellationError,
    CorrelationStoreError,
    ProcessNotFoundError,
    RunAlreadyFinishedError,
    UnknownCorrelationError,
)
from .models import ExecutionOutcome, RegistryEntry, RunReport, RunResult, RunState
from .process import RUN_TIMEOUT_SECONDS, CancellationService, CommandExecutor
from .runner import RunCoordinator
from .store import CorrelationStore, RedisCorrelationStore

__version__ = "0.1.0"

__all__ = [
    "RUN_TIMEOUT_SECONDS",
    "ApplicationNotFoundError",
    "BinrunnerError",
    "CancellationError",
    "CancellationService",
    "CommandExecutor",
    "CorrelationStore",
    "CorrelationStoreError",
    "ExecutionOutcome",
    "ProcessNotFoundError",
    "RedisCorrelationStore",
    "RegistryEntry",
    "RunAlreadyFinishedError",
    "RunCoordinator",
    "RunReport",
    "RunResult",
    "RunState",
    "UnknownCorrelationError",
]
