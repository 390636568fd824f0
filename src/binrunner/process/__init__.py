"""Process execution, termination and cancellation."""

from .cancellation import CancellationService
from .executor import RUN_TIMEOUT_SECONDS, CommandExecutor
from .terminator import resolve_process, terminate_process_tree

__all__ = [
    "RUN_TIMEOUT_SECONDS",
    "CancellationService",
    "CommandExecutor",
    "resolve_process",
    "terminate_process_tree",
]
