"""Error types surfaced by the execution and cancellation services."""

from __future__ import annotations


class BinrunnerError(RuntimeError):
    """Base class for errors raised to callers of binrunner services."""


class CorrelationStoreError(BinrunnerError):
    """Raised when the correlation store cannot be read."""

    def __init__(self, operation: str, correlation_id: str, original: Exception | None = None) -> None:
        message = f"Correlation store {operation} failed for {correlation_id!r}"
        if original is not None:
            message = f"{message}: {str(original) or type(original).__name__}"
        super().__init__(message)
        self.operation = operation
        self.correlation_id = correlation_id
        self.original = original


class CancellationError(BinrunnerError):
    """Raised when a run cannot be cancelled."""

    def __init__(self, correlation_id: str, reason: str) -> None:
        super().__init__(f"Cannot cancel run {correlation_id!r}: {reason}")
        self.correlation_id = correlation_id
        self.reason = reason


class UnknownCorrelationError(CancellationError):
    """No live registry entry: never started, entry expired, or store lost it."""

    def __init__(self, correlation_id: str, reason: str = "unknown or expired correlation id") -> None:
        super().__init__(correlation_id, reason)


class RunAlreadyFinishedError(UnknownCorrelationError):
    """The registry entry records that the run already ended."""

    def __init__(self, correlation_id: str, pid: int | None = None) -> None:
        reason = "run already finished"
        if pid is not None:
            reason = f"{reason} (pid {pid})"
        super().__init__(correlation_id, reason)
        self.pid = pid


class ProcessNotFoundError(CancellationError):
    """The pid resolved but the operating system has no matching process."""

    def __init__(self, correlation_id: str, pid: int, detail: str = "no such process") -> None:
        super().__init__(correlation_id, f"{detail} (pid {pid})")
        self.pid = pid


class ApplicationNotFoundError(BinrunnerError):
    """The requested application id is not registered."""

    def __init__(self, application_id: str) -> None:
        super().__init__(f"Application {application_id!r} not found")
        self.application_id = application_id


__all__ = [
    "ApplicationNotFoundError",
    "BinrunnerError",
    "CancellationError",
    "CorrelationStoreError",
    "ProcessNotFoundError",
    "RunAlreadyFinishedError",
    "UnknownCorrelationError",
]
