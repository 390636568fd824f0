from __future__ import annotations

"""Data models shared by the executor, cancellation service and coordinator."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

TIMED_OUT_MESSAGE = "Timed out"


def epoch_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class RunState(str, Enum):
    RUNNING = "running"
    FINISHED = "finished"


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one command execution; ``output`` is stdout or the error text."""

    succeeded: bool
    output: str
    started_at_ms: int
    finished_at_ms: int
    exit_code: Optional[int] = None
    timed_out: bool = False

    @property
    def error(self) -> Optional[str]:
        return None if self.succeeded else self.output

    @property
    def duration_ms(self) -> int:
        return max(0, self.finished_at_ms - self.started_at_ms)

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        started_at_ms: int,
        exit_code: Optional[int] = None,
        timed_out: bool = False,
    ) -> "ExecutionOutcome":
        return cls(
            succeeded=False,
            output=message,
            started_at_ms=started_at_ms,
            finished_at_ms=epoch_millis(),
            exit_code=exit_code,
            timed_out=timed_out,
        )


@dataclass(frozen=True)
class RegistryEntry:
    """
    Value stored under a correlation id.

    ``create_time`` is the OS start time of the process and acts as a
    generation tag: a pid whose start time differs belongs to another process.
    """

    pid: int
    create_time: Optional[float] = None
    state: RunState = RunState.RUNNING

    @property
    def is_finished(self) -> bool:
        return self.state is RunState.FINISHED

    def finished(self) -> "RegistryEntry":
        return RegistryEntry(pid=self.pid, create_time=self.create_time, state=RunState.FINISHED)


@dataclass(frozen=True)
class ApplicationRecord:
    application_id: str
    name: str
    binary_path: str
    version: Optional[str] = None


@dataclass(frozen=True)
class RunReport:
    """Everything handed to report persistence for one run."""

    application_id: str
    client_ip: str
    command: str
    correlation_id: str
    outcome: ExecutionOutcome


@dataclass(frozen=True)
class RunResult:
    record_id: Optional[str]
    report: RunReport

    @property
    def outcome(self) -> ExecutionOutcome:
        return self.report.outcome


__all__ = [
    "TIMED_OUT_MESSAGE",
    "ApplicationRecord",
    "ExecutionOutcome",
    "RegistryEntry",
    "RunReport",
    "RunResult",
    "RunState",
    "epoch_millis",
]
