"""Run coordinator and the collaborator contracts it depends on."""

from __future__ import annotations

import logging
import shlex
import uuid
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional, Protocol

from .errors import ApplicationNotFoundError
from .models import ApplicationRecord, RunReport, RunResult
from .process.executor import CommandExecutor

logger = logging.getLogger(__name__)


class ApplicationRegistry(Protocol):
    async def find_application_by_id(self, application_id: str) -> Optional[ApplicationRecord]: ...


class ReportSink(Protocol):
    async def record_outcome(self, report: RunReport) -> str: ...

    async def increment_view_count(self, record_id: str) -> int: ...

    async def increment_download_count(self, record_id: str) -> int: ...


class InMemoryApplicationRegistry:
    """Dictionary-backed registry for single-process deployments and tests."""

    def __init__(self, applications: Iterable[ApplicationRecord] = ()) -> None:
        self._applications: Dict[str, ApplicationRecord] = {app.application_id: app for app in applications}

    def add(self, application: ApplicationRecord) -> None:
        self._applications[application.application_id] = application

    async def find_application_by_id(self, application_id: str) -> Optional[ApplicationRecord]:
        return self._applications.get(application_id)


@dataclass(frozen=True)
class StoredReport:
    record_id: str
    report: RunReport
    views: int = 0
    downloads: int = 0


class InMemoryReportStore:
    def __init__(self) -> None:
        self._records: Dict[str, StoredReport] = {}

    async def record_outcome(self, report: RunReport) -> str:
        record_id = uuid.uuid4().hex
        self._records[record_id] = StoredReport(record_id=record_id, report=report)
        return record_id

    async def increment_view_count(self, record_id: str) -> int:
        stored = self._require(record_id)
        updated = replace(stored, views=stored.views + 1)
        self._records[record_id] = updated
        return updated.views

    async def increment_download_count(self, record_id: str) -> int:
        stored = self._require(record_id)
        updated = replace(stored, downloads=stored.downloads + 1)
        self._records[record_id] = updated
        return updated.downloads

    def get(self, record_id: str) -> Optional[StoredReport]:
        return self._records.get(record_id)

    def __len__(self) -> int:
        return len(self._records)

    def _require(self, record_id: str) -> StoredReport:
        try:
            return self._records[record_id]
        except KeyError:
            raise KeyError(f"Unknown report record {record_id!r}") from None


def build_command_line(binary_path: str, command_args: str) -> str:
    """Quote the configured binary; the caller's arguments pass through as written."""
    command = shlex.quote(binary_path)
    args = command_args.strip()
    if args:
        return f"{command} {args}"
    return command


class RunCoordinator:
    """
    Public entry point for running an application.

    Resolves the application, runs its binary through the executor and hands
    the outcome to report persistence. The outcome reaches the caller
    unchanged even when persistence fails.
    """

    def __init__(
        self,
        applications: ApplicationRegistry,
        reports: ReportSink,
        executor: CommandExecutor,
    ) -> None:
        self._applications = applications
        self._reports = reports
        self._executor = executor

    @staticmethod
    def new_correlation_id() -> str:
        return uuid.uuid4().hex

    async def run(
        self,
        application_id: str,
        client_ip: str,
        command_args: str,
        correlation_id: Optional[str] = None,
    ) -> RunResult:
        """
        Raises:
            ApplicationNotFoundError: If ``application_id`` is not registered
        """
        application = await self._applications.find_application_by_id(application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)

        correlation_id = correlation_id or self.new_correlation_id()
        command = build_command_line(application.binary_path, command_args)
        logger.info("Run %s: %s requested %s for %s", correlation_id, client_ip, application.name, application_id)

        outcome = await self._executor.execute(command, correlation_id)
        report = RunReport(
            application_id=application_id,
            client_ip=client_ip,
            command=command,
            correlation_id=correlation_id,
            outcome=outcome,
        )
        record_id = await self._persist(report)
        return RunResult(record_id=record_id, report=report)

    async def _persist(self, report: RunReport) -> Optional[str]:
        try:
            return await self._reports.record_outcome(report)
        except Exception:
            logger.exception("Run %s: failed to persist report; returning outcome without a record id", report.correlation_id)
            return None


__all__ = [
    "ApplicationRegistry",
    "InMemoryApplicationRegistry",
    "InMemoryReportStore",
    "ReportSink",
    "RunCoordinator",
    "StoredReport",
    "build_command_line",
]
