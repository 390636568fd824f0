"""Command-line entry point: run or cancel a command through the shared Redis registry.

Usage:
    python -m binrunner exec "/opt/tools/scan --target 10.0.0.1" [--correlation-id ID]
    python -m binrunner cancel ID
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
import uuid
from typing import Optional, Sequence

import orjson

from .config import ConfigurationError, RunnerSettings, load_runner_settings
from .errors import CancellationError, CorrelationStoreError
from .logging_config import setup_logging
from .process import CancellationService, CommandExecutor
from .redis_protocol import RedisClient, RedisConnectionManager, RedisRetryPolicy
from .store import CorrelationStore, RedisCorrelationStore, UnavailableCorrelationStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNAVAILABLE = 2


def build_store(client: RedisClient, settings: RunnerSettings) -> RedisCorrelationStore:
    return RedisCorrelationStore(
        client,
        ttl_seconds=settings.registry_ttl_seconds,
        key_prefix=settings.key_prefix,
        retry_policy=RedisRetryPolicy(
            max_attempts=settings.store_retry_attempts,
            attempt_timeout=settings.store_timeout_seconds,
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="binrunner", description="Run external binaries with cancellation by correlation id")
    parser.add_argument("--log-dir", help="Also write logs to <log-dir>/binrunner.log")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log progress to stderr")

    subparsers = parser.add_subparsers(dest="action", required=True)

    exec_parser = subparsers.add_parser("exec", help="Run a command line and print its outcome as JSON")
    exec_parser.add_argument("command_line", help="Full command line, passed to the shell")
    exec_parser.add_argument("--correlation-id", help="Id used to cancel the run (generated when omitted)")

    cancel_parser = subparsers.add_parser("cancel", help="Cancel a run by correlation id")
    cancel_parser.add_argument("correlation_id")
    return parser


async def _exec(args: argparse.Namespace, settings: RunnerSettings) -> int:
    correlation_id = args.correlation_id or uuid.uuid4().hex
    # Printed before the run starts so the id can be used from another shell.
    print(f"correlation id: {correlation_id}", file=sys.stderr, flush=True)

    manager = RedisConnectionManager()
    store: CorrelationStore
    try:
        client = await manager.initialize()
    except ConnectionError as exc:
        logger.warning("Redis unavailable (%s); run %s will not be cancellable", exc, correlation_id)
        store = UnavailableCorrelationStore()
    else:
        store = build_store(client, settings)

    try:
        executor = CommandExecutor(
            store,
            graceful_timeout=settings.graceful_kill_seconds,
            force_timeout=settings.force_kill_seconds,
        )
        outcome = await executor.execute(args.command_line, correlation_id)
    finally:
        await manager.cleanup()

    payload = {"correlation_id": correlation_id, **dataclasses.asdict(outcome)}
    print(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8"))
    return EXIT_OK if outcome.succeeded else EXIT_FAILED


async def _cancel(args: argparse.Namespace, settings: RunnerSettings) -> int:
    async with RedisConnectionManager() as client:
        service = CancellationService(
            build_store(client, settings),
            graceful_timeout=settings.graceful_kill_seconds,
            force_timeout=settings.force_kill_seconds,
        )
        try:
            message = await service.cancel(args.correlation_id)
        except CancellationError as exc:
            print(str(exc), file=sys.stderr)
            return EXIT_FAILED
        except CorrelationStoreError as exc:
            print(str(exc), file=sys.stderr)
            return EXIT_UNAVAILABLE

    print(message)
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        "binrunner",
        log_dir=args.log_dir,
        level=logging.DEBUG if args.verbose else logging.WARNING,
        stream=sys.stderr,
    )

    try:
        settings = load_runner_settings()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_UNAVAILABLE

    handler = _exec if args.action == "exec" else _cancel
    try:
        return asyncio.run(handler(args, settings))
    except (ConnectionError, ConfigurationError) as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_UNAVAILABLE


if __name__ == "__main__":
    sys.exit(main())
