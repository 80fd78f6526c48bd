"""
Command line entry point for the ask client.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
import uuid

from askstream.client.models import StreamEvent
from askstream.config import Configuration
from askstream.history.repositories.base import HistoryRepository
from askstream.history.repositories.jsonl_repo import AsyncJsonlHistoryRepo
from askstream.history.repositories.memory_repo import InMemoryHistoryRepo
from askstream.history.repositories.sql_repo import AsyncSqlHistoryRepo
from askstream.logging_utils import setup_logging
from askstream.session import SessionCoordinator

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


class ConsoleNotifier:
    """Writes answer deltas to stdout and failures to stderr."""

    def __init__(self, stdout=None, stderr=None) -> None:
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr

    def on_event(self, event: StreamEvent) -> None:
        if event.delta:
            self.stdout.write(event.delta)
            self.stdout.flush()
        if event.finish:
            self.stdout.write("\n")
            self.stdout.flush()

    def on_error(self, message: str) -> None:
        self.stderr.write(f"Error: {message}\n")
        self.stderr.flush()


def create_repository(config: Configuration) -> HistoryRepository:
    """Create history repository based on configuration."""
    history_config = config.get_history_config()
    backend = history_config["backend"]

    if backend == "memory":
        logging.info("Using in-memory history")
        return InMemoryHistoryRepo()
    if backend == "sqlite":
        logging.info(f"Using AsyncSqlHistoryRepo with database path: {history_config['path']}")
        return AsyncSqlHistoryRepo(history_config["path"])

    logging.info(f"Using AsyncJsonlHistoryRepo with path: {history_config['path']}")
    return AsyncJsonlHistoryRepo(
        history_config["path"], fsync_enabled=history_config["fsync_enabled"]
    )


def create_coordinator(
    config: Configuration, notifier: ConsoleNotifier | None = None
) -> SessionCoordinator:
    """Wire a SessionCoordinator from configuration."""
    return SessionCoordinator(
        config.get_client_config(),
        create_repository(config),
        notifier,
        retry_policy=config.get_retry_policy(),
        default_error_message=config.get_session_config()["default_error_message"],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="askstream",
        description="Stream answers from the ask service and keep a local history.",
    )
    parser.add_argument("--config", help="Path to an alternative config.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ask_parser = subparsers.add_parser("ask", help="Ask a question")
    ask_parser.add_argument("question")
    ask_parser.add_argument(
        "--session-id", help="Session id (defaults to a random UUID)"
    )

    subparsers.add_parser("history", help="Print history, most recent first")
    subparsers.add_parser("clear-history", help="Delete all history records")
    return parser


async def run_command(args: argparse.Namespace, config: Configuration) -> int:
    """Execute one parsed command and return the process exit code."""
    coordinator = create_coordinator(config, ConsoleNotifier())
    try:
        if args.command == "ask":
            session_id = args.session_id or str(uuid.uuid4())
            result = await coordinator.ask(args.question, session_id)
            return EXIT_OK if result.done else EXIT_FAILED

        if args.command == "history":
            records = await coordinator.get_history()
            for record in records:
                print(json.dumps(record.model_dump(mode="json"), ensure_ascii=False))
            return EXIT_OK

        cleared = await coordinator.clear_history()
        return EXIT_OK if cleared else EXIT_FAILED
    finally:
        await coordinator.close()


async def main(argv: list[str] | None = None) -> int:
    """Main entry point with graceful shutdown handling."""
    args = build_parser().parse_args(argv)
    config = Configuration(args.config)
    setup_logging(config.get_logging_config().get("level", "INFO"))

    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        """Handle shutdown signals gracefully."""
        logging.info("Received shutdown signal, cancelling...")
        shutdown_event.set()

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)

    command_task = asyncio.create_task(run_command(args, config))
    shutdown_task = asyncio.create_task(shutdown_event.wait())

    done, pending = await asyncio.wait(
        [command_task, shutdown_task],
        return_when=asyncio.FIRST_COMPLETED,
    )

    for task in pending:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    if command_task in done:
        return command_task.result()
    return EXIT_INTERRUPTED


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
