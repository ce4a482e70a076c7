"""Command line entry point of the worker service."""

from __future__ import annotations

import argparse
import logging
import platform
import signal
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import ExitStack, contextmanager
from typing import Iterator, Optional, Sequence

import requests

from .bruteforce import create_brute_force
from .config import Env, WorkerConfig, load_worker_config
from .httpclient import HttpClient
from .logsetup import setup_logging
from .server import BackgroundServer
from .worker_app import create_app
from .worker_service import WorkerTaskService

logger = logging.getLogger(__name__)

APP_VERSION = "0.0.0"
PYTHON_VERSION = platform.python_version()
PLATFORM = f"{sys.platform}/{platform.machine()}"

READINESS_PATH = "/api/worker/health/readiness"
DEFAULT_HOST = "0.0.0.0:8080"

BANNER = (
    "\n"
    "   ___             _      _  _   _   ___ _  _        __      __       _           \n"
    "  / __|_ _ __ _ __| |_   | || | /_\\ / __| || |  ___  \\ \\    / /__ _ _| |_____ _ _ \n"
    " | (__| '_/ _` (_-< ' \\  | __ |/ _ \\\\__ \\ __ | |___|  \\ \\/\\/ / _ \\ '_| / / -_) '_|\n"
    "  \\___|_| \\__,_/__/_||_| |_||_/_/ \\_\\___/_||_|         \\_/\\_/\\___/_| |_\\_\\___|_|  \n"
    "                                                                                  \n"
    f"Version: {APP_VERSION}\n"
)


class WorkerContainer:
    """Builds and owns every component of a running worker."""

    def __init__(self, config: WorkerConfig) -> None:
        self.config = config

        logger.info("setup HTTP client")
        self.client = HttpClient(
            base_url=None, balancer=None, retries=3, min_wait=5.0, max_wait=10.0
        )

        logger.info("setup job queue")
        self.executor = ThreadPoolExecutor(
            max_workers=config.task.concurrency, thread_name_prefix="job"
        )

        try:
            logger.info("setup services")
            split = config.task.split
            self.brute_force = create_brute_force(split.strategy, split.chunk_size)
            self.service = WorkerTaskService(
                config.manager.address, self.client, self.executor, self.brute_force
            )

            logger.info("setup handlers")
            self.app = create_app(self.service)
        except Exception:
            self.close()
            raise

    def close(self) -> None:
        """Release the HTTP client and stop the job queue."""
        logger.info("closing container")
        errors = []

        logger.info("closing HTTP client")
        try:
            self.client.close()
        except Exception as exc:
            errors.append(exc)

        logger.info("closing job queue")
        self.executor.shutdown(wait=False, cancel_futures=True)

        if errors:
            details = "; ".join(str(error) for error in errors)
            raise RuntimeError(f"failed to close container: {details}") from errors[0]


def healthcheck(host: str) -> None:
    """Query the readiness endpoint of a worker and print OK when it is ready."""
    url = f"http://{host}{READINESS_PATH}"
    try:
        response = requests.get(url, timeout=30)
    except requests.RequestException as exc:
        raise RuntimeError(f"healthcheck failed: {exc}") from exc
    if response.status_code >= 400:
        raise RuntimeError(f"healthcheck failed: {response.text}")
    print("OK")


def version_text() -> str:
    """Return the application and runtime versions."""
    return f"Application: {APP_VERSION}\nRuntime: python{PYTHON_VERSION} {PLATFORM}"


@contextmanager
def _signal_stop() -> Iterator[threading.Event]:
    stop = threading.Event()
    signals = [signal.SIGINT, signal.SIGTERM]
    if hasattr(signal, "SIGQUIT"):
        signals.append(signal.SIGQUIT)
    previous = {sig: signal.signal(sig, lambda *_: stop.set()) for sig in signals}
    try:
        yield stop
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _close_container(container: WorkerContainer) -> None:
    try:
        container.close()
    except Exception:
        logger.exception("failed to close container")


def _shutdown_server(server: BackgroundServer) -> None:
    logger.info("shutting down server")
    try:
        server.shutdown()
    except Exception:
        logger.exception("failed to shutdown server")


def run_server(config: WorkerConfig) -> None:
    """Serve the worker API until a stop signal arrives."""
    with _signal_stop() as stop, ExitStack() as stack:
        print(BANNER)
        setup_logging(config.server.env == Env.DEV)

        container = WorkerContainer(config)
        stack.callback(_close_container, container)

        server = BackgroundServer(container.app, config.server.port)
        server.start()
        stack.callback(_shutdown_server, server)
        logger.info("server listens on port %d", server.port())

        while not stop.wait(0.2):
            pass


def _run_server_command(_: argparse.Namespace) -> None:
    run_server(load_worker_config())


def _healthcheck_command(args: argparse.Namespace) -> None:
    healthcheck(args.host)


def _version_command(_: argparse.Namespace) -> None:
    print(version_text())


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="the cli application for Crack-Hash worker")
    parser.add_argument("--version", action="version", version=APP_VERSION)
    commands = parser.add_subparsers(dest="command")

    server = commands.add_parser("server", aliases=["s"], help="Start the server")
    server.set_defaults(action=_run_server_command)

    check = commands.add_parser("healthcheck", aliases=["H"], help="Healthcheck")
    check.add_argument("--host", "-H", default=DEFAULT_HOST, help="Server hostname")
    check.set_defaults(action=_healthcheck_command)

    version = commands.add_parser("version", aliases=["v"], help="Print the Version")
    version.set_defaults(action=_version_command)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the worker command line and return the exit status."""
    setup_logging(True)
    parser = _parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0
    try:
        args.action(args)
    except Exception:
        logger.exception("failed to run command")
        return 1
    return 0