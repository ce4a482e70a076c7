"""HTTP interface of a worker: accepts parts of hash crack tasks."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from flask import Flask, Response, request

from .middleware import HttpError, install_middleware
from .models import ValidationError, WorkerTaskInput

logger = logging.getLogger(__name__)

IGNORE_PATTERNS = (
    "/api/worker/health.*",
    "/api/worker/swagger.*",
)


class _Service(Protocol):
    def execute_task(self, task: WorkerTaskInput) -> Any: ...


def _log_routes(app: Flask) -> None:
    for rule in sorted(app.url_map.iter_rules(), key=lambda item: item.rule):
        for method in sorted((rule.methods or set()) - {"HEAD", "OPTIONS"}):
            logger.info("registered route: %6s %s", method, rule.rule)


def create_app(service: _Service) -> Flask:
    """Build the worker Flask app around the task execution service."""
    app = Flask(__name__, static_folder=None)

    logger.info("setup middlewares")
    install_middleware(app, IGNORE_PATTERNS)

    logger.info("setup routes")

    @app.get("/api/worker/health/readiness")
    def health_readiness() -> Response:
        logger.debug("handle health readiness")
        return Response("OK", status=200, mimetype="text/plain")

    @app.get("/api/worker/health/liveness")
    def health_liveness() -> Response:
        logger.debug("handle health liveness")
        return Response("OK", status=200, mimetype="text/plain")

    @app.post("/internal/api/worker/hash/crack/task")
    def hash_crack_task() -> Response:
        logger.debug("handle hash crack task")
        body = request.get_data(cache=True)
        if not body.strip():
            raise HttpError(400, EOFError("EOF"))
        try:
            task = WorkerTaskInput.from_xml(body)
        except ValidationError as exc:
            raise HttpError(400, exc) from exc

        try:
            service.execute_task(task)
        except Exception as exc:
            raise HttpError(500, exc) from exc
        return Response(status=202)

    _log_routes(app)
    return app