"""HTTP interface of the manager: task creation, status and worker webhooks."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from flask import Flask, Response, request

from .manager_service import TaskNotFoundError, TooManyTasksError
from .middleware import HttpError, install_middleware
from .models import (
    HashCrackTaskIDOutput,
    HashCrackTaskInput,
    HashCrackTaskStatusOutput,
    HashCrackTaskWebhookInput,
    ValidationError,
)
from .repository import TaskNotFoundError as _RepoTaskNotFoundError

logger = logging.getLogger(__name__)

IGNORE_PATTERNS = (
    "/api/manager/health.*",
    "/api/manager/swagger.*",
)


class _Service(Protocol):
    def create_task(self, task_input: HashCrackTaskInput) -> HashCrackTaskIDOutput: ...
    def get_task_status(self, task_id: str) -> HashCrackTaskStatusOutput: ...
    def save_result_subtask(self, webhook: HashCrackTaskWebhookInput) -> None: ...


def _json_response(status: int, payload: Any) -> Response:
    return Response(
        json.dumps(payload), status=status, content_type="application/json; charset=utf-8"
    )


def _read_body() -> bytes:
    body = request.get_data(cache=True)
    if not body.strip():
        raise HttpError(400, EOFError("EOF"))
    return body


def _log_routes(app: Flask) -> None:
    for rule in sorted(app.url_map.iter_rules(), key=lambda item: item.rule):
        for method in sorted((rule.methods or set()) - {"HEAD", "OPTIONS"}):
            logger.info("registered route: %6s %s", method, rule.rule)


def create_app(service: _Service) -> Flask:
    """Build the manager Flask app around the hash crack service."""
    app = Flask(__name__, static_folder=None)

    logger.info("setup middlewares")
    install_middleware(app, IGNORE_PATTERNS)

    logger.info("setup routes")

    @app.get("/api/manager/health/readiness")
    def health_readiness() -> Response:
        logger.debug("handle health readiness")
        return Response("OK", status=200, mimetype="text/plain")

    @app.get("/api/manager/health/liveness")
    def health_liveness() -> Response:
        logger.debug("handle health liveness")
        return Response("OK", status=200, mimetype="text/plain")

    @app.post("/api/manager/hash/crack")
    def create_task() -> Response:
        logger.debug("handle create task")
        body = _read_body()
        try:
            task_input = HashCrackTaskInput.from_dict(json.loads(body))
        except (ValidationError, ValueError) as exc:
            raise HttpError(400, exc) from exc

        try:
            output = service.create_task(task_input)
        except TooManyTasksError as exc:
            raise HttpError(429, exc) from exc
        except Exception as exc:
            raise HttpError(500, exc) from exc
        return _json_response(202, output.to_dict())

    @app.get("/api/manager/hash/crack/status")
    def get_task_status() -> Response:
        logger.debug("handle get task status")
        if "requestID" not in request.args:
            raise HttpError(400, LookupError("requestID not found"))
        task_id = request.args["requestID"]

        try:
            output = service.get_task_status(task_id)
        except (TaskNotFoundError, _RepoTaskNotFoundError) as exc:
            raise HttpError(404, exc) from exc
        except Exception as exc:
            raise HttpError(500, exc) from exc
        return _json_response(200, output.to_dict())

    @app.post("/internal/api/manager/hash/crack/webhook")
    def task_result_webhook() -> Response:
        logger.debug("handle task webhook")
        body = _read_body()
        try:
            webhook = HashCrackTaskWebhookInput.from_xml(body)
        except ValidationError as exc:
            raise HttpError(400, exc) from exc

        try:
            service.save_result_subtask(webhook)
        except Exception as exc:
            raise HttpError(500, exc) from exc
        return Response(status=200)

    _log_routes(app)
    return app