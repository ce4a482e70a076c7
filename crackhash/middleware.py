"""Request logging, error rendering and crash recovery for the Flask apps."""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from typing import Any, Iterable, Iterator, Optional, Union

from flask import Flask, Response, g, request

from .models import ErrorOutput, ValidationError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
XML_CONTENT_TYPE = "application/xml"
_MAX_LOG_BODY = 1024


class HttpError(Exception):
    """An error that carries the HTTP status it should be answered with."""

    def __init__(self, status: int, error: Union[BaseException, str]) -> None:
        super().__init__(str(error))
        self.status = status
        self.error = error


def _chain(error: BaseException) -> Iterator[BaseException]:
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if isinstance(current, HttpError) and isinstance(current.error, BaseException):
            current = current.error
        else:
            current = current.__cause__ or current.__context__


def error_message(error: Union[BaseException, str], status: int) -> str:
    """Return the message shown to the client for this error and status."""
    if isinstance(error, str):
        return "internal server error" if status == 500 else error

    causes = list(_chain(error))
    for cause in causes:
        if isinstance(cause, ValidationError):
            return str(cause)
    if any(isinstance(cause, json.JSONDecodeError) for cause in causes):
        return "invalid json"
    if any(isinstance(cause, EOFError) for cause in causes):
        return "empty body"
    if status == 500:
        return "internal server error"
    if isinstance(error, HttpError):
        return str(error.error)
    return str(error)


def render_error(
    status: int, error: Union[BaseException, str], path: str, content_type: Optional[str]
) -> Response:
    """Build the error response, XML when the request was XML, JSON otherwise."""
    output = ErrorOutput(message=error_message(error, status), status=status, path=path)
    if content_type == XML_CONTENT_TYPE:
        return Response(
            output.to_xml(), status=status, content_type="application/xml; charset=utf-8"
        )
    return Response(
        json.dumps(output.to_dict()),
        status=status,
        content_type="application/json; charset=utf-8",
    )


def _compile(patterns: Iterable[str]) -> list[re.Pattern]:
    compiled = []
    for pattern in patterns:
        logger.debug("compile ignore regexp: %s", pattern)
        try:
            compiled.append(re.compile(pattern))
        except re.error:
            logger.exception("failed to compile regexp: %s", pattern)
    return compiled


def _http_code(error: BaseException) -> Optional[int]:
    code = getattr(error, "code", None)
    if isinstance(code, int) and callable(getattr(error, "get_response", None)):
        return code
    return None


_ROUTING_MESSAGES = {404: "route not found", 405: "method not allowed"}


def install_middleware(app: Flask, ignore_patterns: Iterable[str] = ()) -> None:
    """Attach request logging, error rendering and recovery to the app."""
    ignored = _compile(ignore_patterns)

    def log_request() -> None:
        g.log_request = not any(pattern.search(request.path) for pattern in ignored)
        if not g.log_request:
            return

        g.started = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER, "")
        g.generated_request_id = not request_id
        if not request_id:
            request_id = str(uuid.uuid4())
        g.request_id = request_id

        details: dict[str, Any] = {
            "id": request_id,
            "method": request.method,
            "host": request.host,
            "path": request.path,
            "query": request.query_string.decode("latin-1"),
            "params": dict(request.view_args or {}),
            "ip": request.remote_addr,
            "user-agent": request.user_agent.string,
        }
        if logger.isEnabledFor(logging.DEBUG):
            details["headers"] = dict(request.headers)
            details["body"] = request.get_data(cache=True, as_text=True)
        logger.info("Incoming request %s", details)

    def log_response(response: Response) -> Response:
        if not g.get("log_request", False):
            return response
        if g.get("generated_request_id", False):
            response.headers[REQUEST_ID_HEADER] = g.request_id

        details: dict[str, Any] = {
            "request-id": g.request_id,
            "method": request.method,
            "host": request.host,
            "path": request.path,
            "query": request.query_string.decode("latin-1"),
            "ip": request.remote_addr,
            "user-agent": request.user_agent.string,
            "latency": time.perf_counter() - g.started,
            "status": response.status_code,
        }
        if logger.isEnabledFor(logging.DEBUG) and not response.direct_passthrough:
            body = response.get_data(as_text=True)
            if len(body) > _MAX_LOG_BODY:
                body = body[:_MAX_LOG_BODY] + "..."
            details["body"] = body
        logger.info("Outcoming response %s", details)
        return response

    def handle_http_error(error: HttpError) -> Response:
        logger.error("failed to handle request", exc_info=error)
        return render_error(
            error.status, error, request.path, request.headers.get("Content-Type")
        )

    def recover(error: Exception) -> Any:
        code = _http_code(error)
        if code is not None:
            if code < 400:
                return error
            message = _ROUTING_MESSAGES.get(code) or getattr(error, "description", None) or str(error)
            logger.error("failed to handle request: %s", message)
            return render_error(code, message, request.path, request.headers.get("Content-Type"))

        logger.error("catch panic: %s", error, exc_info=error)
        return render_error(500, error, request.path, None)

    app.before_request(log_request)
    app.after_request(log_response)
    app.register_error_handler(HttpError, handle_http_error)
    app.register_error_handler(Exception, recover)