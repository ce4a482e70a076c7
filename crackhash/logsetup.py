"""Process-wide logging setup: readable console output or JSON lines."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}

_SHORT_NAMES = {
    "debug": "DBG",
    "info": "INF",
    "warn": "WRN",
    "error": "ERR",
    "fatal": "FTL",
}

_installed: Optional[logging.Handler] = None


def _level_name(levelno: int) -> str:
    if levelno in _LEVEL_NAMES:
        return _LEVEL_NAMES[levelno]
    if levelno < logging.DEBUG:
        return "trace"
    return logging.getLevelName(levelno).lower()


def _rfc3339(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).astimezone().isoformat(timespec="seconds")


class JsonFormatter(logging.Formatter):
    """Formats each record as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": _level_name(record.levelno),
            "gid": record.thread,
            "@timestamp": _rfc3339(record.created),
            "caller": f"{record.pathname}:{record.lineno}",
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        level = _level_name(record.levelno)
        line = (
            f"{_rfc3339(record.created)} {_SHORT_NAMES.get(level, level.upper())} "
            f"{record.filename}:{record.lineno} > {record.getMessage()} gid={record.thread}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(is_dev: bool) -> logging.Logger:
    """Configure the root logger for development or production and return it."""
    global _installed

    root = logging.getLogger()
    if _installed is not None:
        root.removeHandler(_installed)

    handler = logging.StreamHandler(sys.stdout)
    if is_dev:
        root.setLevel(logging.DEBUG)
        handler.setFormatter(_ConsoleFormatter())
    else:
        root.setLevel(logging.INFO)
        handler.setFormatter(JsonFormatter())

    root.addHandler(handler)
    _installed = handler
    return root