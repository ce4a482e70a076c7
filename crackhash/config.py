"""Configuration of the manager and worker services.

Values come from a YAML file, may be overridden by environment variables,
and fall back to defaults where both leave a field empty.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

import yaml
from dotenv import load_dotenv


class ConfigError(Exception):
    """Raised when the configuration cannot be read or is invalid."""


class Env(str, Enum):
    DEV = "dev"
    PROD = "prod"


@dataclass
class ServerConfig:
    env: Env = Env.DEV
    port: int = 8080


@dataclass
class WorkerHealthConfig:
    path: str
    interval: timedelta = timedelta(minutes=1)
    timeout: timedelta = timedelta(minutes=1)
    retries: int = 3


@dataclass
class WorkerPoolConfig:
    addresses: list[str]
    health: WorkerHealthConfig


@dataclass
class TaskSplitConfig:
    strategy: str = "chunk-based"
    chunk_size: int = 10_000_000


@dataclass
class ManagerTaskConfig:
    split: TaskSplitConfig = field(default_factory=TaskSplitConfig)
    timeout: timedelta = timedelta(hours=1)
    limit: int = 10
    max_age: timedelta = timedelta(hours=24)
    finish_delay: timedelta = timedelta(minutes=1)


@dataclass
class ManagerConfig:
    worker: WorkerPoolConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    task: ManagerTaskConfig = field(default_factory=ManagerTaskConfig)


@dataclass
class ManagerAddressConfig:
    address: str


@dataclass
class WorkerTaskConfig:
    split: TaskSplitConfig = field(default_factory=TaskSplitConfig)
    concurrency: int = 1000


@dataclass
class WorkerConfig:
    manager: ManagerAddressConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    task: WorkerTaskConfig = field(default_factory=WorkerTaskConfig)


_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "1h30m", "500ms" or "1.5h"."""
    if not isinstance(text, str):
        raise ConfigError(f"invalid duration: {text!r}")
    remaining = text.strip()
    sign = 1
    if remaining[:1] in ("+", "-"):
        sign = -1 if remaining[0] == "-" else 1
        remaining = remaining[1:]
    if remaining == "0":
        return timedelta(0)
    if not remaining:
        raise ConfigError(f"invalid duration: {text!r}")

    seconds = 0.0
    position = 0
    while position < len(remaining):
        match = _DURATION_PART.match(remaining, position)
        if match is None:
            raise ConfigError(f"invalid duration: {text!r}")
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    return timedelta(seconds=sign * seconds)


def config_path() -> str:
    """Return the configuration file path, CONFIG_FILE or the default location."""
    return os.environ.get("CONFIG_FILE", "config/config.yaml")


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ConfigError(f"invalid integer: {value!r}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ConfigError(f"invalid integer: {value!r}") from exc


def _to_str(value: Any) -> str:
    return "" if value is None else str(value)


def _to_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item) for item in value]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _to_duration(value: Any) -> timedelta:
    if value is None:
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return timedelta(microseconds=value / 1000)
    return parse_duration(str(value))


def _lookup(data: dict, keys: tuple[str, ...]) -> Any:
    node: Any = data
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _is_zero(value: Any) -> bool:
    return value is None or value == "" or value == [] or (
        isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0
    )


def _resolve(
    data: dict,
    keys: tuple[str, ...],
    env: Optional[str],
    default: Optional[str],
    convert: Callable[[Any], Any],
) -> Any:
    raw = _lookup(data, keys)
    env_value = os.environ.get(env) if env else None
    if env_value is not None:
        raw = env_value
    elif _is_zero(raw) and default is not None:
        raw = default
    return convert(raw)


def _read_yaml(path: str | os.PathLike) -> dict:
    try:
        with open(path, encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigError(f"failed to load config: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to load config: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("failed to load config: top level must be a mapping")
    return data


def _invalid(message: str) -> ConfigError:
    return ConfigError(f"failed to validate config: {message}")


def _is_http_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def _server(data: dict) -> ServerConfig:
    env_name = _resolve(data, ("server", "env"), "SERVER_ENV", "dev", _to_str)
    try:
        env = Env(env_name)
    except ValueError:
        raise _invalid(f"server env must be one of dev, prod: {env_name!r}") from None
    port = _resolve(data, ("server", "port"), "SERVER_PORT", "8080", _to_int)
    if port == 0 or not -1 <= port <= 65535:
        raise _invalid(f"server port out of range: {port}")
    return ServerConfig(env=env, port=port)


def _split(data: dict) -> TaskSplitConfig:
    strategy = _resolve(
        data, ("task", "split", "strategy"), "TASK_SPLIT_STRATEGY", "chunk-based", _to_str
    )
    if strategy != "chunk-based":
        raise _invalid(f"split strategy must be chunk-based: {strategy!r}")
    chunk_size = _resolve(
        data, ("task", "split", "chunkSize"), "TASK_SPLIT_CHUNK_SIZE", "10000000", _to_int
    )
    if chunk_size < 1:
        raise _invalid("split chunk size must be at least 1")
    return TaskSplitConfig(strategy=strategy, chunk_size=chunk_size)


def _prepare(path: Optional[str | os.PathLike]) -> dict:
    load_dotenv(Path.cwd() / ".env")
    return _read_yaml(path if path is not None else config_path())


def load_manager_config(path: Optional[str | os.PathLike] = None) -> ManagerConfig:
    """Load and validate the manager configuration."""
    data = _prepare(path)

    addresses = _resolve(data, ("worker", "addresses"), "WORKER_ADDRESSES", None, _to_list)
    if not addresses:
        raise _invalid("worker addresses are required")
    for address in addresses:
        if not _is_http_url(address):
            raise _invalid(f"worker address is not an http url: {address!r}")

    health_path = _resolve(data, ("worker", "health", "path"), "WORKER_HEALTH_PATH", None, _to_str)
    if not health_path:
        raise _invalid("worker health path is required")

    health = WorkerHealthConfig(
        path=health_path,
        interval=_resolve(
            data, ("worker", "health", "interval"), "WORKER_HEALTH_INTERVAL", "1m", _to_duration
        ),
        timeout=_resolve(
            data, ("worker", "health", "timeout"), "WORKER_HEALTH_TIMEOUT", "1m", _to_duration
        ),
        retries=_resolve(
            data, ("worker", "health", "retries"), "WORKER_HEALTH_RETRIES", "3", _to_int
        ),
    )

    limit = _resolve(data, ("task", "limit"), "TASK_LIMIT", "10", _to_int)
    if limit < 1:
        raise _invalid("task limit must be at least 1")

    task = ManagerTaskConfig(
        split=_split(data),
        timeout=_resolve(data, ("task", "timeout"), "TASK_TIMEOUT", "1h", _to_duration),
        limit=limit,
        max_age=_resolve(data, ("task", "maxAge"), "TASK_MAX_AGE", "24h", _to_duration),
        finish_delay=_resolve(
            data, ("task", "finishDelay"), "TASK_FINISH_DELAY", "1m", _to_duration
        ),
    )

    return ManagerConfig(
        server=_server(data),
        worker=WorkerPoolConfig(addresses=addresses, health=health),
        task=task,
    )


def load_worker_config(path: Optional[str | os.PathLike] = None) -> WorkerConfig:
    """Load and validate the worker configuration."""
    data = _prepare(path)

    address = _resolve(data, ("manager", "address"), "MANAGER_ADDRESS", None, _to_str)
    if not address:
        raise _invalid("manager address is required")
    if not _is_http_url(address):
        raise _invalid(f"manager address is not an http url: {address!r}")

    concurrency = _resolve(data, ("task", "concurrency"), "TASK_CONCURRENCY", "1000", _to_int)
    if concurrency < 1:
        raise _invalid("task concurrency must be at least 1")

    return WorkerConfig(
        server=_server(data),
        manager=ManagerAddressConfig(address=address),
        task=WorkerTaskConfig(split=_split(data), concurrency=concurrency),
    )