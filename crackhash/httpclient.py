"""HTTP client with retries and a health-checked load balancer."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import IntEnum
from typing import Any, Iterable, Optional, Union
from urllib.parse import urlsplit

import requests

logger = logging.getLogger(__name__)

Seconds = Union[float, int, timedelta]

_IDEMPOTENT = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE", "TRACE"})


def _seconds(value: Seconds) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class NoActiveHostError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("no active host")


class HostState(IntEnum):
    INACTIVE = 0
    ACTIVE = 1


@dataclass
class _Host:
    url: str
    state: HostState = HostState.ACTIVE


class RoundRobinBalancer:
    """Picks the first active host; optional background health checks toggle hosts."""

    def __init__(
        self,
        urls: Iterable[str],
        health_path: Optional[str] = None,
        health_timeout: Seconds = 60.0,
        health_interval: Seconds = 60.0,
        health_retries: int = 3,
    ) -> None:
        hosts = []
        for url in urls:
            try:
                urlsplit(url)
            except ValueError as exc:
                raise ValueError(f"failed to parse URL: {exc}") from exc
            hosts.append(_Host(url))

        self._hosts = hosts
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._health_path = health_path
        self._health_timeout = _seconds(health_timeout)
        self._health_interval = _seconds(health_interval)
        self._health_retries = max(health_retries, 0)

        if health_path is not None:
            for host in self._hosts:
                thread = threading.Thread(
                    target=self._health_loop, args=(host,), name=f"health:{host.url}", daemon=True
                )
                thread.start()
                self._threads.append(thread)

    def next(self) -> str:
        """Return the URL of the first active host."""
        with self._lock:
            for host in self._hosts:
                if host.state is HostState.ACTIVE:
                    return host.url
        raise NoActiveHostError()

    def count_active_hosts(self) -> int:
        with self._lock:
            return sum(1 for host in self._hosts if host.state is HostState.ACTIVE)

    def set_state(self, url: str, state: HostState) -> None:
        """Mark every host with this URL as active or inactive."""
        with self._lock:
            matched = [host for host in self._hosts if host.url == url]
            if not matched:
                raise ValueError(f"unknown host: {url}")
            for host in matched:
                host.state = state

    def close(self) -> None:
        """Stop the health checks and wait for them to finish."""
        self._stop.set()
        for thread in self._threads:
            thread.join()
        self._threads = []

    def _change_state(self, host: _Host, state: HostState) -> None:
        with self._lock:
            host.state = state

    def _health_loop(self, host: _Host) -> None:
        url = f"{host.url}{self._health_path}"
        with requests.Session() as session:
            while not self._stop.wait(self._health_interval):
                logger.debug("health check started: url=%s", url)
                if self._probe(session, url):
                    if host.state is HostState.INACTIVE:
                        self._change_state(host, HostState.ACTIVE)
                    logger.debug("health check finished: url=%s", url)
                else:
                    self._change_state(host, HostState.INACTIVE)

    def _probe(self, session: requests.Session, url: str) -> bool:
        reason = ""
        for _ in range(self._health_retries + 1):
            if self._stop.is_set():
                return True
            try:
                response = session.get(url, timeout=self._health_timeout)
            except requests.RequestException as exc:
                reason = str(exc)
                continue
            if response.status_code < 400:
                return True
            reason = _error_message(response)
        logger.error("health check failed: url=%s error=%s", url, reason)
        return False


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return response.text


def _should_retry(response: requests.Response) -> bool:
    return response.status_code == 429 or response.status_code >= 500


class HttpClient:
    """Session wrapper resolving paths against a base URL or a balancer."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        balancer: Optional[RoundRobinBalancer] = None,
        retries: int = 0,
        min_wait: Seconds = 0.1,
        max_wait: Seconds = 2.0,
    ) -> None:
        self.base_url = base_url
        self.balancer = balancer
        self.retries = max(retries, 0)
        self.min_wait = _seconds(min_wait)
        self.max_wait = _seconds(max_wait)
        self._session = requests.Session()

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        base = self.balancer.next() if self.balancer is not None else self.base_url
        if not base:
            return path
        if not path:
            return base
        return f"{base.rstrip('/')}/{path.lstrip('/')}"

    def _backoff(self, attempt: int) -> float:
        return min(self.max_wait, self.min_wait * 2**attempt)

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send a request; idempotent methods are retried on failures and 429/5xx."""
        method = method.upper()
        attempts = self.retries + 1 if method in _IDEMPOTENT else 1
        for attempt in range(attempts):
            last = attempt + 1 >= attempts
            url = self._url(path)
            try:
                response = self._session.request(method, url, **kwargs)
            except (requests.ConnectionError, requests.Timeout):
                if last:
                    raise
            else:
                if last or not _should_retry(response):
                    return response
            time.sleep(self._backoff(attempt))
        raise AssertionError("unreachable")

    def get(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", path, **kwargs)

    def close(self) -> None:
        self._session.close()
        if self.balancer is not None:
            self.balancer.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()