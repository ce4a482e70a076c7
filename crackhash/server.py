"""Threaded HTTP server running a WSGI app in the background."""

from __future__ import annotations

import logging
import threading
from socketserver import ThreadingMixIn
from typing import Any, Callable, Optional
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

logger = logging.getLogger(__name__)


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True
    allow_reuse_address = True


class _QuietHandler(WSGIRequestHandler):
    # Socket timeout covering both reading the request and writing the reply.
    timeout = 30

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class BackgroundServer:
    """Serves a WSGI app on all interfaces from a background thread."""

    def __init__(self, app: Callable, port: int) -> None:
        self._server = make_server(
            "", port, app, server_class=_ThreadingWSGIServer, handler_class=_QuietHandler
        )
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start accepting connections."""
        if self._thread is not None:
            raise RuntimeError("server already started")
        self._thread = threading.Thread(
            target=self._server.serve_forever, name=f"http:{self.port()}", daemon=True
        )
        self._thread.start()

    def shutdown(self) -> None:
        """Stop accepting connections and release the socket."""
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join(timeout=5)
            self._thread = None
        self._server.server_close()

    def port(self) -> int:
        """Return the port the server is bound to."""
        return self._server.server_address[1]