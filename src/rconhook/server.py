"""HTTP routing and the threaded webhook listener."""

from __future__ import annotations

import logging
import socket
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING

from rconhook.client import DEFAULT_TIMEOUT, execute
from rconhook.config import split_address
from rconhook.errors import ConfigError, RconError, describe_error
from rconhook.lookup import WebhookResolver
from rconhook.webui import SITE

if TYPE_CHECKING:
    from rconhook.config import AppConfig

log = logging.getLogger(__name__)

API_PREFIX = "/api/"
_REDACTED_TARGET = API_PREFIX + "<redacted>"
# Larger request bodies are not drained; the connection is closed instead.
_MAX_DISCARD = 64 * 1024
_DISCARD_CHUNK = 8192


class WebhookRequestHandler(BaseHTTPRequestHandler):
    """Routes requests to the web UI and the webhook endpoints."""

    server: WebhookServer
    protocol_version = "HTTP/1.1"
    server_version = "rconhook"
    timeout = DEFAULT_TIMEOUT

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        message = format % args
        # Webhook names are credentials and stay out of the access log.
        path = getattr(self, "path", "")
        if path.startswith(API_PREFIX):
            message = message.replace(path, _REDACTED_TARGET)
        log.debug("HTTP %s %s", self.address_string(), message)

    def __getattr__(self, name: str):  # noqa: ANN204
        # Every method reaches the router, so /api/ answers 405 instead of 501.
        if name.startswith("do_"):
            return self._route
        raise AttributeError(name)

    def _route(self) -> None:
        self._discard_body()
        target = self.path

        if target.startswith(API_PREFIX):
            if self.command != "POST":
                log.warning("Invalid request method for webhook: %s", self.command)
                self._respond(HTTPStatus.METHOD_NOT_ALLOWED)
                return
            self._webhook(target)
        elif self.command == "GET" and target == "/":
            self._respond(
                HTTPStatus.OK,
                SITE.encode("utf-8"),
                content_type="text/html; charset=utf-8",
            )
        else:
            log.warning("Invalid request target: %s", target)
            self._respond(HTTPStatus.NOT_FOUND)

    def _webhook(self, target: str) -> None:
        """Resolve the webhook name and run its command."""
        # http.server decodes the request line as latin-1; this restores the
        # raw bytes without URL-decoding them.
        name = target[len(API_PREFIX) :].encode("latin-1")
        command = self.server.resolver.resolve(name, self.server.config.webhooks)
        if command is None:
            log.warning("Invalid webhook name: %s", target)
            self._respond(HTTPStatus.NOT_FOUND)
            return

        try:
            reply = execute(self.server.config.rcon, command)
        except RconError as e:
            log.error("Failed to execute RCON command: %s", describe_error(e))
            self._respond(HTTPStatus.INTERNAL_SERVER_ERROR)
            return

        self._respond(
            HTTPStatus.OK,
            reply.encode("utf-8"),
            content_type="text/plain",
        )

    def _respond(
        self,
        status: HTTPStatus,
        body: bytes = b"",
        *,
        content_type: str | None = None,
    ) -> None:
        self.send_response(status)
        if content_type is not None:
            self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if body and self.command != "HEAD":
            self.wfile.write(body)

    def _discard_body(self) -> None:
        """Consume any request body so the connection can be reused."""
        if self.headers.get("Transfer-Encoding"):
            self.close_connection = True
            return
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            self.close_connection = True
            return
        if length < 0 or length > _MAX_DISCARD:
            self.close_connection = True
            return
        while length > 0:
            chunk = self.rfile.read(min(length, _DISCARD_CHUNK))
            if not chunk:
                self.close_connection = True
                return
            length -= len(chunk)


class WebhookServer(ThreadingHTTPServer):
    """Thread-per-connection HTTP server with a hard limit on live workers.

    When the limit is reached, accepting new connections waits until a
    worker finishes.
    """

    daemon_threads = True

    def __init__(self, config: AppConfig, *, bind_and_activate: bool = True) -> None:
        try:
            host, port = split_address(config.server.address)
        except ValueError as e:
            msg = f"Invalid server.address: {e}"
            raise ConfigError(msg) from e
        if ":" in host:
            self.address_family = socket.AF_INET6

        self.config = config
        self.resolver = WebhookResolver()
        self._slots = threading.BoundedSemaphore(config.server.connection_limit)
        super().__init__((host, port), WebhookRequestHandler, bind_and_activate)

    def process_request(self, request, client_address) -> None:  # noqa: ANN001
        self._slots.acquire()
        try:
            super().process_request(request, client_address)
        except BaseException:
            self._slots.release()
            raise

    def process_request_thread(self, request, client_address) -> None:  # noqa: ANN001
        try:
            super().process_request_thread(request, client_address)
        finally:
            self._slots.release()


def serve(config: AppConfig) -> None:
    """Run the webhook server until interrupted."""
    with WebhookServer(config) as server:
        host, port = server.server_address[:2]
        log.info(
            "Listening on %s:%s (%d webhooks, connection limit %d)",
            host,
            port,
            len(config.webhooks),
            config.server.connection_limit,
        )
        server.serve_forever()
