"""End-to-end tests for the webhook HTTP server against a fake RCON server."""

import http.client
import logging
import socket
import socketserver
import struct
import threading

import pytest

from rconhook.config import AppConfig, RconConfig, ServerConfig
from rconhook.errors import ConfigError
from rconhook.protocol import Packet, PacketType
from rconhook.server import WebhookServer


class _FakeRconHandler(socketserver.BaseRequestHandler):
    server: "FakeRconServer"

    def handle(self):
        while True:
            header = self._read_exact(4)
            if header is None:
                return
            (length,) = struct.unpack("<i", header)
            body = self._read_exact(length)
            if body is None:
                return

            packet = Packet.decode(header + body)
            self.server.received.append(packet)

            if packet.packet_type == PacketType.LOGIN:
                ok = packet.payload == self.server.password
                reply_id = packet.request_id if ok else -1
                self.request.sendall(Packet(reply_id, PacketType.COMMAND, "").encode())
                continue

            if self.server.oversize:
                self.request.sendall(struct.pack("<i", 5000))
                return

            text = self.server.replies.get(
                packet.payload, f"Unknown command: {packet.payload}"
            )
            self.request.sendall(
                Packet(packet.request_id, PacketType.RESPONSE, text).encode()
            )

    def _read_exact(self, num_bytes):
        data = b""
        while len(data) < num_bytes:
            chunk = self.request.recv(num_bytes - len(data))
            if not chunk:
                return None
            data += chunk
        return data


class FakeRconServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), _FakeRconHandler)
        self.password = None
        self.replies = {}
        self.oversize = False
        self.received = []

    @property
    def address(self) -> str:
        host, port = self.server_address
        return f"{host}:{port}"


def _start(server):
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()


@pytest.fixture
def rcon_server():
    server = FakeRconServer()
    _start(server)
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def make_webhook_server(rcon_server):
    servers = []

    def _make(webhooks, *, password=None, connection_limit=8):
        config = AppConfig(
            server=ServerConfig(
                address="127.0.0.1:0", connection_limit=connection_limit
            ),
            rcon=RconConfig(address=rcon_server.address, password=password),
            webhooks=webhooks,
        )
        server = WebhookServer(config)
        _start(server)
        servers.append(server)
        return server

    yield _make
    for server in servers:
        server.shutdown()
        server.server_close()


def _request(server, method, path, body=None):
    host, port = server.server_address[:2]
    conn = http.client.HTTPConnection(host, port, timeout=15)
    try:
        conn.request(method, path, body=body)
        response = conn.getresponse()
        return response.status, response.getheader("Content-Type"), response.read()
    finally:
        conn.close()


def _raw_request(server, request: bytes) -> bytes:
    """Send raw request bytes and read until the server closes the connection."""
    with socket.create_connection(server.server_address[:2], timeout=15) as sock:
        sock.sendall(request)
        data = b""
        while chunk := sock.recv(4096):
            data += chunk
    return data


class TestWebhooks:
    def test_post_runs_command(self, rcon_server, make_webhook_server):
        rcon_server.replies["stop"] = "Stopping server"
        server = make_webhook_server({"restart": "stop"})

        status, content_type, body = _request(server, "POST", "/api/restart")

        assert status == 200
        assert content_type == "text/plain"
        assert body == b"Stopping server"
        assert [p.payload for p in rcon_server.received] == ["stop"]

    def test_wrong_method(self, rcon_server, make_webhook_server):
        server = make_webhook_server({"restart": "stop"})

        status, _, body = _request(server, "GET", "/api/restart")

        assert status == 405
        assert body == b""
        assert rcon_server.received == []

    @pytest.mark.parametrize("method", ["PUT", "DELETE", "PATCH", "HEAD"])
    def test_other_methods_not_allowed(self, make_webhook_server, method):
        server = make_webhook_server({"restart": "stop"})

        status, _, body = _request(server, method, "/api/restart")

        assert status == 405
        assert body == b""

    @pytest.mark.parametrize("method", ["TRACE", "FOO"])
    def test_methods_without_handler_not_allowed(
        self, rcon_server, make_webhook_server, method
    ):
        server = make_webhook_server({"restart": "stop"})

        response = _raw_request(
            server,
            f"{method} /api/restart HTTP/1.1\r\n"
            "Host: localhost\r\n"
            "Connection: close\r\n\r\n".encode(),
        )

        head, _, body = response.partition(b"\r\n\r\n")
        assert head.startswith(b"HTTP/1.1 405")
        assert b"Content-Length: 0" in head
        assert body == b""
        assert rcon_server.received == []

    def test_unknown_webhook(self, rcon_server, make_webhook_server):
        server = make_webhook_server({"restart": "stop"})

        status, _, body = _request(server, "POST", "/api/doesnotexist")

        assert status == 404
        assert body == b""
        assert rcon_server.received == []

    def test_empty_name(self, make_webhook_server):
        server = make_webhook_server({"restart": "stop"})

        status, _, _ = _request(server, "POST", "/api/")
        assert status == 404

    def test_name_is_not_url_decoded(self, rcon_server, make_webhook_server):
        rcon_server.replies["say hi"] = "ok"
        server = make_webhook_server({"a%20b": "say hi", "c d": "say no"})

        assert _request(server, "POST", "/api/a%20b")[0] == 200
        assert _request(server, "POST", "/api/c%20d")[0] == 404

    def test_query_string_is_part_of_name(self, make_webhook_server):
        server = make_webhook_server({"restart": "stop"})

        status, _, _ = _request(server, "POST", "/api/restart?x=1")
        assert status == 404

    def test_request_body_is_ignored(self, rcon_server, make_webhook_server):
        rcon_server.replies["stop"] = "Stopping server"
        server = make_webhook_server({"restart": "stop"})

        status, _, body = _request(server, "POST", "/api/restart", body=b"payload")

        assert status == 200
        assert body == b"Stopping server"

    def test_huge_content_length_is_not_read(self, make_webhook_server):
        server = make_webhook_server({"restart": "stop"})

        response = _raw_request(
            server,
            b"POST /api/nope HTTP/1.1\r\n"
            b"Host: localhost\r\n"
            b"Content-Length: 100000000000000\r\n\r\n",
        )

        assert response.startswith(b"HTTP/1.1 404")
        assert b"Content-Length: 0" in response

    def test_access_log_redacts_webhook_name(
        self, rcon_server, make_webhook_server, caplog
    ):
        rcon_server.replies["stop"] = "Stopping server"
        server = make_webhook_server({"s3cr3t-hook-name": "stop"})

        with caplog.at_level(logging.DEBUG, logger="rconhook"):
            status, _, _ = _request(server, "POST", "/api/s3cr3t-hook-name")

        assert status == 200
        assert "s3cr3t-hook-name" not in caplog.text
        assert "/api/<redacted>" in caplog.text

    def test_unicode_reply(self, rcon_server, make_webhook_server):
        rcon_server.replies["list"] = "§6Players§r: Jérôme"
        server = make_webhook_server({"players": "list"})

        _, _, body = _request(server, "POST", "/api/players")

        assert body.decode("utf-8") == "§6Players§r: Jérôme"

    def test_authenticated_command(self, rcon_server, make_webhook_server):
        rcon_server.password = "secret"
        rcon_server.replies["stop"] = "Stopping server"
        server = make_webhook_server({"restart": "stop"}, password="secret")

        status, _, body = _request(server, "POST", "/api/restart")

        assert status == 200
        assert body == b"Stopping server"
        assert [p.packet_type for p in rcon_server.received] == [
            PacketType.LOGIN,
            PacketType.COMMAND,
        ]

    def test_wrong_password(self, rcon_server, make_webhook_server, caplog):
        rcon_server.password = "secret"
        server = make_webhook_server({"restart": "stop"}, password="wrong")

        with caplog.at_level(logging.ERROR, logger="rconhook.server"):
            status, _, body = _request(server, "POST", "/api/restart")

        assert status == 500
        assert body == b""
        assert "authentication" in caplog.text
        assert "id mismatch" in caplog.text
        assert [p.packet_type for p in rcon_server.received] == [PacketType.LOGIN]

    def test_oversized_response(self, rcon_server, make_webhook_server, caplog):
        rcon_server.oversize = True
        server = make_webhook_server({"restart": "stop"})

        with caplog.at_level(logging.ERROR, logger="rconhook.server"):
            status, _, body = _request(server, "POST", "/api/restart")

        assert status == 500
        assert body == b""
        assert "too large (5000)" in caplog.text

    def test_unreachable_rcon_server(self, make_webhook_server, rcon_server, caplog):
        server = make_webhook_server({"restart": "stop"})
        rcon_server.shutdown()
        rcon_server.server_close()

        with caplog.at_level(logging.ERROR, logger="rconhook.server"):
            status, _, body = _request(server, "POST", "/api/restart")

        assert status == 500
        assert body == b""
        assert "Failed to connect" in caplog.text

    def test_each_request_uses_a_new_connection(
        self, rcon_server, make_webhook_server
    ):
        rcon_server.password = "secret"
        server = make_webhook_server({"restart": "stop"}, password="secret")

        for _ in range(3):
            assert _request(server, "POST", "/api/restart")[0] == 200

        logins = [p for p in rcon_server.received if p.packet_type == PacketType.LOGIN]
        assert len(logins) == 3

    def test_concurrent_requests(self, rcon_server, make_webhook_server):
        rcon_server.replies["stop"] = "Stopping server"
        server = make_webhook_server({"restart": "stop"})
        results = []
        lock = threading.Lock()

        def worker():
            status = _request(server, "POST", "/api/restart")[0]
            with lock:
                results.append(status)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == [200] * 10
        ids = [p.request_id for p in rcon_server.received]
        assert len(set(ids)) == 10

    def test_connection_limit_serialises_connections(
        self, rcon_server, make_webhook_server
    ):
        rcon_server.replies["stop"] = "Stopping server"
        server = make_webhook_server({"restart": "stop"}, connection_limit=1)

        for _ in range(3):
            assert _request(server, "POST", "/api/restart")[0] == 200


class TestRouting:
    def test_web_ui(self, make_webhook_server):
        server = make_webhook_server({})

        status, content_type, body = _request(server, "GET", "/")

        assert status == 200
        assert content_type == "text/html; charset=utf-8"
        assert b"/api/" in body

    def test_unknown_target(self, make_webhook_server, caplog):
        server = make_webhook_server({})

        with caplog.at_level(logging.WARNING, logger="rconhook.server"):
            status, _, body = _request(server, "GET", "/index.html")

        assert status == 404
        assert body == b""
        assert "Invalid request target" in caplog.text

    def test_post_to_root(self, make_webhook_server):
        server = make_webhook_server({})
        assert _request(server, "POST", "/")[0] == 404

    def test_api_without_trailing_slash(self, make_webhook_server):
        server = make_webhook_server({"restart": "stop"})
        assert _request(server, "POST", "/api")[0] == 404

    def test_invalid_listen_address(self):
        config = AppConfig(
            server=ServerConfig(address="nowhere"),
            rcon=RconConfig(address="127.0.0.1:25575"),
            webhooks={},
        )

        with pytest.raises(ConfigError, match="server.address"):
            WebhookServer(config)
