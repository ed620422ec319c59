"""RCON client with one connection per invocation."""

from __future__ import annotations

import contextlib
import logging
import socket
import struct
import threading
from enum import Enum
from typing import TYPE_CHECKING

from rconhook.config import split_address
from rconhook.errors import (
    AuthenticationError,
    ProtocolError,
    RconError,
    TransportError,
)
from rconhook.protocol import LENGTH_SIZE, MAX_MESSAGE_SIZE, Packet, PacketType

if TYPE_CHECKING:
    from types import TracebackType

    from rconhook.config import RconConfig

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class _TransactionIds:
    """Process-wide request id sequence, shared by all clients."""

    def __init__(self, start: int = 0) -> None:
        self._next = start
        self._lock = threading.Lock()

    def __iter__(self) -> _TransactionIds:
        return self

    # itertools.count would grow past the i32 range of the wire id; this
    # wraps from 2**31 - 1 to -2**31.
    def __next__(self) -> int:
        with self._lock:
            value = self._next
            self._next = ((value + 1 + 2**31) % 2**32) - 2**31
        return value


_request_id_counter = _TransactionIds()


class ClientState(Enum):
    """Lifecycle of an RconClient. There is no way back from CLOSED."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class RconClient:
    """Owns a single TCP connection to an RCON server.

    Intended to be used as a context manager so the socket is closed on every
    exit path::

        with RconClient("127.0.0.1:25575", password="secret") as client:
            client.connect()
            reply = client.send("list")
    """

    def __init__(
        self,
        address: str,
        password: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.address = address
        self.timeout = timeout
        self._password = password
        self._sock: socket.socket | None = None
        self._state = ClientState.DISCONNECTED

    def __repr__(self) -> str:
        return f"RconClient({self.address!r}, state={self._state.value})"

    def __enter__(self) -> RconClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def connected(self) -> bool:
        """Whether the client has an open socket."""
        return self._sock is not None

    def connect(self) -> None:
        """Open the connection and authenticate if a password is configured.

        Raises:
            TransportError: If the address cannot be resolved or connected to.
            AuthenticationError: If the login transaction fails for any reason.
        """
        if self._state is not ClientState.DISCONNECTED:
            msg = f"Cannot connect a client that is {self._state.value}"
            raise TransportError(msg)

        try:
            host, port = split_address(self.address)
        except ValueError as e:
            self._state = ClientState.CLOSED
            msg = f"Failed to parse RCON address: {e}"
            raise TransportError(msg) from e

        try:
            sock = socket.create_connection((host, port), timeout=self.timeout)
        except OSError as e:
            self._state = ClientState.CLOSED
            msg = f"Failed to connect to {self.address}: {e}"
            raise TransportError(msg) from e

        try:
            # Read and write deadlines
            sock.settimeout(self.timeout)
        except OSError as e:
            sock.close()
            self._state = ClientState.CLOSED
            msg = f"Failed to configure socket for {self.address}: {e}"
            raise TransportError(msg) from e

        self._sock = sock
        self._state = ClientState.CONNECTED
        log.debug("Connected to %s", self.address)

        if self._password is not None:
            self.authenticate(self._password)

    def authenticate(self, password: str) -> None:
        """Run the login transaction.

        A rejected password comes back with request id -1, which fails the id
        check like any other mismatch.
        """
        try:
            self._transaction(PacketType.LOGIN, password)
        except RconError as e:
            self.close()
            msg = f"RCON authentication with {self.address} failed"
            raise AuthenticationError(msg) from e
        self._state = ClientState.AUTHENTICATED
        log.debug("Authenticated with %s", self.address)

    def send(self, command: str) -> str:
        """Send a command and return the server's reply text."""
        return self._transaction(PacketType.COMMAND, command)

    def close(self) -> None:
        """Close the TCP connection."""
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.close()
            self._sock = None
        self._state = ClientState.CLOSED

    def _transaction(self, packet_type: PacketType, payload: str) -> str:
        request_id = next(_request_id_counter)
        self._send(
            Packet(
                request_id=request_id,
                packet_type=packet_type,
                payload=payload,
            )
        )

        response = self._recv()
        if response.request_id != request_id:
            msg = (
                f"RCON response id mismatch (sent {request_id},"
                f" got {response.request_id})"
            )
            raise ProtocolError(msg)
        return response.payload

    def _send(self, packet: Packet) -> None:
        """Send an encoded packet over the socket."""
        data = packet.encode()
        sock = self._require_socket()
        try:
            sock.sendall(data)
        except OSError as e:
            self.close()
            msg = f"Failed to send data: {e}"
            raise TransportError(msg) from e

    def _recv(self) -> Packet:
        """Receive a single unfragmented packet.

        The declared length is checked before any of the body is read.
        """
        length_data = self._recv_exact(LENGTH_SIZE)
        (length,) = struct.unpack("<i", length_data)
        if not 0 <= length <= MAX_MESSAGE_SIZE:
            msg = f"Announced RCON response is too large ({length})"
            raise ProtocolError(msg)
        body = self._recv_exact(length)
        return Packet.decode(length_data + body)

    def _recv_exact(self, num_bytes: int) -> bytes:
        """Read exactly num_bytes from the socket, handling partial reads."""
        sock = self._require_socket()

        data = bytearray()
        while len(data) < num_bytes:
            try:
                chunk = sock.recv(num_bytes - len(data))
            except OSError as e:
                self.close()
                msg = f"Connection lost after {len(data)}/{num_bytes} bytes: {e}"
                raise TransportError(msg) from e

            if not chunk:
                self.close()
                msg = (
                    "Connection closed by server"
                    f" after {len(data)}/{num_bytes} bytes"
                )
                raise TransportError(msg)

            data.extend(chunk)

        return bytes(data)

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            msg = "Not connected"
            raise TransportError(msg)
        return self._sock


def execute(config: RconConfig, command: str) -> str:
    """Connect, authenticate if configured, send one command, and disconnect."""
    with RconClient(config.address, password=config.password) as client:
        client.connect()
        return client.send(command)
