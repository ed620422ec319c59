"""RCON wire protocol encoding and decoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

from rconhook.errors import DecodingError, EncodingError, ProtocolError


class PacketType(IntEnum):
    """RCON packet types."""

    RESPONSE = 0
    COMMAND = 2
    LOGIN = 3


LENGTH_SIZE = 4
# length + request_id + type
HEADER_SIZE = 12
# request_id + type + two null terminators
META_SIZE = 10
# Largest message the server sends without fragmenting
MAX_MESSAGE_SIZE = 4110

_INT32_MAX = 2**31 - 1


@dataclass(frozen=True)
class Packet:
    """A single RCON packet.

    Wire format: [length:i32][request_id:i32][type:i32][payload\\0\\0]
    Length covers everything after itself (req_id + type + payload + 2 nulls).
    """

    request_id: int
    packet_type: int
    payload: str

    def encode(self) -> bytes:
        """Encode the packet into bytes for transmission.

        Raises EncodingError if the length field would overflow an i32.
        """
        payload_bytes = self.payload.encode("utf-8")
        length = len(payload_bytes) + META_SIZE
        if length > _INT32_MAX:
            msg = f"RCON payload is too large to frame ({len(payload_bytes)} bytes)"
            raise EncodingError(msg)
        return (
            struct.pack("<iii", length, self.request_id, self.packet_type)
            + payload_bytes
            + b"\x00\x00"
        )

    @classmethod
    def decode(cls, message: bytes) -> Packet:
        """Decode a complete message, including its 4-byte length prefix.

        The two trailing null bytes are not validated.
        """
        if len(message) < HEADER_SIZE:
            msg = f"Truncated RCON message header ({len(message)} bytes)"
            raise ProtocolError(msg)

        length, request_id, packet_type = struct.unpack_from("<iii", message, 0)
        body_len = length - META_SIZE
        if body_len < 0:
            msg = f"Invalid size field in RCON message ({length})"
            raise ProtocolError(msg)
        if len(message) < HEADER_SIZE + body_len:
            msg = (
                "Truncated RCON message body"
                f" (expected {HEADER_SIZE + body_len}, got {len(message)})"
            )
            raise ProtocolError(msg)

        try:
            payload = message[HEADER_SIZE : HEADER_SIZE + body_len].decode("utf-8")
        except UnicodeDecodeError as e:
            msg = "RCON response body is not valid UTF-8"
            raise DecodingError(msg) from e

        return cls(
            request_id=request_id,
            packet_type=packet_type,
            payload=payload,
        )
