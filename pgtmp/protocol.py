"""
Just enough of the PostgreSQL frontend/backend protocol to probe a server.

Only two messages are needed: the client's StartupMessage and whatever
single message the server answers with.  This avoids depending on a driver
for readiness checks, so callers can use whichever client they like.

https://www.postgresql.org/docs/current/protocol-message-formats.html
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO

from pgtmp.errors import ProtocolError

PROTOCOL_MAJOR = 3
PROTOCOL_MINOR = 0

# Backend message tag for ErrorResponse
ERROR_RESPONSE = b"E"

# ERRCODE_CANNOT_CONNECT_NOW ("the database system is starting up"), encoded
# as the ErrorResponse SQLSTATE field: 'C', the code, then NUL
# https://www.postgresql.org/docs/current/errcodes-appendix.html
CANNOT_CONNECT_NOW = b"C57P03\x00"

# The probe connects as this user; authentication failures still mean ready
PROBE_USER = "postgres"

# Upper bound on a backend message body read while probing
MAX_MESSAGE_SIZE = 8192

_INT32 = struct.Struct("!i")


def protocol_version(major: int = PROTOCOL_MAJOR, minor: int = PROTOCOL_MINOR) -> int:
    return (major << 16) | minor


@dataclass(frozen=True)
class StartupMessage:
    """A decoded StartupMessage."""

    version: int
    params: dict[str, str]

    @property
    def major(self) -> int:
        return self.version >> 16

    @property
    def minor(self) -> int:
        return self.version & 0xFFFF


@dataclass(frozen=True)
class Message:
    """A backend message: one tag byte and its body."""

    kind: bytes
    body: bytes


def _cstring(value: str) -> bytes:
    encoded = value.encode("utf-8")
    if b"\x00" in encoded:
        raise ValueError(f"string contains NUL byte: {value!r}")
    return encoded + b"\x00"


def encode_startup_message(
    params: dict[str, str],
    major: int = PROTOCOL_MAJOR,
    minor: int = PROTOCOL_MINOR,
) -> bytes:
    """
    Encode a StartupMessage.

    Layout: Int32 length (including itself), Int32 protocol version,
    NUL-terminated name/value pairs, then a terminating zero byte.
    ``params`` must contain ``user``.
    """
    if "user" not in params:
        raise ValueError("StartupMessage requires a 'user' parameter")

    payload = bytearray(_INT32.pack(protocol_version(major, minor)))
    for key, value in params.items():
        payload += _cstring(key)
        payload += _cstring(value)
    payload += b"\x00"

    return _INT32.pack(len(payload) + 4) + bytes(payload)


def decode_startup_message(data: bytes) -> StartupMessage:
    """
    Decode a StartupMessage produced by :func:`encode_startup_message`.

    Raises:
        ProtocolError: If the framing is inconsistent.
    """
    if len(data) < 9:
        raise ProtocolError(f"startup message too short: {len(data)} bytes")

    (length,) = _INT32.unpack_from(data, 0)
    if length != len(data):
        raise ProtocolError(f"startup length={length} but got {len(data)} bytes")
    (version,) = _INT32.unpack_from(data, 4)

    if data[-1] != 0:
        raise ProtocolError("startup message is missing its terminator")
    fields = data[8:-1].split(b"\x00")
    # every string ends with NUL, so the split leaves one trailing empty field
    if not fields or fields[-1] != b"" or len(fields) % 2 != 1:
        raise ProtocolError("startup parameters are not name/value pairs")

    strings = [f.decode("utf-8") for f in fields[:-1]]
    params = dict(zip(strings[0::2], strings[1::2]))
    return StartupMessage(version=version, params=params)


def _read_exact(stream: BinaryIO, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        chunk = stream.read(n - len(buf))
        if not chunk:
            raise ProtocolError(
                f"connection closed after {len(buf)} of {n} bytes"
            )
        buf += chunk
    return bytes(buf)


def read_message(stream: BinaryIO, max_size: int = MAX_MESSAGE_SIZE) -> Message:
    """
    Read one backend message.

    Layout: Byte1 tag, Int32 length (including itself, excluding the tag),
    then the body.

    Raises:
        ProtocolError: On a short read or an out-of-range length.
    """
    header = _read_exact(stream, 5)
    kind = header[:1]
    (length,) = _INT32.unpack_from(header, 1)
    body_len = length - 4
    if body_len < 0 or body_len > max_size:
        raise ProtocolError(f"message length={length} out of bounds")
    return Message(kind=kind, body=_read_exact(stream, body_len))


def encode_message(kind: bytes, body: bytes) -> bytes:
    """Frame a backend-style message (used to build server responses)."""
    return kind + _INT32.pack(len(body) + 4) + body


def is_cannot_connect_now(message: Message) -> bool:
    """``True`` for the "database system is starting up" error."""
    return message.kind == ERROR_RESPONSE and CANNOT_CONNECT_NOW in message.body
