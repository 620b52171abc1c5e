"""Length-prefixed message framing over a stream connection.

Every request and most responses are a little-endian int32 length followed
by that many payload bytes:

    +----------------+---------------------+
    | length (int32) | payload (length B)  |
    +----------------+---------------------+

A short ``recv`` is never a message boundary. Reads loop until the declared
number of bytes has arrived, and a closed stream with bytes still
outstanding raises ``ConnectionLost``.
"""

from __future__ import annotations

import struct
from typing import Protocol

import structlog

from rappelz_updater.core.errors import ConnectionLost
from rappelz_updater.protocol.constants import (
    DOWNLOAD_LENGTH_FORMAT,
    LENGTH_PREFIX_FORMAT,
)

logger = structlog.get_logger()


class Connection(Protocol):
    """The subset of the socket API the codec relies on."""

    def recv(self, bufsize: int, /) -> bytes: ...

    def sendall(self, data: bytes, /) -> None: ...

    def close(self) -> None: ...


class FramedStream:
    """Reads and writes protocol frames on a connection.

    Args:
        connection: Connected socket (or any object with recv/sendall/close)
    """

    def __init__(self, connection: Connection) -> None:
        self.connection = connection
        self.closed = False

    def write(self, data: bytes) -> None:
        """Write raw bytes with no framing."""
        try:
            self.connection.sendall(data)
        except OSError as e:
            raise ConnectionLost(f"Failed to send {len(data)} bytes: {e}") from e

    def write_framed(self, payload: bytes) -> None:
        """Write ``payload`` preceded by its int32 length."""
        self.write(struct.pack(LENGTH_PREFIX_FORMAT, len(payload)) + payload)

    def write_command(self, command: str) -> None:
        """Write an ASCII command as one frame."""
        logger.debug("command_sent", command=command)
        self.write_framed(command.encode("ascii"))

    def read_some(self, max_bytes: int) -> bytes:
        """Read between 1 and ``max_bytes`` bytes.

        Raises:
            ConnectionLost: If the stream is closed
        """
        try:
            data = self.connection.recv(max_bytes)
        except OSError as e:
            raise ConnectionLost(f"Receive failed: {e}", expected=max_bytes, received=0) from e
        if not data:
            raise ConnectionLost("Connection closed by server", expected=max_bytes, received=0)
        return data

    def read_exact(self, size: int) -> bytes:
        """Read exactly ``size`` bytes, retrying short reads.

        Raises:
            ConnectionLost: If the stream closes before ``size`` bytes arrive
        """
        buffer = bytearray()
        while len(buffer) < size:
            try:
                chunk = self.read_some(size - len(buffer))
            except ConnectionLost as e:
                raise ConnectionLost(
                    f"Connection closed after {len(buffer)} of {size} bytes",
                    expected=size,
                    received=len(buffer),
                ) from e
            buffer.extend(chunk)
        return bytes(buffer)

    def _read_struct(self, fmt: str) -> int:
        value: int = struct.unpack(fmt, self.read_exact(struct.calcsize(fmt)))[0]
        return value

    def read_int32(self) -> int:
        """Read a little-endian signed 32-bit integer."""
        return self._read_struct("<i")

    def read_int64(self) -> int:
        """Read a little-endian signed 64-bit integer."""
        return self._read_struct("<q")

    def read_download_length(self) -> int:
        """Read the length header that precedes a file download."""
        length = self._read_struct(DOWNLOAD_LENGTH_FORMAT)
        if length < 0:
            raise ConnectionLost(f"Invalid download length: {length}")
        return length

    def read_framed(self) -> bytes:
        """Read one length-prefixed frame and return its payload."""
        length = self._read_struct(LENGTH_PREFIX_FORMAT)
        if length < 0:
            raise ConnectionLost(f"Invalid frame length: {length}")
        return self.read_exact(length)

    def close(self) -> None:
        """Close the underlying connection; safe to call repeatedly."""
        if self.closed:
            return
        self.closed = True
        try:
            self.connection.close()
        except OSError as e:
            logger.debug("connection_close_failed", error=str(e))
