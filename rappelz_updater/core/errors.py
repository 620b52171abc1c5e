"""Error taxonomy for patch synchronization sessions.

Every failure the session can hit maps onto one of these classes. They are
raised where the failure is detected and converted into a terminal
``UpdateResult`` by ``ClientUpdater.run``; nothing here is retried.
"""

from __future__ import annotations

from pathlib import Path


class PatchSyncError(Exception):
    """Base class for all patch synchronization failures."""


class ConnectFailure(PatchSyncError):
    """Raised when the TCP connection to the patch server cannot be opened.

    Attributes:
        host: Server host that was dialled
        port: Server port that was dialled
    """

    def __init__(self, message: str, *, host: str = "", port: int = 0):
        self.host = host
        self.port = port
        super().__init__(message)


class AuthenticationDenied(PatchSyncError):
    """Raised when the server answers the handshake with a non-accept code.

    Attributes:
        code: Response code received from the server
    """

    def __init__(self, message: str, *, code: int | None = None):
        self.code = code
        super().__init__(message)


class ConnectionLost(PatchSyncError):
    """Raised when the stream closes mid-frame or mid-transfer.

    Also used for protocol violations that leave the stream in an unknown
    position (negative lengths, non-advancing versions).

    Attributes:
        expected: Number of bytes that were still outstanding
        received: Number of bytes received before the stream closed
    """

    def __init__(
        self,
        message: str,
        *,
        expected: int | None = None,
        received: int | None = None,
    ):
        self.expected = expected
        self.received = received
        super().__init__(message)


class ManifestCorrupt(PatchSyncError):
    """Raised when a patch manifest line does not match the fixed layout.

    Attributes:
        line_number: 1-based line number of the offending record
        line: Raw text of the offending record
    """

    def __init__(self, message: str, *, line_number: int = 0, line: str = ""):
        self.line_number = line_number
        self.line = line
        super().__init__(message)


class LocalIOFailure(PatchSyncError):
    """Raised on file-system errors around the version marker or patch files.

    Attributes:
        path: Path that could not be read or written
    """

    def __init__(self, message: str, *, path: Path | str | None = None):
        self.path = path
        super().__init__(message)
