"""Pytest configuration and shared fixtures for rappelz_updater tests."""

from __future__ import annotations

import struct
from collections.abc import Generator
from pathlib import Path
from unittest.mock import Mock

import pytest

from rappelz_updater.core.config import AppConfig, UpdaterConfig


class FakeConnection:
    """Socket stand-in that replays scripted server bytes.

    ``recv`` never returns more than ``max_chunk`` bytes so every reader is
    exercised against short reads. Once the script is exhausted ``recv``
    returns ``b""`` like a closed socket.
    """

    def __init__(self, incoming: bytes = b"", max_chunk: int = 3) -> None:
        self.incoming = bytearray(incoming)
        self.max_chunk = max_chunk
        self.sent = bytearray()
        self.closed = False
        self.recv_sizes: list[int] = []

    def recv(self, bufsize: int) -> bytes:
        self.recv_sizes.append(bufsize)
        size = min(bufsize, self.max_chunk, len(self.incoming))
        data = bytes(self.incoming[:size])
        del self.incoming[:size]
        return data

    def sendall(self, data: bytes) -> None:
        if self.closed:
            raise OSError("send on closed connection")
        self.sent.extend(data)

    def close(self) -> None:
        self.closed = True

    def sent_frames(self) -> list[bytes]:
        """Split everything the client sent into length-prefixed frames."""
        frames = []
        data = bytes(self.sent)
        offset = 0
        while offset < len(data):
            (length,) = struct.unpack_from("<i", data, offset)
            offset += 4
            frames.append(data[offset:offset + length])
            offset += length
        return frames


class ServerScript:
    """Builds the byte stream a patch server would send."""

    def __init__(self) -> None:
        self.data = bytearray()

    def code(self, value: int) -> ServerScript:
        self.data += struct.pack("<i", value)
        return self

    def frame(self, payload: bytes) -> ServerScript:
        self.data += struct.pack("<i", len(payload)) + payload
        return self

    def manifest(self, version: int, text: str) -> ServerScript:
        self.data += struct.pack("<i", version)
        return self.frame(text.encode("ascii"))

    def download(self, payload: bytes) -> ServerScript:
        self.data += struct.pack("<q", len(payload)) + payload
        return self

    def raw(self, payload: bytes) -> ServerScript:
        self.data += payload
        return self

    def to_bytes(self) -> bytes:
        return bytes(self.data)


class RecordingImporter:
    """Archive importer that keeps imported files in memory."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.loaded: list[Path] = []
        self.files: dict[str, bytes] = {}
        self.order: list[str] = []
        self.fail_on = fail_on

    def load(self, path: Path) -> None:
        self.loaded.append(path)

    def import_file_entry(self, name: str, data: bytes) -> None:
        if name == self.fail_on:
            raise OSError(f"disk full while importing {name}")
        self.files[name] = data
        self.order.append(name)


def manifest_line(storage_name: str, path_fragment: str = "/001/", sequence: int = 1) -> str:
    """A well-formed patch manifest record."""
    return f"empty:RZ_US:{sequence}:{storage_name}:100:46A84BC2:200:538A2B3F:{path_fragment}::"


@pytest.fixture
def temp_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    yield tmp_path


@pytest.fixture
def client_dir(tmp_path: Path) -> Path:
    """Client installation directory holding version 5."""
    path = tmp_path / "client"
    path.mkdir()
    (path / "data.00A").write_bytes(struct.pack("<i", 5))
    return path


@pytest.fixture
def updater_config(tmp_path: Path, client_dir: Path) -> UpdaterConfig:
    """Session settings pointing at the temporary client."""
    return UpdaterConfig(
        host="127.0.0.1",
        port=4500,
        client_path=client_dir,
        operational_path=tmp_path / "work",
        locale="us",
        fingerprint="TEST-FINGERPRINT",
        buffer_size=4,
    )


@pytest.fixture
def script() -> ServerScript:
    """Empty server byte script."""
    return ServerScript()


@pytest.fixture
def fake_connection() -> type[FakeConnection]:
    """The FakeConnection class."""
    return FakeConnection


@pytest.fixture
def importer() -> RecordingImporter:
    """In-memory archive importer."""
    return RecordingImporter()


@pytest.fixture
def recording_importer() -> type[RecordingImporter]:
    """The RecordingImporter class, for tests that need custom behaviour."""
    return RecordingImporter


@pytest.fixture
def make_manifest_line():
    """Factory for well-formed manifest records."""
    return manifest_line


@pytest.fixture
def mock_console() -> Mock:
    """Create standardized mock Rich console for CLI testing.

    Tracks printed output in ``printed_lines`` with Rich markup removed.
    """
    import re
    import sys

    console = Mock()

    status_cm = Mock()
    status_cm.__enter__ = Mock(return_value=status_cm)
    status_cm.__exit__ = Mock(return_value=None)
    console.status.return_value = status_cm

    console.printed_lines = []

    def track_print(text="", **kwargs):
        clean_text = re.sub(r'\[/?[^\]]*\]', '', str(text))
        console.printed_lines.append(clean_text)
        print(clean_text, file=sys.stdout)

    console.print.side_effect = track_print
    return console


@pytest.fixture
def mock_cli_context(mock_console: Mock) -> Mock:
    """Click context object in the shape the commands expect."""
    ctx = Mock()
    ctx.obj = {
        "config": AppConfig(output_format="plain"),
        "console": mock_console,
        "verbose": False,
        "debug": False,
    }
    return ctx


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
