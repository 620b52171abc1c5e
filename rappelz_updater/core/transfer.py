"""Chunked file transfer from the patch server.

Each download is requested with ``update-download:<key>``. The server
answers with a signed 64-bit length followed by exactly that many raw bytes,
which are streamed to disk in reads of at most ``buffer_size`` bytes. A
progress notification fires after every chunk.

If the connection drops before the declared length has arrived the
destination file is left partially written. It must not be imported; the
next session downloads it again from scratch.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from rappelz_updater.core.errors import ConnectionLost, LocalIOFailure
from rappelz_updater.core.events import TransferProgress, TransferStarted, UpdaterEvents
from rappelz_updater.core.utils import ensure_hidden_dir, mark_hidden
from rappelz_updater.protocol.constants import CMD_DOWNLOAD, DEFAULT_BUFFER_SIZE, FIELD_SEPARATOR
from rappelz_updater.protocol.framing import FramedStream
from rappelz_updater.protocol.patch_manifest import PatchManifestEntry

logger = structlog.get_logger()


@dataclass
class TransferSession:
    """State of a single file download."""

    file_name: str
    destination: Path
    total: int
    received: int = 0

    @property
    def remaining(self) -> int:
        return self.total - self.received

    @property
    def complete(self) -> bool:
        return self.received == self.total


def receive_file(
    stream: FramedStream,
    session: TransferSession,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    events: UpdaterEvents | None = None,
) -> TransferSession:
    """Stream ``session.total`` bytes from the connection into the destination.

    The destination is truncated first. Every read asks for at most
    ``min(buffer_size, remaining)`` bytes, so the file can never grow past
    the declared length.

    Args:
        stream: Framed stream positioned at the first payload byte
        session: Transfer to complete; ``received`` is updated in place
        buffer_size: Upper bound on each read
        events: Hooks receiving ``transfer_progress`` notifications

    Returns:
        The completed session

    Raises:
        ConnectionLost: If the stream closes before the transfer completes
        LocalIOFailure: If the destination cannot be written
    """
    if buffer_size <= 0:
        raise ValueError("buffer_size must be positive")

    events = events or UpdaterEvents()
    session.received = 0

    try:
        handle = open(session.destination, "wb")
    except OSError as e:
        raise LocalIOFailure(f"Cannot open {session.destination}: {e}", path=session.destination) from e

    with handle:
        while session.received < session.total:
            try:
                chunk = stream.read_some(min(buffer_size, session.remaining))
            except ConnectionLost as e:
                logger.error(
                    "transfer_interrupted",
                    file=session.file_name,
                    received=session.received,
                    total=session.total,
                )
                raise ConnectionLost(
                    f"Connection lost while receiving {session.file_name} "
                    f"({session.received} of {session.total} bytes)",
                    expected=session.total,
                    received=session.received,
                ) from e

            try:
                handle.write(chunk)
            except OSError as e:
                raise LocalIOFailure(
                    f"Cannot write {session.destination}: {e}", path=session.destination
                ) from e

            session.received += len(chunk)
            events.transfer_progress.emit(TransferProgress(session.file_name, session.received))

    logger.debug("transfer_complete", file=session.file_name, size=session.total)
    return session


def build_download_command(entry: PatchManifestEntry, locale: str) -> str:
    """Compose the ``update-download`` command for a manifest entry.

    An entry stored as ``abc`` under ``/090/`` for locale ``us`` yields
    ``update-download:us/090/abc``.
    """
    return f"{CMD_DOWNLOAD}{FIELD_SEPARATOR}{entry.download_key(locale)}"


def download_entry(
    stream: FramedStream,
    entry: PatchManifestEntry,
    locale: str,
    directory: Path,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    events: UpdaterEvents | None = None,
) -> TransferSession:
    """Request one manifest entry and write it to ``directory``.

    Args:
        stream: Authenticated framed stream
        entry: Manifest record to download
        locale: Session locale, part of the download key
        directory: Per-version download directory
        buffer_size: Upper bound on each read
        events: Notification hooks

    Returns:
        The completed transfer session
    """
    events = events or UpdaterEvents()

    try:
        ensure_hidden_dir(directory)
    except OSError as e:
        raise LocalIOFailure(f"Cannot create {directory}: {e}", path=directory) from e

    destination = directory / entry.storage_name
    try:
        destination.unlink(missing_ok=True)
    except OSError as e:
        raise LocalIOFailure(f"Cannot replace {destination}: {e}", path=destination) from e

    stream.write_command(build_download_command(entry, locale))
    total = stream.read_download_length()

    session = TransferSession(file_name=entry.storage_name, destination=destination, total=total)
    logger.info("transfer_started", file=entry.storage_name, total=total)
    events.transfer_started.emit(TransferStarted(entry.storage_name, total))

    receive_file(stream, session, buffer_size, events)
    mark_hidden(destination)
    return session
