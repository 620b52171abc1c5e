"""Import a fully downloaded version and advance the installed version."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import structlog

from rappelz_updater.core.archive import ArchiveImporter
from rappelz_updater.core.errors import LocalIOFailure
from rappelz_updater.core.events import UpdaterEvents, VersionChanged
from rappelz_updater.core.transfer import TransferSession
from rappelz_updater.core.version_store import commit_local_version

logger = structlog.get_logger()

NameDecoder = Callable[[str], str]


def identity_name(name: str) -> str:
    """Name decoder used when stored names are not obfuscated."""
    return name


def commit_version(
    client_dir: Path,
    version: int,
    transfers: Sequence[TransferSession],
    importer: ArchiveImporter,
    name_decoder: NameDecoder = identity_name,
    keep_update_files: bool = True,
    events: UpdaterEvents | None = None,
    version_dir: Path | None = None,
) -> int | None:
    """Import every file of ``version`` and record it as installed.

    The installed version only changes after the last file has been
    imported. Any failure before that propagates and leaves it untouched.

    Args:
        client_dir: Game client installation directory
        version: Version the transfers belong to
        transfers: Completed downloads, in manifest order. A destination
            listed more than once is imported once, from its last transfer
        importer: Archive receiving the files
        name_decoder: Maps stored (obfuscated) names to logical names
        keep_update_files: Keep raw downloads after importing them
        events: Notification hooks
        version_dir: Per-version download directory, removed when empty

    Returns:
        The previously installed version, or None if there was none

    Raises:
        LocalIOFailure: If a transfer is incomplete or a file is unreadable
    """
    events = events or UpdaterEvents()
    events.report(f"Packing version {version} updates")

    # A name listed twice downloads to the same file; only the last transfer
    # describes what is on disk.
    unique: dict[Path, TransferSession] = {}
    for transfer in transfers:
        unique.pop(transfer.destination, None)
        unique[transfer.destination] = transfer

    incomplete = [t.file_name for t in unique.values() if not t.complete]
    if incomplete:
        raise LocalIOFailure(
            f"Version {version} has incomplete transfers: {', '.join(incomplete)}"
        )

    for transfer in unique.values():
        file_name = name_decoder(transfer.destination.name)
        events.report(f"Packing \"{file_name}\"")

        try:
            data = transfer.destination.read_bytes()
        except OSError as e:
            raise LocalIOFailure(
                f"Cannot read downloaded file {transfer.destination}: {e}",
                path=transfer.destination,
            ) from e

        if len(data) != transfer.total:
            raise LocalIOFailure(
                f"Downloaded file {transfer.destination} holds {len(data)} bytes, "
                f"expected {transfer.total}",
                path=transfer.destination,
            )

        try:
            importer.import_file_entry(file_name, data)
        except (OSError, ValueError) as e:
            raise LocalIOFailure(
                f"Cannot import \"{file_name}\" into the client archive: {e}",
                path=transfer.destination,
            ) from e
        logger.debug("file_imported", name=file_name, size=len(data))

        if not keep_update_files:
            try:
                transfer.destination.unlink(missing_ok=True)
            except OSError as e:
                raise LocalIOFailure(
                    f"Cannot delete {transfer.destination}: {e}", path=transfer.destination
                ) from e

    if version_dir is not None and version_dir.is_dir() and not any(version_dir.iterdir()):
        try:
            version_dir.rmdir()
        except OSError as e:
            raise LocalIOFailure(f"Cannot remove {version_dir}: {e}", path=version_dir) from e

    previous = commit_local_version(client_dir, version)
    events.version_changed.emit(VersionChanged(previous, version))
    return previous
