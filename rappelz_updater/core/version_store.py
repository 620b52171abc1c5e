"""Locally installed client version marker.

The installed version is a little-endian int32 stored in ``data.00A`` in
the client directory. It is read once before any network activity and only
rewritten after every file of a version has been imported.
"""

from __future__ import annotations

import os
import struct
from pathlib import Path

import structlog

from rappelz_updater.core.errors import LocalIOFailure
from rappelz_updater.protocol.constants import VERSION_FILE_NAME

logger = structlog.get_logger()

_VERSION_FORMAT = "<i"
_VERSION_SIZE = struct.calcsize(_VERSION_FORMAT)


def version_file_path(client_dir: Path) -> Path:
    """Path of the version marker inside ``client_dir``."""
    return client_dir / VERSION_FILE_NAME


def load_local_version(client_dir: Path) -> int:
    """Read the installed client version.

    Args:
        client_dir: Game client installation directory

    Returns:
        Installed version

    Raises:
        LocalIOFailure: If the marker is missing, unreadable or truncated
    """
    path = version_file_path(client_dir)
    try:
        data = path.read_bytes()
    except OSError as e:
        logger.error("version_read_failed", path=str(path), error=str(e))
        raise LocalIOFailure(f"Invalid path to file \"{path}\"", path=path) from e

    if len(data) < _VERSION_SIZE:
        logger.error("version_file_truncated", path=str(path), size=len(data))
        raise LocalIOFailure(
            f"Version file \"{path}\" holds {len(data)} bytes, expected {_VERSION_SIZE}",
            path=path,
        )

    version: int = struct.unpack_from(_VERSION_FORMAT, data)[0]
    return version


def commit_local_version(client_dir: Path, version: int) -> int | None:
    """Persist ``version`` as the installed client version.

    The marker is replaced atomically so an interrupted write never leaves
    a truncated file behind.

    Args:
        client_dir: Game client installation directory
        version: Newly installed version

    Returns:
        The previously installed version, or None if there was no readable
        marker

    Raises:
        LocalIOFailure: If the marker cannot be written
    """
    try:
        previous: int | None = load_local_version(client_dir)
    except LocalIOFailure:
        previous = None

    path = version_file_path(client_dir)
    tmp_path = path.with_name(f"{path.name}.tmp")
    try:
        tmp_path.write_bytes(struct.pack(_VERSION_FORMAT, version))
        os.replace(tmp_path, path)
    except (OSError, struct.error) as e:
        logger.error("version_write_failed", path=str(path), error=str(e))
        raise LocalIOFailure(f"Cannot write version file \"{path}\": {e}", path=path) from e

    logger.info("version_committed", previous=previous, version=version)
    return previous
