"""Shared utilities for rappelz-updater."""

from __future__ import annotations

import ctypes
import hashlib
import platform
import sys
import uuid
from pathlib import Path

import structlog

logger = structlog.get_logger()

FILE_ATTRIBUTE_HIDDEN = 0x02


def format_size(size: int) -> str:
    """Format byte size as human-readable string.

    Args:
        size: Size in bytes

    Returns:
        Formatted string with appropriate unit (e.g., "1.5 MB")

    Example:
        >>> format_size(1024)
        '1.0 KB'
        >>> format_size(512)
        '512 B'
    """
    if size < 0:
        return "0 B"

    size_float = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_float < 1024.0:
            if unit == "B":
                return f"{int(size_float)} {unit}"
            return f"{size_float:.1f} {unit}"
        size_float /= 1024.0
    return f"{size_float:.1f} PB"


def mark_hidden(path: Path) -> None:
    """Set the hidden attribute on a file or directory.

    The updater's working directories are dot-prefixed, which hides them on
    POSIX systems already; on Windows the file attribute is set as well.
    Failing to set the attribute is logged and otherwise ignored.

    Args:
        path: Existing file or directory
    """
    if sys.platform != "win32":
        return

    kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
    attributes = kernel32.GetFileAttributesW(str(path))
    if attributes == -1 or not kernel32.SetFileAttributesW(
        str(path), attributes | FILE_ATTRIBUTE_HIDDEN
    ):
        logger.debug("hide_attribute_failed", path=str(path))


def ensure_hidden_dir(path: Path) -> Path:
    """Create ``path`` (and parents) if missing and mark it hidden.

    Args:
        path: Directory to create

    Returns:
        The same path, for chaining
    """
    if not path.is_dir():
        path.mkdir(parents=True, exist_ok=True)
        mark_hidden(path)
    return path


def host_fingerprint() -> str:
    """Derive a stable identifier for this machine.

    The server treats the fingerprint as an opaque credential, so only its
    stability matters: the same host always yields the same string.

    Returns:
        40-character uppercase hex string

    Example:
        >>> len(host_fingerprint())
        40
    """
    material = f"{platform.node()}|{platform.machine()}|{uuid.getnode():012x}"
    return hashlib.sha1(material.encode("utf-8")).hexdigest().upper()
