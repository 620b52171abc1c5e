"""Archive importer interface and a loose-file implementation.

The updater hands every downloaded file to an importer once a version has
been fully transferred. Production clients pack the files into the game's
data container; ``LooseFileArchive`` simply writes them under a directory,
which is enough for tooling and tests.

Importers may expose notification hooks named ``message``, ``warning``,
``maximum_determined`` and ``progress_changed``; the updater relays them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from rappelz_updater.core.events import EventHook

logger = structlog.get_logger()


@runtime_checkable
class ArchiveImporter(Protocol):
    """What the updater needs from the client's content archive."""

    def load(self, path: Path) -> None:
        """Open the archive of the client installed at ``path``."""
        ...

    def import_file_entry(self, name: str, data: bytes) -> None:
        """Add or replace the file ``name`` with ``data``."""
        ...


class LooseFileArchive:
    """Importer that stores files as loose files in a directory.

    Args:
        subdirectory: Directory, relative to the loaded client path, that
            receives the imported files
    """

    def __init__(self, subdirectory: str = "") -> None:
        self.subdirectory = subdirectory
        self.base_path: Path | None = None
        self.imported: list[str] = []

        self.message = EventHook("archive_message")
        self.warning = EventHook("archive_warning")
        self.maximum_determined = EventHook("archive_maximum_determined")
        self.progress_changed = EventHook("archive_progress_changed")

    def load(self, path: Path) -> None:
        """Point the archive at a client installation."""
        self.base_path = path / self.subdirectory if self.subdirectory else path
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.message.emit(f"Loaded archive at {self.base_path}")
        logger.info("archive_loaded", path=str(self.base_path))

    def import_file_entry(self, name: str, data: bytes) -> None:
        """Write ``data`` to ``<base>/<name>``.

        Raises:
            RuntimeError: If the archive has not been loaded
            ValueError: If ``name`` would escape the archive directory
        """
        if self.base_path is None:
            raise RuntimeError("Archive must be loaded before importing files")

        target = (self.base_path / name).resolve()
        if not target.is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Refusing to import outside the archive: {name}")

        if target.exists():
            self.warning.emit(f"Replacing existing file \"{name}\"")

        self.maximum_determined.emit(len(data))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        self.progress_changed.emit(name, len(data))

        self.imported.append(name)
        logger.debug("archive_import", name=name, size=len(data))
