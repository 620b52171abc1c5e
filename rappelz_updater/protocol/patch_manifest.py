"""Patch manifest request, persistence and parsing.

A patch manifest lists every file needed to reach one target version. Each
non-blank line is one record of colon-separated positional fields:

    empty:RZ_US:191:XM!+%tAWA03F&Ad{)N!oIJVwCrg;J:18003153:46A84BC2:10188969:538A2B3F:/090/::

    0  archive tag
    1  locale tag
    2  sequence number
    3  obfuscated storage name
    4-7 size/hash slots (opaque, compared byte-literally)
    8  path fragment used to build the download key

Records with fewer than nine fields are corrupt and abort the version.
Trailing fields beyond the ninth are kept as-is.
"""

from __future__ import annotations

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from rappelz_updater.core.errors import LocalIOFailure, ManifestCorrupt
from rappelz_updater.core.utils import ensure_hidden_dir, mark_hidden
from rappelz_updater.protocol.constants import (
    CMD_GET,
    FIELD_SEPARATOR,
    MANIFEST_MIN_FIELDS,
    MANIFEST_SUFFIX,
)
from rappelz_updater.protocol.framing import FramedStream

logger = structlog.get_logger()


class PatchManifestEntry(BaseModel):
    """One file record of a patch manifest."""

    archive_tag: str = Field(..., description="Archive tag")
    locale_tag: str = Field(..., description="Locale tag (e.g., RZ_US)")
    sequence: str = Field(..., description="Sequence number")
    storage_name: str = Field(..., description="Obfuscated storage file name")
    size_fields: tuple[str, str, str, str] = Field(..., description="Opaque size/hash slots")
    path_fragment: str = Field(..., description="Remote path fragment (e.g., /090/)")
    extra_fields: list[str] = Field(default_factory=list, description="Trailing fields")

    def download_key(self, locale: str) -> str:
        """Remote key requested with ``update-download``."""
        return f"{locale}{self.path_fragment}{self.storage_name}"

    def to_line(self) -> str:
        """Serialize back to a manifest record."""
        fields = [
            self.archive_tag,
            self.locale_tag,
            self.sequence,
            self.storage_name,
            *self.size_fields,
            self.path_fragment,
            *self.extra_fields,
        ]
        return FIELD_SEPARATOR.join(fields)


class PatchManifest(BaseModel):
    """All file records needed to reach one version."""

    version: int = Field(..., description="Target version")
    locale: str = Field(..., description="Locale the manifest was requested for")
    entries: list[PatchManifestEntry] = Field(default_factory=list, description="Records in order")


class PatchManifestParser:
    """Parser and builder for patch manifest text."""

    def parse_entry(self, line: str, line_number: int = 0) -> PatchManifestEntry:
        """Parse a single manifest record.

        Raises:
            ManifestCorrupt: If the record has too few fields or an unusable
                storage name or path fragment
        """
        fields = line.split(FIELD_SEPARATOR)
        if len(fields) < MANIFEST_MIN_FIELDS:
            raise ManifestCorrupt(
                f"Manifest line {line_number} has {len(fields)} fields, "
                f"expected at least {MANIFEST_MIN_FIELDS}",
                line_number=line_number,
                line=line,
            )

        storage_name = fields[3]
        if not storage_name or "/" in storage_name or "\\" in storage_name or storage_name in (".", ".."):
            raise ManifestCorrupt(
                f"Manifest line {line_number} has an invalid storage name: {storage_name!r}",
                line_number=line_number,
                line=line,
            )

        path_fragment = fields[8]
        if not (storage_name.isascii() and path_fragment.isascii()):
            raise ManifestCorrupt(
                f"Manifest line {line_number} has a non-ASCII download key: "
                f"{storage_name!r} under {path_fragment!r}",
                line_number=line_number,
                line=line,
            )

        return PatchManifestEntry(
            archive_tag=fields[0],
            locale_tag=fields[1],
            sequence=fields[2],
            storage_name=storage_name,
            size_fields=(fields[4], fields[5], fields[6], fields[7]),
            path_fragment=path_fragment,
            extra_fields=fields[9:],
        )

    def parse(self, text: str, version: int = 0, locale: str = "") -> PatchManifest:
        """Parse manifest text.

        Args:
            text: Manifest text, one record per line
            version: Version the manifest describes
            locale: Locale the manifest was requested for

        Returns:
            Parsed manifest with records in file order

        Raises:
            ManifestCorrupt: If any record is malformed
        """
        entries = []
        for line_number, raw_line in enumerate(text.split("\n"), start=1):
            line = raw_line.rstrip("\r")
            if not line.strip():
                continue
            entries.append(self.parse_entry(line, line_number))

        logger.debug("manifest_parsed", version=version, entries=len(entries))
        return PatchManifest(version=version, locale=locale, entries=entries)

    def build(self, manifest: PatchManifest) -> str:
        """Build manifest text from a manifest object."""
        return "".join(f"{entry.to_line()}\n" for entry in manifest.entries)

    def parse_file(self, path: Path) -> PatchManifest:
        """Parse a persisted ``<LOCALE><version>.tpf`` manifest.

        The version and locale are recovered from the file name when it
        follows that pattern.

        Raises:
            LocalIOFailure: If the file cannot be read
            ManifestCorrupt: If any record is malformed
        """
        try:
            text = path.read_text(encoding="ascii", errors="replace")
        except OSError as e:
            logger.error("Failed to read file", path=str(path), error=str(e))
            raise LocalIOFailure(f"Cannot read manifest {path}: {e}", path=path) from e

        stem = path.stem
        digits = len(stem) - len(stem.rstrip("0123456789"))
        version = int(stem[-digits:]) if digits else 0
        locale = stem[:-digits].lower() if digits else stem.lower()
        return self.parse(text, version=version, locale=locale)


def manifest_path(info_dir: Path, locale: str, version: int) -> Path:
    """Path of the persisted manifest for ``locale`` at ``version``."""
    return info_dir / f"{locale.upper()}{version}{MANIFEST_SUFFIX}"


def build_get_command(segmented: bool, local_version: int, locale: str) -> str:
    """Compose the ``update-get`` command.

    Example:
        >>> build_get_command(True, 5, "us")
        'update-get:True:5:us'
    """
    return FIELD_SEPARATOR.join([CMD_GET, str(bool(segmented)), str(local_version), locale])


def request_patch_manifest(
    stream: FramedStream,
    segmented: bool,
    local_version: int,
    locale: str,
) -> tuple[int, bytes]:
    """Request the manifest for the next version increment.

    Returns:
        Tuple of (incoming version, raw manifest bytes)
    """
    stream.write_command(build_get_command(segmented, local_version, locale))
    incoming_version = stream.read_int32()
    payload = stream.read_framed()
    logger.info("manifest_received", version=incoming_version, size=len(payload))
    return incoming_version, payload


def save_patch_manifest(info_dir: Path, locale: str, version: int, data: bytes) -> Path:
    """Persist manifest bytes verbatim, replacing any earlier copy.

    Raises:
        LocalIOFailure: If the directory or file cannot be written
    """
    path = manifest_path(info_dir, locale, version)
    try:
        ensure_hidden_dir(info_dir)
        tmp_path = path.with_suffix(f"{MANIFEST_SUFFIX}.tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
        mark_hidden(path)
    except OSError as e:
        logger.error("manifest_save_failed", path=str(path), error=str(e))
        raise LocalIOFailure(f"Cannot write manifest {path}: {e}", path=path) from e

    logger.debug("manifest_saved", path=str(path), size=len(data))
    return path


def load_patch_manifest(path: Path) -> PatchManifest:
    """Load a persisted manifest file.

    Raises:
        LocalIOFailure: If the file cannot be read
        ManifestCorrupt: If any record is malformed
    """
    return PatchManifestParser().parse_file(path)
