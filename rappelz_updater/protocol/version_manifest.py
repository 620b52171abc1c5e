"""Version manifest exchange.

The ``update-seek`` command returns the latest version the server holds for
every locale it serves, as colon-separated pairs:

    us:191:de:188:fr:188
"""

from __future__ import annotations

import structlog

from rappelz_updater.protocol.constants import CMD_SEEK, FIELD_SEPARATOR
from rappelz_updater.protocol.framing import FramedStream

logger = structlog.get_logger()


def parse_version_manifest(text: str) -> dict[str, int]:
    """Parse a version manifest into a locale -> version mapping.

    Args:
        text: Manifest text as sent by the server

    Returns:
        Mapping of locale to latest version. Versions that are not integers
        map to 0, as does a trailing locale with no version.

    Example:
        >>> parse_version_manifest("us:7:eu:3")
        {'us': 7, 'eu': 3}
        >>> parse_version_manifest("us:abc")
        {'us': 0}
    """
    parts = text.strip().split(FIELD_SEPARATOR)
    manifest: dict[str, int] = {}

    for i in range(0, len(parts), 2):
        locale = parts[i].strip()
        if not locale:
            continue
        version_text = parts[i + 1].strip() if i + 1 < len(parts) else ""
        try:
            version = int(version_text)
        except ValueError:
            logger.warning("version_unparsable", locale=locale, value=version_text)
            version = 0
        manifest[locale] = version

    return manifest


def build_version_manifest(manifest: dict[str, int]) -> str:
    """Serialize a locale -> version mapping in wire format.

    Example:
        >>> build_version_manifest({"us": 7, "eu": 3})
        'us:7:eu:3'
    """
    return FIELD_SEPARATOR.join(
        f"{locale}{FIELD_SEPARATOR}{version}" for locale, version in manifest.items()
    )


def fetch_version_manifest(stream: FramedStream) -> dict[str, int]:
    """Request and parse the server's latest versions.

    Args:
        stream: Authenticated framed stream

    Returns:
        Locale -> version mapping
    """
    stream.write_command(CMD_SEEK)
    payload = stream.read_framed()
    manifest = parse_version_manifest(payload.decode("utf-8", errors="replace"))
    logger.info("version_manifest_received", locales=len(manifest))
    return manifest


def update_due(manifest: dict[str, int], locale: str, local_version: int) -> int | None:
    """Decide whether the server holds a newer version for ``locale``.

    Returns:
        The target version, or None when the client is up to date or the
        server does not serve the locale
    """
    target = manifest.get(locale)
    if target is None or target <= local_version:
        return None
    return target
