"""Patch server wire protocol.

- framing: int32 length-prefixed frames over the TCP stream
- handshake: challenge/response authentication
- version_manifest: ``update-seek`` locale/version listing
- patch_manifest: ``update-get`` per-version file manifests
"""

from rappelz_updater.protocol.framing import FramedStream
from rappelz_updater.protocol.handshake import Handshake
from rappelz_updater.protocol.patch_manifest import (
    PatchManifest,
    PatchManifestEntry,
    PatchManifestParser,
    load_patch_manifest,
)
from rappelz_updater.protocol.version_manifest import (
    build_version_manifest,
    parse_version_manifest,
)

__all__ = [
    "FramedStream",
    "Handshake",
    "PatchManifest",
    "PatchManifestEntry",
    "PatchManifestParser",
    "load_patch_manifest",
    "build_version_manifest",
    "parse_version_manifest",
]
