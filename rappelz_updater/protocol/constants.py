"""Wire protocol constants for the patch server."""

from __future__ import annotations

# All integers on the wire are little-endian
LENGTH_PREFIX_FORMAT = "<i"  # request/response frame length
RESPONSE_CODE_FORMAT = "<i"  # handshake response codes
VERSION_FORMAT = "<i"  # incoming version ahead of a patch manifest

# File download lengths are always signed 64-bit; 32-bit headers from older
# server revisions are not accepted.
DOWNLOAD_LENGTH_FORMAT = "<q"

# Handshake response codes
CODE_CHALLENGE = 511
CODE_ACCEPTED = 202

# Commands
CMD_SEEK = "update-seek"
CMD_GET = "update-get"
CMD_DOWNLOAD = "update-download"

FIELD_SEPARATOR = ":"

# Patch manifest records carry at least this many colon-separated fields
MANIFEST_MIN_FIELDS = 9

# Local state layout
VERSION_FILE_NAME = "data.00A"
MANIFEST_SUFFIX = ".tpf"

DEFAULT_PORT = 4500
DEFAULT_BUFFER_SIZE = 4096
