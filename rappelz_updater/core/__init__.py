"""Core functionality for rappelz_updater.

This module provides the session-level building blocks:
- Configuration management
- Type definitions and the error taxonomy
- Notification hooks
- Local version bookkeeping
- Chunked transfer and version commit
"""

from rappelz_updater.core.errors import (
    AuthenticationDenied,
    ConnectFailure,
    ConnectionLost,
    LocalIOFailure,
    ManifestCorrupt,
    PatchSyncError,
)
from rappelz_updater.core.types import (
    AuthenticationState,
    MessageType,
    UpdateOutcome,
    UpdateResult,
)
from rappelz_updater.core.utils import format_size, host_fingerprint

__all__ = [
    # Errors
    "PatchSyncError",
    "ConnectFailure",
    "AuthenticationDenied",
    "ConnectionLost",
    "ManifestCorrupt",
    "LocalIOFailure",
    # Types
    "AuthenticationState",
    "MessageType",
    "UpdateOutcome",
    "UpdateResult",
    # Utils
    "format_size",
    "host_fingerprint",
]
