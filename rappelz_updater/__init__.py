"""Rappelz Updater - patch synchronization client for the Rappelz game client.

This package connects to a patch server, authenticates, discovers the latest
content version for a locale and walks the local client up to it, one
version increment at a time.

Key modules:
- core: Session orchestration, transfer engine, configuration and state
- protocol: Wire framing, handshake and manifest formats
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "Rappelz Updater Team"

from rappelz_updater.core.config import UpdaterConfig
from rappelz_updater.core.types import AuthenticationState, UpdateOutcome, UpdateResult
from rappelz_updater.core.updater import ClientUpdater

__all__ = [
    "__version__",
    "__author__",
    "AuthenticationState",
    "ClientUpdater",
    "UpdateOutcome",
    "UpdateResult",
    "UpdaterConfig",
]
