"""CLI command implementations for rappelz_updater.

- update: Bring the local client up to the server's latest version
- seek: List the versions a patch server advertises
- local-version: Show the installed client version
- manifest: Inspect a saved patch manifest
"""

from rappelz_updater.commands.local import local_version, manifest
from rappelz_updater.commands.seek import seek
from rappelz_updater.commands.update import update

__all__ = ["local_version", "manifest", "seek", "update"]
