"""Patch synchronization session.

``ClientUpdater`` owns one connection to the patch server and runs the whole
pipeline on the calling thread:

1. read the installed version from the client directory
2. connect and authenticate
3. ask the server for its latest version per locale
4. while the installed version is behind: fetch the manifest for the next
   increment, download every file it lists, import them and advance the
   installed version

Failures are never retried. ``run`` converts them into a status
notification and a terminal ``UpdateResult``; the lower-level methods raise.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

import structlog

from rappelz_updater.core.archive import ArchiveImporter, LooseFileArchive
from rappelz_updater.core.commit import NameDecoder, commit_version, identity_name
from rappelz_updater.core.config import UpdaterConfig
from rappelz_updater.core.connection import ConnectionFactory, open_connection
from rappelz_updater.core.errors import (
    AuthenticationDenied,
    ConnectFailure,
    ConnectionLost,
    LocalIOFailure,
    ManifestCorrupt,
    PatchSyncError,
)
from rappelz_updater.core.events import TransferProgress, TransferStarted, UpdaterEvents
from rappelz_updater.core.transfer import download_entry
from rappelz_updater.core.types import AuthenticationState, MessageType, UpdateOutcome, UpdateResult
from rappelz_updater.core.version_store import load_local_version
from rappelz_updater.protocol.framing import FramedStream
from rappelz_updater.protocol.handshake import Handshake
from rappelz_updater.protocol.patch_manifest import (
    PatchManifest,
    PatchManifestParser,
    request_patch_manifest,
    save_patch_manifest,
)
from rappelz_updater.protocol.version_manifest import fetch_version_manifest, update_due

logger = structlog.get_logger()

_OUTCOMES: dict[type[PatchSyncError], UpdateOutcome] = {
    ConnectFailure: UpdateOutcome.CONNECT_FAILED,
    AuthenticationDenied: UpdateOutcome.AUTHENTICATION_DENIED,
    ConnectionLost: UpdateOutcome.CONNECTION_LOST,
    ManifestCorrupt: UpdateOutcome.MANIFEST_CORRUPT,
    LocalIOFailure: UpdateOutcome.LOCAL_IO_FAILURE,
}


class ClientUpdater:
    """Brings a local game client up to the server's latest version.

    Args:
        config: Session settings
        importer: Archive receiving downloaded files; defaults to a
            ``LooseFileArchive`` over the client directory
        name_decoder: Maps obfuscated storage names to logical file names
        connection_factory: Opens the transport; defaults to TCP
    """

    def __init__(
        self,
        config: UpdaterConfig,
        importer: ArchiveImporter | None = None,
        name_decoder: NameDecoder | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self.config = config
        self.importer: ArchiveImporter = importer or LooseFileArchive()
        self.name_decoder = name_decoder or identity_name
        self.connection_factory = connection_factory or open_connection
        self.events = UpdaterEvents()
        self.parser = PatchManifestParser()

        self.stream: FramedStream | None = None
        self.auth_state = AuthenticationState.CONNECTING
        self.server_versions: dict[str, int] = {}
        self.local_version: int | None = None
        self.versions_applied: list[int] = []
        self._disconnect_emitted = False

        self._relay_importer_events()

    def _relay_importer_events(self) -> None:
        """Forward the importer's own notifications as session events."""
        message = getattr(self.importer, "message", None)
        if message is not None:
            message.subscribe(lambda text: self.events.report(str(text), MessageType.INFORMATION))

        warning = getattr(self.importer, "warning", None)
        if warning is not None:
            warning.subscribe(lambda text: self.events.report(str(text), MessageType.WARNING))

        maximum = getattr(self.importer, "maximum_determined", None)
        if maximum is not None:
            maximum.subscribe(
                lambda total: self.events.transfer_started.emit(TransferStarted("", int(total)))
            )

        progress = getattr(self.importer, "progress_changed", None)
        if progress is not None:
            progress.subscribe(
                lambda name, value: self.events.transfer_progress.emit(
                    TransferProgress(str(name), int(value))
                )
            )

    def __enter__(self) -> ClientUpdater:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        return self.stream is not None and not self.stream.closed

    def _require_stream(self) -> FramedStream:
        if self.stream is None or self.stream.closed:
            raise ConnectionLost("Not connected to the patch server")
        return self.stream

    def connect_and_authenticate(self) -> AuthenticationState:
        """Open the connection and complete the authentication handshake.

        Returns:
            AuthenticationState.AUTHENTICATED

        Raises:
            ConnectFailure: If the server cannot be reached
            AuthenticationDenied: If the server rejects the client
            ConnectionLost: If the stream closes during the handshake
        """
        self.auth_state = AuthenticationState.CONNECTING
        host, port = self.config.host, self.config.port

        try:
            connection = self.connection_factory(host, port, self.config.timeout)
        except ConnectFailure:
            self.auth_state = AuthenticationState.FAILED
            self.events.disconnected.emit()
            raise
        except OSError as e:
            self.auth_state = AuthenticationState.FAILED
            self.events.disconnected.emit()
            raise ConnectFailure(f"Cannot connect to {host}:{port}: {e}", host=host, port=port) from e

        self.stream = FramedStream(connection)
        self._disconnect_emitted = False
        self.events.connected.emit()

        handshake = Handshake(self.stream, self.config.fingerprint, self.events)
        try:
            self.auth_state = handshake.run()
        finally:
            if handshake.state is AuthenticationState.DENIED:
                self.auth_state = AuthenticationState.DENIED
                self.close()

        return self.auth_state

    def fetch_server_versions(self) -> dict[str, int]:
        """Ask the server for its latest version per locale."""
        self.server_versions = fetch_version_manifest(self._require_stream())
        return self.server_versions

    def begin_update(self) -> UpdateResult:
        """Run version discovery and the update loop on an authenticated stream.

        Returns:
            UP_TO_DATE or UPDATED result

        Raises:
            PatchSyncError: On any failure; versions committed before the
                failure stay committed
        """
        stream = self._require_stream()
        client_dir = self.config.client_path
        locale = self.config.locale

        if self.local_version is None:
            self.local_version = load_local_version(client_dir)
        start_version = self.local_version

        manifest = self.fetch_server_versions()
        target = update_due(manifest, locale, self.local_version)
        result = UpdateResult(
            outcome=UpdateOutcome.UP_TO_DATE,
            start_version=start_version,
            final_version=start_version,
            target_version=manifest.get(locale),
        )

        if target is None:
            logger.info("up_to_date", locale=locale, version=self.local_version)
            self.events.report("Game client up to date", MessageType.SUCCESS)
            return result

        logger.info("update_due", locale=locale, local=self.local_version, target=target)
        try:
            self.importer.load(client_dir)
        except OSError as e:
            raise LocalIOFailure(f"Cannot open client archive at {client_dir}: {e}", path=client_dir) from e

        while self.local_version < target:
            self.events.report("Requesting game client updates")
            incoming_version, payload = request_patch_manifest(
                stream, self.config.segmented_update, self.local_version, locale
            )
            self.events.report(f"Received update info for version {incoming_version}")

            if incoming_version <= self.local_version:
                raise ConnectionLost(
                    f"Server offered version {incoming_version} while client is at "
                    f"{self.local_version}"
                )

            save_patch_manifest(self.config.patch_info_dir, locale, incoming_version, payload)
            patch_manifest = self.parser.parse(
                payload.decode("ascii", errors="replace"), version=incoming_version, locale=locale
            )
            self.apply_version(patch_manifest)

            self.local_version = incoming_version
            self.versions_applied.append(incoming_version)

        result.outcome = UpdateOutcome.UPDATED
        result.versions_applied = list(self.versions_applied)
        result.final_version = self.local_version
        self.events.report("Game client up to date", MessageType.SUCCESS)
        return result

    def apply_version(self, manifest: PatchManifest) -> None:
        """Download every file of ``manifest`` and commit the version."""
        stream = self._require_stream()
        version = manifest.version
        self.events.report(f"Updating client to version {version}")
        version_dir = self.config.patch_files_dir / str(version)

        transfers = [
            download_entry(
                stream,
                entry,
                self.config.locale,
                version_dir,
                self.config.buffer_size,
                self.events,
            )
            for entry in manifest.entries
        ]

        commit_version(
            self.config.client_path,
            version,
            transfers,
            self.importer,
            name_decoder=self.name_decoder,
            keep_update_files=self.config.keep_update_files,
            events=self.events,
            version_dir=version_dir,
        )

    def run(self) -> UpdateResult:
        """Run a complete update session.

        This is the session entry point: it never raises for protocol or
        local I/O failures. The connection is closed before returning.

        Returns:
            Terminal result of the session
        """
        log = logger.bind(host=self.config.host, port=self.config.port, locale=self.config.locale)
        start_version: int | None = None
        try:
            self.local_version = load_local_version(self.config.client_path)
            start_version = self.local_version
            self.connect_and_authenticate()
            result = self.begin_update()
        except PatchSyncError as e:
            outcome = _outcome_for(e)
            log.error("session_failed", outcome=outcome.value, error=str(e))
            self.events.report(str(e), MessageType.ERROR)
            result = UpdateResult(
                outcome=outcome,
                start_version=start_version,
                final_version=self.local_version,
                target_version=self.server_versions.get(self.config.locale),
                versions_applied=list(self.versions_applied),
                error=str(e),
            )
        finally:
            self.close()

        log.info("session_finished", outcome=result.outcome.value, version=result.final_version)
        return result

    def close(self) -> None:
        """Close the connection and emit ``disconnected`` once per connection."""
        if self.stream is None:
            return
        self.stream.close()
        if not self._disconnect_emitted:
            self._disconnect_emitted = True
            logger.debug("disconnected", host=self.config.host)
            self.events.disconnected.emit()

    def summary(self) -> dict[str, Any]:
        """Snapshot of the session state for display."""
        return {
            "host": self.config.host,
            "port": self.config.port,
            "locale": self.config.locale,
            "auth_state": self.auth_state.value,
            "local_version": self.local_version,
            "server_versions": dict(self.server_versions),
        }


def _outcome_for(error: PatchSyncError) -> UpdateOutcome:
    for error_type, outcome in _OUTCOMES.items():
        if isinstance(error, error_type):
            return outcome
    return UpdateOutcome.CONNECTION_LOST
