"""Tests for rappelz_updater.core.updater module."""

import pytest

from rappelz_updater.core.errors import ConnectFailure, ConnectionLost
from rappelz_updater.core.types import AuthenticationState, MessageType, UpdateOutcome
from rappelz_updater.core.updater import ClientUpdater
from rappelz_updater.core.version_store import load_local_version


def _factory(conn):
    calls = []

    def connect(host, port, timeout):
        calls.append((host, port, timeout))
        return conn

    connect.calls = calls
    return connect


class _Recorder:
    """Collects every notification an updater emits."""

    def __init__(self, updater):
        self.calls = []
        events = updater.events
        events.status.subscribe(lambda u: self.calls.append(("status", u.message, u.message_type)))
        events.connected.subscribe(lambda: self.calls.append(("connected",)))
        events.disconnected.subscribe(lambda: self.calls.append(("disconnected",)))
        events.authentication_requested.subscribe(lambda: self.calls.append(("auth_requested",)))
        events.authentication_accepted.subscribe(lambda: self.calls.append(("auth_accepted",)))
        events.authentication_denied.subscribe(lambda: self.calls.append(("auth_denied",)))
        events.transfer_started.subscribe(lambda s: self.calls.append(("started", s.file_name, s.total)))
        events.transfer_progress.subscribe(lambda p: self.calls.append(("progress", p.file_name, p.received)))
        events.version_changed.subscribe(lambda v: self.calls.append(("version", v.previous, v.new)))

    def named(self, name):
        return [call for call in self.calls if call[0] == name]

    def statuses(self, message_type=None):
        return [
            call[1] for call in self.named("status")
            if message_type is None or call[2] is message_type
        ]


@pytest.fixture
def two_version_script(script, make_manifest_line):
    """Server that walks a client from 5 to 7 in two increments."""
    return (
        script.code(511).code(202)
        .frame(b"us:7:eu:3")
        .manifest(6, f"{make_manifest_line('a6')}\n{make_manifest_line('b6', '/002/', 2)}\n")
        .download(b"first-file")
        .download(b"second")
        .manifest(7, f"{make_manifest_line('a7', '/003/', 3)}\r\n")
        .download(b"third!!")
    )


class TestSegmentedUpdate:
    """End-to-end update sessions against a scripted server."""

    def test_update_five_to_seven(self, fake_connection, two_version_script, updater_config, importer):
        conn = fake_connection(two_version_script.to_bytes())
        factory = _factory(conn)
        updater = ClientUpdater(updater_config, importer=importer, connection_factory=factory)
        recorder = _Recorder(updater)

        result = updater.run()

        assert result.outcome is UpdateOutcome.UPDATED
        assert result.start_version == 5
        assert result.final_version == 7
        assert result.target_version == 7
        assert result.versions_applied == [6, 7]
        assert load_local_version(updater_config.client_path) == 7

        assert factory.calls == [("127.0.0.1", 4500, None)]
        assert conn.sent_frames() == [
            b"TEST-FINGERPRINT",
            b"update-seek",
            b"update-get:True:5:us",
            b"update-download:us/001/a6",
            b"update-download:us/002/b6",
            b"update-get:True:6:us",
            b"update-download:us/003/a7",
        ]
        assert importer.files == {"a6": b"first-file", "b6": b"second", "a7": b"third!!"}
        assert importer.loaded == [updater_config.client_path]

        assert recorder.named("version") == [("version", 5, 6), ("version", 6, 7)]
        assert recorder.calls[0] == ("connected",)
        assert recorder.calls[-1] == ("disconnected",)
        assert conn.closed

    def test_files_and_manifests_persisted(self, fake_connection, two_version_script, updater_config, importer):
        conn = fake_connection(two_version_script.to_bytes())
        ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn)).run()

        info_dir = updater_config.patch_info_dir
        assert sorted(p.name for p in info_dir.iterdir()) == ["US6.tpf", "US7.tpf"]
        assert (info_dir / "US7.tpf").read_bytes().endswith(b"\r\n")
        assert (updater_config.patch_files_dir / "6" / "a6").read_bytes() == b"first-file"

    def test_no_keep_files(self, fake_connection, two_version_script, updater_config, importer):
        config = updater_config.model_copy(update={"keep_update_files": False})
        conn = fake_connection(two_version_script.to_bytes())

        result = ClientUpdater(config, importer=importer, connection_factory=_factory(conn)).run()

        assert result.succeeded
        assert not (config.patch_files_dir / "6").exists()
        assert not (config.patch_files_dir / "7").exists()

    def test_transfer_notifications(self, fake_connection, two_version_script, updater_config, importer):
        conn = fake_connection(two_version_script.to_bytes())
        updater = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn))
        recorder = _Recorder(updater)

        updater.run()

        assert recorder.named("started") == [
            ("started", "a6", 10),
            ("started", "b6", 6),
            ("started", "a7", 7),
        ]
        for _, name, received in recorder.named("progress"):
            total = {"a6": 10, "b6": 6, "a7": 7}[name]
            assert received <= total

    def test_status_sequence(self, fake_connection, two_version_script, updater_config, importer):
        conn = fake_connection(two_version_script.to_bytes())
        updater = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn))
        recorder = _Recorder(updater)

        updater.run()

        statuses = recorder.statuses()
        assert "Received update info for version 6" in statuses
        assert "Packing version 7 updates" in statuses
        assert recorder.statuses(MessageType.SUCCESS) == ["Game client up to date"]

    def test_full_update_command(self, fake_connection, script, updater_config, importer, make_manifest_line):
        config = updater_config.model_copy(update={"segmented_update": False})
        script.code(202).frame(b"us:7").manifest(7, make_manifest_line("x")).download(b"x")
        conn = fake_connection(script.to_bytes())

        result = ClientUpdater(config, importer=importer, connection_factory=_factory(conn)).run()

        assert result.versions_applied == [7]
        assert b"update-get:False:5:us" in conn.sent_frames()


class TestSessionOutcomes:
    """Test terminal outcomes other than a full update."""

    def test_up_to_date(self, fake_connection, script, updater_config, importer):
        conn = fake_connection(script.code(511).code(202).frame(b"us:5:eu:9").to_bytes())
        updater = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn))
        recorder = _Recorder(updater)

        result = updater.run()

        assert result.outcome is UpdateOutcome.UP_TO_DATE
        assert result.final_version == 5
        assert result.versions_applied == []
        assert conn.sent_frames() == [b"TEST-FINGERPRINT", b"update-seek"]
        assert importer.loaded == []
        assert recorder.statuses(MessageType.SUCCESS) == ["Game client up to date"]

    def test_locale_not_served(self, fake_connection, script, updater_config, importer):
        conn = fake_connection(script.code(202).frame(b"eu:9").to_bytes())
        result = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn)).run()

        assert result.outcome is UpdateOutcome.UP_TO_DATE
        assert result.target_version is None

    def test_authentication_denied(self, fake_connection, script, updater_config, importer):
        conn = fake_connection(script.code(403).to_bytes())
        updater = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn))
        recorder = _Recorder(updater)

        result = updater.run()

        assert result.outcome is UpdateOutcome.AUTHENTICATION_DENIED
        assert updater.auth_state is AuthenticationState.DENIED
        assert conn.sent == b""
        assert conn.closed
        assert recorder.named("auth_denied") == [("auth_denied",)]
        assert recorder.named("disconnected") == [("disconnected",)]
        assert len(recorder.statuses(MessageType.ERROR)) == 1

    def test_connect_failure(self, updater_config, importer):
        def refuse(host, port, timeout):
            raise ConnectFailure("refused", host=host, port=port)

        updater = ClientUpdater(updater_config, importer=importer, connection_factory=refuse)
        recorder = _Recorder(updater)

        result = updater.run()

        assert result.outcome is UpdateOutcome.CONNECT_FAILED
        assert result.start_version == 5
        assert updater.auth_state is AuthenticationState.FAILED
        assert recorder.named("connected") == []
        assert recorder.named("disconnected") == [("disconnected",)]

    def test_connect_os_error(self, updater_config, importer):
        def refuse(host, port, timeout):
            raise OSError("network unreachable")

        result = ClientUpdater(updater_config, importer=importer, connection_factory=refuse).run()
        assert result.outcome is UpdateOutcome.CONNECT_FAILED

    def test_missing_local_version(self, fake_connection, updater_config, importer):
        (updater_config.client_path / "data.00A").unlink()
        conn = fake_connection()
        factory = _factory(conn)

        result = ClientUpdater(updater_config, importer=importer, connection_factory=factory).run()

        assert result.outcome is UpdateOutcome.LOCAL_IO_FAILURE
        assert factory.calls == []

    def test_non_advancing_version(self, fake_connection, script, updater_config, importer):
        conn = fake_connection(script.code(202).frame(b"us:7").manifest(5, "").to_bytes())

        result = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn)).run()

        assert result.outcome is UpdateOutcome.CONNECTION_LOST
        assert load_local_version(updater_config.client_path) == 5

    def test_corrupt_manifest(self, fake_connection, script, updater_config, importer):
        conn = fake_connection(script.code(202).frame(b"us:6").manifest(6, "too:few:fields\n").to_bytes())

        result = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn)).run()

        assert result.outcome is UpdateOutcome.MANIFEST_CORRUPT
        assert result.final_version == 5
        assert load_local_version(updater_config.client_path) == 5

    def test_connection_lost_mid_transfer(self, fake_connection, script, updater_config, importer, make_manifest_line):
        script.code(202).frame(b"us:6").manifest(6, make_manifest_line("a6"))
        script.raw(b"\x0a" + b"\x00" * 7 + b"part")
        conn = fake_connection(script.to_bytes())

        result = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn)).run()

        assert result.outcome is UpdateOutcome.CONNECTION_LOST
        assert importer.files == {}
        assert load_local_version(updater_config.client_path) == 5
        assert (updater_config.patch_files_dir / "6" / "a6").read_bytes() == b"part"

    def test_failure_keeps_earlier_versions(self, fake_connection, script, updater_config, importer, make_manifest_line):
        script.code(202).frame(b"us:7")
        script.manifest(6, make_manifest_line("a6")).download(b"ok")
        script.manifest(7, "broken\n")
        conn = fake_connection(script.to_bytes())

        result = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn)).run()

        assert result.outcome is UpdateOutcome.MANIFEST_CORRUPT
        assert result.versions_applied == [6]
        assert result.final_version == 6
        assert load_local_version(updater_config.client_path) == 6

    def test_import_failure(self, fake_connection, script, updater_config, recording_importer, make_manifest_line):
        script.code(202).frame(b"us:6").manifest(6, make_manifest_line("a6")).download(b"ok")
        conn = fake_connection(script.to_bytes())
        importer = recording_importer(fail_on="a6")

        result = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn)).run()

        assert result.outcome is UpdateOutcome.LOCAL_IO_FAILURE
        assert load_local_version(updater_config.client_path) == 5


class TestClientUpdater:
    """Test lower-level session methods."""

    def test_fetch_requires_connection(self, updater_config, importer):
        with pytest.raises(ConnectionLost):
            ClientUpdater(updater_config, importer=importer).fetch_server_versions()

    def test_seek_only(self, fake_connection, script, updater_config, importer):
        conn = fake_connection(script.code(202).frame(b"us:7:eu:3").to_bytes())

        with ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn)) as updater:
            assert updater.connect_and_authenticate() is AuthenticationState.AUTHENTICATED
            assert updater.connected
            assert updater.fetch_server_versions() == {"us": 7, "eu": 3}

        assert conn.closed
        assert not updater.connected

    def test_close_emits_disconnected_once(self, fake_connection, script, updater_config, importer):
        conn = fake_connection(script.code(202).to_bytes())
        updater = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn))
        recorder = _Recorder(updater)
        updater.connect_and_authenticate()

        updater.close()
        updater.close()

        assert recorder.named("disconnected") == [("disconnected",)]

    def test_close_without_connection(self, updater_config, importer):
        ClientUpdater(updater_config, importer=importer).close()

    def test_summary(self, fake_connection, script, updater_config, importer):
        conn = fake_connection(script.code(202).frame(b"us:7").to_bytes())
        updater = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn))
        updater.connect_and_authenticate()
        updater.fetch_server_versions()

        summary = updater.summary()

        assert summary["auth_state"] == "authenticated"
        assert summary["server_versions"] == {"us": 7}
        assert summary["locale"] == "us"

    def test_default_importer_relays_events(self, fake_connection, script, updater_config, make_manifest_line):
        script.code(202).frame(b"us:6").manifest(6, make_manifest_line("a6.dat")).download(b"abc")
        conn = fake_connection(script.to_bytes())
        updater = ClientUpdater(updater_config, connection_factory=_factory(conn))
        recorder = _Recorder(updater)

        result = updater.run()

        assert result.succeeded
        assert (updater_config.client_path / "a6.dat").read_bytes() == b"abc"
        assert any(message.startswith("Loaded archive at") for message in recorder.statuses())


class TestServerInputTolerance:
    """Session behaviour on unusual but well-framed server input."""

    def test_untracked_locale_behind_is_up_to_date(self, fake_connection, script, updater_config, importer):
        config = updater_config.model_copy(update={"locale": "eu"})
        conn = fake_connection(script.code(511).code(202).frame(b"us:7:eu:3").to_bytes())
        updater = ClientUpdater(config, importer=importer, connection_factory=_factory(conn))
        recorder = _Recorder(updater)

        result = updater.run()

        assert result.outcome is UpdateOutcome.UP_TO_DATE
        assert result.target_version == 3
        assert conn.sent_frames() == [b"TEST-FINGERPRINT", b"update-seek"]
        assert recorder.named("started") == []
        assert load_local_version(config.client_path) == 5

    def test_non_ascii_storage_name(self, fake_connection, script, updater_config, importer):
        script.code(202).frame(b"us:6")
        script.code(6).frame(b"empty:RZ_US:1:ab\xe9c:1:2:3:4:/001/::")
        conn = fake_connection(script.to_bytes())

        result = ClientUpdater(updater_config, importer=importer, connection_factory=_factory(conn)).run()

        assert result.outcome is UpdateOutcome.MANIFEST_CORRUPT
        assert b"update-download" not in b"".join(conn.sent_frames())
        assert load_local_version(updater_config.client_path) == 5

    @pytest.mark.parametrize("keep", [True, False])
    def test_duplicate_storage_name(self, fake_connection, script, updater_config, importer, make_manifest_line, keep):
        config = updater_config.model_copy(update={"keep_update_files": keep})
        manifest = f"{make_manifest_line('dup', '/001/')}\n{make_manifest_line('dup', '/002/', 2)}\n"
        script.code(202).frame(b"us:6").manifest(6, manifest)
        script.download(b"first").download(b"second-longer")
        conn = fake_connection(script.to_bytes())

        result = ClientUpdater(config, importer=importer, connection_factory=_factory(conn)).run()

        assert result.outcome is UpdateOutcome.UPDATED
        assert importer.files == {"dup": b"second-longer"}
        assert load_local_version(config.client_path) == 6
