"""
Tests for persistence — state file and audit ledger.
"""

import json
import threading
from pathlib import Path

import pytest

from caskctl.core.errors import ConfigError
from caskctl.core.models.descriptor import InstallTarget, UninstallSpec
from caskctl.core.models.state import InstallRecord, InstallState, PackageStatus
from caskctl.core.persistence.audit import AuditEntry, AuditWriter
from caskctl.core.persistence.state_file import StateStore, load_state, save_state


def _record() -> InstallRecord:
    return InstallRecord(
        identifier="font-sf-arabic",
        version="18.0d7e1",
        install_target=InstallTarget(path="SF Arabic Fonts.pkg"),
        uninstall_spec=UninstallSpec(pkgutil=("com.apple.pkg.SFArabicFonts",)),
    )


class TestStateFile:
    """Tests for state file persistence."""

    def test_save_and_load(self, tmp_path: Path):
        """State roundtrips through save/load."""
        path = tmp_path / ".state" / "installs.json"
        state = InstallState()
        pkg = state.package("font-sf-arabic")
        pkg.status = PackageStatus.INSTALLED
        pkg.version = "18.0d7e1"
        pkg.record = _record()

        save_state(state, path)
        loaded = load_state(path)

        restored = loaded.packages["font-sf-arabic"]
        assert restored.status == PackageStatus.INSTALLED
        assert restored.record.uninstall_spec.pkgutil == ("com.apple.pkg.SFArabicFonts",)
        assert [p.identifier for p in loaded.installed()] == ["font-sf-arabic"]

    def test_load_missing_returns_fresh(self, tmp_path: Path):
        state = load_state(tmp_path / "nonexistent.json")
        assert state.packages == {}

    def test_load_corrupt_returns_fresh(self, tmp_path: Path, caplog):
        path = tmp_path / "installs.json"
        path.write_text("not json at all {{{")
        assert load_state(path).packages == {}
        assert "Corrupt state file" in caplog.text

        (kept,) = tmp_path.glob("installs.json.corrupt-*")
        assert kept.read_text() == "not json at all {{{"
        assert not path.exists()

    def test_wrong_shape_is_kept_aside(self, tmp_path: Path):
        path = tmp_path / "installs.json"
        path.write_text('{"packages": {"font-a": {"status": "sideways"}}}')
        assert load_state(path).packages == {}
        assert len(list(tmp_path.glob("installs.json.corrupt-*"))) == 1

    def test_unreadable_file_raises(self, tmp_path: Path):
        path = tmp_path / "installs.json"
        path.mkdir()
        with pytest.raises(ConfigError, match="cannot read state file"):
            load_state(path)

    def test_save_is_valid_json(self, tmp_path: Path):
        """Saved file is valid, human-readable JSON."""
        path = tmp_path / "installs.json"
        state = InstallState()
        state.package("font-sf-arabic")
        save_state(state, path)

        data = json.loads(path.read_text())
        assert data["packages"]["font-sf-arabic"]["status"] == "uninstalled"
        assert data["schema_version"] == 1

    def test_atomic_write_leaves_no_temp_files(self, tmp_path: Path):
        path = tmp_path / "installs.json"
        for _ in range(3):
            save_state(InstallState(), path)
        assert [p.name for p in tmp_path.iterdir()] == ["installs.json"]


class TestStateStore:
    def test_package_returns_snapshot(self, tmp_path: Path):
        store = StateStore(tmp_path / "installs.json")
        snapshot = store.package("font-sf-arabic")
        snapshot.version = "changed"
        assert store.package("font-sf-arabic").version is None

    def test_update_persists(self, tmp_path: Path):
        store = StateStore(tmp_path / "installs.json")
        store.update("font-sf-arabic", lambda p: p.advance(PackageStatus.DOWNLOADING))
        assert StateStore(store.path).package("font-sf-arabic").status == PackageStatus.DOWNLOADING

    def test_update_over_corrupt_file_keeps_old_records(self, tmp_path: Path):
        store = StateStore(tmp_path / "installs.json")
        store.update("font-a", lambda p: p.advance(PackageStatus.DOWNLOADING))
        good = store.path.read_text()
        store.path.write_text(good[: len(good) // 2])

        store.update("font-b", lambda p: p.advance(PackageStatus.DOWNLOADING))

        assert sorted(store.read().packages) == ["font-b"]
        (kept,) = tmp_path.glob("installs.json.corrupt-*")
        assert kept.read_text() == good[: len(good) // 2]

    def test_parallel_updates_are_not_lost(self, tmp_path: Path):
        store = StateStore(tmp_path / "installs.json")
        idents = [f"font-{i}" for i in range(8)]

        threads = [
            threading.Thread(
                target=store.update, args=(i, lambda p: p.advance(PackageStatus.DOWNLOADING))
            )
            for i in idents
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(store.read().packages) == sorted(idents)


class TestAuditWriter:
    def test_write_and_read(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        writer.write(AuditEntry(operation_type="install", identifier="font-sf-arabic", status="ok", unverified=True))
        writer.write(AuditEntry(operation_type="uninstall", identifier="font-sf-arabic", status="ok"))

        entries = writer.read_all()
        assert [e.operation_type for e in entries] == ["install", "uninstall"]
        assert entries[0].unverified is True

    def test_read_recent(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        for i in range(5):
            writer.write(AuditEntry(identifier=f"font-{i}"))
        assert [e.identifier for e in writer.read_recent(2)] == ["font-3", "font-4"]
        assert writer.read_recent(0) == []

    def test_for_package(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        writer.write(AuditEntry(identifier="font-a"))
        writer.write(AuditEntry(identifier="font-b"))
        assert len(writer.for_package("font-b")) == 1

    def test_skips_corrupt_lines(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path)
        writer.write(AuditEntry(identifier="font-a"))
        with path.open("a") as f:
            f.write("{broken\n")
        writer.write(AuditEntry(identifier="font-b"))
        assert [e.identifier for e in writer.read_all()] == ["font-a", "font-b"]

    def test_empty_ledger(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "missing.ndjson")
        assert writer.read_all() == []
