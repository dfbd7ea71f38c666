"""Tests for restore functionality."""

from pathlib import Path
from typing import List

import pytest

from confvault.core.add import AddManager
from confvault.core.config import Config
from confvault.core.errors import FileNotTrackedError
from confvault.core.models import TrackedFile
from confvault.core.privileges import Privileges
from confvault.core.repository import Session
from confvault.core.restore import (
    ERROR,
    PLANNED,
    RESTORED,
    SKIPPED,
    RestoreManager,
    RestoreOptions,
)


@pytest.fixture
def restore_manager(session: Session, test_config: Config) -> RestoreManager:
    """Create a restore manager with test configuration."""
    return RestoreManager(session, test_config)


@pytest.fixture
def tracked(session: Session, work_dir: Path) -> List[Path]:
    """Track three files and then change two of them."""
    paths = [work_dir / name for name in ("one.conf", "two.conf", "three.conf")]
    for path in paths:
        path.write_text(f"{path.stem}\n")
        AddManager(session).add(path)
    paths[0].write_text("edited\n")
    paths[1].unlink()
    return paths


def never(record: TrackedFile) -> bool:
    """Refuse every confirmation."""
    return False


def test_restore_all_with_force(restore_manager: RestoreManager, tracked: List[Path]) -> None:
    """Test a forced restore writes every differing file back."""
    report = restore_manager.restore(RestoreOptions(force=True))

    statuses = {Path(e.path).name: e.status for e in report.entries}
    assert statuses == {"one.conf": RESTORED, "two.conf": RESTORED, "three.conf": SKIPPED}
    assert (report.restored, report.skipped, report.errored) == (2, 1, 0)
    for path in tracked:
        assert path.read_text() == f"{path.stem}\n"


def test_restore_backs_up_existing_file(
    restore_manager: RestoreManager, tracked: List[Path]
) -> None:
    """Test an overwritten file is copied aside first."""
    report = restore_manager.restore(RestoreOptions(path=str(tracked[0]), force=True))

    backup = tracked[0].resolve().with_name("one.conf.bak")
    assert backup.read_text() == "edited\n"
    assert report.entries[0].backup_path == str(backup)
    assert not tracked[1].with_name("two.conf.bak").exists()


def test_restore_without_backup(restore_manager: RestoreManager, tracked: List[Path]) -> None:
    """Test backups can be turned off."""
    restore_manager.restore(RestoreOptions(force=True, backup=False))
    assert not tracked[0].with_name("one.conf.bak").exists()


def test_restore_backup_suffix_from_config(
    session: Session, test_config: Config, tracked: List[Path]
) -> None:
    """Test the configured backup suffix is used."""
    test_config.load_from_dict({"backup_suffix": ".orig"})
    RestoreManager(session, test_config).restore(RestoreOptions(force=True))
    assert tracked[0].with_name("one.conf.orig").read_text() == "edited\n"


def test_restore_declined_skips_existing(
    restore_manager: RestoreManager, tracked: List[Path]
) -> None:
    """Test declining keeps the live file but missing files are still created."""
    report = restore_manager.restore(RestoreOptions(), confirm=never)

    statuses = {Path(e.path).name: e.status for e in report.entries}
    assert statuses["one.conf"] == SKIPPED
    assert statuses["two.conf"] == RESTORED
    assert tracked[0].read_text() == "edited\n"
    assert tracked[1].read_text() == "two\n"


def test_restore_dry_run(restore_manager: RestoreManager, tracked: List[Path]) -> None:
    """Test a dry run reports the plan without writing."""
    report = restore_manager.restore(RestoreOptions(dry_run=True, force=True))

    assert report.dry_run
    assert report.planned == 2
    assert report.restored == 0
    assert tracked[0].read_text() == "edited\n"
    assert not tracked[1].exists()
    messages = {Path(e.path).name: e.message for e in report.entries if e.status == PLANNED}
    assert messages["two.conf"] == "would create"
    assert messages["one.conf"].startswith("would overwrite")


def test_restore_unknown_path(restore_manager: RestoreManager, tracked: List[Path]) -> None:
    """Test restoring an untracked path raises."""
    with pytest.raises(FileNotTrackedError):
        restore_manager.restore(RestoreOptions(path="/no/such/file"))


def test_restore_continues_after_error(
    session: Session, test_config: Config, tracked: List[Path]
) -> None:
    """Test a failure on one file does not stop the others."""
    broken = session.metadata.find(str(tracked[0].resolve()))
    assert broken is not None
    session.backend.save_file(broken.storage_key, b"\x00" * 64)

    report = RestoreManager(session, test_config).restore(RestoreOptions(force=True))

    statuses = {Path(e.path).name: e.status for e in report.entries}
    assert statuses == {"one.conf": ERROR, "two.conf": RESTORED, "three.conf": SKIPPED}
    assert report.errored == 1
    assert "Invalid password" in report.entries[0].message
    assert tracked[1].read_text() == "two\n"


def test_restore_uses_elevated_writer(
    session: Session,
    test_config: Config,
    tracked: List[Path],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test a denied write falls back to the injected writer."""
    written = {}

    def denied(self: Path, data: bytes) -> int:
        raise PermissionError("denied")

    def elevated(path: Path, data: bytes) -> None:
        written[path.name] = data

    manager = RestoreManager(session, test_config, Privileges(elevated_writer=elevated))
    monkeypatch.setattr(Path, "write_bytes", denied)
    report = manager.restore(RestoreOptions(path=str(tracked[1]), force=True))
    monkeypatch.undo()

    assert report.restored == 1
    assert written == {"two.conf": b"two\n"}


def test_restore_permission_denied_is_reported(
    session: Session,
    test_config: Config,
    tracked: List[Path],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test a denied write without elevation is a per-file error."""

    def denied(self: Path, data: bytes) -> int:
        raise PermissionError("denied")

    manager = RestoreManager(session, test_config)
    monkeypatch.setattr(Path, "write_bytes", denied)
    report = manager.restore(RestoreOptions(path=str(tracked[1]), force=True))
    monkeypatch.undo()

    assert report.errored == 1
    assert "permission denied" in report.entries[0].message


def test_restore_backup_uses_elevated_writer(
    session: Session,
    test_config: Config,
    tracked: List[Path],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test the backup copy also falls back to the injected writer."""
    written = {}

    def denied(self: Path, data: bytes) -> int:
        raise PermissionError("denied")

    def elevated(path: Path, data: bytes) -> None:
        written[path.name] = data

    manager = RestoreManager(session, test_config, Privileges(elevated_writer=elevated))
    monkeypatch.setattr(Path, "write_bytes", denied)
    report = manager.restore(RestoreOptions(path=str(tracked[0]), force=True))
    monkeypatch.undo()

    assert report.restored == 1
    assert report.entries[0].backup_path.endswith("one.conf.bak")
    assert written == {"one.conf.bak": b"edited\n", "one.conf": b"one\n"}
    assert tracked[0].read_text() == "edited\n"
