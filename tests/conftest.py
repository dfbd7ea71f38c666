"""Test configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest

from confvault.core.config import Config
from confvault.core.repository import Repository, Session
from confvault.core.storage import FILE_STORAGE, SQLITE_STORAGE

PASSWORD = "pw1"


@pytest.fixture
def password() -> str:
    """Return the password test repositories are created with."""
    return PASSWORD


@pytest.fixture(params=[FILE_STORAGE, SQLITE_STORAGE])
def storage(request: pytest.FixtureRequest) -> str:
    """Run a test once per storage backend."""
    return request.param


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    """Return the directory a test repository lives in (not yet created)."""
    return tmp_path / ".confvault"


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Create a directory for live files."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def repository(repo_dir: Path, password: str, storage: str) -> Repository:
    """Create an empty repository with the parametrized backend."""
    repo = Repository(repo_dir)
    repo.init(password, storage=storage)
    return repo


@pytest.fixture
def session(repository: Repository, password: str) -> Generator[Session, None, None]:
    """Unlock the test repository."""
    with repository.unlock(password) as session:
        yield session


@pytest.fixture
def test_config() -> Config:
    """Create a configuration that ignores any user config file."""
    config = Config()
    config.load_from_dict(
        {
            "repository_dir": ".confvault",
            "storage": "file",
            "backup_suffix": ".bak",
            "context_lines": 3,
            "log_file": None,
        }
    )
    return config


@pytest.fixture
def notes(work_dir: Path) -> Path:
    """Create a small live file."""
    path = work_dir / "notes.txt"
    path.write_text("a\nb\n")
    return path
