"""Test CLI commands."""

from pathlib import Path
from typing import Callable, List

import pytest
from click.testing import CliRunner, Result
from rich.console import Console

from confvault import cli as cli_module
from confvault.cli import PASSWORD_ENV, cli

Invoke = Callable[..., Result]


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep long temporary paths on one line."""
    monkeypatch.setattr(cli_module, "console", Console(width=300))


@pytest.fixture
def cli_runner() -> CliRunner:
    """Return a CLI runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Create a config file so user settings never leak into tests."""
    path = tmp_path / "config.yaml"
    path.write_text("storage: file\nbackup_suffix: .bak\ncontext_lines: 3\n")
    return path


@pytest.fixture
def invoke(cli_runner: CliRunner, repo_dir: Path, config_file: Path, password: str) -> Invoke:
    """Run a command against the test repository with the password set."""

    def run(*args: str, password: str = password, **kwargs) -> Result:
        base: List[str] = ["--config", str(config_file), "--repo", str(repo_dir)]
        env = {PASSWORD_ENV: password}
        env.update(kwargs.pop("env", {}))
        return cli_runner.invoke(cli, base + list(args), env=env, **kwargs)

    return run


@pytest.fixture
def initialized(invoke: Invoke, storage: str) -> Invoke:
    """Initialize the test repository with each backend."""
    args = ["init", "--sqlite"] if storage == "sqlite" else ["init"]
    result = invoke(*args)
    assert result.exit_code == 0, result.output
    return invoke


def test_init(invoke: Invoke, repo_dir: Path, storage: str) -> None:
    """Test init command."""
    args = ["init", "--sqlite"] if storage == "sqlite" else ["init"]
    result = invoke(*args)
    assert result.exit_code == 0
    assert f"Initialized {storage} repository" in result.output
    assert (repo_dir / "storage.type").read_text().strip() == storage


def test_init_twice(initialized: Invoke) -> None:
    """Test init refuses an existing repository."""
    result = initialized("init")
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_init_prompts_for_password(
    cli_runner: CliRunner, repo_dir: Path, config_file: Path
) -> None:
    """Test the password is prompted for, with confirmation, when not set."""
    base = ["--config", str(config_file), "--repo", str(repo_dir)]
    env = {PASSWORD_ENV: None}

    result = cli_runner.invoke(cli, base + ["init"], input="pw1\npw1\n", env=env)
    assert result.exit_code == 0, result.output

    result = cli_runner.invoke(cli, base + ["list"], input="pw1\n", env=env)
    assert result.exit_code == 0
    assert "No files tracked." in result.output
    assert "pw1" not in result.output


def test_wrong_password(initialized: Invoke) -> None:
    """Test a wrong password gives one error line and status 1."""
    result = initialized("list", password="pw2")
    assert result.exit_code == 1
    assert "Error: Invalid password or corrupt repository data" in result.output
    assert "pw2" not in result.output
    assert "Traceback" not in result.output


def test_missing_repository(invoke: Invoke) -> None:
    """Test commands on a missing repository."""
    result = invoke("list")
    assert result.exit_code == 1
    assert "Repository not found" in result.output


def test_add_and_list(initialized: Invoke, notes: Path) -> None:
    """Test add then list."""
    result = initialized("add", str(notes))
    assert result.exit_code == 0
    assert f"Added {notes.resolve()}" in result.output

    result = initialized("add", str(notes))
    assert result.exit_code == 0
    assert "Updated" in result.output

    result = initialized("list")
    assert result.exit_code == 0
    assert "Tracked Files" in result.output
    assert "notes.txt" in result.output
    assert "1 file(s)" in result.output


def test_add_missing_file(initialized: Invoke, work_dir: Path) -> None:
    """Test adding a missing file fails cleanly."""
    result = initialized("add", str(work_dir / "missing.txt"))
    assert result.exit_code == 1
    assert "no such file" in result.output


def test_list_filters(initialized: Invoke, notes: Path) -> None:
    """Test list filters and grouping."""
    initialized("add", str(notes))

    result = initialized("list", "--path", "nothing-matches")
    assert result.exit_code == 0
    assert "No files match the given filters." in result.output

    result = initialized("list", "--group")
    assert result.exit_code == 0
    assert "Tracked files (1)" in result.output
    assert str(notes.resolve().parent) in result.output

    result = initialized("list", "--date", "yesterday")
    assert result.exit_code == 1
    assert "YYYY-MM-DD" in result.output


def test_diff_and_restore_scenario(initialized: Invoke, notes: Path) -> None:
    """Test the add, modify, diff and restore cycle from the command line."""
    initialized("add", str(notes))
    notes.write_text("a\nb\nc\n")

    result = initialized("diff")
    assert result.exit_code == 0
    assert "+ c" in result.output
    assert "1 of 1 file(s) changed, +1 -0" in result.output

    result = initialized("restore", "--force", "--no-backup")
    assert result.exit_code == 0
    assert "Restored 1, skipped 0, 0 error(s)" in result.output
    assert notes.read_text() == "a\nb\n"

    result = initialized("diff", "--only-changed")
    assert result.exit_code == 0
    assert "0 of 1 file(s) changed, +0 -0" in result.output


def test_diff_summary_and_missing_file(initialized: Invoke, notes: Path) -> None:
    """Test the summary table and a deleted live file."""
    initialized("add", str(notes))
    notes.unlink()

    result = initialized("diff", "--summary")
    assert result.exit_code == 0
    assert "missing" in result.output
    assert "1 of 1 file(s) changed" in result.output

    result = initialized("diff", "not-tracked")
    assert result.exit_code == 1
    assert "File not tracked: not-tracked" in result.output


def test_restore_dry_run_and_prompt(initialized: Invoke, notes: Path) -> None:
    """Test dry run and the overwrite prompt."""
    initialized("add", str(notes))
    notes.write_text("changed\n")

    result = initialized("restore", "--dry-run")
    assert result.exit_code == 0
    assert "Dry run: 1 to restore" in result.output
    assert notes.read_text() == "changed\n"

    result = initialized("restore", input="n\n")
    assert result.exit_code == 0
    assert "Restored 0, skipped 1" in result.output
    assert notes.read_text() == "changed\n"

    result = initialized("restore", input="y\n")
    assert result.exit_code == 0
    assert notes.read_text() == "a\nb\n"
    assert notes.with_name("notes.txt.bak").read_text() == "changed\n"


def test_rm(initialized: Invoke, notes: Path) -> None:
    """Test rm with and without confirmation."""
    initialized("add", str(notes))

    result = initialized("rm", "notes.txt", input="n\n")
    assert result.exit_code == 0
    assert "Cancelled." in result.output

    result = initialized("rm", "notes.txt", "--force")
    assert result.exit_code == 0
    assert "Removed" in result.output
    assert notes.exists()

    result = initialized("list")
    assert "No files tracked." in result.output


def test_migrate_sqlite_on_file_repository(invoke: Invoke) -> None:
    """Test migrate-sqlite refuses flat-file repositories."""
    invoke("init")
    result = invoke("migrate-sqlite", "--force")
    assert result.exit_code == 1
    assert "Unsupported storage type: file" in result.output


def test_migrate_sqlite(invoke: Invoke, notes: Path) -> None:
    """Test migrate-sqlite on a SQLite repository."""
    invoke("init", "--sqlite")
    invoke("add", str(notes))
    result = invoke("migrate-sqlite", "--force")
    assert result.exit_code == 0
    assert "Migrated 0, already in database 1, 0 failed" in result.output


def test_invalid_config_file(cli_runner: CliRunner, tmp_path: Path) -> None:
    """Test an invalid config file is reported."""
    path = tmp_path / "bad.yaml"
    path.write_text("storage: postgres\n")
    result = cli_runner.invoke(cli, ["--config", str(path), "list"])
    assert result.exit_code == 1
    assert "storage must be one of" in result.output


def test_list_date_help(cli_runner: CliRunner, config_file: Path) -> None:
    """Test the date filter names the day boundary it uses."""
    result = cli_runner.invoke(cli, ["--config", str(config_file), "list", "--help"])
    assert result.exit_code == 0
    assert "local calendar date" in " ".join(result.output.split())
