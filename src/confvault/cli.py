"""Command line interface for confvault."""

import os
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from .core.add import AddManager
from .core.config import Config
from .core.diff import DiffManager, DiffOptions
from .core.differ import CHANGED, DELETE, INSERT, MISSING, FileDiff, render_lines
from .core.errors import ConfVaultError
from .core.listing import ListManager, ListOptions
from .core.logging import setup_logging
from .core.migrate import MigrateManager
from .core.models import TrackedFile
from .core.privileges import Privileges
from .core.remove import RemoveManager
from .core.repository import Repository
from .core.restore import ERROR, PLANNED, RESTORED, RestoreManager, RestoreOptions
from .core.storage import SQLITE_STORAGE

console = Console()

PASSWORD_ENV = "CONFVAULT_PASSWORD"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

STATUS_STYLES = {
    RESTORED: "green",
    PLANNED: "cyan",
    ERROR: "red",
}


def _fail(error: Any) -> NoReturn:
    """Print a one-line error and exit with status 1."""
    console.print(f"[red]Error: {escape(str(error))}")
    raise click.exceptions.Exit(1)


def _password(confirm: bool = False) -> str:
    """Return the repository password from the environment or a prompt."""
    password = os.environ.get(PASSWORD_ENV)
    if password is None:
        password = click.prompt("Password", hide_input=True, confirmation_prompt=confirm)
    return password


def _privileges(sudo: bool) -> Privileges:
    return Privileges.sudo() if sudo else Privileges()


def _timestamp(record: TrackedFile) -> str:
    return record.last_updated.astimezone().strftime(TIME_FORMAT)


@click.group()
@click.option(
    "--repo",
    "repo_dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Repository directory (defaults to repository_dir from the config, .confvault)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Configuration file (defaults to ~/.config/confvault/config.yaml if present)",
)
@click.option("--debug", is_flag=True, help="Show debug logging on the console")
@click.option("--log-file", help="Also write debug logging to this file")
@click.pass_context
def cli(
    ctx: click.Context,
    repo_dir: Optional[Path],
    config_file: Optional[Path],
    debug: bool,
    log_file: Optional[str],
) -> None:
    """Encrypted version tracking for configuration files.

    confvault keeps an encrypted snapshot of each tracked file in a local
    repository. Snapshots can be compared with the live files and restored
    over them. Every command that reads the repository asks for its
    password once; set CONFVAULT_PASSWORD to skip the prompt.

    Main commands:

      init            Create a new repository
      add             Snapshot a file
      rm              Stop tracking a file
      list            List tracked files
      diff            Compare snapshots with live files
      restore         Write snapshots back to their original paths
      migrate-sqlite  Move legacy file bodies into a SQLite repository

    Run 'confvault COMMAND --help' for more information on a specific command.
    """
    try:
        config = Config(config_file)
    except ValueError as e:
        _fail(e)

    setup_logging(debug=debug, log_file=log_file or config.log_file)

    repo_path = repo_dir if repo_dir is not None else config.repository_path()
    ctx.obj = {"config": config, "repository": Repository(repo_path)}


@cli.command()
@click.option("--sqlite", is_flag=True, help="Store everything in a single SQLite database")
@click.pass_obj
def init(obj: Dict[str, Any], sqlite: bool) -> None:
    """Initialize a new repository.

    The storage backend is chosen here, once. Without --sqlite the storage
    setting from the configuration is used (flat files by default).

    Examples:

      # Create a repository in ./.confvault
      confvault init

      # Create a SQLite repository in a custom location
      confvault --repo ~/.confvault init --sqlite
    """
    config: Config = obj["config"]
    repository: Repository = obj["repository"]
    storage = SQLITE_STORAGE if sqlite else config.storage

    try:
        repository.init(_password(confirm=True), storage=storage)
    except ConfVaultError as e:
        _fail(e)

    console.print(f"[green]Initialized {storage} repository at {escape(str(repository.path))}")


@cli.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--sudo", is_flag=True, help="Use sudo if the file cannot be read directly")
@click.pass_obj
def add(obj: Dict[str, Any], path: Path, sudo: bool) -> None:
    """Snapshot a file into the repository.

    PATH is the file to track. If it is already tracked, its snapshot is
    replaced with the current content.

    Examples:

      # Track a file
      confvault add ~/.gitconfig

      # Track a file only root can read
      confvault add /etc/hosts --sudo
    """
    repository: Repository = obj["repository"]

    try:
        with repository.unlock(_password()) as session:
            result = AddManager(session, _privileges(sudo)).add(path)
    except ConfVaultError as e:
        _fail(e)

    verb = "Added" if result.created else "Updated"
    console.print(f"[green]{verb} {escape(result.record.original_path)}")


@cli.command()
@click.argument("path")
@click.option("--force", "-f", is_flag=True, help="Remove without confirmation prompt")
@click.option(
    "--keep-content", is_flag=True, help="Keep the encrypted snapshot in the repository"
)
@click.pass_obj
def rm(obj: Dict[str, Any], path: str, force: bool, keep_content: bool) -> None:
    """Stop tracking a file.

    PATH is the tracked path or a part of it; the first match is removed.
    The live file is never touched.

    Examples:

      # Stop tracking a file, with confirmation
      confvault rm ~/.gitconfig

      # Stop tracking without asking, keeping the snapshot
      confvault rm gitconfig --force --keep-content
    """
    repository: Repository = obj["repository"]

    def confirm(record: TrackedFile) -> bool:
        return click.confirm(f"Stop tracking {record.original_path}?", default=False)

    try:
        with repository.unlock(_password()) as session:
            result = RemoveManager(session, console).remove(
                path, force=force, keep_content=keep_content, confirm=confirm
            )
    except ConfVaultError as e:
        _fail(e)

    if not result.removed:
        console.print("[yellow]Cancelled.")
        return
    console.print(f"[green]Removed {escape(result.record.original_path)}")


@cli.command(name="list")
@click.option("--path", "-p", help="Only show files whose path contains this text")
@click.option(
    "--date",
    "-d",
    help="Only show files last updated on this local calendar date (YYYY-MM-DD)",
)
@click.option("--group", "-g", is_flag=True, help="Group files by directory")
@click.pass_obj
def list_files(obj: Dict[str, Any], path: Optional[str], date: Optional[str], group: bool) -> None:
    """List tracked files.

    Examples:

      # List every tracked file
      confvault list

      # Files under ~/.config updated today, grouped by directory
      confvault list --path .config --date 2025-03-01 --group
    """
    repository: Repository = obj["repository"]

    try:
        with repository.unlock(_password()) as session:
            result = ListManager(session).list(ListOptions(path=path, date=date, group=group))
    except (ConfVaultError, ValueError) as e:
        _fail(e)

    if not result:
        message = "No files match the given filters." if result.filtered else "No files tracked."
        console.print(f"[yellow]{message}")
        return

    if group:
        tree = Tree(f"[bold]Tracked files ({len(result)})")
        for directory, records in result.groups.items():
            branch = tree.add(f"[bold blue]{escape(directory)}[/]")
            for record in records:
                branch.add(f"[green]{escape(record.name)}[/] [dim]{_timestamp(record)}[/]")
        console.print(tree)
        return

    table = Table(title="Tracked Files")
    table.add_column("Name", style="green", no_wrap=True)
    table.add_column("Directory", style="cyan", overflow="fold")
    table.add_column("Last Updated", style="yellow", no_wrap=True)
    table.add_column("Hash", style="magenta", no_wrap=True)
    for record in result.files:
        table.add_row(
            escape(record.name),
            escape(record.parent),
            _timestamp(record),
            record.content_hash[:12],
        )
    console.print(table)
    console.print(f"{len(result)} file(s)")


def _print_file_diff(result: FileDiff, options: DiffOptions) -> None:
    console.print(f"[bold]{escape(result.path)}")
    if result.status == MISSING:
        console.print(f"  [yellow]{escape(result.message)}")
        return
    if result.status != CHANGED:
        console.print("  [dim]No changes")
        return

    context_lines = options.context_lines if options.context_lines is not None else 3
    for line in render_lines(result, context=options.context, context_lines=context_lines):
        text = line.text.rstrip("\r\n")
        if line.tag == INSERT:
            console.print(Text(f"+ {text}", style="green"))
        elif line.tag == DELETE:
            console.print(Text(f"- {text}", style="red"))
        else:
            console.print(Text(f"  {text}", style="dim"))
    console.print(f"  [green]+{result.additions}[/] [red]-{result.removals}[/]")


@cli.command()
@click.argument("path", required=False)
@click.option("--only-changed", is_flag=True, help="Hide files without changes")
@click.option("--summary", is_flag=True, help="Only show per-file and total counts")
@click.option("--context", is_flag=True, help="Show unchanged lines around each change")
@click.option(
    "--context-lines",
    type=click.IntRange(min=0),
    help="Number of context lines (defaults to context_lines from the config)",
)
@click.pass_obj
def diff(
    obj: Dict[str, Any],
    path: Optional[str],
    only_changed: bool,
    summary: bool,
    context: bool,
    context_lines: Optional[int],
) -> None:
    """Compare snapshots with the live files.

    PATH limits the comparison to one tracked file (the first match).

    Examples:

      # Show every change
      confvault diff

      # Counts only, for changed files
      confvault diff --summary --only-changed

      # One file, with two lines of context
      confvault diff ~/.gitconfig --context --context-lines 2
    """
    config: Config = obj["config"]
    repository: Repository = obj["repository"]
    options = DiffOptions(
        path=path,
        only_changed=only_changed,
        summary=summary,
        context=context,
        context_lines=context_lines,
    )

    try:
        with repository.unlock(_password()) as session:
            report = DiffManager(session, config).diff(options)
    except ConfVaultError as e:
        _fail(e)

    if not report.tracked:
        console.print("[yellow]No files tracked.")
        return

    if summary:
        table = Table(title="Changes")
        table.add_column("File", style="cyan", overflow="fold")
        table.add_column("Status", no_wrap=True)
        table.add_column("Added", style="green", justify="right")
        table.add_column("Removed", style="red", justify="right")
        for result in report.results:
            table.add_row(
                escape(result.path), result.status, str(result.additions), str(result.removals)
            )
        console.print(table)
    else:
        for result in report.results:
            _print_file_diff(result, options)

    totals = report.summary
    console.print(
        f"{totals.files_changed} of {totals.files_checked} file(s) changed, "
        f"+{totals.additions} -{totals.removals}"
    )


@cli.command()
@click.argument("path", required=False)
@click.option("--force", "-f", is_flag=True, help="Overwrite differing files without asking")
@click.option("--dry-run", is_flag=True, help="Show what would be restored without writing")
@click.option(
    "--backup/--no-backup",
    default=True,
    help="Copy an existing file aside before overwriting it (default: on)",
)
@click.option("--sudo", is_flag=True, help="Use sudo if a file cannot be written directly")
@click.pass_obj
def restore(
    obj: Dict[str, Any],
    path: Optional[str],
    force: bool,
    dry_run: bool,
    backup: bool,
    sudo: bool,
) -> None:
    """Restore tracked files from their snapshots.

    PATH limits the restore to matching tracked files; without it every
    tracked file is restored. A file that fails to restore is reported and
    the others are still restored.

    Examples:

      # Restore everything, asking before overwriting changed files
      confvault restore

      # Preview a restore
      confvault restore --dry-run

      # Restore one file without prompting or keeping a backup
      confvault restore ~/.gitconfig --force --no-backup
    """
    config: Config = obj["config"]
    repository: Repository = obj["repository"]
    options = RestoreOptions(path=path, force=force, dry_run=dry_run, backup=backup)

    def confirm(record: TrackedFile) -> bool:
        return click.confirm(f"Overwrite {record.original_path}?", default=False)

    try:
        with repository.unlock(_password()) as session:
            manager = RestoreManager(session, config, _privileges(sudo), console)
            report = manager.restore(options, confirm)
    except ConfVaultError as e:
        _fail(e)

    for entry in report.entries:
        style = STATUS_STYLES.get(entry.status, "yellow")
        line = f"[{style}]{entry.status:<8}[/] {escape(entry.path)}"
        if entry.message:
            line += f" [dim]({escape(entry.message)})[/]"
        console.print(line)

    if report.dry_run:
        console.print(
            f"Dry run: {report.planned} to restore, {report.skipped} skipped, "
            f"{report.errored} error(s)"
        )
    else:
        console.print(
            f"Restored {report.restored}, skipped {report.skipped}, {report.errored} error(s)"
        )
    if report.errored:
        raise click.exceptions.Exit(1)


@cli.command(name="migrate-sqlite")
@click.option("--force", "-f", is_flag=True, help="Migrate without confirmation prompt")
@click.pass_obj
def migrate_sqlite(obj: Dict[str, Any], force: bool) -> None:
    """Move file snapshots stored beside a SQLite database into it.

    Repositories created by older releases kept encrypted snapshots in
    files/ next to vault.db. This copies each of them into the database in
    one transaction. The files on disk are left in place.

    Example:

      confvault migrate-sqlite --force
    """
    repository: Repository = obj["repository"]

    if not force and not click.confirm("Move file snapshots into the database?", default=True):
        console.print("[yellow]Cancelled.")
        return

    try:
        with repository.unlock(_password()) as session:
            report = MigrateManager(session, console).migrate(progress=console.is_terminal)
    except ConfVaultError as e:
        _fail(e)

    for path in report.failed:
        console.print(f"[red]failed[/] {escape(path)}")
    console.print(
        f"Migrated {len(report.migrated)}, already in database {len(report.present)}, "
        f"{len(report.failed)} failed"
    )
    if report.failed:
        raise click.exceptions.Exit(1)


def main() -> None:
    """Entry point for the confvault CLI."""
    cli()


if __name__ == "__main__":
    main()
