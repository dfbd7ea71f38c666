"""Restore functionality for confvault."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console

from .config import Config
from .differ import read_live
from .errors import ConfVaultError
from .models import TrackedFile
from .privileges import Privileges
from .repository import Session

logger = logging.getLogger(__name__)

RESTORED = "restored"
PLANNED = "planned"
SKIPPED = "skipped"
ERROR = "error"

Confirm = Callable[[TrackedFile], bool]


@dataclass
class RestoreOptions:
    """Options for the restore command.

    Attributes:
        path: Restore only files matching this path; all files if None.
        force: Overwrite differing live files without asking.
        dry_run: Report what would be restored without writing anything.
        backup: Copy an existing live file aside before overwriting it.
    """

    path: Optional[str] = None
    force: bool = False
    dry_run: bool = False
    backup: bool = True


@dataclass
class RestoreEntry:
    path: str
    status: str
    message: str = ""
    backup_path: Optional[str] = None


@dataclass
class RestoreReport:
    """Per-file outcomes and the final tally of a restore."""

    entries: List[RestoreEntry] = field(default_factory=list)
    dry_run: bool = False

    def _count(self, status: str) -> int:
        return sum(1 for entry in self.entries if entry.status == status)

    @property
    def restored(self) -> int:
        return self._count(RESTORED)

    @property
    def planned(self) -> int:
        return self._count(PLANNED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def errored(self) -> int:
        return self._count(ERROR)


class RestoreManager:
    """Manage restoring tracked files from their snapshots."""

    def __init__(
        self,
        session: Session,
        config: Optional[Config] = None,
        privileges: Optional[Privileges] = None,
        console: Optional[Console] = None,
    ) -> None:
        """Initialize restore manager.

        Args:
            session: Unlocked repository session.
            config: Configuration, for the backup suffix.
            privileges: Access to live files.
            console: Console used for the default confirmation prompt.
        """
        self.session = session
        self.config = config or Config()
        self.privileges = privileges or Privileges()
        self.console = console or Console()

    def _prompt(self, record: TrackedFile) -> bool:
        self.console.print(f"[yellow]{record.original_path} differs from its snapshot.[/yellow]")
        return self.console.input("Overwrite? [y/N] ").strip().lower() in ("y", "yes")

    def backup_path(self, target: Path) -> Path:
        """Return where ``target`` is copied before being overwritten."""
        return target.with_name(target.name + self.config.backup_suffix)

    def _restore_file(
        self,
        record: TrackedFile,
        options: RestoreOptions,
        confirm: Confirm,
    ) -> RestoreEntry:
        """Restore a single file.

        Whether the live file already matches is decided from the decrypted
        snapshot, never from the stored hash.
        """
        target = Path(record.original_path)
        content = self.session.read_snapshot(record)
        live = read_live(target)

        if live == content:
            logger.debug("Skipping unchanged file: %s", target)
            return RestoreEntry(str(target), SKIPPED, "already up to date")

        backup_target = self.backup_path(target) if options.backup and live is not None else None

        if options.dry_run:
            logger.debug("Would restore file: %s", target)
            message = "would overwrite" if live is not None else "would create"
            if backup_target is not None:
                message += f", backing up to {backup_target}"
            return RestoreEntry(str(target), PLANNED, message)

        if live is not None and not options.force and not confirm(record):
            logger.debug("Skipping existing file: %s (not confirmed)", target)
            return RestoreEntry(str(target), SKIPPED, "not confirmed")

        if backup_target is not None and live is not None:
            self.privileges.write(backup_target, live)
            logger.info("Backed up %s to %s", target, backup_target)

        self.privileges.write(target, content)
        logger.info("Successfully restored file: %s", target)
        return RestoreEntry(
            str(target),
            RESTORED,
            backup_path=str(backup_target) if backup_target is not None else None,
        )

    def restore(
        self,
        options: Optional[RestoreOptions] = None,
        confirm: Optional[Confirm] = None,
    ) -> RestoreReport:
        """Restore tracked files to their original paths.

        Failures on one file are logged and counted, and the remaining files
        are still restored.

        Args:
            options: What to restore and how.
            confirm: Called before overwriting a differing live file unless
                ``options.force`` is set. Defaults to a console prompt.

        Returns:
            A report with one entry per matched file.

        Raises:
            FileNotTrackedError: If ``options.path`` matches no record.
        """
        options = options or RestoreOptions()
        confirm = confirm or self._prompt

        if options.path is not None:
            records = self.session.match(options.path)
        else:
            records = list(self.session.files)

        report = RestoreReport(dry_run=options.dry_run)
        for record in records:
            try:
                entry = self._restore_file(record, options, confirm)
            except ConfVaultError as e:
                logger.error("Error restoring file %s: %s", record.original_path, e)
                entry = RestoreEntry(record.original_path, ERROR, str(e))
            report.entries.append(entry)

        logger.info(
            "Restore finished: %d restored, %d skipped, %d errors",
            report.restored,
            report.skipped,
            report.errored,
        )
        return report
