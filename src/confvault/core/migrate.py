"""Migration of legacy on-disk bodies into a SQLite repository."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from .errors import ConfVaultError, UnsupportedStorageError
from .repository import Session
from .storage import StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class MigrateReport:
    migrated: List[str] = field(default_factory=list)
    present: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.migrated) + len(self.present) + len(self.failed)


class MigrateManager:
    """Moves file bodies stored next to a SQLite database into the database.

    Earlier SQLite repositories kept encrypted bodies in ``files/`` beside
    ``vault.db``. Migration copies each such body into the ``content``
    column. The on-disk copies are left in place.
    """

    def __init__(self, session: Session, console: Optional[Console] = None):
        """Initialize migrate manager."""
        self.session = session
        self.console = console or Console()

    def migrate(self, progress: bool = False) -> MigrateReport:
        """Migrate every tracked body that is not yet in the database.

        All updates land in one transaction. A body missing from both the
        database and the filesystem is counted as failed and does not stop
        the others.

        Raises:
            UnsupportedStorageError: If the repository does not use SQLite.
        """
        backend = self.session.backend
        if not backend.embeds_content:
            raise UnsupportedStorageError(backend.storage_type)

        report = MigrateReport()
        records = list(self.session.files)

        with self.session.transaction():
            if progress:
                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    console=self.console,
                ) as bar:
                    for record in bar.track(records, description="Migrating file bodies..."):
                        self._migrate_one(backend, record.storage_key, record.original_path, report)
            else:
                for record in records:
                    self._migrate_one(backend, record.storage_key, record.original_path, report)

        logger.info(
            "Migration finished: %d migrated, %d already present, %d failed",
            len(report.migrated),
            len(report.present),
            len(report.failed),
        )
        return report

    def _migrate_one(
        self, backend: StorageBackend, storage_key: str, path: str, report: MigrateReport
    ) -> None:
        try:
            moved = backend.embed_legacy_file(storage_key)
        except UnsupportedStorageError:
            raise
        except ConfVaultError as e:
            logger.error("Failed to migrate %s: %s", path, e)
            report.failed.append(path)
            return
        if moved:
            logger.debug("Migrated %s into the database", path)
            report.migrated.append(path)
        else:
            report.present.append(path)
