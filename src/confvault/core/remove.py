"""Remove functionality for confvault."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from rich.console import Console

from .models import TrackedFile
from .repository import Session

logger = logging.getLogger(__name__)

Confirm = Callable[[TrackedFile], bool]


@dataclass
class RemoveResult:
    """Outcome of a remove request."""

    record: TrackedFile
    removed: bool
    content_deleted: bool = False


class RemoveManager:
    """Stop tracking files.

    Only the repository is modified; the live file is never touched.
    """

    def __init__(self, session: Session, console: Optional[Console] = None) -> None:
        """Initialize remove manager."""
        self.session = session
        self.console = console or Console()

    def _prompt(self, record: TrackedFile) -> bool:
        self.console.print(f"About to remove file from tracking: [bold]{record.original_path}[/bold]")
        return self.console.input("Continue? [y/N] ").strip().lower() in ("y", "yes")

    def remove(
        self,
        path: str,
        force: bool = False,
        keep_content: bool = False,
        confirm: Optional[Confirm] = None,
    ) -> RemoveResult:
        """Remove a tracked file.

        Args:
            path: Exact path of the tracked file, or a substring of it. The
                first matching record is removed.
            force: Skip confirmation.
            keep_content: Keep the encrypted body in the repository.
            confirm: Called with the record to ask for confirmation. Defaults
                to a console prompt.

        Returns:
            The result; ``removed`` is False if confirmation was declined.

        Raises:
            FileNotTrackedError: If no record matches ``path``.
        """
        record = self.session.match(path)[0]

        if not force:
            ask = confirm or self._prompt
            if not ask(record):
                logger.info("Remove of %s cancelled", record.original_path)
                return RemoveResult(record=record, removed=False)

        self.session.metadata.remove(record)
        # Metadata is saved before the body is deleted.
        with self.session.transaction():
            self.session.save()
            if not keep_content:
                self.session.backend.delete_file(record.storage_key)

        logger.info(
            "Stopped tracking %s (content %s)",
            record.original_path,
            "kept" if keep_content else "deleted",
        )
        return RemoveResult(record=record, removed=True, content_deleted=not keep_content)
