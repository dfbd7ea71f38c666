"""Snapshot functionality for tracked configuration files.

This module records the current content of a file in the repository:
the body is encrypted and stored, and the file's record in the metadata
is created or refreshed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import crypto
from .errors import FileAccessError
from .models import TrackedFile, new_storage_key, utcnow
from .privileges import Privileges
from .repository import Session

logger = logging.getLogger(__name__)


@dataclass
class AddResult:
    """Outcome of adding a file.

    Attributes:
        record: The record now tracking the file.
        created: True if the file was not tracked before.
    """

    record: TrackedFile
    created: bool


class AddManager:
    """Manages snapshots of tracked files.

    Adding an untracked file allocates a fresh storage key and appends a
    record. Adding an already tracked file replaces its snapshot under the
    same storage key and refreshes ``last_updated`` and ``content_hash``.

    Attributes:
        session (Session): Unlocked repository session
        privileges (Privileges): Access to live files
    """

    def __init__(self, session: Session, privileges: Optional[Privileges] = None):
        """Initialize the add manager.

        Args:
            session (Session): Unlocked repository session
            privileges (Optional[Privileges]): Access to live files. If None,
                                               no elevation is attempted.
        """
        self.session = session
        self.privileges = privileges or Privileges()

    def resolve(self, path: Path) -> Path:
        """Resolve ``path`` to the absolute path of an existing regular file.

        Raises:
            FileAccessError: If the path does not name an existing file.
        """
        resolved = Path(path).expanduser().resolve()
        if not resolved.exists():
            raise FileAccessError(str(path), "no such file")
        if not resolved.is_file():
            raise FileAccessError(str(path), "not a regular file")
        return resolved

    def add(self, path: Path) -> AddResult:
        """Snapshot a file into the repository.

        The body is written before the metadata, both inside one backend
        transaction.

        Args:
            path (Path): File to snapshot; relative paths are resolved
                         against the working directory

        Returns:
            AddResult: The tracked record and whether it is new

        Raises:
            FileAccessError: If the file is missing or unreadable
            StorageError: If the backend fails to persist the snapshot

        Example:
            ```python
            with Repository(repo_dir).unlock(password) as session:
                result = AddManager(session).add(Path("~/.gitconfig"))
            ```
        """
        resolved = self.resolve(path)
        content = self.privileges.read(resolved)
        digest = crypto.content_hash(content)
        now = utcnow()

        metadata = self.session.metadata
        record = metadata.find(str(resolved))
        created = record is None
        if record is None:
            record = TrackedFile(
                original_path=str(resolved),
                storage_key=new_storage_key(),
                added_at=now,
                last_updated=now,
                content_hash=digest,
            )
            metadata.files.append(record)
        else:
            record.last_updated = now
            record.content_hash = digest

        with self.session.transaction():
            self.session.write_snapshot(record, content)
            self.session.save()

        if created:
            logger.info("Tracking new file %s as %s", resolved, record.storage_key)
        else:
            logger.info("Updated snapshot of %s", resolved)
        return AddResult(record=record, created=created)
