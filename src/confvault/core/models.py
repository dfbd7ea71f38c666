"""In-memory schema of a confvault repository."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import InvalidPasswordError

FILES_DIR = "files"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_storage_key() -> str:
    """Allocate a fresh, unique locator for a tracked file body."""
    return f"{FILES_DIR}/{uuid.uuid4().hex}"


@dataclass
class TrackedFile:
    """One tracked file and the locator of its encrypted snapshot.

    Attributes:
        original_path: Absolute path of the live file.
        storage_key: Opaque locator of the encrypted body. Never changes once
            assigned; re-adding the file reuses it.
        added_at: When the file was first added.
        last_updated: When the snapshot was last replaced.
        content_hash: SHA-256 of the snapshot plaintext, for display only.
    """

    original_path: str
    storage_key: str
    added_at: datetime
    last_updated: datetime
    content_hash: str

    @property
    def name(self) -> str:
        return Path(self.original_path).name

    @property
    def parent(self) -> str:
        return str(Path(self.original_path).parent)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_path": self.original_path,
            "storage_key": self.storage_key,
            "added_at": self.added_at.isoformat(),
            "last_updated": self.last_updated.isoformat(),
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackedFile":
        return cls(
            original_path=data["original_path"],
            storage_key=data["storage_key"],
            added_at=datetime.fromisoformat(data["added_at"]),
            last_updated=datetime.fromisoformat(data["last_updated"]),
            content_hash=data["content_hash"],
        )


@dataclass
class RepositoryMetadata:
    """Repository metadata: creation time, salt and the tracked files.

    The whole instance is encrypted as one JSON document before it reaches
    a storage backend.
    """

    created_at: datetime
    salt: bytes
    files: List[TrackedFile] = field(default_factory=list)

    def find(self, original_path: str) -> Optional[TrackedFile]:
        """Return the record tracking exactly ``original_path``, if any."""
        for record in self.files:
            if record.original_path == original_path:
                return record
        return None

    def match(self, query: str) -> List[TrackedFile]:
        """Return records matching ``query``.

        An exact match on the resolved absolute path wins; otherwise every
        record whose path contains ``query`` as a substring is returned.
        """
        resolved = str(Path(query).expanduser().resolve())
        exact = self.find(resolved) or self.find(query)
        if exact is not None:
            return [exact]
        return [record for record in self.files if query in record.original_path]

    def remove(self, record: TrackedFile) -> None:
        self.files = [f for f in self.files if f.original_path != record.original_path]

    def to_json(self) -> bytes:
        document = {
            "created_at": self.created_at.isoformat(),
            "salt": self.salt.hex(),
            "files": [record.to_dict() for record in self.files],
        }
        return json.dumps(document).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> "RepositoryMetadata":
        """Decode metadata produced by :meth:`to_json`.

        Raises:
            InvalidPasswordError: If the document cannot be decoded. A
                successfully authenticated blob that fails to decode is
                treated like any other corrupt data.
        """
        try:
            document = json.loads(data.decode("utf-8"))
            return cls(
                created_at=datetime.fromisoformat(document["created_at"]),
                salt=bytes.fromhex(document["salt"]),
                files=[TrackedFile.from_dict(f) for f in document.get("files", [])],
            )
        except (ValueError, KeyError, TypeError):
            raise InvalidPasswordError() from None
