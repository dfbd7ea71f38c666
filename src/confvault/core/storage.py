"""Storage backends for encrypted repository data.

A repository persists three kinds of record: its salt, its encrypted
metadata blob, and one encrypted body per tracked file. Two backends
implement :class:`StorageBackend`:

- :class:`FlatFileStorage` keeps each record in its own file. Writes that
  touch both metadata and a body are two independent writes, so a crash in
  between can leave an orphan body behind.
- :class:`SqliteStorage` keeps everything in one SQLite database and groups
  the writes of an operation in a single transaction.

The backend of a repository is recorded once, at init, in a marker file and
read back by :func:`open_backend` on every operation.
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Optional, Type

from .crypto import SALT_LEN
from .errors import (
    FileNotTrackedError,
    RepositoryNotFoundError,
    StorageError,
    UnsupportedStorageError,
)
from .models import FILES_DIR, RepositoryMetadata

logger = logging.getLogger(__name__)

STORAGE_TYPE_FILE = "storage.type"
SALT_FILE = "salt.key"
METADATA_FILE = "config.enc"
DATABASE_FILE = "vault.db"

FILE_STORAGE = "file"
SQLITE_STORAGE = "sqlite"


def decode_salt(text: str) -> bytes:
    """Decode a hex salt record, failing loudly on anything malformed."""
    try:
        salt = bytes.fromhex(text.strip())
    except ValueError:
        raise StorageError("Repository salt is not valid hex") from None
    if len(salt) != SALT_LEN:
        raise StorageError(f"Repository salt must be {SALT_LEN} bytes, got {len(salt)}")
    return salt


class StorageBackend(ABC):
    """Persist and retrieve encrypted repository records.

    Backends never see plaintext file content or key material. All faults
    from the underlying filesystem or database are raised as
    :class:`StorageError`.
    """

    storage_type: str = ""
    embeds_content = False

    def __init__(self, repo_path: Path, create: bool = True) -> None:
        """Bind the backend to a repository directory.

        Args:
            repo_path: The repository directory.
            create: Whether the backend may create its store. When False, a
                missing store raises :class:`RepositoryNotFoundError`.
        """
        self.repo_path = Path(repo_path)
        self.files_dir = self.repo_path / FILES_DIR

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.repo_path})"

    def __enter__(self) -> "StorageBackend":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def body_path(self, storage_key: str) -> Path:
        """Map a storage key to its on-disk location under the repository."""
        key = PurePosixPath(storage_key)
        if key.is_absolute() or ".." in key.parts or key.parts[:1] != (FILES_DIR,):
            raise StorageError(f"Invalid storage key: {storage_key}")
        return self.repo_path.joinpath(*key.parts)

    @abstractmethod
    def initialize(self, created_at: datetime, salt: bytes) -> None:
        """Create the backend's on-disk structure and persist the salt."""

    @abstractmethod
    def save_metadata(self, blob: bytes, metadata: Optional[RepositoryMetadata] = None) -> None:
        """Persist the encrypted metadata blob.

        Args:
            blob: Sealed metadata document.
            metadata: The plaintext model the blob was sealed from, for
                backends that keep an index of tracked files.
        """

    @abstractmethod
    def load_metadata(self) -> bytes:
        """Return the encrypted metadata blob."""

    @abstractmethod
    def save_salt(self, salt: bytes) -> None:
        """Persist the repository salt."""

    @abstractmethod
    def load_salt(self) -> bytes:
        """Return the repository salt."""

    @abstractmethod
    def save_file(self, storage_key: str, blob: bytes) -> None:
        """Persist an encrypted file body."""

    @abstractmethod
    def load_file(self, storage_key: str) -> bytes:
        """Return an encrypted file body."""

    @abstractmethod
    def delete_file(self, storage_key: str) -> None:
        """Delete an encrypted file body. Missing bodies are ignored."""

    @abstractmethod
    def has_file(self, storage_key: str) -> bool:
        """Check whether a body is stored under ``storage_key``."""

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group the writes of one operation.

        The default groups nothing: each write lands as soon as it is made.
        """
        yield

    def embed_legacy_file(self, storage_key: str) -> bool:
        """Move a body written by an older layout into the backend's own store.

        Returns:
            True if the body was moved, False if it was already in place.
        """
        raise UnsupportedStorageError(self.storage_type)

    def close(self) -> None:
        """Release backend resources."""


class FlatFileStorage(StorageBackend):
    """One file per record inside the repository directory."""

    storage_type = FILE_STORAGE

    def __init__(self, repo_path: Path, create: bool = True) -> None:
        super().__init__(repo_path, create)
        self.metadata_path = self.repo_path / METADATA_FILE
        self.salt_path = self.repo_path / SALT_FILE

    def initialize(self, created_at: datetime, salt: bytes) -> None:
        try:
            self.files_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create {self.files_dir}: {e}") from e
        self.save_salt(salt)

    def save_metadata(self, blob: bytes, metadata: Optional[RepositoryMetadata] = None) -> None:
        self._write(self.metadata_path, blob)

    def load_metadata(self) -> bytes:
        if not self.metadata_path.exists():
            raise RepositoryNotFoundError(str(self.repo_path))
        return self._read(self.metadata_path)

    def save_salt(self, salt: bytes) -> None:
        self._write(self.salt_path, salt.hex().encode("ascii"))

    def load_salt(self) -> bytes:
        if not self.salt_path.exists():
            raise RepositoryNotFoundError(str(self.repo_path))
        return decode_salt(self._read(self.salt_path).decode("ascii", errors="replace"))

    def save_file(self, storage_key: str, blob: bytes) -> None:
        self._write(self.body_path(storage_key), blob)

    def load_file(self, storage_key: str) -> bytes:
        if not self.has_file(storage_key):
            raise FileNotTrackedError(storage_key)
        return self._read(self.body_path(storage_key))

    def has_file(self, storage_key: str) -> bool:
        return self.body_path(storage_key).is_file()

    def delete_file(self, storage_key: str) -> None:
        path = self.body_path(storage_key)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("Body %s already absent", storage_key)
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e

    def _write(self, path: Path, data: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def _read(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS repository (
    id INTEGER PRIMARY KEY,
    created_at TEXT NOT NULL,
    salt TEXT NOT NULL,
    metadata BLOB
);
CREATE TABLE IF NOT EXISTS files (
    id INTEGER PRIMARY KEY,
    original_path TEXT NOT NULL,
    storage_key TEXT NOT NULL UNIQUE,
    added_at TEXT NOT NULL,
    last_updated TEXT NOT NULL,
    hash TEXT NOT NULL,
    content BLOB
);
"""


class SqliteStorage(StorageBackend):
    """A single SQLite database holding the repository row and one row per file.

    File bodies live in the ``content`` column. Bodies written by older
    releases to ``files/`` next to the database are still readable; when
    both copies exist the database wins.
    """

    storage_type = SQLITE_STORAGE
    embeds_content = True

    def __init__(self, repo_path: Path, create: bool = True) -> None:
        super().__init__(repo_path, create)
        self.db_path = self.repo_path / DATABASE_FILE
        self._depth = 0
        self._pending_unlinks: List[Path] = []
        if not create and not self.db_path.exists():
            raise RepositoryNotFoundError(str(self.repo_path))
        try:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.executescript(_SCHEMA_SQL)
            self._migrate_columns(self._conn)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self.db_path}: {e}") from e

    @staticmethod
    def _migrate_columns(conn: sqlite3.Connection) -> None:
        """Add columns missing from databases created by older releases."""
        for table, column_def in (("repository", "metadata BLOB"), ("files", "content BLOB")):
            try:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {column_def}")
            except sqlite3.OperationalError:
                pass  # Column already exists

    @contextmanager
    def _db_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            raise StorageError(f"Database error while {action}: {e}") from e

    def _commit(self) -> None:
        if self._depth == 0:
            self._conn.commit()
            self._unlink_pending()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed writes in one SQLite transaction.

        Nested calls join the outermost transaction. Any exception rolls
        every write of the transaction back.
        """
        outermost = self._depth == 0
        self._depth += 1
        try:
            yield
            if outermost:
                with self._db_errors("committing"):
                    self._conn.commit()
        except BaseException:
            if outermost:
                logger.debug("Rolling back transaction on %s", self.db_path)
                self._conn.rollback()
                self._pending_unlinks.clear()
            raise
        finally:
            self._depth -= 1
        if outermost:
            self._unlink_pending()

    def _unlink_pending(self) -> None:
        """Remove legacy on-disk bodies whose rows are committed as deleted."""
        while self._pending_unlinks:
            path = self._pending_unlinks.pop()
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StorageError(f"Failed to delete {path}: {e}") from e

    def initialize(self, created_at: datetime, salt: bytes) -> None:
        with self._db_errors("initializing repository"):
            self._conn.execute(
                "INSERT INTO repository (id, created_at, salt) VALUES (1, ?, ?)",
                (created_at.isoformat(), salt.hex()),
            )
            self._commit()

    def save_metadata(self, blob: bytes, metadata: Optional[RepositoryMetadata] = None) -> None:
        with self._db_errors("saving metadata"), self.transaction():
            cursor = self._conn.execute("UPDATE repository SET metadata = ? WHERE id = 1", (blob,))
            if cursor.rowcount == 0:
                raise RepositoryNotFoundError(str(self.repo_path))
            if metadata is not None:
                self._sync_files(metadata)

    def _sync_files(self, metadata: RepositoryMetadata) -> None:
        """Mirror tracked records into the files table.

        Rows for keys that are no longer tracked are dropped unless they
        still hold retained content.
        """
        for record in metadata.files:
            self._conn.execute(
                """
                INSERT INTO files (original_path, storage_key, added_at, last_updated, hash)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(storage_key) DO UPDATE SET
                    original_path = excluded.original_path,
                    added_at = excluded.added_at,
                    last_updated = excluded.last_updated,
                    hash = excluded.hash
                """,
                (
                    record.original_path,
                    record.storage_key,
                    record.added_at.isoformat(),
                    record.last_updated.isoformat(),
                    record.content_hash,
                ),
            )
        keys = [record.storage_key for record in metadata.files]
        placeholders = ", ".join("?" for _ in keys)
        query = "DELETE FROM files WHERE content IS NULL"
        if keys:
            query += f" AND storage_key NOT IN ({placeholders})"
        self._conn.execute(query, keys)

    def load_metadata(self) -> bytes:
        with self._db_errors("loading metadata"):
            row = self._conn.execute("SELECT metadata FROM repository WHERE id = 1").fetchone()
        if row is None or row[0] is None:
            raise RepositoryNotFoundError(str(self.repo_path))
        return bytes(row[0])

    def save_salt(self, salt: bytes) -> None:
        with self._db_errors("saving salt"):
            cursor = self._conn.execute("UPDATE repository SET salt = ? WHERE id = 1", (salt.hex(),))
            if cursor.rowcount == 0:
                raise RepositoryNotFoundError(str(self.repo_path))
            self._commit()

    def load_salt(self) -> bytes:
        with self._db_errors("loading salt"):
            row = self._conn.execute("SELECT salt FROM repository WHERE id = 1").fetchone()
        if row is None:
            raise RepositoryNotFoundError(str(self.repo_path))
        return decode_salt(row[0])

    def save_file(self, storage_key: str, blob: bytes) -> None:
        self.body_path(storage_key)
        with self._db_errors(f"saving {storage_key}"):
            self._conn.execute(
                """
                INSERT INTO files (original_path, storage_key, added_at, last_updated, hash, content)
                VALUES ('', ?, '', '', '', ?)
                ON CONFLICT(storage_key) DO UPDATE SET content = excluded.content
                """,
                (storage_key, blob),
            )
            self._commit()

    def _embedded(self, storage_key: str) -> Optional[bytes]:
        """Return the body held in the content column, if any."""
        with self._db_errors(f"loading {storage_key}"):
            row = self._conn.execute(
                "SELECT content FROM files WHERE storage_key = ?", (storage_key,)
            ).fetchone()
        if row is None or row[0] is None:
            return None
        return bytes(row[0])

    def _read_legacy(self, storage_key: str) -> bytes:
        path = self.body_path(storage_key)
        if not path.is_file():
            raise FileNotTrackedError(storage_key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def has_file(self, storage_key: str) -> bool:
        path = self.body_path(storage_key)
        return self._embedded(storage_key) is not None or path.is_file()

    def load_file(self, storage_key: str) -> bytes:
        blob = self._embedded(storage_key)
        if blob is not None:
            return blob
        logger.debug("Reading legacy on-disk body for %s", storage_key)
        return self._read_legacy(storage_key)

    def delete_file(self, storage_key: str) -> None:
        """Delete the row of a body and, once committed, its legacy disk copy."""
        path = self.body_path(storage_key)
        with self._db_errors(f"deleting {storage_key}"):
            self._conn.execute("DELETE FROM files WHERE storage_key = ?", (storage_key,))
            self._pending_unlinks.append(path)
            self._commit()

    def embed_legacy_file(self, storage_key: str) -> bool:
        if self._embedded(storage_key) is not None:
            return False
        self.save_file(storage_key, self._read_legacy(storage_key))
        return True

    def close(self) -> None:
        self._conn.close()


BACKENDS: Dict[str, Type[StorageBackend]] = {
    FILE_STORAGE: FlatFileStorage,
    SQLITE_STORAGE: SqliteStorage,
}


def read_storage_type(repo_path: Path) -> str:
    """Read the backend marker of a repository.

    Repositories created before the marker existed have none and use flat
    files.

    Raises:
        UnsupportedStorageError: If the marker names an unknown backend.
    """
    marker = Path(repo_path) / STORAGE_TYPE_FILE
    if not marker.exists():
        return FILE_STORAGE
    try:
        storage_type = marker.read_text().strip()
    except OSError as e:
        raise StorageError(f"Failed to read {marker}: {e}") from e
    if storage_type not in BACKENDS:
        raise UnsupportedStorageError(storage_type)
    return storage_type


def write_storage_type(repo_path: Path, storage_type: str) -> None:
    """Write the backend marker. The marker is never rewritten."""
    if storage_type not in BACKENDS:
        raise UnsupportedStorageError(storage_type)
    marker = Path(repo_path) / STORAGE_TYPE_FILE
    if marker.exists():
        raise StorageError(f"Storage marker {marker} already written")
    try:
        marker.write_text(f"{storage_type}\n")
    except OSError as e:
        raise StorageError(f"Failed to write {marker}: {e}") from e


def create_backend(repo_path: Path, storage_type: str, create: bool = True) -> StorageBackend:
    """Instantiate the backend named by ``storage_type``."""
    try:
        backend_cls = BACKENDS[storage_type]
    except KeyError:
        raise UnsupportedStorageError(storage_type) from None
    return backend_cls(Path(repo_path), create=create)


def open_backend(repo_path: Path) -> StorageBackend:
    """Open the backend recorded in the repository's marker."""
    storage_type = read_storage_type(repo_path)
    logger.debug("Opening %s storage at %s", storage_type, repo_path)
    return create_backend(repo_path, storage_type, create=False)
