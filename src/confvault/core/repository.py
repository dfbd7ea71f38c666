"""Repository functionality for confvault."""

from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

from . import crypto
from .errors import (
    FileNotTrackedError,
    RepositoryExistsError,
    RepositoryNotFoundError,
    StorageError,
)
from .models import RepositoryMetadata, TrackedFile, utcnow
from .storage import (
    FILE_STORAGE,
    StorageBackend,
    create_backend,
    open_backend,
    read_storage_type,
    write_storage_type,
)

logger = logging.getLogger(__name__)


class Repository:
    """Represents a confvault repository directory.

    A repository is locked at rest: nothing but the storage backend and the
    salt can be reached without the password. :meth:`unlock` derives the key
    and returns a :class:`Session` for the rest of the invocation.

    Attributes:
        path (Path): Path to the repository directory.
    """

    def __init__(self, path: Path):
        """Initialize repository."""
        self.path = Path(path).expanduser().resolve()
        self.name = self.path.name

    def __str__(self) -> str:
        """Return string representation."""
        return f"Repository({self.path})"

    def __repr__(self) -> str:
        """Return string representation."""
        return self.__str__()

    def exists(self) -> bool:
        """Check if the repository directory exists."""
        return self.path.is_dir()

    def storage_type(self) -> str:
        """Return the backend recorded for this repository."""
        if not self.exists():
            raise RepositoryNotFoundError(str(self.path))
        return read_storage_type(self.path)

    def init(self, password: str, storage: str = FILE_STORAGE) -> RepositoryMetadata:
        """Initialize a new, empty repository protected by ``password``.

        The initialization process:
        1. Creates the repository directory
        2. Writes the backend marker
        3. Generates and persists the salt
        4. Seals and persists empty metadata

        A failure at any step removes the partially created directory.

        Args:
            password: The repository password.
            storage: Backend to use, ``file`` or ``sqlite``.

        Returns:
            The metadata of the new repository.

        Raises:
            RepositoryExistsError: If the directory already exists.
        """
        if self.path.exists():
            raise RepositoryExistsError(str(self.path))

        try:
            self.path.mkdir(parents=True)
        except OSError as e:
            raise StorageError(f"Failed to create {self.path}: {e}") from e

        try:
            write_storage_type(self.path, storage)
            metadata = RepositoryMetadata(created_at=utcnow(), salt=crypto.generate_salt())
            key = crypto.derive(password, metadata.salt)
            with create_backend(self.path, storage) as backend:
                with backend.transaction():
                    backend.initialize(metadata.created_at, metadata.salt)
                    backend.save_metadata(crypto.seal(key, metadata.to_json()), metadata)
        except BaseException:
            shutil.rmtree(self.path, ignore_errors=True)
            raise

        logger.info("Initialized %s repository at %s", storage, self.path)
        return metadata

    def open_backend(self) -> StorageBackend:
        """Open the storage backend recorded in the marker."""
        if not self.exists():
            raise RepositoryNotFoundError(str(self.path))
        return open_backend(self.path)

    def unlock(self, password: str) -> "Session":
        """Derive the key and decrypt the metadata.

        Raises:
            RepositoryNotFoundError: If the repository, its salt, or its
                metadata is missing.
            InvalidPasswordError: If the password is wrong or the metadata
                is corrupt.
        """
        backend = self.open_backend()
        try:
            salt = backend.load_salt()
            key = crypto.derive(password, salt)
            metadata = RepositoryMetadata.from_json(crypto.open(key, backend.load_metadata()))
            if metadata.salt != salt:
                raise StorageError("Repository salt does not match its metadata")
        except BaseException:
            backend.close()
            raise
        logger.debug("Unlocked %s with %d tracked file(s)", self, len(metadata.files))
        return Session(self, backend, key, metadata)


class Session:
    """An unlocked repository for the duration of one command.

    The session owns the derived key and the decrypted metadata. Every blob
    touched in the invocation is sealed or opened with the same key.
    """

    def __init__(
        self,
        repository: Repository,
        backend: StorageBackend,
        key: bytes,
        metadata: RepositoryMetadata,
    ) -> None:
        self.repository = repository
        self.backend = backend
        self.metadata = metadata
        self._key = key

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def files(self) -> List[TrackedFile]:
        return self.metadata.files

    def match(self, query: str) -> List[TrackedFile]:
        """Return the records matching ``query``, raising if there are none."""
        matches = self.metadata.match(query)
        if not matches:
            raise FileNotTrackedError(query)
        return matches

    def read_snapshot(self, record: TrackedFile) -> bytes:
        """Load and decrypt the stored body of ``record``."""
        return crypto.open(self._key, self.backend.load_file(record.storage_key))

    def write_snapshot(self, record: TrackedFile, content: bytes) -> None:
        """Encrypt and store ``content`` as the body of ``record``."""
        self.backend.save_file(record.storage_key, crypto.seal(self._key, content))

    def save(self) -> None:
        """Seal and persist the metadata."""
        blob = crypto.seal(self._key, self.metadata.to_json())
        self.backend.save_metadata(blob, self.metadata)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self.backend.transaction():
            yield

    def close(self) -> None:
        self.backend.close()
