"""Exceptions raised by the confvault core.

Every error carries one short, user-presentable message. None of them ever
includes password or key material.
"""

from __future__ import annotations

from typing import Optional


class ConfVaultError(Exception):
    """Base exception for all confvault errors."""


class RepositoryNotFoundError(ConfVaultError):
    """The repository directory, its salt, or its metadata does not exist."""

    def __init__(self, path: Optional[str] = None):
        message = "Repository not found"
        if path:
            message = f"Repository not found at {path}"
        super().__init__(message)
        self.path = path


class RepositoryExistsError(ConfVaultError):
    """A repository already exists where one was about to be initialized."""

    def __init__(self, path: Optional[str] = None):
        message = "Repository already exists"
        if path:
            message = f"Repository already exists at {path}"
        super().__init__(message)
        self.path = path


class InvalidPasswordError(ConfVaultError):
    """Decryption failed.

    Raised for a wrong password, a tampered or truncated blob, and
    undecodable metadata alike, so callers cannot tell which one occurred.
    """

    def __init__(self) -> None:
        super().__init__("Invalid password or corrupt repository data")


class FileNotTrackedError(ConfVaultError):
    """No tracked record (or stored body) matches the requested path."""

    def __init__(self, path: str):
        super().__init__(f"File not tracked: {path}")
        self.path = path


class StorageError(ConfVaultError):
    """An I/O or database fault, wrapped with context."""


class FileAccessError(StorageError):
    """A live file could not be read or written."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot access {path}: {reason}")
        self.path = path
        self.reason = reason


class UnsupportedStorageError(ConfVaultError):
    """The persisted backend marker names no known backend."""

    def __init__(self, storage_type: str):
        super().__init__(f"Unsupported storage type: {storage_type}")
        self.storage_type = storage_type
