"""Reading and writing live files, with optional privilege elevation.

The core never elevates privileges on its own. Callers that can (for
example a CLI running ``sudo``) inject an elevated reader or writer, which
is only tried after a direct access fails with a permission error.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from .errors import FileAccessError

logger = logging.getLogger(__name__)

ElevatedReader = Callable[[Path], bytes]
ElevatedWriter = Callable[[Path, bytes], None]


def _sudo(args: List[str], data: Optional[bytes] = None) -> bytes:
    """Run a command under sudo, raising PermissionError if it fails."""
    try:
        result = subprocess.run(
            ["sudo", *args],
            input=data,
            capture_output=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        message = e.stderr.decode("utf-8", errors="replace").strip() if e.stderr else ""
        raise PermissionError(message or f"sudo {args[0]} failed") from e
    return result.stdout


def sudo_read(path: Path) -> bytes:
    """Read ``path`` with ``sudo cat``."""
    return _sudo(["cat", "--", str(path)])


def sudo_write(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` with ``sudo tee``."""
    _sudo(["tee", "--", str(path)], data)


class Privileges:
    """Filesystem access for live files.

    Attributes:
        elevated_reader: Called with the path when a direct read is denied.
        elevated_writer: Called with the path and data when a direct write
            is denied.
    """

    def __init__(
        self,
        elevated_reader: Optional[ElevatedReader] = None,
        elevated_writer: Optional[ElevatedWriter] = None,
    ) -> None:
        self.elevated_reader = elevated_reader
        self.elevated_writer = elevated_writer

    def read(self, path: Path) -> bytes:
        """Read a live file.

        Raises:
            FileAccessError: If the file is missing, is not a regular file,
                or cannot be read even with elevation.
        """
        try:
            return path.read_bytes()
        except PermissionError as e:
            if self.elevated_reader is None:
                raise FileAccessError(str(path), "permission denied") from e
            logger.warning("Permission denied reading %s, using elevated access", path)
            try:
                return self.elevated_reader(path)
            except OSError as elevated_error:
                raise FileAccessError(str(path), str(elevated_error)) from elevated_error
        except FileNotFoundError as e:
            raise FileAccessError(str(path), "no such file") from e
        except OSError as e:
            raise FileAccessError(str(path), e.strerror or str(e)) from e

    def write(self, path: Path, data: bytes) -> None:
        """Write a live file, creating parent directories as needed.

        Raises:
            FileAccessError: If the file cannot be written even with
                elevation.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except PermissionError as e:
            if self.elevated_writer is None:
                raise FileAccessError(str(path), "permission denied") from e
            logger.warning("Permission denied writing %s, using elevated access", path)
            try:
                self.elevated_writer(path, data)
            except OSError as elevated_error:
                raise FileAccessError(str(path), str(elevated_error)) from elevated_error
        except OSError as e:
            raise FileAccessError(str(path), e.strerror or str(e)) from e

    @classmethod
    def sudo(cls) -> "Privileges":
        """Return privileges that fall back to ``sudo`` on permission errors."""
        return cls(elevated_reader=sudo_read, elevated_writer=sudo_write)
