"""Listing of tracked files.

Listing only decrypts the metadata; file bodies are never read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from .models import TrackedFile
from .repository import Session

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` filter date.

    Raises:
        ValueError: If ``value`` is not in that format.
    """
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from None


@dataclass
class ListOptions:
    """Filters and layout for a listing.

    Attributes:
        path: Keep only files whose path contains this substring.
        date: Keep only files last updated on this local date (YYYY-MM-DD).
        group: Group files by parent directory.
    """

    path: Optional[str] = None
    date: Optional[str] = None
    group: bool = False

    @property
    def filtered(self) -> bool:
        return self.path is not None or self.date is not None


@dataclass
class ListResult:
    files: List[TrackedFile] = field(default_factory=list)
    groups: Dict[str, List[TrackedFile]] = field(default_factory=dict)
    filtered: bool = False

    def __len__(self) -> int:
        return len(self.files)


def filter_files(files: List[TrackedFile], options: ListOptions) -> List[TrackedFile]:
    """Apply the path and date filters of ``options``, preserving order."""
    wanted_date = parse_date(options.date) if options.date else None
    result = []
    for record in files:
        if options.path is not None and options.path not in record.original_path:
            continue
        if wanted_date is not None and record.last_updated.astimezone().date() != wanted_date:
            continue
        result.append(record)
    return result


def group_by_directory(files: List[TrackedFile]) -> Dict[str, List[TrackedFile]]:
    """Group records by parent directory, sorted by directory name."""
    groups: Dict[str, List[TrackedFile]] = {}
    for record in files:
        groups.setdefault(record.parent, []).append(record)
    return dict(sorted(groups.items()))


class ListManager:
    """List tracked files."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, options: Optional[ListOptions] = None) -> ListResult:
        """List tracked files matching ``options``.

        An empty result is not an error.
        """
        options = options or ListOptions()
        files = filter_files(self.session.files, options)
        logger.debug("Listing %d of %d tracked file(s)", len(files), len(self.session.files))
        groups = group_by_directory(files) if options.group else {}
        return ListResult(files=files, groups=groups, filtered=options.filtered)
