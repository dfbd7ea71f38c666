"""Change detection between a stored snapshot and the live file.

The verdict is always computed from actual content: the stored snapshot
is decrypted and aligned line by line against the live file. The content
hash in the metadata is never consulted.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from .models import TrackedFile

EQUAL = "equal"
INSERT = "insert"
DELETE = "delete"

UNCHANGED = "unchanged"
CHANGED = "changed"
MISSING = "missing"


@dataclass
class DiffLine:
    """One line of a line-level diff.

    Attributes:
        tag: ``equal``, ``insert`` (only in the live file) or ``delete``
            (only in the snapshot).
        text: The line, including its line ending if it had one.
    """

    tag: str
    text: str


@dataclass
class FileDiff:
    """Comparison of one tracked file against its live copy."""

    path: str
    status: str
    additions: int = 0
    removals: int = 0
    lines: List[DiffLine] = field(default_factory=list)
    message: str = ""

    @property
    def has_changes(self) -> bool:
        return self.status != UNCHANGED


@dataclass
class DiffSummary:
    """Counts aggregated over a batch of :class:`FileDiff` results."""

    files_checked: int = 0
    files_changed: int = 0
    additions: int = 0
    removals: int = 0

    def add(self, diff: FileDiff) -> None:
        self.files_checked += 1
        if diff.has_changes:
            self.files_changed += 1
        self.additions += diff.additions
        self.removals += diff.removals


def diff_lines(stored: str, live: str) -> List[DiffLine]:
    """Align two texts line by line.

    Returns the full change sequence in document order: unchanged lines
    tagged ``equal``, lines only in ``live`` tagged ``insert``, and lines
    only in ``stored`` tagged ``delete``. Within a replaced span, removals
    come before additions.
    """
    old = stored.splitlines(keepends=True)
    new = live.splitlines(keepends=True)
    lines: List[DiffLine] = []
    matcher = difflib.SequenceMatcher(None, old, new, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            lines.extend(DiffLine(EQUAL, text) for text in old[i1:i2])
            continue
        if tag in ("delete", "replace"):
            lines.extend(DiffLine(DELETE, text) for text in old[i1:i2])
        if tag in ("insert", "replace"):
            lines.extend(DiffLine(INSERT, text) for text in new[j1:j2])
    return lines


def detect_changes(
    record: TrackedFile, stored: Optional[bytes], live: Optional[bytes]
) -> FileDiff:
    """Compare a decrypted snapshot with the live file content.

    Args:
        record: The tracked record being compared.
        stored: Decrypted snapshot content. May be None when ``live`` is
            None, since a missing live file needs no snapshot.
        live: Live file content, or None if the file is missing or
            unreadable.

    Returns:
        A :class:`FileDiff`. A missing live file is reported as changed with
        no line diff rather than raised.
    """
    if live is None:
        return FileDiff(
            path=record.original_path,
            status=MISSING,
            message=f"File {record.original_path} no longer exists or cannot be read",
        )

    if stored is None:
        raise ValueError("A stored snapshot is required when the live file exists")

    lines = diff_lines(
        stored.decode("utf-8", errors="replace"),
        live.decode("utf-8", errors="replace"),
    )
    additions = sum(1 for line in lines if line.tag == INSERT)
    removals = sum(1 for line in lines if line.tag == DELETE)
    if not additions and not removals:
        return FileDiff(
            path=record.original_path,
            status=UNCHANGED,
            lines=lines,
            message="Files are identical.",
        )
    return FileDiff(
        path=record.original_path,
        status=CHANGED,
        additions=additions,
        removals=removals,
        lines=lines,
    )


def read_live(path: Path) -> Optional[bytes]:
    """Read a live file, returning None if it is missing or unreadable."""
    try:
        return path.read_bytes()
    except OSError:
        return None


def render_lines(diff: FileDiff, context: bool = False, context_lines: int = 3) -> List[DiffLine]:
    """Select the lines of ``diff`` to display.

    Without ``context`` only added and removed lines are kept. With it,
    up to ``context_lines`` unchanged lines around each change are kept
    as well. Filtering never changes ``diff.has_changes``.
    """
    if not context:
        return [line for line in diff.lines if line.tag != EQUAL]

    changed = [i for i, line in enumerate(diff.lines) if line.tag != EQUAL]
    keep = set()
    for index in changed:
        keep.update(range(max(0, index - context_lines), index + context_lines + 1))
    return [line for i, line in enumerate(diff.lines) if i in keep]


def summarize(diffs: Iterable[FileDiff]) -> DiffSummary:
    """Aggregate addition and removal counts across a batch."""
    summary = DiffSummary()
    for diff in diffs:
        summary.add(diff)
    return summary
