"""Diff functionality for confvault."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional

from .config import Config
from .differ import DiffSummary, FileDiff, detect_changes, read_live
from .models import TrackedFile
from .repository import Session

logger = logging.getLogger(__name__)


@dataclass
class DiffOptions:
    """Options for the diff command.

    Attributes:
        path: Diff only the file matching this path; all files if None.
        only_changed: Drop unchanged files from the results.
        summary: Only counts are wanted, not line diffs.
        context: Show unchanged lines around changes.
        context_lines: Number of context lines; the configured default if
            None.
    """

    path: Optional[str] = None
    only_changed: bool = False
    summary: bool = False
    context: bool = False
    context_lines: Optional[int] = None


@dataclass
class DiffReport:
    results: List[FileDiff] = field(default_factory=list)
    summary: DiffSummary = field(default_factory=DiffSummary)
    options: DiffOptions = field(default_factory=DiffOptions)
    tracked: int = 0


class DiffManager:
    """Compare tracked snapshots with live files."""

    def __init__(self, session: Session, config: Optional[Config] = None) -> None:
        self.session = session
        self.config = config or Config()

    def diff_file(self, record: TrackedFile) -> FileDiff:
        """Compare one tracked file with its live copy.

        A missing live file is reported, not raised. A snapshot that fails
        to decrypt aborts the diff.
        """
        live = read_live(Path(record.original_path))
        stored = self.session.read_snapshot(record) if live is not None else None
        return detect_changes(record, stored, live)

    def diff(self, options: Optional[DiffOptions] = None) -> DiffReport:
        """Diff one or all tracked files.

        Raises:
            FileNotTrackedError: If ``options.path`` matches no record.
        """
        options = options or DiffOptions()
        if options.context_lines is None:
            options = replace(options, context_lines=self.config.context_lines)

        if options.path is not None:
            records = self.session.match(options.path)[:1]
        else:
            records = list(self.session.files)

        report = DiffReport(options=options, tracked=len(self.session.files))
        for record in records:
            result = self.diff_file(record)
            report.summary.add(result)
            logger.debug(
                "%s: %s (+%d -%d)", record.original_path, result.status, result.additions, result.removals
            )
            if options.only_changed and not result.has_changes:
                continue
            report.results.append(result)
        return report
