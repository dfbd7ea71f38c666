"""Tests for change detection."""

from pathlib import Path

import pytest

from confvault.core.differ import (
    CHANGED,
    DELETE,
    EQUAL,
    INSERT,
    MISSING,
    UNCHANGED,
    FileDiff,
    detect_changes,
    diff_lines,
    read_live,
    render_lines,
    summarize,
)
from confvault.core.models import TrackedFile, utcnow


@pytest.fixture
def record() -> TrackedFile:
    """Create a record whose hash is deliberately stale."""
    now = utcnow()
    return TrackedFile("/tmp/notes.txt", "files/abc", now, now, "stale")


def test_diff_lines_append() -> None:
    """Test an appended line is one addition."""
    lines = diff_lines("a\nb\n", "a\nb\nc\n")
    assert [(line.tag, line.text) for line in lines] == [
        (EQUAL, "a\n"),
        (EQUAL, "b\n"),
        (INSERT, "c\n"),
    ]


def test_diff_lines_replace_orders_removals_first() -> None:
    """Test a replaced line shows the removal before the addition."""
    lines = diff_lines("a\nold\nc\n", "a\nnew\nc\n")
    assert [(line.tag, line.text) for line in lines] == [
        (EQUAL, "a\n"),
        (DELETE, "old\n"),
        (INSERT, "new\n"),
        (EQUAL, "c\n"),
    ]


def test_diff_lines_empty_sides() -> None:
    """Test diffs against empty content."""
    assert [line.tag for line in diff_lines("", "x\ny\n")] == [INSERT, INSERT]
    assert [line.tag for line in diff_lines("x\ny\n", "")] == [DELETE, DELETE]
    assert diff_lines("", "") == []


def test_detect_unchanged(record: TrackedFile) -> None:
    """Test identical content is unchanged regardless of the stored hash."""
    result = detect_changes(record, b"a\nb\n", b"a\nb\n")
    assert result.status == UNCHANGED
    assert not result.has_changes
    assert (result.additions, result.removals) == (0, 0)


def test_detect_changed(record: TrackedFile) -> None:
    """Test counts of added and removed lines."""
    result = detect_changes(record, b"a\nb\n", b"a\nc\nd\n")
    assert result.status == CHANGED
    assert result.has_changes
    assert (result.additions, result.removals) == (2, 1)


def test_detect_missing_live_file(record: TrackedFile) -> None:
    """Test a missing live file is changed with no line diff."""
    result = detect_changes(record, None, None)
    assert result.status == MISSING
    assert result.has_changes
    assert result.lines == []
    assert (result.additions, result.removals) == (0, 0)
    assert record.original_path in result.message


def test_detect_requires_snapshot_for_live_file(record: TrackedFile) -> None:
    """Test comparing a live file needs the snapshot."""
    with pytest.raises(ValueError):
        detect_changes(record, None, b"a\n")


def test_detect_binary_content(record: TrackedFile) -> None:
    """Test undecodable bytes are compared without raising."""
    result = detect_changes(record, b"\xff\x00\n", b"\xff\x01\n")
    assert result.has_changes


def test_render_without_context(record: TrackedFile) -> None:
    """Test only changed lines are shown without context."""
    result = detect_changes(record, b"1\n2\n3\n4\n5\n", b"1\n2\nX\n4\n5\n")
    assert [line.tag for line in render_lines(result)] == [DELETE, INSERT]


def test_render_with_context(record: TrackedFile) -> None:
    """Test context lines around each change."""
    stored = "".join(f"{i}\n" for i in range(1, 11)).encode()
    live = stored.replace(b"5\n", b"five\n")
    result = detect_changes(record, stored, live)

    shown = render_lines(result, context=True, context_lines=1)
    assert [line.text for line in shown] == ["4\n", "5\n", "five\n", "6\n"]

    shown = render_lines(result, context=True, context_lines=0)
    assert [line.tag for line in shown] == [DELETE, INSERT]


def test_render_does_not_change_verdict(record: TrackedFile) -> None:
    """Test filtering the display leaves the verdict alone."""
    result = detect_changes(record, b"a\n", b"a\n")
    assert render_lines(result) == []
    assert result.status == UNCHANGED

    result = detect_changes(record, b"a\nb\n", b"a\nc\n")
    render_lines(result, context=True, context_lines=0)
    assert result.has_changes


def test_summarize() -> None:
    """Test aggregate counts over a batch."""
    summary = summarize(
        [
            FileDiff("/a", CHANGED, additions=2, removals=1),
            FileDiff("/b", UNCHANGED),
            FileDiff("/c", MISSING),
        ]
    )
    assert summary.files_checked == 3
    assert summary.files_changed == 2
    assert (summary.additions, summary.removals) == (2, 1)


def test_read_live(tmp_path: Path) -> None:
    """Test unreadable live files read as None."""
    path = tmp_path / "live.txt"
    assert read_live(path) is None
    path.write_bytes(b"x")
    assert read_live(path) == b"x"
    assert read_live(tmp_path) is None
