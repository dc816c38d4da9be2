"""Tests for the change ingestor."""

from __future__ import annotations

import pytest

from cdgraph.changes import ChangeKind, FileChange, ingest_changes, normalize_path
from cdgraph.changes.ingestor import parse_change_kind
from cdgraph.diagnostics import WarningKind
from cdgraph.exceptions import IngestError, MissingContentError, NoChangesFound


class TestNormalize:
    def test_backslashes(self):
        assert normalize_path("src\\app\\main.py") == "src/app/main.py"

    def test_leading_dot_slash(self):
        assert normalize_path("./././src/a.py") == "src/a.py"

    def test_double_slash(self):
        assert normalize_path("src//a.py") == "src/a.py"

    def test_kind_aliases(self):
        assert parse_change_kind("A") == ChangeKind.ADDED
        assert parse_change_kind("deleted") == ChangeKind.REMOVED
        assert parse_change_kind("M") == ChangeKind.MODIFIED
        assert parse_change_kind("R087") == ChangeKind.RENAMED
        assert parse_change_kind("context") == ChangeKind.UNCHANGED

    def test_unknown_kind(self):
        with pytest.raises(IngestError):
            parse_change_kind("exploded")


class TestIngest:
    def test_empty_input_rejected(self):
        with pytest.raises(NoChangesFound):
            ingest_changes([])

    def test_no_changes_is_ingest_error(self):
        with pytest.raises(IngestError):
            ingest_changes([])

    def test_basic_records(self):
        cs = ingest_changes([
            {"path": "a.py", "status": "M", "before": "x = 1\n", "after": "x = 2\n"},
            {"path": "b.py", "changeKind": "added", "afterContent": "y = 1\n"},
            {"path": "c.py", "change_kind": "removed", "before_content": "z = 1\n"},
        ])
        assert len(cs) == 3
        assert cs.paths() == ["a.py", "b.py", "c.py"]
        assert cs.get("b.py").change_kind == ChangeKind.ADDED
        assert cs.get("b.py").before_content is None
        assert cs.get("c.py").after_content is None

    def test_accepts_file_change_objects(self):
        change = FileChange(path="a.py", change_kind=ChangeKind.ADDED, after_content="")
        cs = ingest_changes([change])
        assert cs.changes == (change,)

    def test_rename_keeps_old_path(self):
        cs = ingest_changes([
            {"path": "new\\c.py", "status": "R100", "old_path": "old/c.py", "before": "", "after": ""},
        ])
        change = cs.changes[0]
        assert change.path == "new/c.py"
        assert change.before_path == "old/c.py"

    def test_rename_without_old_path(self):
        with pytest.raises(IngestError):
            ingest_changes([{"path": "c.py", "status": "renamed", "before": "", "after": ""}])

    def test_added_with_before_content(self):
        with pytest.raises(IngestError):
            ingest_changes([{"path": "a.py", "status": "added", "before": "x", "after": "y"}])

    def test_missing_content(self):
        with pytest.raises(MissingContentError) as exc_info:
            ingest_changes([{"path": "a.py", "status": "modified", "before": "x"}])
        assert exc_info.value.path == "a.py"
        assert exc_info.value.side == "after"

    def test_missing_path(self):
        with pytest.raises(IngestError):
            ingest_changes([{"status": "added", "after": "x"}])

    def test_unchanged_content_fills_both_sides(self):
        cs = ingest_changes([{"path": "lib.py", "status": "unchanged", "content": "x = 1\n"}])
        change = cs.changes[0]
        assert change.before_content == change.after_content == "x = 1\n"

    def test_duplicate_last_wins(self):
        cs = ingest_changes([
            {"path": "a.py", "status": "modified", "before": "1", "after": "2"},
            {"path": "b.py", "status": "added", "after": "b"},
            {"path": "./a.py", "status": "modified", "before": "1", "after": "3"},
        ])
        assert cs.paths() == ["a.py", "b.py"]
        assert cs.get("a.py").after_content == "3"
        # Same kind: no warning
        assert cs.warnings == ()

    def test_duplicate_kind_disagreement_warns(self):
        cs = ingest_changes([
            {"path": "a.py", "status": "modified", "before": "1", "after": "2"},
            {"path": "a.py", "status": "added", "after": "2"},
        ])
        assert cs.get("a.py").change_kind == ChangeKind.ADDED
        assert len(cs.warnings) == 1
        assert cs.warnings[0].kind == WarningKind.DUPLICATE_CHANGE
        assert cs.warnings[0].path == "a.py"

    def test_change_set_is_immutable(self):
        cs = ingest_changes([{"path": "a.py", "status": "added", "after": "x"}])
        with pytest.raises(Exception):
            cs.changes = ()
