"""Data models for the normalized change set."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from cdgraph.diagnostics import EngineWarning


class ChangeKind(str, Enum):
    """How a file changed between the two snapshots."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    RENAMED = "renamed"
    UNCHANGED = "unchanged"  # context file, present and identical in both


class FileChange(BaseModel):
    """A single file-level change with the content of each snapshot."""

    model_config = ConfigDict(frozen=True)

    path: str
    change_kind: ChangeKind
    old_path: str | None = None  # For renames
    before_content: str | None = None
    after_content: str | None = None

    @property
    def before_path(self) -> str:
        """Where the file lived in the before snapshot."""
        if self.change_kind == ChangeKind.RENAMED and self.old_path:
            return self.old_path
        return self.path

    @property
    def in_before(self) -> bool:
        return self.change_kind != ChangeKind.ADDED

    @property
    def in_after(self) -> bool:
        return self.change_kind != ChangeKind.REMOVED


class ChangeSet(BaseModel):
    """Validated, immutable set of file changes for one review request."""

    model_config = ConfigDict(frozen=True)

    changes: tuple[FileChange, ...]
    warnings: tuple[EngineWarning, ...] = Field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.changes)

    def paths(self) -> list[str]:
        return [c.path for c in self.changes]

    def get(self, path: str) -> FileChange | None:
        for change in self.changes:
            if change.path == path:
                return change
        return None
