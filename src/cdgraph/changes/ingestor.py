"""Change Ingestor - normalize raw per-file diff records into a ChangeSet."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from cdgraph.changes.models import ChangeKind, ChangeSet, FileChange
from cdgraph.diagnostics import EngineWarning, WarningKind
from cdgraph.exceptions import IngestError, MissingContentError, NoChangesFound

logger = logging.getLogger("cdgraph.changes")

# Status spellings used by git name-status output and common APIs
KIND_ALIASES: dict[str, ChangeKind] = {
    "a": ChangeKind.ADDED,
    "add": ChangeKind.ADDED,
    "added": ChangeKind.ADDED,
    "new": ChangeKind.ADDED,
    "d": ChangeKind.REMOVED,
    "delete": ChangeKind.REMOVED,
    "deleted": ChangeKind.REMOVED,
    "removed": ChangeKind.REMOVED,
    "m": ChangeKind.MODIFIED,
    "modify": ChangeKind.MODIFIED,
    "modified": ChangeKind.MODIFIED,
    "changed": ChangeKind.MODIFIED,
    "r": ChangeKind.RENAMED,
    "rename": ChangeKind.RENAMED,
    "renamed": ChangeKind.RENAMED,
    "moved": ChangeKind.RENAMED,
    "unchanged": ChangeKind.UNCHANGED,
    "context": ChangeKind.UNCHANGED,
}


def normalize_path(path: str) -> str:
    """Use forward slashes and drop leading './' segments."""
    normalized = path.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    while "//" in normalized:
        normalized = normalized.replace("//", "/")
    return normalized


def parse_change_kind(value: Any) -> ChangeKind:
    """Map a raw status value onto a ChangeKind."""
    if isinstance(value, ChangeKind):
        return value
    key = str(value or "").strip().lower()
    # git reports renames with a similarity suffix, e.g. "R087"
    if len(key) > 1 and key[0] == "r" and key[1:].isdigit():
        key = "r"
    if key not in KIND_ALIASES:
        raise IngestError(f"Unknown change kind: {value!r}")
    return KIND_ALIASES[key]


def _first(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def _from_record(record: Mapping[str, Any] | FileChange) -> FileChange:
    """Convert one raw record into a validated FileChange."""
    if isinstance(record, FileChange):
        record = record.model_dump()
    if not isinstance(record, Mapping):
        raise IngestError(f"Change record must be a mapping, got {type(record).__name__}")

    raw_path = _first(record, "path", "file", "filename")
    if not raw_path or not str(raw_path).strip():
        raise IngestError(f"Change record has no path: {dict(record)!r}")
    path = normalize_path(str(raw_path))

    kind = parse_change_kind(_first(record, "change_kind", "changeKind", "status", "kind"))
    old_path = _first(record, "old_path", "oldPath", "previous_filename")
    before = _first(record, "before_content", "beforeContent", "before")
    after = _first(record, "after_content", "afterContent", "after")

    if kind == ChangeKind.UNCHANGED:
        content = _first(record, "content")
        if content is not None:
            before = before if before is not None else content
            after = after if after is not None else content

    if kind == ChangeKind.ADDED:
        if before is not None:
            raise IngestError(f"'{path}' is declared added but carries before content")
        if after is None:
            raise MissingContentError(path, "after", kind.value)
    elif kind == ChangeKind.REMOVED:
        if after is not None:
            raise IngestError(f"'{path}' is declared removed but carries after content")
        if before is None:
            raise MissingContentError(path, "before", kind.value)
    else:
        if kind == ChangeKind.RENAMED and not old_path:
            raise IngestError(f"'{path}' is declared renamed but has no old path")
        if before is None:
            raise MissingContentError(path, "before", kind.value)
        if after is None:
            raise MissingContentError(path, "after", kind.value)

    return FileChange(
        path=path,
        change_kind=kind,
        old_path=normalize_path(str(old_path)) if kind == ChangeKind.RENAMED else None,
        before_content=before,
        after_content=after,
    )


def ingest_changes(records: Iterable[Mapping[str, Any] | FileChange]) -> ChangeSet:
    """Validate raw diff records and build an immutable ChangeSet.

    Records referring to the same path are deduplicated: the last record wins
    and keeps the position of the first. A warning is recorded when the
    duplicates disagree on change kind.

    Raises:
        NoChangesFound: the input holds no records.
        IngestError: a record is malformed or lacks required content.
    """
    by_path: dict[str, FileChange] = {}
    warnings: list[EngineWarning] = []

    for record in records:
        change = _from_record(record)
        previous = by_path.get(change.path)
        if previous is not None:
            logger.debug(f"Duplicate change record for {change.path}, last one wins")
            if previous.change_kind != change.change_kind:
                warnings.append(
                    EngineWarning(
                        kind=WarningKind.DUPLICATE_CHANGE,
                        message=(
                            f"Records for '{change.path}' disagree on change kind "
                            f"({previous.change_kind.value} vs {change.change_kind.value}); "
                            f"using {change.change_kind.value}"
                        ),
                        path=change.path,
                    )
                )
        by_path[change.path] = change

    if not by_path:
        raise NoChangesFound()

    logger.info(f"Ingested {len(by_path)} file change(s)")
    return ChangeSet(changes=tuple(by_path.values()), warnings=tuple(warnings))
