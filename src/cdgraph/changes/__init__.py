"""Change ingestion: raw diff records to an immutable ChangeSet."""

from cdgraph.changes.ingestor import ingest_changes, normalize_path
from cdgraph.changes.models import ChangeKind, ChangeSet, FileChange

__all__ = ["ChangeKind", "ChangeSet", "FileChange", "ingest_changes", "normalize_path"]
