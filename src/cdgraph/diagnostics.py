"""Non-fatal findings collected while running the engine."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class WarningKind(str, Enum):
    """Kinds of non-fatal findings."""

    EXTRACTION_AMBIGUOUS = "extraction_ambiguous"
    UNRESOLVED_CONSUMPTION = "unresolved_consumption"
    DUPLICATE_CHANGE = "duplicate_change"
    AMBIGUOUS_MATCH = "ambiguous_match"
    UNSUPPORTED_FILE = "unsupported_file"


class EngineWarning(BaseModel):
    """A finding that was recorded instead of silently altering results."""

    model_config = ConfigDict(frozen=True)

    kind: WarningKind
    message: str
    path: str = ""
    symbol: str = ""
    snapshot: str = ""
    line: int = 0

    def sort_key(self) -> tuple:
        return (self.snapshot, self.path, self.line, self.kind.value, self.symbol, self.message)


def merge_warnings(*groups) -> tuple[EngineWarning, ...]:
    """Merge warning groups into one deduplicated, canonically ordered tuple."""
    seen: set[EngineWarning] = set()
    for group in groups:
        seen.update(group)
    return tuple(sorted(seen, key=EngineWarning.sort_key))
