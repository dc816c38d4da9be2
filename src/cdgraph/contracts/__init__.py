"""Contract extraction: per-file producers, consumers and invariants."""

from cdgraph.contracts.extractor import detect_language, extract_file, extract_snapshot
from cdgraph.contracts.models import (
    ComponentFacts,
    Confidence,
    ContractFacts,
    Guard,
    Snapshot,
    Symbol,
    SymbolKind,
)

__all__ = [
    "ComponentFacts",
    "Confidence",
    "ContractFacts",
    "Guard",
    "Snapshot",
    "Symbol",
    "SymbolKind",
    "detect_language",
    "extract_file",
    "extract_snapshot",
]
