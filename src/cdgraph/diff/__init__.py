"""Cross-snapshot identity matching and graph classification."""

from cdgraph.diff.differ import GraphDiffer, assign_identities
from cdgraph.diff.matcher import IdentityMatcher, MatchScorer, WeightedJaccardScorer
from cdgraph.diff.models import (
    DiffResult,
    EdgeClassification,
    EdgeStatus,
    IdentityMapping,
    IdentityMatch,
    NodeClassification,
    NodeStatus,
)

__all__ = [
    "DiffResult",
    "EdgeClassification",
    "EdgeStatus",
    "GraphDiffer",
    "IdentityMapping",
    "IdentityMatch",
    "IdentityMatcher",
    "MatchScorer",
    "NodeClassification",
    "NodeStatus",
    "WeightedJaccardScorer",
    "assign_identities",
]
