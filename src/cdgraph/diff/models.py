"""Data models for cross-snapshot matching and classification."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from cdgraph.diagnostics import EngineWarning
from cdgraph.graph.models import EdgeKind, PayloadShape


class NodeStatus(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    DELETED = "deleted"


class EdgeStatus(str, Enum):
    SEVERED = "severed"
    SIMPLIFIED = "simplified"
    UNCHANGED = "unchanged"
    NEW = "new"


class IdentityMatch(BaseModel):
    """One before component linked to one after component."""

    model_config = ConfigDict(frozen=True)

    before_id: str
    after_id: str
    score: float
    reason: str  # "override", "exact", "similarity" or "file_root"


class IdentityMapping(BaseModel):
    """Result of matching the before graph against the after graph."""

    model_config = ConfigDict(frozen=True)

    matches: tuple[IdentityMatch, ...] = ()
    unmatched_before: tuple[str, ...] = ()
    unmatched_after: tuple[str, ...] = ()
    warnings: tuple[EngineWarning, ...] = ()

    def after_for(self, before_id: str) -> str | None:
        for match in self.matches:
            if match.before_id == before_id:
                return match.after_id
        return None

    def before_for(self, after_id: str) -> str | None:
        for match in self.matches:
            if match.after_id == after_id:
                return match.before_id
        return None


class NodeClassification(BaseModel):
    """Status of one cross-snapshot identity."""

    model_config = ConfigDict(frozen=True)

    identity: str
    before_id: str | None = None
    after_id: str | None = None
    display_name: str
    status: NodeStatus
    affected: bool = False
    match_score: float | None = None


class EdgeClassification(BaseModel):
    """Status of one edge, expressed in identity space."""

    model_config = ConfigDict(frozen=True)

    edge_id: str
    from_identity: str
    to_identity: str
    kind: EdgeKind
    status: EdgeStatus
    order: int  # declaration order: before edges first, then new after edges
    before_payload: PayloadShape | None = None
    after_payload: PayloadShape | None = None
    changes: tuple[str, ...] = ()
    reason: str = ""


class DiffResult(BaseModel):
    """Everything the differ produces for one pair of graphs."""

    model_config = ConfigDict(frozen=True)

    nodes: tuple[NodeClassification, ...] = ()
    edges: tuple[EdgeClassification, ...] = ()

    def node(self, identity: str) -> NodeClassification | None:
        for node in self.nodes:
            if node.identity == identity:
                return node
        return None

    def status_of(self, identity: str) -> NodeStatus | None:
        node = self.node(identity)
        return node.status if node else None

    def edges_with(self, status: EdgeStatus) -> list[EdgeClassification]:
        return [e for e in self.edges if e.status == status]
