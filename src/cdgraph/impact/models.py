"""Data models for blast radius results."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from cdgraph.diagnostics import EngineWarning
from cdgraph.diff.models import EdgeClassification, NodeClassification


class PropagationResult(BaseModel):
    """Seeds, everything reached from them, and nodes with `affected` set."""

    model_config = ConfigDict(frozen=True)

    seeds: tuple[str, ...] = ()
    affected: tuple[str, ...] = ()
    nodes: tuple[NodeClassification, ...] = ()


class RankedEdge(BaseModel):
    """A severed or simplified edge with its consequence score."""

    model_config = ConfigDict(frozen=True)

    edge: EdgeClassification
    consequence_score: int
    rank: int  # 1-based
    key: bool = False


class Explanation(BaseModel):
    """Template-built narrative for one ranked edge."""

    model_config = ConfigDict(frozen=True)

    edge_id: str
    ranked_explanation: str


class BlastRadiusReport(BaseModel):
    """Terminal artifact of one engine run."""

    model_config = ConfigDict(frozen=True)

    seed_identities: tuple[str, ...] = ()
    affected_identities: tuple[str, ...] = ()
    severed_edges: tuple[RankedEdge, ...] = ()  # severed and simplified, ranked
    key_edges: tuple[str, ...] = ()
    warnings: tuple[EngineWarning, ...] = ()

    def is_affected(self, identity: str) -> bool:
        return identity in self.affected_identities
