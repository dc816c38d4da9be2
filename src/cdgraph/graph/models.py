"""Data models for contract graphs."""

from __future__ import annotations

from enum import Enum

import networkx as nx
from pydantic import BaseModel, ConfigDict, Field, model_validator

from cdgraph.contracts.models import ComponentFacts, Confidence, Snapshot
from cdgraph.diagnostics import EngineWarning
from cdgraph.exceptions import GraphError


class EdgeKind(str, Enum):
    """Types of data flow between components."""

    PROP_FLOW = "prop_flow"
    STATE_READ = "state_read"
    STATE_WRITE = "state_write"
    CALL = "call"


class Component(BaseModel):
    """A node of one snapshot's contract graph."""

    model_config = ConfigDict(frozen=True)

    id: str  # "path::symbol", "path" for a file root, "store::key" for a store
    display_name: str
    path: str
    symbol: str | None = None
    snapshot: Snapshot
    synthetic: bool = False  # shared-store node created by the builder
    facts: ComponentFacts = Field(default_factory=ComponentFacts)


class PayloadShape(BaseModel):
    """What travels along an edge."""

    model_config = ConfigDict(frozen=True)

    symbols: tuple[str, ...] = ()
    fields: tuple[str, ...] = ()
    required: tuple[str, ...] = ()  # parameters the producer requires
    optional: tuple[str, ...] = ()  # parameters the producer accepts with defaults
    guards: tuple[str, ...] = ()  # conditions gating the consumption

    def narrowing(self, after: PayloadShape) -> list[str]:
        """Describe every way `after` carries less than this shape."""
        changes = []
        for sym in self.symbols:
            if sym not in after.symbols:
                changes.append(f"no longer carries '{sym}'")
        for field in self.fields:
            if field not in after.fields:
                changes.append(f"no longer passes field '{field}'")
        accepted_after = set(after.required) | set(after.optional)
        for param in (*self.required, *self.optional):
            if param not in accepted_after:
                changes.append(f"no longer accepts '{param}'")
        for param in self.required:
            if param in after.optional:
                changes.append(f"'{param}' became optional")
        for guard in self.guards:
            if guard not in after.guards:
                changes.append(f"lost guard '{guard}'")
        return changes

    def growth(self, after: PayloadShape) -> list[str]:
        """Describe additions that do not narrow the contract."""
        changes = []
        for sym in after.symbols:
            if sym not in self.symbols:
                changes.append(f"now also carries '{sym}'")
        for field in after.fields:
            if field not in self.fields:
                changes.append(f"now also passes field '{field}'")
        for param in after.required:
            if param not in self.required and param not in self.optional:
                changes.append(f"now requires '{param}'")
        for guard in after.guards:
            if guard not in self.guards:
                changes.append(f"gained guard '{guard}'")
        return changes


class Edge(BaseModel):
    """A directed data-flow edge from producer to consumer."""

    model_config = ConfigDict(frozen=True)

    from_id: str
    to_id: str
    kind: EdgeKind
    payload_shape: PayloadShape = Field(default_factory=PayloadShape)
    confidence: Confidence = Confidence.HIGH

    @property
    def id(self) -> str:
        return f"{self.from_id}->{self.to_id}:{self.kind.value}"


class ContractGraph(BaseModel):
    """One snapshot's components and the data flow between them.

    Never mutated after construction.
    """

    model_config = ConfigDict(frozen=True)

    snapshot: Snapshot
    components: tuple[Component, ...] = ()
    edges: tuple[Edge, ...] = ()
    warnings: tuple[EngineWarning, ...] = ()

    @model_validator(mode="after")
    def _check_endpoints(self) -> ContractGraph:
        ids = set()
        for comp in self.components:
            if comp.snapshot != self.snapshot:
                raise GraphError(f"Component '{comp.id}' belongs to the {comp.snapshot.value} snapshot")
            if comp.id in ids:
                raise GraphError(f"Duplicate component id '{comp.id}'")
            ids.add(comp.id)
        for edge in self.edges:
            for endpoint in (edge.from_id, edge.to_id):
                if endpoint not in ids:
                    raise GraphError(
                        f"Edge {edge.id} references '{endpoint}', "
                        f"which is not a {self.snapshot.value} component"
                    )
        return self

    def component(self, component_id: str) -> Component | None:
        for comp in self.components:
            if comp.id == component_id:
                return comp
        return None

    def component_map(self) -> dict[str, Component]:
        return {c.id: c for c in self.components}

    def to_networkx(self) -> nx.MultiDiGraph:
        """Export as a networkx multigraph keyed by edge kind."""
        graph = nx.MultiDiGraph(snapshot=self.snapshot.value)
        for comp in self.components:
            graph.add_node(
                comp.id,
                display_name=comp.display_name,
                path=comp.path,
                symbol=comp.symbol,
                synthetic=comp.synthetic,
            )
        for edge in self.edges:
            graph.add_edge(
                edge.from_id,
                edge.to_id,
                key=edge.kind.value,
                kind=edge.kind.value,
                symbols=list(edge.payload_shape.symbols),
                fields=list(edge.payload_shape.fields),
                confidence=edge.confidence.value,
            )
        return graph

    def get_stats(self) -> dict:
        """Get graph statistics."""
        edge_types: dict[str, int] = {}
        for edge in self.edges:
            edge_types[edge.kind.value] = edge_types.get(edge.kind.value, 0) + 1
        return {
            "snapshot": self.snapshot.value,
            "components": len(self.components),
            "stores": sum(1 for c in self.components if c.synthetic),
            "edges": len(self.edges),
            "edge_types": edge_types,
            "warnings": len(self.warnings),
        }
