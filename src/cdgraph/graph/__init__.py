"""Contract graphs: components and the data flow between them."""

from cdgraph.contracts.models import Snapshot
from cdgraph.graph.builder import GraphBuilder
from cdgraph.graph.models import Component, ContractGraph, Edge, EdgeKind, PayloadShape

__all__ = [
    "Component",
    "ContractGraph",
    "Edge",
    "EdgeKind",
    "GraphBuilder",
    "PayloadShape",
    "Snapshot",
]
