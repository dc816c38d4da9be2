"""Blast Radius Propagator - marks every identity reachable from a change."""

from __future__ import annotations

import logging
from collections import deque

import networkx as nx

from cdgraph.config import PropagationConfig
from cdgraph.diff.models import DiffResult, NodeStatus
from cdgraph.exceptions import GraphCycleOverflow
from cdgraph.impact.models import PropagationResult

logger = logging.getLogger("cdgraph.impact")


def impact_graph(diff: DiffResult) -> nx.DiGraph:
    """Identity-space graph of everything propagation may walk.

    Every classified edge either exists in the after graph (unchanged,
    simplified, new) or is a severed before edge, so all of them take part.
    Parallel edges of different kinds collapse into one graph edge whose
    `kinds` and `statuses` lists line up index by index.
    """
    graph = nx.DiGraph()
    for node in diff.nodes:
        graph.add_node(node.identity, status=node.status.value)
    for edge in diff.edges:
        if graph.has_edge(edge.from_identity, edge.to_identity):
            data = graph.edges[edge.from_identity, edge.to_identity]
            data["kinds"].append(edge.kind.value)
            data["statuses"].append(edge.status.value)
        else:
            graph.add_edge(
                edge.from_identity,
                edge.to_identity,
                kinds=[edge.kind.value],
                statuses=[edge.status.value],
            )
    return graph


class BlastRadiusPropagator:
    """Budgeted breadth-first propagation over the impact graph.

    Usage:
        propagator = BlastRadiusPropagator(PropagationConfig())
        result = propagator.propagate(diff)
        reached = propagator.downstream("b.py::render")
    """

    def __init__(self, config: PropagationConfig | None = None) -> None:
        self.config = config or PropagationConfig()
        self.graph = nx.DiGraph()

    def propagate(self, diff: DiffResult) -> PropagationResult:
        self.graph = impact_graph(diff)
        seeds = sorted(n.identity for n in diff.nodes if n.status != NodeStatus.UNCHANGED)

        forward = self._walk(seeds, self.graph.successors)
        backward = self._walk(seeds, self.graph.predecessors)
        affected = set(seeds) | forward | backward

        nodes = tuple(
            node.model_copy(update={"affected": node.identity in affected})
            for node in diff.nodes
        )
        logger.info(
            f"Propagated from {len(seeds)} seed(s): {len(affected)} affected "
            f"of {self.graph.number_of_nodes()} identities"
        )
        return PropagationResult(
            seeds=tuple(seeds),
            affected=tuple(sorted(affected)),
            nodes=nodes,
        )

    def downstream(self, identity: str) -> set[str]:
        """Identities reachable forward from `identity`, itself included."""
        if identity not in self.graph:
            return {identity}
        return self._walk([identity], self.graph.successors)

    def _walk(self, starts, neighbours) -> set[str]:
        budget = self.config.max_node_visits
        visited: set[str] = set()
        queue = deque(s for s in starts if s in self.graph)
        visits = 0
        while queue:
            node = queue.popleft()
            if node in visited:
                continue
            visited.add(node)
            visits += 1
            if visits > budget:
                raise GraphCycleOverflow(budget)
            for nxt in sorted(neighbours(node)):
                if nxt not in visited:
                    queue.append(nxt)
        return visited
