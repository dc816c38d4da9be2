"""Graph Differ - classifies every identity and edge across two snapshots."""

from __future__ import annotations

import logging

from cdgraph.diff.models import (
    DiffResult,
    EdgeClassification,
    EdgeStatus,
    IdentityMapping,
    NodeClassification,
    NodeStatus,
)
from cdgraph.graph.models import ContractGraph, Edge, EdgeKind, PayloadShape

logger = logging.getLogger("cdgraph.diff")

BEFORE_SUFFIX = "@before"


def assign_identities(
    before: ContractGraph, after: ContractGraph, mapping: IdentityMapping
) -> tuple[dict[str, str], dict[str, str]]:
    """Map component ids of each snapshot to cross-snapshot identities.

    Matched and after-only components take the after id; before-only
    components keep their before id, suffixed when an after id already uses it.
    """
    after_ids = {c.id: c.id for c in after.components}
    taken = set(after_ids.values())
    before_ids: dict[str, str] = {}
    for comp in before.components:
        matched = mapping.after_for(comp.id)
        if matched is not None:
            before_ids[comp.id] = matched
        elif comp.id in taken:
            before_ids[comp.id] = comp.id + BEFORE_SUFFIX
        else:
            before_ids[comp.id] = comp.id
    return before_ids, after_ids


class GraphDiffer:
    """Classifies nodes and edges of a before/after graph pair.

    Edge rules apply in precedence order; the first that fires wins:
    1. an endpoint is deleted -> severed
    2. no after counterpart (same identities and kind) -> severed
    3. payload narrowed -> simplified
    4. payload unchanged or only grown -> unchanged
    5. after-only -> new
    """

    def diff(self, before: ContractGraph, after: ContractGraph, mapping: IdentityMapping) -> DiffResult:
        before_ids, after_ids = assign_identities(before, after, mapping)
        nodes = self._classify_nodes(before, after, mapping, before_ids)
        statuses = {n.identity: n.status for n in nodes}
        edges = self._classify_edges(before, after, before_ids, after_ids, statuses)

        result = DiffResult(nodes=tuple(nodes), edges=tuple(edges))
        counts: dict[str, int] = {}
        for edge in edges:
            counts[edge.status.value] = counts.get(edge.status.value, 0) + 1
        logger.info(
            f"Classified {len(nodes)} identities and {len(edges)} edges "
            + ", ".join(f"{k}={v}" for k, v in sorted(counts.items()))
        )
        return result

    def _classify_nodes(
        self,
        before: ContractGraph,
        after: ContractGraph,
        mapping: IdentityMapping,
        before_ids: dict[str, str],
    ) -> list[NodeClassification]:
        before_map = before.component_map()
        scores = {m.after_id: m.score for m in mapping.matches}
        nodes: list[NodeClassification] = []

        for comp in after.components:
            before_id = mapping.before_for(comp.id)
            if before_id is None:
                status = NodeStatus.CREATED
            elif before_map[before_id].facts == comp.facts:
                status = NodeStatus.UNCHANGED
            else:
                status = NodeStatus.MODIFIED
            nodes.append(
                NodeClassification(
                    identity=comp.id,
                    before_id=before_id,
                    after_id=comp.id,
                    display_name=comp.display_name,
                    status=status,
                    match_score=scores.get(comp.id),
                )
            )

        for comp in before.components:
            if mapping.after_for(comp.id) is not None:
                continue
            nodes.append(
                NodeClassification(
                    identity=before_ids[comp.id],
                    before_id=comp.id,
                    display_name=comp.display_name,
                    status=NodeStatus.DELETED,
                )
            )

        nodes.sort(key=lambda n: n.identity)
        return nodes

    def _classify_edges(
        self,
        before: ContractGraph,
        after: ContractGraph,
        before_ids: dict[str, str],
        after_ids: dict[str, str],
        statuses: dict[str, NodeStatus],
    ) -> list[EdgeClassification]:
        after_edges: dict[tuple[str, str, EdgeKind], Edge] = {}
        for edge in after.edges:
            after_edges[(after_ids[edge.from_id], after_ids[edge.to_id], edge.kind)] = edge

        classified: list[EdgeClassification] = []
        seen: set[tuple[str, str, EdgeKind]] = set()
        for edge in before.edges:
            key = (before_ids[edge.from_id], before_ids[edge.to_id], edge.kind)
            seen.add(key)
            counterpart = after_edges.get(key)
            status, changes, reason = self._compare(edge, counterpart, key, statuses)
            classified.append(
                self._classification(
                    key,
                    status,
                    len(classified),
                    edge.payload_shape,
                    counterpart.payload_shape if counterpart else None,
                    changes,
                    reason,
                )
            )

        for edge in after.edges:
            key = (after_ids[edge.from_id], after_ids[edge.to_id], edge.kind)
            if key in seen:
                continue
            classified.append(
                self._classification(
                    key,
                    EdgeStatus.NEW,
                    len(classified),
                    None,
                    edge.payload_shape,
                    PayloadShape().growth(edge.payload_shape),
                    "only present after the change",
                )
            )
        return classified

    @staticmethod
    def _compare(
        edge: Edge,
        counterpart: Edge | None,
        key: tuple[str, str, EdgeKind],
        statuses: dict[str, NodeStatus],
    ) -> tuple[EdgeStatus, list[str], str]:
        from_identity, to_identity, _ = key
        lost = edge.payload_shape.narrowing(PayloadShape())

        deleted = [i for i in (from_identity, to_identity) if statuses.get(i) == NodeStatus.DELETED]
        if deleted:
            return (
                EdgeStatus.SEVERED,
                [f"'{i}' was deleted" for i in deleted] + lost,
                "endpoint deleted",
            )
        if counterpart is None:
            return EdgeStatus.SEVERED, lost, "no counterpart after the change"

        narrowed = edge.payload_shape.narrowing(counterpart.payload_shape)
        if narrowed:
            return EdgeStatus.SIMPLIFIED, narrowed, "payload narrowed"
        growth = edge.payload_shape.growth(counterpart.payload_shape)
        return EdgeStatus.UNCHANGED, growth, "payload grew" if growth else "payload unchanged"

    @staticmethod
    def _classification(
        key: tuple[str, str, EdgeKind],
        status: EdgeStatus,
        order: int,
        before_payload: PayloadShape | None,
        after_payload: PayloadShape | None,
        changes: list[str],
        reason: str,
    ) -> EdgeClassification:
        from_identity, to_identity, kind = key
        return EdgeClassification(
            edge_id=f"{from_identity}->{to_identity}:{kind.value}",
            from_identity=from_identity,
            to_identity=to_identity,
            kind=kind,
            status=status,
            order=order,
            before_payload=before_payload,
            after_payload=after_payload,
            changes=tuple(changes),
            reason=reason,
        )
