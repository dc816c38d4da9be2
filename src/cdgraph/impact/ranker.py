"""Narrative Ranker - orders severed/simplified edges by consequence."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from cdgraph.config import RankerConfig
from cdgraph.diff.models import EdgeClassification, EdgeStatus, NodeClassification
from cdgraph.impact.models import Explanation, RankedEdge

logger = logging.getLogger("cdgraph.impact")

RANKED_STATUSES = (EdgeStatus.SEVERED, EdgeStatus.SIMPLIFIED)

# Edges point producer -> consumer; phrased from the producer side
KIND_PHRASES = {
    "prop_flow": "passes data to",
    "call": "serves calls from",
    "state_read": "is read by",
    "state_write": "writes to",
}

SEVERED_TEMPLATE = (
    "#{rank} [{kind}] {source} no longer {phrase} {destination}: {facts}. "
    "{score} affected component(s) sit downstream of {destination}."
)
SIMPLIFIED_TEMPLATE = (
    "#{rank} [{kind}] {source} still {phrase} {destination}, but {facts}. "
    "{score} affected component(s) sit downstream of {destination}."
)


class NarrativeRanker:
    """Scores, orders and explains the edges a change broke or shrank."""

    def __init__(self, config: RankerConfig | None = None) -> None:
        self.config = config or RankerConfig()

    def rank(
        self,
        edges: Iterable[EdgeClassification],
        affected: Iterable[str],
        downstream: Callable[[str], set[str]],
    ) -> list[RankedEdge]:
        """Rank severed and simplified edges.

        Args:
            edges: All edge classifications; other statuses are ignored.
            affected: Identities marked affected by propagation.
            downstream: Forward reachability, destination included.

        Returns:
            Edges sorted by consequence score (descending), ties kept in
            declaration order; the first ``top_k`` are flagged as key edges.
        """
        affected = set(affected)
        candidates = sorted(
            (e for e in edges if e.status in RANKED_STATUSES), key=lambda e: e.order
        )
        scored = [(edge, len(downstream(edge.to_identity) & affected)) for edge in candidates]
        scored.sort(key=lambda item: -item[1])

        ranked = [
            RankedEdge(
                edge=edge,
                consequence_score=score,
                rank=position,
                key=position <= self.config.top_k,
            )
            for position, (edge, score) in enumerate(scored, start=1)
        ]
        logger.info(
            f"Ranked {len(ranked)} severed/simplified edge(s); "
            f"{sum(1 for r in ranked if r.key)} key"
        )
        return ranked

    def explain(
        self,
        ranked: Iterable[RankedEdge],
        nodes: Iterable[NodeClassification] = (),
    ) -> list[Explanation]:
        """Build one fixed-template explanation per ranked edge."""
        names = {n.identity: n.display_name for n in nodes}
        explanations = []
        for item in ranked:
            edge = item.edge
            template = SEVERED_TEMPLATE if edge.status == EdgeStatus.SEVERED else SIMPLIFIED_TEMPLATE
            text = template.format(
                rank=item.rank,
                kind=edge.kind.value,
                source=_label(edge.from_identity, names),
                destination=_label(edge.to_identity, names),
                phrase=_phrase(edge),
                facts="; ".join(edge.changes) or edge.reason,
                score=item.consequence_score,
            )
            explanations.append(Explanation(edge_id=edge.edge_id, ranked_explanation=text))
        return explanations


def _label(identity: str, names: dict[str, str]) -> str:
    name = names.get(identity)
    if name and name != identity:
        return f"{name} ({identity})"
    return identity


def _phrase(edge: EdgeClassification) -> str:
    return KIND_PHRASES[edge.kind.value]
