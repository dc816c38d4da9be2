"""Contract Diff Engine - runs one review request end to end.

ingest -> extract (before, after) -> build x2 -> match -> diff -> propagate -> rank
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict

from cdgraph.changes.ingestor import ingest_changes
from cdgraph.changes.models import ChangeSet
from cdgraph.config import EngineConfig
from cdgraph.contracts.extractor import extract_snapshot
from cdgraph.contracts.models import Snapshot
from cdgraph.diagnostics import merge_warnings
from cdgraph.diff.differ import GraphDiffer
from cdgraph.diff.matcher import IdentityMatcher, MatchScorer
from cdgraph.diff.models import (
    EdgeClassification,
    EdgeStatus,
    IdentityMapping,
    NodeClassification,
    NodeStatus,
)
from cdgraph.graph.builder import GraphBuilder
from cdgraph.graph.models import ContractGraph
from cdgraph.impact.models import BlastRadiusReport, Explanation
from cdgraph.impact.propagator import BlastRadiusPropagator
from cdgraph.impact.ranker import NarrativeRanker

logger = logging.getLogger("cdgraph.engine")


class EngineResult(BaseModel):
    """All artifacts of one engine invocation."""

    model_config = ConfigDict(frozen=True)

    before_graph: ContractGraph
    after_graph: ContractGraph
    mapping: IdentityMapping
    nodes: tuple[NodeClassification, ...]
    edges: tuple[EdgeClassification, ...]
    report: BlastRadiusReport
    explanations: tuple[Explanation, ...]

    def node(self, identity: str) -> NodeClassification | None:
        for node in self.nodes:
            if node.identity == identity:
                return node
        return None

    def edge(self, from_identity: str, to_identity: str, kind: str | None = None) -> EdgeClassification | None:
        for edge in self.edges:
            if edge.from_identity != from_identity or edge.to_identity != to_identity:
                continue
            if kind is None or edge.kind.value == kind:
                return edge
        return None

    def summary(self) -> dict[str, Any]:
        node_counts = {status.value: 0 for status in NodeStatus}
        for node in self.nodes:
            node_counts[node.status.value] += 1
        edge_counts = {status.value: 0 for status in EdgeStatus}
        for edge in self.edges:
            edge_counts[edge.status.value] += 1
        return {
            "nodes": node_counts,
            "edges": edge_counts,
            "seeds": len(self.report.seed_identities),
            "affected": len(self.report.affected_identities),
            "warnings": len(self.report.warnings),
        }

    def to_json(self, indent: int | None = 2) -> str:
        """Canonical JSON; identical input yields byte-identical output."""
        return self.model_dump_json(indent=indent)


class ContractDiffEngine:
    """Orchestrates the pipeline.

    Fatal errors (IngestError, GraphError, IdentityMatchConflict,
    GraphCycleOverflow) propagate and discard partial state. Non-fatal
    warnings from every stage end up in ``report.warnings``.

    Usage:
        engine = ContractDiffEngine(EngineConfig())
        result = engine.run(records)
        print(result.to_json())
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        scorer: MatchScorer | None = None,
        overrides: dict[str, str | None] | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.scorer = scorer
        self.overrides = dict(overrides or {})

    def run(self, records: Iterable[Any]) -> EngineResult:
        """Ingest raw change records and analyze them."""
        return self.analyze(ingest_changes(records))

    def analyze(self, change_set: ChangeSet) -> EngineResult:
        """Analyze an already ingested ChangeSet."""
        logger.info(f"Analyzing {len(change_set)} file change(s)")

        before_facts = extract_snapshot(change_set, Snapshot.BEFORE, self.config.extractor)
        after_facts = extract_snapshot(change_set, Snapshot.AFTER, self.config.extractor)

        builder = GraphBuilder()
        before_graph = builder.build(before_facts, Snapshot.BEFORE)
        after_graph = builder.build(after_facts, Snapshot.AFTER)

        matcher = IdentityMatcher(self.config.matcher, self.scorer, self.overrides)
        mapping = matcher.match(before_graph, after_graph)

        diff = GraphDiffer().diff(before_graph, after_graph, mapping)

        propagator = BlastRadiusPropagator(self.config.propagation)
        propagation = propagator.propagate(diff)

        ranker = NarrativeRanker(self.config.ranker)
        ranked = ranker.rank(diff.edges, propagation.affected, propagator.downstream)
        explanations = ranker.explain(ranked, propagation.nodes)

        warnings = merge_warnings(
            change_set.warnings,
            *(facts.warnings for facts in before_facts),
            *(facts.warnings for facts in after_facts),
            before_graph.warnings,
            after_graph.warnings,
            mapping.warnings,
        )
        report = BlastRadiusReport(
            seed_identities=propagation.seeds,
            affected_identities=propagation.affected,
            severed_edges=tuple(ranked),
            key_edges=tuple(r.edge.edge_id for r in ranked if r.key),
            warnings=warnings,
        )
        logger.info(
            f"Done: {len(report.seed_identities)} seed(s), "
            f"{len(report.affected_identities)} affected, "
            f"{len(ranked)} severed/simplified edge(s), {len(warnings)} warning(s)"
        )
        return EngineResult(
            before_graph=before_graph,
            after_graph=after_graph,
            mapping=mapping,
            nodes=propagation.nodes,
            edges=diff.edges,
            report=report,
            explanations=tuple(explanations),
        )
