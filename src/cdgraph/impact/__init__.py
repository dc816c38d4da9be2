"""Blast radius propagation and narrative ranking."""

from cdgraph.impact.models import BlastRadiusReport, Explanation, PropagationResult, RankedEdge
from cdgraph.impact.propagator import BlastRadiusPropagator, impact_graph
from cdgraph.impact.ranker import NarrativeRanker

__all__ = [
    "BlastRadiusPropagator",
    "BlastRadiusReport",
    "Explanation",
    "NarrativeRanker",
    "PropagationResult",
    "RankedEdge",
    "impact_graph",
]
