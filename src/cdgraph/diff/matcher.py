"""Identity Matcher - links before components to after components.

Matching order:
1. Caller overrides (``before_id -> after_id`` or ``before_id -> None``)
2. Exact ``path + symbol`` matches (score 1.0)
3. Similarity scoring through a pluggable :class:`MatchScorer`
4. Same-file fallback: an export that vanished (or appeared) pairs with the
   bare file root of its own path on the other side
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from cdgraph.config import MatcherConfig
from cdgraph.contracts.models import SymbolKind
from cdgraph.diagnostics import EngineWarning, WarningKind
from cdgraph.diff.models import IdentityMapping, IdentityMatch
from cdgraph.exceptions import GraphError, IdentityMatchConflict
from cdgraph.graph.models import Component, ContractGraph

logger = logging.getLogger("cdgraph.diff")

# Float slack when comparing score differences against the margin
_EPSILON = 1e-9


class MatchScorer(ABC):
    """Scores how likely two components are the same thing across snapshots."""

    @abstractmethod
    def score(self, before: Component, after: Component) -> float:
        """Return a similarity in [0, 1]."""
        ...


class WeightedJaccardScorer(MatchScorer):
    """Weighted Jaccard similarity over contract fact tokens.

    Every produced symbol, consumed symbol and guard contributes one token;
    export tokens weigh ``name_weight`` so that keeping a public name counts
    for more than sharing an incidental dependency.
    """

    def __init__(self, name_weight: float = 2.0) -> None:
        self.name_weight = name_weight

    def weights(self, component: Component) -> dict[str, float]:
        weights: dict[str, float] = {}
        facts = component.facts
        for sym in (*facts.produces, *facts.consumes):
            weight = self.name_weight if sym.kind == SymbolKind.EXPORT else 1.0
            weights[sym.token] = max(weights.get(sym.token, 0.0), weight)
        for guard in facts.invariants:
            weights.setdefault(guard.token, 1.0)
        return weights

    def score(self, before: Component, after: Component) -> float:
        left = self.weights(before)
        right = self.weights(after)
        tokens = set(left) | set(right)
        if not tokens:
            return 0.0
        shared = sum(min(left.get(t, 0.0), right.get(t, 0.0)) for t in tokens)
        total = sum(max(left.get(t, 0.0), right.get(t, 0.0)) for t in tokens)
        return round(shared / total, 6)


class IdentityMatcher:
    """Builds the cross-snapshot identity mapping.

    Usage:
        matcher = IdentityMatcher(MatcherConfig())
        mapping = matcher.match(before_graph, after_graph)
    """

    def __init__(
        self,
        config: MatcherConfig | None = None,
        scorer: MatchScorer | None = None,
        overrides: dict[str, str | None] | None = None,
    ) -> None:
        self.config = config or MatcherConfig()
        self.scorer = scorer or WeightedJaccardScorer(self.config.name_weight)
        self.overrides = dict(overrides or {})

    def match(self, before: ContractGraph, after: ContractGraph) -> IdentityMapping:
        before_map = before.component_map()
        after_map = after.component_map()
        matches: dict[str, IdentityMatch] = {}
        blocked: set[str] = set()
        claimed: set[str] = set()
        warnings: list[EngineWarning] = []

        # 1. Overrides
        for before_id, after_id in sorted(self.overrides.items()):
            if before_id not in before_map:
                raise GraphError(f"Override references unknown before component '{before_id}'")
            if after_id is None:
                blocked.add(before_id)
                continue
            if after_id not in after_map:
                raise GraphError(f"Override references unknown after component '{after_id}'")
            if after_id in claimed:
                raise GraphError(f"After component '{after_id}' is the target of two overrides")
            score = self.scorer.score(before_map[before_id], after_map[after_id])
            matches[before_id] = IdentityMatch(
                before_id=before_id, after_id=after_id, score=score, reason="override"
            )
            claimed.add(after_id)

        # 2. Exact path + symbol
        by_location = {(c.path, c.symbol): c.id for c in after.components}
        for comp in before.components:
            if comp.id in matches or comp.id in blocked:
                continue
            after_id = by_location.get((comp.path, comp.symbol))
            if after_id is not None and after_id not in claimed:
                matches[comp.id] = IdentityMatch(
                    before_id=comp.id, after_id=after_id, score=1.0, reason="exact"
                )
                claimed.add(after_id)

        # 3. Similarity over what is left; stores only ever match exactly
        pending = [
            c for c in before.components
            if c.id not in matches and c.id not in blocked and not c.synthetic
        ]
        open_after = [c for c in after.components if c.id not in claimed and not c.synthetic]
        proposals: dict[str, list[tuple[str, float]]] = {}
        for comp in pending:
            proposal = self._best_candidate(comp, open_after)
            if proposal is not None:
                after_id, score = proposal
                proposals.setdefault(after_id, []).append((comp.id, score))

        for after_id in sorted(proposals):
            claims = sorted(proposals[after_id], key=lambda c: (-c[1], c[0]))
            if len(claims) > 1 and claims[0][1] - claims[1][1] + _EPSILON < self.config.min_margin:
                contenders = [c for c in claims if claims[0][1] - c[1] + _EPSILON < self.config.min_margin]
                names = ", ".join(f"{cid} ({score:.2f})" for cid, score in contenders)
                warnings.append(
                    EngineWarning(
                        kind=WarningKind.AMBIGUOUS_MATCH,
                        message=f"'{after_id}' is claimed evenly by {names}; left unmatched",
                        path=after_map[after_id].path,
                        symbol=after_map[after_id].symbol or "",
                    )
                )
                logger.warning(f"Ambiguous claims on {after_id}: {names}")
                continue
            before_id, score = claims[0]
            matches[before_id] = IdentityMatch(
                before_id=before_id, after_id=after_id, score=score, reason="similarity"
            )
            claimed.add(after_id)

        # 4. Same file, export dropped or added
        self._match_file_roots(before, after, matches, blocked, claimed, warnings)

        ordered = tuple(sorted(matches.values(), key=lambda m: m.before_id))
        mapping = IdentityMapping(
            matches=ordered,
            unmatched_before=tuple(sorted(c.id for c in before.components if c.id not in matches)),
            unmatched_after=tuple(sorted(c.id for c in after.components if c.id not in claimed)),
            warnings=tuple(sorted(warnings, key=EngineWarning.sort_key)),
        )
        logger.info(
            f"Matched {len(mapping.matches)} component(s); "
            f"{len(mapping.unmatched_before)} before-only, {len(mapping.unmatched_after)} after-only"
        )
        return mapping

    def _best_candidate(self, comp: Component, candidates: list[Component]) -> tuple[str, float] | None:
        """Return the accepted candidate for `comp`, or None.

        Raises:
            IdentityMatchConflict: if two or more acceptable candidates are
                within the margin of each other.
        """
        threshold = self.config.acceptance_threshold
        margin = self.config.min_margin
        scored = sorted(
            ((c.id, self.scorer.score(comp, c)) for c in candidates),
            key=lambda s: (-s[1], s[0]),
        )
        if not scored or scored[0][1] < threshold:
            return None
        best_id, best = scored[0]
        if len(scored) > 1 and best - scored[1][1] + _EPSILON < margin:
            tied = [s for s in scored if s[1] >= threshold and best - s[1] + _EPSILON < margin]
            if len(tied) > 1:
                raise IdentityMatchConflict(comp.id, tied)
            logger.debug(f"{comp.id}: best candidate {best_id} does not clear the margin")
            return None
        return best_id, best

    def _match_file_roots(
        self,
        before: ContractGraph,
        after: ContractGraph,
        matches: dict[str, IdentityMatch],
        blocked: set[str],
        claimed: set[str],
        warnings: list[EngineWarning],
    ) -> None:
        """Pair leftovers that differ only in whether the file exports a symbol.

        A file that stops exporting its only declaration collapses into the
        file root ``path``; one that starts exporting grows ``path::name``
        out of its root. Either way the declaration keeps its identity even
        when nothing else about it survived to score on.
        """
        pending = [
            c for c in before.components
            if c.id not in matches and c.id not in blocked and not c.synthetic
        ]
        open_after = [c for c in after.components if c.id not in claimed and not c.synthetic]
        for path in sorted({c.path for c in pending}):
            befores = [c for c in pending if c.path == path]
            afters = [c for c in open_after if c.path == path]
            pairs = [(b, a) for b in befores for a in afters if (b.symbol is None) != (a.symbol is None)]
            if not pairs:
                continue
            scored = sorted(
                ((self.scorer.score(b, a), b.id, a.id) for b, a in pairs),
                key=lambda s: (-s[0], s[1], s[2]),
            )
            score, before_id, after_id = scored[0]
            if len(scored) > 1 and score - scored[1][0] + _EPSILON < self.config.min_margin:
                names = ", ".join(f"{b} -> {a} ({s:.2f})" for s, b, a in scored)
                warnings.append(
                    EngineWarning(
                        kind=WarningKind.AMBIGUOUS_MATCH,
                        message=f"Exports of '{path}' changed in several ways at once ({names}); left unmatched",
                        path=path,
                    )
                )
                logger.warning(f"Ambiguous export change in {path}: {names}")
                continue
            matches[before_id] = IdentityMatch(
                before_id=before_id, after_id=after_id, score=score, reason="file_root"
            )
            claimed.add(after_id)
