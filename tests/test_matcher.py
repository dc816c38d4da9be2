"""Tests for the identity matcher."""

from __future__ import annotations

import pytest

from cdgraph.config import MatcherConfig
from cdgraph.contracts.models import ComponentFacts, Snapshot, Symbol, SymbolKind
from cdgraph.diagnostics import WarningKind
from cdgraph.diff import IdentityMatcher, MatchScorer, WeightedJaccardScorer
from cdgraph.exceptions import GraphError, IdentityMatchConflict
from cdgraph.graph.models import Component, ContractGraph


def _facts(export: str | None = None, calls: tuple[str, ...] = (), reads: tuple[str, ...] = ()) -> ComponentFacts:
    produces = []
    if export:
        produces.append(Symbol(name=export, kind=SymbolKind.EXPORT, owner=export))
    consumes = [Symbol(name=c, kind=SymbolKind.CALL, owner=export or "") for c in calls]
    consumes += [Symbol(name=r, kind=SymbolKind.STATE_READ, owner=export or "") for r in reads]
    return ComponentFacts(produces=tuple(produces), consumes=tuple(consumes))


def _comp(cid: str, snapshot: Snapshot, facts: ComponentFacts, synthetic: bool = False) -> Component:
    path, _, symbol = cid.partition("::")
    return Component(
        id=cid,
        display_name=symbol or path,
        path="" if synthetic else path,
        symbol=symbol or None,
        snapshot=snapshot,
        synthetic=synthetic,
        facts=facts,
    )


def _graphs(before: list[tuple[str, ComponentFacts]], after: list[tuple[str, ComponentFacts]]):
    return (
        ContractGraph(
            snapshot=Snapshot.BEFORE,
            components=tuple(_comp(cid, Snapshot.BEFORE, f) for cid, f in before),
        ),
        ContractGraph(
            snapshot=Snapshot.AFTER,
            components=tuple(_comp(cid, Snapshot.AFTER, f) for cid, f in after),
        ),
    )


class TestWeightedJaccardScorer:
    def test_identical(self):
        facts = _facts("load", calls=("fetch",))
        a = _comp("a.py::load", Snapshot.BEFORE, facts)
        b = _comp("b.py::load", Snapshot.AFTER, facts)
        assert WeightedJaccardScorer().score(a, b) == 1.0

    def test_disjoint(self):
        a = _comp("a.py::load", Snapshot.BEFORE, _facts("load"))
        b = _comp("b.py::save", Snapshot.AFTER, _facts("save"))
        assert WeightedJaccardScorer().score(a, b) == 0.0

    def test_export_name_is_weighted(self):
        # export:foo weighs 2, three shared reads weigh 1 each
        a = _comp("a.py::foo", Snapshot.BEFORE, _facts("foo", reads=("x", "y", "z")))
        b = _comp("a.py", Snapshot.AFTER, _facts(None, reads=("x", "y", "z")))
        assert WeightedJaccardScorer().score(a, b) == pytest.approx(0.6)
        assert WeightedJaccardScorer(name_weight=1.0).score(a, b) == pytest.approx(0.75)

    def test_empty_components(self):
        a = _comp("a.py", Snapshot.BEFORE, ComponentFacts())
        b = _comp("b.py", Snapshot.AFTER, ComponentFacts())
        assert WeightedJaccardScorer().score(a, b) == 0.0


class TestIdentityMatcher:
    def test_exact_match(self):
        facts = _facts("load")
        before, after = _graphs([("a.py::load", facts)], [("a.py::load", _facts("load", calls=("x",)))])
        mapping = IdentityMatcher().match(before, after)
        assert len(mapping.matches) == 1
        match = mapping.matches[0]
        assert match.score == 1.0
        assert match.reason == "exact"

    def test_similarity_match(self):
        before, after = _graphs(
            [("old/c.py::load", _facts("load", calls=("fetch",)))],
            [("new/c.py::load", _facts("load", calls=("fetch",)))],
        )
        mapping = IdentityMatcher().match(before, after)
        assert mapping.after_for("old/c.py::load") == "new/c.py::load"
        assert mapping.matches[0].reason == "similarity"

    def test_below_threshold_left_unmatched(self):
        before, after = _graphs(
            [("a.py::load", _facts("load", calls=("fetch",)))],
            [("b.py::save", _facts("save", calls=("fetch",)))],
        )
        mapping = IdentityMatcher().match(before, after)
        assert mapping.matches == ()
        assert mapping.unmatched_before == ("a.py::load",)
        assert mapping.unmatched_after == ("b.py::save",)

    def test_tie_raises_conflict(self):
        facts = _facts("handler", calls=("respond",))
        before, after = _graphs(
            [("x.py::handler", facts)],
            [("y.py::handler", facts), ("z.py::handler", facts)],
        )
        with pytest.raises(IdentityMatchConflict) as exc_info:
            IdentityMatcher().match(before, after)
        assert exc_info.value.before_id == "x.py::handler"
        assert [cid for cid, _ in exc_info.value.candidates] == ["y.py::handler", "z.py::handler"]

    def test_override_resolves_conflict(self):
        facts = _facts("handler", calls=("respond",))
        before, after = _graphs(
            [("x.py::handler", facts)],
            [("y.py::handler", facts), ("z.py::handler", facts)],
        )
        matcher = IdentityMatcher(overrides={"x.py::handler": "z.py::handler"})
        mapping = matcher.match(before, after)
        assert mapping.after_for("x.py::handler") == "z.py::handler"
        assert mapping.matches[0].reason == "override"
        assert mapping.unmatched_after == ("y.py::handler",)

    def test_override_to_none(self):
        facts = _facts("load")
        before, after = _graphs([("a.py::load", facts)], [("a.py::load", facts)])
        mapping = IdentityMatcher(overrides={"a.py::load": None}).match(before, after)
        assert mapping.matches == ()

    def test_override_unknown_id(self):
        before, after = _graphs([("a.py::load", _facts("load"))], [])
        with pytest.raises(GraphError):
            IdentityMatcher(overrides={"nope": None}).match(before, after)

    def test_margin_failure_below_threshold_is_unmatched(self):
        # best 0.6 clears the threshold, runner-up 0.5 does not but is within the margin
        config = MatcherConfig(acceptance_threshold=0.55, min_margin=0.2)
        before, after = _graphs(
            [("c.py::foo", _facts("foo", reads=("x", "y", "z")))],
            [
                ("a.py", _facts(None, reads=("x", "y", "z"))),
                ("b.py", _facts(None, reads=("x", "y", "z", "w"))),
            ],
        )
        mapping = IdentityMatcher(config).match(before, after)
        assert mapping.matches == ()

    def test_vanished_export_keeps_identity_on_file_root(self):
        before, after = _graphs([("a.py::foo", _facts("foo"))], [("a.py", ComponentFacts())])
        mapping = IdentityMatcher().match(before, after)
        assert mapping.after_for("a.py::foo") == "a.py"
        assert mapping.matches[0].reason == "file_root"
        assert mapping.matches[0].score == 0.0

    def test_new_export_grows_out_of_file_root(self):
        before, after = _graphs([("a.py", _facts(None, reads=("x",)))], [("a.py::foo", _facts("foo", reads=("x",)))])
        mapping = IdentityMatcher().match(before, after)
        assert mapping.after_for("a.py") == "a.py::foo"

    def test_file_root_step_ignores_other_paths(self):
        before, after = _graphs([("a.py::foo", _facts("foo"))], [("b.py", ComponentFacts())])
        mapping = IdentityMatcher().match(before, after)
        assert mapping.matches == ()

    def test_several_vanished_exports_are_ambiguous(self):
        before, after = _graphs(
            [("a.py::foo", _facts("foo")), ("a.py::bar", _facts("bar"))],
            [("a.py", ComponentFacts())],
        )
        mapping = IdentityMatcher().match(before, after)
        assert mapping.matches == ()
        assert mapping.warnings[0].kind == WarningKind.AMBIGUOUS_MATCH

    def test_two_befores_claiming_one_after(self):
        facts = _facts("handler", calls=("respond",))
        before, after = _graphs(
            [("x.py::handler", facts), ("w.py::handler", facts)],
            [("y.py::handler", facts)],
        )
        mapping = IdentityMatcher().match(before, after)
        assert mapping.matches == ()
        assert mapping.warnings[0].kind == WarningKind.AMBIGUOUS_MATCH

    def test_stores_only_match_exactly(self):
        store = ComponentFacts()
        before = ContractGraph(
            snapshot=Snapshot.BEFORE,
            components=(_comp("store::a", Snapshot.BEFORE, store, synthetic=True),),
        )
        after = ContractGraph(
            snapshot=Snapshot.AFTER,
            components=(_comp("store::b", Snapshot.AFTER, store, synthetic=True),),
        )
        mapping = IdentityMatcher().match(before, after)
        assert mapping.matches == ()

    def test_custom_scorer(self):
        class PathScorer(MatchScorer):
            def score(self, before, after):
                return 1.0 if before.path.split("/")[-1] == after.path.split("/")[-1] else 0.0

        before, after = _graphs(
            [("old/c.py::load", _facts("load"))],
            [("new/c.py::fetch", _facts("fetch"))],
        )
        mapping = IdentityMatcher(scorer=PathScorer()).match(before, after)
        assert mapping.after_for("old/c.py::load") == "new/c.py::fetch"
