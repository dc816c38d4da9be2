"""Tests for the graph differ."""

from __future__ import annotations

from cdgraph.contracts.models import ComponentFacts, Snapshot, Symbol, SymbolKind
from cdgraph.diff import (
    EdgeStatus,
    GraphDiffer,
    IdentityMapping,
    IdentityMatch,
    NodeStatus,
    assign_identities,
)
from cdgraph.graph.models import Component, ContractGraph, Edge, EdgeKind, PayloadShape


def _comp(cid: str, snapshot: Snapshot, facts: ComponentFacts | None = None) -> Component:
    path, _, symbol = cid.partition("::")
    return Component(
        id=cid,
        display_name=symbol or path,
        path=path,
        symbol=symbol or None,
        snapshot=snapshot,
        facts=facts or ComponentFacts(),
    )


def _graph(snapshot: Snapshot, ids: list[str], edges: list[Edge] = (), facts: dict | None = None) -> ContractGraph:
    facts = facts or {}
    return ContractGraph(
        snapshot=snapshot,
        components=tuple(_comp(cid, snapshot, facts.get(cid)) for cid in ids),
        edges=tuple(edges),
    )


def _mapping(*pairs: tuple[str, str]) -> IdentityMapping:
    return IdentityMapping(
        matches=tuple(IdentityMatch(before_id=b, after_id=a, score=1.0, reason="exact") for b, a in pairs)
    )


def _call(src: str, dst: str, **shape) -> Edge:
    return Edge(from_id=src, to_id=dst, kind=EdgeKind.CALL, payload_shape=PayloadShape(**shape))


class TestIdentities:
    def test_matched_take_after_id(self):
        before = _graph(Snapshot.BEFORE, ["old/c.py::load"])
        after = _graph(Snapshot.AFTER, ["new/c.py::load"])
        before_ids, after_ids = assign_identities(before, after, _mapping(("old/c.py::load", "new/c.py::load")))
        assert before_ids == {"old/c.py::load": "new/c.py::load"}
        assert after_ids == {"new/c.py::load": "new/c.py::load"}

    def test_deleted_collision_is_suffixed(self):
        before = _graph(Snapshot.BEFORE, ["a.py::f", "b.py::g"])
        after = _graph(Snapshot.AFTER, ["a.py::f", "c.py::g"])
        # a.py::f before is blocked, so the after a.py::f is a different identity
        before_ids, _ = assign_identities(before, after, _mapping(("b.py::g", "c.py::g")))
        assert before_ids["a.py::f"] == "a.py::f@before"


class TestNodeClassification:
    def test_every_identity_gets_one_status(self):
        facts_before = {"a.py::f": ComponentFacts(produces=(Symbol(name="f", kind=SymbolKind.EXPORT, owner="f"),))}
        before = _graph(Snapshot.BEFORE, ["a.py::f", "a.py::g", "a.py::gone"], facts=facts_before)
        after = _graph(Snapshot.AFTER, ["a.py::f", "a.py::g", "a.py::born"])
        result = GraphDiffer().diff(before, after, _mapping(("a.py::f", "a.py::f"), ("a.py::g", "a.py::g")))

        assert [n.identity for n in result.nodes] == ["a.py::born", "a.py::f", "a.py::g", "a.py::gone"]
        assert result.status_of("a.py::f") == NodeStatus.MODIFIED
        assert result.status_of("a.py::g") == NodeStatus.UNCHANGED
        assert result.status_of("a.py::born") == NodeStatus.CREATED
        assert result.status_of("a.py::gone") == NodeStatus.DELETED
        assert result.node("a.py::gone").after_id is None
        assert result.node("a.py::born").before_id is None


class TestEdgeClassification:
    def test_deleted_endpoint_severs(self):
        before = _graph(Snapshot.BEFORE, ["a.py::f", "b.py::g"], [_call("a.py::f", "b.py::g", symbols=("f",))])
        after = _graph(Snapshot.AFTER, ["b.py::g"])
        result = GraphDiffer().diff(before, after, _mapping(("b.py::g", "b.py::g")))

        (edge,) = result.edges
        assert edge.status == EdgeStatus.SEVERED
        assert edge.reason == "endpoint deleted"
        assert "'a.py::f' was deleted" in edge.changes
        assert "no longer carries 'f'" in edge.changes
        assert edge.after_payload is None

    def test_missing_counterpart_severs(self):
        ids = ["a.py::f", "b.py::g"]
        before = _graph(Snapshot.BEFORE, ids, [_call("a.py::f", "b.py::g")])
        after = _graph(Snapshot.AFTER, ids)
        result = GraphDiffer().diff(before, after, _mapping(("a.py::f", "a.py::f"), ("b.py::g", "b.py::g")))
        assert result.edges[0].status == EdgeStatus.SEVERED
        assert result.edges[0].reason == "no counterpart after the change"

    def test_narrowed_payload_simplifies(self):
        ids = ["a.py::f", "b.py::g"]
        before = _graph(Snapshot.BEFORE, ids, [_call("a.py::f", "b.py::g", fields=("data", "verbose"))])
        after = _graph(Snapshot.AFTER, ids, [_call("a.py::f", "b.py::g", fields=("data",))])
        result = GraphDiffer().diff(before, after, _mapping(("a.py::f", "a.py::f"), ("b.py::g", "b.py::g")))
        (edge,) = result.edges
        assert edge.status == EdgeStatus.SIMPLIFIED
        assert edge.changes == ("no longer passes field 'verbose'",)

    def test_grown_payload_is_unchanged(self):
        ids = ["a.py::f", "b.py::g"]
        before = _graph(Snapshot.BEFORE, ids, [_call("a.py::f", "b.py::g", fields=("data",))])
        after = _graph(Snapshot.AFTER, ids, [_call("a.py::f", "b.py::g", fields=("data", "extra"))])
        result = GraphDiffer().diff(before, after, _mapping(("a.py::f", "a.py::f"), ("b.py::g", "b.py::g")))
        (edge,) = result.edges
        assert edge.status == EdgeStatus.UNCHANGED
        assert edge.reason == "payload grew"
        assert edge.changes == ("now also passes field 'extra'",)

    def test_after_only_edge_is_new(self):
        ids = ["a.py::f", "b.py::g"]
        before = _graph(Snapshot.BEFORE, ids)
        after = _graph(Snapshot.AFTER, ids, [_call("a.py::f", "b.py::g")])
        result = GraphDiffer().diff(before, after, _mapping(("a.py::f", "a.py::f"), ("b.py::g", "b.py::g")))
        (edge,) = result.edges
        assert edge.status == EdgeStatus.NEW
        assert edge.before_payload is None

    def test_edges_follow_identity_across_rename(self):
        before = _graph(Snapshot.BEFORE, ["old.py::f", "b.py::g"], [_call("old.py::f", "b.py::g")])
        after = _graph(Snapshot.AFTER, ["new.py::f", "b.py::g"], [_call("new.py::f", "b.py::g")])
        result = GraphDiffer().diff(before, after, _mapping(("old.py::f", "new.py::f"), ("b.py::g", "b.py::g")))
        (edge,) = result.edges
        assert edge.edge_id == "new.py::f->b.py::g:call"
        assert edge.status == EdgeStatus.UNCHANGED

    def test_order_is_before_then_new(self):
        ids = ["a.py::f", "b.py::g", "c.py::h"]
        before = _graph(Snapshot.BEFORE, ids, [_call("b.py::g", "c.py::h"), _call("a.py::f", "b.py::g")])
        after = _graph(Snapshot.AFTER, ids, [_call("a.py::f", "c.py::h"), _call("a.py::f", "b.py::g")])
        mapping = _mapping(*((i, i) for i in ids))
        result = GraphDiffer().diff(before, after, mapping)
        assert [e.edge_id for e in result.edges] == [
            "b.py::g->c.py::h:call",
            "a.py::f->b.py::g:call",
            "a.py::f->c.py::h:call",
        ]
        assert [e.order for e in result.edges] == [0, 1, 2]
        assert [e.status for e in result.edges] == [EdgeStatus.SEVERED, EdgeStatus.UNCHANGED, EdgeStatus.NEW]
        assert len(result.edges_with(EdgeStatus.SEVERED)) == 1
