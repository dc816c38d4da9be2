"""End-to-end tests for the contract diff engine."""

from __future__ import annotations

import json

import pytest

from cdgraph import ContractDiffEngine
from cdgraph.diagnostics import WarningKind
from cdgraph.diff import EdgeStatus, MatchScorer, NodeStatus
from cdgraph.exceptions import IdentityMatchConflict, IngestError

from conftest import B_SOURCE, C_SOURCE


class TestStoppedExport:
    """a.py stops exporting foo while b.py still calls it."""

    def test_foo_is_modified_not_deleted(self, scenario_a, config):
        result = ContractDiffEngine(config).run(scenario_a)
        match = next(m for m in result.mapping.matches if m.before_id == "a.py::foo")
        assert match.after_id == "a.py"
        assert match.score == pytest.approx(0.6)
        assert result.node("a.py").status == NodeStatus.MODIFIED

    def test_call_edge_is_severed(self, scenario_a, config):
        result = ContractDiffEngine(config).run(scenario_a)
        edge = result.edge("a.py", "b.py::render", "call")
        assert edge.status == EdgeStatus.SEVERED
        assert result.node("b.py::render").status == NodeStatus.UNCHANGED
        assert result.report.is_affected("b.py::render")

    def test_unresolved_call_is_reported(self, scenario_a, config):
        result = ContractDiffEngine(config).run(scenario_a)
        unresolved = [w for w in result.report.warnings if w.kind == WarningKind.UNRESOLVED_CONSUMPTION]
        assert any(w.symbol == "foo" and w.path == "b.py" for w in unresolved)

    def test_explanation_names_the_edge(self, scenario_a, config):
        result = ContractDiffEngine(config).run(scenario_a)
        severed = result.report.severed_edges[0]
        assert severed.edge.edge_id == "a.py->b.py::render:call"
        assert severed.key
        text = result.explanations[0].ranked_explanation
        assert text.startswith("#1 [call] a.py no longer serves calls from render (b.py::render)")

    def test_minimal_function_stays_modified(self, config):
        records = [
            {
                "path": "a.py",
                "change_kind": "modified",
                "before": '__all__ = ["foo"]\n\n\ndef foo(x):\n    return x\n',
                "after": "__all__ = []\n\n\ndef foo(x):\n    return x\n",
            },
            {"path": "b.py", "change_kind": "unchanged", "content": B_SOURCE},
        ]
        result = ContractDiffEngine(config).run(records)
        match = next(m for m in result.mapping.matches if m.before_id == "a.py::foo")
        assert match.after_id == "a.py"
        assert match.reason == "file_root"
        assert result.node("a.py").status == NodeStatus.MODIFIED
        statuses = {n.identity: n.status for n in result.nodes}
        assert NodeStatus.DELETED not in statuses.values()
        assert NodeStatus.CREATED not in statuses.values()
        assert result.edge("a.py", "b.py::render", "call").status == EdgeStatus.SEVERED


class TestRename:
    def test_moved_file_matches_by_similarity(self, scenario_b, config):
        result = ContractDiffEngine(config).run(scenario_b)
        assert result.mapping.after_for("old/c.py::load") == "new/c.py::load"
        assert result.mapping.after_for("old/c.py::save") == "new/c.py::save"
        assert all(m.score == 1.0 for m in result.mapping.matches)
        assert result.node("new/c.py::load").status == NodeStatus.UNCHANGED
        assert result.node("new/c.py::save").status == NodeStatus.UNCHANGED

    def test_moved_and_edited(self, config):
        after = C_SOURCE.replace("fetch(user_id=user_id)", "fetch(user_id=user_id, cache=True)")
        records = [
            {"path": "new/c.py", "change_kind": "renamed", "old_path": "old/c.py", "before": C_SOURCE, "after": after},
        ]
        result = ContractDiffEngine(config).run(records)
        assert result.node("new/c.py::load").status == NodeStatus.MODIFIED
        assert result.node("new/c.py::save").status == NodeStatus.UNCHANGED


class TestAmbiguousIdentity:
    def test_conflict_raises(self, scenario_c, config):
        with pytest.raises(IdentityMatchConflict) as exc_info:
            ContractDiffEngine(config).run(scenario_c)
        assert exc_info.value.before_id == "x.py::handler"

    def test_override_resolves(self, scenario_c, config):
        engine = ContractDiffEngine(config, overrides={"x.py::handler": "y.py::handler"})
        result = engine.run(scenario_c)
        assert result.node("y.py::handler").status == NodeStatus.UNCHANGED
        assert result.node("z.py::handler").status == NodeStatus.CREATED

    def test_override_to_none(self, scenario_c, config):
        engine = ContractDiffEngine(config, overrides={"x.py::handler": None})
        result = engine.run(scenario_c)
        assert result.node("x.py::handler").status == NodeStatus.DELETED
        assert result.node("y.py::handler").status == NodeStatus.CREATED


class TestNarrowedCall:
    def test_edge_is_simplified(self, scenario_d, config):
        result = ContractDiffEngine(config).run(scenario_d)
        edge = result.edge("lib.py::fetch", "app.py::load", "call")
        assert edge.status == EdgeStatus.SIMPLIFIED
        assert "no longer passes field 'verbose'" in edge.changes

    def test_blast_radius(self, scenario_d, config):
        result = ContractDiffEngine(config).run(scenario_d)
        assert result.report.seed_identities == ("app.py::load",)
        assert set(result.report.affected_identities) == {
            "app.py::load",
            "lib.py::fetch",
            "page.py::page",
            "view.py::render",
        }

    def test_consequence_score(self, scenario_d, config):
        result = ContractDiffEngine(config).run(scenario_d)
        (ranked,) = result.report.severed_edges
        assert ranked.consequence_score == 3
        assert result.report.key_edges == ("lib.py::fetch->app.py::load:call",)

    def test_summary(self, scenario_d, config):
        summary = ContractDiffEngine(config).run(scenario_d).summary()
        assert summary["nodes"]["modified"] == 1
        assert summary["edges"]["simplified"] == 1
        assert summary["seeds"] == 1
        assert summary["affected"] == 4


class TestJsx:
    def test_dropped_prop_simplifies(self, jsx_records, config):
        result = ContractDiffEngine(config).run(jsx_records)
        edge = result.edge("Button.jsx::default", "App.jsx::App", "prop_flow")
        assert edge.status == EdgeStatus.SIMPLIFIED
        assert edge.changes == ("no longer passes field 'onClick'",)


class TestEngine:
    def test_empty_change_set(self, config):
        with pytest.raises(IngestError):
            ContractDiffEngine(config).run([])

    def test_deterministic_output(self, scenario_d, config):
        first = ContractDiffEngine(config).run(scenario_d).to_json()
        second = ContractDiffEngine(config).run(list(reversed(scenario_d))).to_json()
        assert first == second

    def test_parallel_extraction_matches_serial(self, scenario_d, config):
        serial = ContractDiffEngine(config).run(scenario_d).to_json()
        parallel = ContractDiffEngine().run(scenario_d).to_json()
        assert serial == parallel

    def test_json_shape(self, scenario_d, config):
        data = json.loads(ContractDiffEngine(config).run(scenario_d).to_json())
        assert set(data) == {
            "before_graph",
            "after_graph",
            "mapping",
            "nodes",
            "edges",
            "report",
            "explanations",
        }
        assert data["report"]["key_edges"] == ["lib.py::fetch->app.py::load:call"]

    def test_every_identity_classified_once(self, scenario_a, config):
        result = ContractDiffEngine(config).run(scenario_a)
        identities = [n.identity for n in result.nodes]
        assert len(identities) == len(set(identities))
        after_ids = {c.id for c in result.after_graph.components}
        assert after_ids <= set(identities)

    def test_custom_scorer(self, scenario_c, config):
        class NeverMatch(MatchScorer):
            def score(self, before, after):
                return 0.0

        result = ContractDiffEngine(config, scorer=NeverMatch()).run(scenario_c)
        assert result.node("x.py::handler").status == NodeStatus.DELETED
