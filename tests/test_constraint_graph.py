# tests/test_constraint_graph.py
"""
Tests for the arena constraint graph and its validating builder.
"""

import pytest

from typesketch.config import PathPolicy, SolverConfig
from typesketch.constraint_graph import ConstraintGraph, GraphBuilder, build_graph
from typesketch.errors import DiagnosticKind, MalformedLabel, PathTooLong, Severity
from typesketch.schema import SubtypingConstraint, Tid
from tests.conftest import v, fld, make_set, LOAD, STORE


class TestArena:

    def test_get_or_create_adds_prefixes(self):
        g = ConstraintGraph()
        nid = g.get_or_create(v("x", LOAD, fld(32, 0)))
        assert g.node_count == 3
        assert nid == 2
        assert g.node_of(v("x")) == 0
        assert g.node_of(v("x", LOAD)) == 1

    def test_get_or_create_is_idempotent(self):
        g = ConstraintGraph()
        a = g.get_or_create(v("x", LOAD))
        b = g.get_or_create(v("x", LOAD))
        assert a == b
        assert g.node_count == 2

    def test_label_and_prefix_edges(self):
        g = ConstraintGraph()
        child = g.get_or_create(v("x", STORE))
        root = g.node_of(v("x"))
        assert g.children_of(root) == {STORE: child}
        assert g.child(root, STORE) == child
        assert g.parent_of(child) == (root, STORE)
        assert g.parent_of(root) is None
        assert list(g.label_edges()) == [(root, STORE, child)]

    def test_contains(self):
        g = ConstraintGraph()
        g.get_or_create(v("x", LOAD))
        assert v("x") in g
        assert v("y") not in g


class TestSubtypeEdges:

    def test_add_subtype_reports_novelty(self):
        g = ConstraintGraph()
        a = g.get_or_create(v("a"))
        b = g.get_or_create(v("b"))
        assert g.add_subtype(a, b) is True
        assert g.add_subtype(a, b) is False
        assert g.edge_count == 1
        assert g.successors(a) == {b}
        assert g.predecessors(b) == {a}

    def test_self_edge_not_stored(self):
        g = ConstraintGraph()
        a = g.get_or_create(v("a"))
        assert g.add_subtype(a, a) is False
        assert g.edge_count == 0
        assert g.has_subtype_edge(a, a)

    def test_is_subtype_reflexive_and_directed(self):
        g = ConstraintGraph()
        a = g.get_or_create(v("a"))
        b = g.get_or_create(v("b"))
        g.add_subtype(a, b)
        assert g.is_subtype(v("a"), v("a"))
        assert g.is_subtype(v("a"), v("b"))
        assert not g.is_subtype(v("b"), v("a"))
        assert not g.is_subtype(v("a"), v("unknown"))

    def test_cycles_are_plain_adjacency(self):
        g = ConstraintGraph()
        a = g.get_or_create(v("a"))
        b = g.get_or_create(v("b"))
        g.add_subtype(a, b)
        g.add_subtype(b, a)
        assert g.subtype_pairs() == {(v("a"), v("b")), (v("b"), v("a"))}

    def test_to_dot(self):
        g = build_graph(make_set((v("x", LOAD), v("y"))))
        dot = g.to_dot(title="demo")
        assert dot.startswith("digraph ConstraintGraph {")
        assert 'label="demo";' in dot
        assert 'label="x.load"' in dot
        assert "style=dashed" in dot
        assert 'label="⊑"' in dot


class TestGraphBuilder:

    def test_builds_nodes_and_edges(self):
        g = build_graph(make_set((v("x", LOAD), v("y")), (v("y"), v("z", LOAD))))
        assert g.node_count == 5
        assert g.edge_count == 2
        assert g.is_subtype(v("x", LOAD), v("y"))

    def test_binding_resolves_to_lhs_node(self):
        g = build_graph(make_set(bindings=[(7, v("f"), v("g"))]))
        assert g.bindings == [(Tid(7), g.node_of(v("f")))]

    def test_malformed_label_skips_only_that_constraint(self):
        builder = GraphBuilder()
        g = builder.build(make_set(
            (v("p", fld(0, 0)), v("q")),
            (v("p", fld(32, 4)), v("r")),
        ))
        assert builder.rejected == [SubtypingConstraint(v("p", fld(0, 0)), v("q"))]
        assert v("p", fld(0, 0)) not in g
        assert g.is_subtype(v("p", fld(32, 4)), v("r"))
        [report] = g.reports
        assert report.kind is DiagnosticKind.MALFORMED_LABEL
        assert report.severity is Severity.ERROR
        assert report.subject == v("p", fld(0, 0))
        assert report.evidence["constraint"] == "p.σ0@0 ⊑ q"

    def test_rejected_binding_is_reported_against_target(self):
        g = build_graph(make_set(bindings=[(9, v("f", fld(32, -4)), v("g"))]))
        assert g.bindings == []
        kinds = [(r.kind, r.subject) for r in g.reports]
        assert (DiagnosticKind.MALFORMED_LABEL, Tid(9)) in kinds

    def test_dropped_binding_carries_rejection_kind(self, reject_config):
        builder = GraphBuilder(reject_config)
        g = builder.build(make_set(bindings=[(4, v("f", LOAD, LOAD, LOAD), v("g"))]))
        assert g.bindings == []
        assert [(r.kind, r.subject) for r in g.reports] == [
            (DiagnosticKind.PATH_TOO_LONG, v("f", LOAD, LOAD, LOAD)),
            (DiagnosticKind.PATH_TOO_LONG, Tid(4)),
        ]

    def test_rejection_leaves_exception_evidence_alone(self):
        exc = MalformedLabel(fld(0, 0), "bit_size must be positive")
        diag = exc.to_diagnostic(constraint="p.σ0@0 ⊑ q")
        diag.evidence["extra"] = 1
        assert diag.evidence["constraint"] == "p.σ0@0 ⊑ q"
        assert exc.evidence == {"label": "σ0@0", "reason": "bit_size must be positive"}

    def test_path_too_long_rejected(self, reject_config):
        long_dtv = v("x", LOAD, LOAD, LOAD)
        builder = GraphBuilder(reject_config)
        g = builder.build(make_set((long_dtv, v("y"))))
        assert len(builder.rejected) == 1
        assert g.reports[0].kind is DiagnosticKind.PATH_TOO_LONG
        assert long_dtv not in g

    def test_admit_raises_under_reject(self, reject_config):
        with pytest.raises(PathTooLong) as info:
            GraphBuilder(reject_config).admit(v("x", LOAD, LOAD, LOAD))
        assert info.value.length == 3
        assert info.value.limit == 2

    def test_path_truncated_by_default(self):
        config = SolverConfig(max_path_length=2)
        assert config.path_policy is PathPolicy.TRUNCATE
        g = build_graph(make_set((v("x", LOAD, LOAD, LOAD), v("y"))), config)
        assert g.is_subtype(v("x", LOAD, LOAD), v("y"))
        assert v("x", LOAD, LOAD, LOAD) not in g
        [report] = g.reports
        assert report.kind is DiagnosticKind.PATH_TRUNCATED
        assert report.severity is Severity.WARNING
