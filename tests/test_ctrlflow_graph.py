# tests/test_ctrlflow_graph.py
"""Tests for the in-memory host program model."""

import pytest

from wcet_ipet.ctrlflow_graph import Function, reset_node_counter
from wcet_ipet.edges import enumerate_edges
from wcet_ipet.interfaces import BlockLike, CallSiteLike, FunctionLike
from tests.conftest import make_diamond_function, make_function, make_loop_function


class TestFunction:

    def test_first_block_is_entry(self):
        fn = make_diamond_function()
        assert fn.entry is fn.block("entry")

    def test_set_entry(self):
        fn = make_function("f", ["a", "b"], [("b", "a")])
        fn.set_entry(fn.block("b"))
        assert fn.entry.name == "b"

    def test_set_entry_rejects_foreign_block(self):
        f, g = make_function("f", ["a"]), make_function("g", ["x"])
        with pytest.raises(ValueError):
            f.set_entry(g.block("x"))

    def test_declaration(self):
        assert Function("ext").is_declaration
        assert Function("ext").entry is None
        assert not make_function("f", ["a"]).is_declaration

    def test_unknown_block_name(self):
        with pytest.raises(KeyError):
            make_function("f", ["a"]).block("nope")

    def test_cross_function_branch_rejected(self):
        f, g = make_function("f", ["a"]), make_function("g", ["x"])
        with pytest.raises(ValueError):
            f.block("a").add_successor(g.block("x"))

    def test_predecessors_tracked(self):
        fn = make_loop_function()
        L = fn.block("L")
        assert set(L.predecessors) == {fn.block("entry"), L}

    def test_satisfies_protocols(self):
        fn = make_loop_function()
        callee = Function("g")
        site = fn.block("L").add_call(callee)
        assert isinstance(fn, FunctionLike)
        assert isinstance(fn.block("L"), BlockLike)
        assert isinstance(site, CallSiteLike)


class TestNodeIdentity:

    def test_nodes_across_counter_reset_stay_distinct(self):
        f = make_function("f", ["a"])
        reset_node_counter()
        g = make_function("f", ["a"])
        a, b = f.block("a"), g.block("a")
        assert a.id == b.id
        assert a != b and f != g
        assert len({a, b}) == 2

    def test_call_sites_across_counter_reset_stay_distinct(self):
        callee = Function("g")
        s1 = make_function("f", ["a"]).block("a").add_call(callee)
        reset_node_counter()
        s2 = make_function("h", ["a"]).block("a").add_call(callee)
        assert s1 != s2
        assert len({s1, s2}) == 2

    def test_edges_of_reset_twins_not_merged(self):
        f = make_loop_function()
        reset_node_counter()
        g = make_loop_function()
        ef, eg = enumerate_edges(f), enumerate_edges(g)
        assert not set(ef.edges) & set(eg.edges)


class TestLoops:

    def test_self_loop_is_back_edge(self):
        fn = make_loop_function()
        L = fn.block("L")
        assert fn.back_edges() == [(L, L)]
        assert fn.natural_loops() == {L: {L}}

    def test_nested_loops(self):
        fn = make_function(
            "n",
            ["entry", "outer", "inner", "latch", "exit"],
            [
                ("entry", "outer"),
                ("outer", "inner"),
                ("inner", "inner"),
                ("inner", "latch"),
                ("latch", "outer"),
                ("outer", "exit"),
            ],
        )
        loops = fn.natural_loops()
        outer, inner, latch = fn.block("outer"), fn.block("inner"), fn.block("latch")
        assert loops[inner] == {inner}
        assert loops[outer] == {outer, inner, latch}

    def test_acyclic_function_has_no_loops(self):
        assert make_diamond_function().natural_loops() == {}

    def test_dominators_skip_unreachable(self):
        fn = make_function("f", ["entry", "dead"], [("dead", "entry")])
        dom = fn.dominators()
        assert fn.block("dead") not in dom
        assert dom[fn.block("entry")] == {fn.block("entry")}


class TestCallSite:

    def test_direct_call(self):
        fn = make_function("f", ["a"])
        g = Function("g")
        site = fn.block("a").add_call(g)
        assert site.targets == (g,)
        assert not site.indirect
        assert not site.unresolved
        assert site.block is fn.block("a")
        assert list(fn.call_sites()) == [site]

    def test_multiple_targets_are_indirect(self):
        fn = make_function("f", ["a"])
        site = fn.block("a").add_call(Function("g"), Function("h"))
        assert site.indirect

    def test_no_targets_is_unresolved(self):
        fn = make_function("f", ["a"])
        site = fn.block("a").add_call()
        assert site.unresolved
        assert site.targets == ()

    def test_default_names_are_distinct(self):
        fn = make_function("f", ["a"])
        s0, s1 = fn.block("a").add_call(), fn.block("a").add_call()
        assert s0.name != s1.name
        assert s0 != s1
