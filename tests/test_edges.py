# tests/test_edges.py
"""Tests for edge enumeration with virtual entry/exit edges."""

from wcet_ipet.ctrlflow_graph import Function
from wcet_ipet.edges import Edge, VirtualNode, enumerate_edges, reachable_blocks
from tests.conftest import make_diamond_function, make_function, make_loop_function


class TestReachableBlocks:

    def test_entry_first_in_dfs_order(self):
        fn = make_diamond_function()
        names = [b.name for b in reachable_blocks(fn)]
        assert names == ["entry", "then", "join", "else"]

    def test_unreachable_blocks_skipped(self):
        fn = make_function("f", ["entry", "exit", "dead"], [("entry", "exit"), ("dead", "exit")])
        assert fn.block("dead") not in reachable_blocks(fn)

    def test_declaration_has_no_blocks(self):
        assert reachable_blocks(Function("ext")) == []


class TestEnumerateEdges:

    def test_entry_edge_comes_first(self):
        fn = make_loop_function()
        es = enumerate_edges(fn)
        assert es.edges[0] == Edge(VirtualNode.ENTRY, fn.block("entry"))
        assert es.entry_edge is es.edges[0]

    def test_loop_edges(self):
        fn = make_loop_function()
        entry, L, exit_ = fn.block("entry"), fn.block("L"), fn.block("exit")
        es = enumerate_edges(fn)
        assert set(es) == {
            Edge(VirtualNode.ENTRY, entry),
            Edge(entry, L),
            Edge(L, L),
            Edge(L, exit_),
            Edge(exit_, VirtualNode.EXIT),
        }
        assert len(es) == 5

    def test_exit_edge_for_every_block_without_successors(self):
        fn = make_function("f", ["entry", "a", "b"], [("entry", "a"), ("entry", "b")])
        es = enumerate_edges(fn)
        assert sorted(e.source.name for e in es.exit_edges) == ["a", "b"]

    def test_single_block_function(self):
        fn = make_function("f", ["only"])
        es = enumerate_edges(fn)
        only = fn.block("only")
        assert es.edges == [Edge(VirtualNode.ENTRY, only), Edge(only, VirtualNode.EXIT)]

    def test_duplicate_successors_collapse(self):
        fn = make_function("f", ["entry", "next"], [("entry", "next"), ("entry", "next")])
        es = enumerate_edges(fn)
        entry, nxt = fn.block("entry"), fn.block("next")
        assert [e for e in es if e == Edge(entry, nxt)] == [Edge(entry, nxt)]

    def test_unreachable_block_contributes_no_edges(self):
        fn = make_function("f", ["entry", "dead"], [("dead", "entry")])
        es = enumerate_edges(fn)
        dead = fn.block("dead")
        assert not es.has_block(dead)
        assert all(dead not in e for e in es)

    def test_incoming_and_outgoing(self):
        fn = make_loop_function()
        L = fn.block("L")
        es = enumerate_edges(fn)
        assert set(es.incoming(L)) == {Edge(fn.block("entry"), L), Edge(L, L)}
        assert set(es.outgoing(L)) == {Edge(L, L), Edge(L, fn.block("exit"))}

    def test_empty_function_yields_empty_set(self):
        es = enumerate_edges(Function("ext"))
        assert es.is_empty
        assert es.entry_edge is None
        assert len(es) == 0

    def test_virtual_edges_flagged(self):
        fn = make_loop_function()
        es = enumerate_edges(fn)
        assert es.entry_edge.is_virtual
        assert not Edge(fn.block("entry"), fn.block("L")).is_virtual
        assert "ENTRY" in es.entry_edge.label.upper()

    def test_index_of(self):
        fn = make_loop_function()
        es = enumerate_edges(fn)
        assert es.index_of(es.entry_edge) == 0
