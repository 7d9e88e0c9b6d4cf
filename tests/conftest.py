# tests/conftest.py
"""
Shared builders for the wcet_ipet test-suite.

Programs are written as block names plus (src, dst) name pairs::

    f = make_function("f", ["entry", "L", "exit"],
                      [("entry", "L"), ("L", "L"), ("L", "exit")])
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest
from unittest.mock import MagicMock

from wcet_ipet.callgraph import build_callgraph
from wcet_ipet.config import IpetConfig
from wcet_ipet.ctrlflow_graph import Function, reset_node_counter
from wcet_ipet.ipet import Ipet
from wcet_ipet.providers import (
    FlowFact,
    NullFlowFactProvider,
    StaticFlowFactProvider,
    TableCostProvider,
)
from wcet_ipet.solver import SolverAdapter


# ── Program builders ─────────────────────────────────────────────

def make_function(
    name: str,
    blocks: Sequence[str] = (),
    edges: Iterable[Tuple[str, str]] = (),
) -> Function:
    """A function with the named blocks (first is entry) and edges."""
    fn = Function(name)
    for b in blocks:
        fn.add_block(b)
    for src, dst in edges:
        fn.block(src).add_successor(fn.block(dst))
    return fn


def make_loop_function(name: str = "f") -> Function:
    """entry -> L, L -> L, L -> exit"""
    return make_function(
        name,
        ["entry", "L", "exit"],
        [("entry", "L"), ("L", "L"), ("L", "exit")],
    )


def make_diamond_function(name: str = "d") -> Function:
    """entry -> {then, else} -> join"""
    return make_function(
        name,
        ["entry", "then", "else", "join"],
        [("entry", "then"), ("entry", "else"), ("then", "join"), ("else", "join")],
    )


def make_straight_function(name: str, *block_names: str) -> Function:
    names = list(block_names) or ["entry"]
    return make_function(name, names, zip(names, names[1:]))


def costs_by_name(fn: Function, costs: Dict[str, int]) -> Dict:
    return {fn.block(n): c for n, c in costs.items()}


def make_engine(
    functions: Iterable[Function],
    block_costs: Optional[Dict] = None,
    call_costs: Optional[Dict] = None,
    facts: Optional[Dict] = None,
    solver=None,
    config: Optional[IpetConfig] = None,
    default_block_cost: Optional[int] = 0,
    default_call_cost: Optional[int] = None,
) -> Ipet:
    flow = StaticFlowFactProvider(facts) if facts else NullFlowFactProvider()
    return Ipet(
        build_callgraph(list(functions)),
        TableCostProvider(
            block_costs,
            call_costs,
            default_block_cost=default_block_cost,
            default_call_cost=default_call_cost,
        ),
        flow,
        solver=solver,
        config=config,
    )


def spy_solver(config: Optional[IpetConfig] = None) -> MagicMock:
    """A real solver wrapped in a mock, to count and inspect solve calls."""
    return MagicMock(wraps=SolverAdapter(config))


def solved_model_names(solver: MagicMock) -> List[str]:
    return [c.args[0].name for c in solver.solve.call_args_list]


# ── Fixtures ─────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def _fresh_ids():
    reset_node_counter()
    yield


@pytest.fixture
def loop_function() -> Function:
    return make_loop_function()


@pytest.fixture
def loop_costs(loop_function) -> Dict:
    return costs_by_name(loop_function, {"entry": 1, "L": 5, "exit": 1})


@pytest.fixture
def back_edge_fact(loop_function) -> FlowFact:
    L = loop_function.block("L")
    return FlowFact.upper_bound((L, L), 9)
