# tests/test_solver.py
"""Tests for the scipy.optimize.milp adapter."""

import pytest
from unittest.mock import patch

from scipy.optimize import milp as scipy_milp

from wcet_ipet.config import IpetConfig
from wcet_ipet.ilp_model import IlpModel
from wcet_ipet.providers import Relation
from wcet_ipet.solver import SolverAdapter, SolverSession, SolveStatus


def _bounded_model():
    """max 3x + 2y  s.t.  x + y <= 4,  x <= 3"""
    m = IlpModel("bounded")
    x = m.add_variable("x")
    y = m.add_variable("y")
    m.add_row("sum", {x: 1, y: 1}, Relation.LE, 4)
    m.add_row("cap", {x: 1}, Relation.LE, 3)
    m.set_objective({x: 3, y: 2})
    return m


class TestSolverAdapter:

    def test_optimal(self):
        result = SolverAdapter().solve(_bounded_model())
        assert result.ok
        assert result.status is SolveStatus.OPTIMAL
        assert result.objective == pytest.approx(11)
        assert [round(v) for v in result.assignment] == [3, 1]

    def test_equality_and_ge_rows(self):
        m = IlpModel("eq")
        x = m.add_variable("x")
        y = m.add_variable("y")
        m.add_row("fix", {x: 1}, Relation.EQ, 2)
        m.add_row("floor", {y: 1, x: -1}, Relation.GE, 0)
        m.add_row("ceil", {y: 1}, Relation.LE, 5)
        m.set_objective({x: 1, y: 1})
        result = SolverAdapter().solve(m)
        assert result.objective == pytest.approx(7)

    def test_integrality_enforced(self):
        m = IlpModel("int")
        x = m.add_variable("x")
        m.add_row("half", {x: 2}, Relation.LE, 5)
        m.set_objective({x: 1})
        result = SolverAdapter().solve(m)
        assert round(result.assignment[0]) == 2

    def test_infeasible(self):
        m = IlpModel("infeasible")
        x = m.add_variable("x")
        m.add_row("lo", {x: 1}, Relation.GE, 3)
        m.add_row("hi", {x: 1}, Relation.LE, 1)
        m.set_objective({x: 1})
        result = SolverAdapter().solve(m)
        assert result.status is SolveStatus.INFEASIBLE
        assert not result.ok
        assert result.objective is None
        assert result.assignment is None

    def test_unbounded(self):
        m = IlpModel("unbounded")
        x = m.add_variable("x")
        y = m.add_variable("y")
        m.add_row("link", {x: 1, y: -1}, Relation.EQ, 0)
        m.set_objective({x: 1})
        result = SolverAdapter().solve(m)
        assert result.status is SolveStatus.UNBOUNDED

    def test_solver_error_is_numerical_failure(self):
        with patch("wcet_ipet.solver.milp", side_effect=ValueError("boom")):
            result = SolverAdapter().solve(_bounded_model())
        assert result.status is SolveStatus.NUMERICAL_FAILURE
        assert "boom" in result.message

    def test_solve_count(self):
        solver = SolverAdapter()
        solver.solve(_bounded_model())
        solver.solve(_bounded_model())
        assert solver.solve_count == 2

    def test_options_from_config(self):
        config = IpetConfig(time_limit=5.0)
        with patch("wcet_ipet.solver.milp", wraps=scipy_milp) as milp:
            SolverAdapter(config).solve(_bounded_model())
        options = milp.call_args.kwargs["options"]
        assert options["time_limit"] == 5.0
        assert options["mip_rel_gap"] == 0.0


class TestSolverSession:

    def test_released_after_use(self):
        with SolverSession(_bounded_model()) as session:
            assert session.loaded
            assert session.constraints.A.shape == (2, 2)
        assert not session.loaded

    def test_released_on_error(self):
        session = SolverSession(_bounded_model())
        with pytest.raises(KeyError):
            with session:
                raise KeyError("x")
        assert not session.loaded

    def test_run_requires_load(self):
        with pytest.raises(RuntimeError):
            SolverSession(_bounded_model()).run({})

    def test_objective_negated_for_maximisation(self):
        with SolverSession(_bounded_model()) as session:
            assert list(session.c) == [-3.0, -2.0]
