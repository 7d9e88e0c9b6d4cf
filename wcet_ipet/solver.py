"""
wcet_ipet.solver
================

Thin adapter between :class:`~wcet_ipet.ilp_model.IlpModel` and
``scipy.optimize.milp`` (the HiGHS MILP solver shipped with SciPy).

The adapter is the only place that knows the solver's native form: a dense
cost vector, a sparse constraint matrix with row bounds, variable bounds
and an integrality vector.  Those arrays live in a :class:`SolverSession`
for the duration of one solve and are released on every exit path.

Outcome classification
----------------------
=====================  =====================================================
``OPTIMAL``            proven optimum; objective and assignment available
``INFEASIBLE``         no integral flow satisfies the rows
``UNBOUNDED``          the objective can grow without limit (unbounded loop)
``NUMERICAL_FAILURE``  time/iteration limit, solver error, anything else
=====================  =====================================================

HiGHS sometimes only knows a model is "unbounded or infeasible"; the adapter
then re-solves it with a zero objective to tell the two apart.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import numpy as np
from scipy import sparse
from scipy.optimize import Bounds, LinearConstraint, milp

from .config import DEFAULT_CONFIG, IpetConfig
from .ilp_model import IlpModel
from .providers import Relation

logger = logging.getLogger(__name__)

# scipy.optimize.milp status codes
_MILP_OPTIMAL = 0
_MILP_LIMIT = 1
_MILP_INFEASIBLE = 2
_MILP_UNBOUNDED = 3
_MILP_OTHER = 4


class SolveStatus(enum.Enum):
    OPTIMAL = "optimal"
    INFEASIBLE = "infeasible"
    UNBOUNDED = "unbounded"
    NUMERICAL_FAILURE = "numerical-failure"


@dataclass(frozen=True)
class SolveResult:
    """Outcome of one solve.  ``objective``/``assignment`` only when optimal."""

    status: SolveStatus
    objective: Optional[float] = None
    assignment: Optional[Tuple[float, ...]] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is SolveStatus.OPTIMAL


class SolverSession:
    """Native problem arrays for one model, valid inside a ``with`` block."""

    def __init__(self, model: IlpModel) -> None:
        self.model = model
        self.c: Optional[np.ndarray] = None
        self.constraints: Optional[LinearConstraint] = None
        self.bounds: Optional[Bounds] = None
        self.integrality: Optional[np.ndarray] = None

    def __enter__(self) -> "SolverSession":
        self._load()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False

    @property
    def loaded(self) -> bool:
        return self.c is not None

    def _load(self) -> None:
        model = self.model
        n = model.num_variables

        # milp minimises; negate to maximise
        c = np.zeros(n)
        for var, coef in model.objective.items():
            c[var] = -float(coef)

        rows, cols, data = [], [], []
        lower = np.empty(model.num_rows)
        upper = np.empty(model.num_rows)
        for i, row in enumerate(model.rows):
            for var, coef in row.coeffs.items():
                rows.append(i)
                cols.append(var)
                data.append(float(coef))
            if row.relation is Relation.EQ:
                lower[i] = upper[i] = row.bound
            elif row.relation is Relation.LE:
                lower[i], upper[i] = -np.inf, row.bound
            else:
                lower[i], upper[i] = row.bound, np.inf
        matrix = sparse.coo_matrix(
            (
                np.array(data, dtype=float),
                (np.array(rows, dtype=np.int64), np.array(cols, dtype=np.int64)),
            ),
            shape=(model.num_rows, n),
        ).tocsr()

        var_lower = np.array([v.lower for v in model.variables], dtype=float)
        var_upper = np.array(
            [np.inf if v.upper is None else v.upper for v in model.variables], dtype=float
        )

        self.c = c
        self.constraints = LinearConstraint(matrix, lower, upper)
        self.bounds = Bounds(var_lower, var_upper)
        self.integrality = np.array([1 if v.integer else 0 for v in model.variables])
        logger.debug("Loaded %s into solver (%d x %d)", model.name, model.num_rows, n)

    def run(self, options: dict, with_objective: bool = True) -> Any:
        if not self.loaded:
            raise RuntimeError(f"solver session for {self.model.name} is not loaded")
        c = self.c if with_objective else np.zeros_like(self.c)
        return milp(
            c,
            integrality=self.integrality,
            bounds=self.bounds,
            constraints=self.constraints,
            options=options,
        )

    def release(self) -> None:
        if self.loaded:
            logger.debug("Released solver session for %s", self.model.name)
        self.c = None
        self.constraints = None
        self.bounds = None
        self.integrality = None


class SolverAdapter:
    """Solves :class:`IlpModel` instances with ``scipy.optimize.milp``.

    ``solve_count`` counts calls to :meth:`solve`; the engine's cache tests
    use it to prove that cached results are not re-solved.
    """

    def __init__(self, config: Optional[IpetConfig] = None) -> None:
        self.config = config or DEFAULT_CONFIG
        self.solve_count = 0

    def solve(self, model: IlpModel) -> SolveResult:
        self.solve_count += 1
        options = self.config.solver_options()
        with SolverSession(model) as session:
            try:
                res = session.run(options)
                status = self._classify(session, res, options)
            except (ValueError, RuntimeError, np.linalg.LinAlgError) as exc:
                logger.warning("Solver error on %s: %s", model.name, exc)
                return SolveResult(SolveStatus.NUMERICAL_FAILURE, message=str(exc))

        message = str(getattr(res, "message", "") or "").strip()
        if status is not SolveStatus.OPTIMAL:
            logger.debug("%s: %s (%s)", model.name, status.value, message)
            return SolveResult(status, message=message)
        return SolveResult(
            SolveStatus.OPTIMAL,
            objective=-float(res.fun),
            assignment=tuple(float(x) for x in res.x),
            message=message,
        )

    @staticmethod
    def _classify(session: SolverSession, res: Any, options: dict) -> SolveStatus:
        code = res.status
        if code == _MILP_OPTIMAL:
            if res.x is None:
                return SolveStatus.NUMERICAL_FAILURE
            return SolveStatus.OPTIMAL
        if code == _MILP_INFEASIBLE:
            return SolveStatus.INFEASIBLE
        if code == _MILP_UNBOUNDED:
            return SolveStatus.UNBOUNDED
        if code == _MILP_OTHER and "unbounded" in str(res.message).lower():
            probe = session.run(options, with_objective=False)
            if probe.status == _MILP_OPTIMAL:
                return SolveStatus.UNBOUNDED
            if probe.status == _MILP_INFEASIBLE:
                return SolveStatus.INFEASIBLE
        return SolveStatus.NUMERICAL_FAILURE
