"""
wcet_ipet.ipet
==============

The IPET engine.

``Ipet.analyze(F)`` walks the call graph depth-first below ``F``: every
analysable callee is analysed (or taken from the cache) first, so that its
WCET is known when ``F``'s model is built.  Then ``F``'s edge model, block
costs and flow facts become one ILP, the solver maximises it, and the
result is cached.

Each function carries a tri-state marker (``NOT_STARTED``, ``IN_PROGRESS``,
``DONE``).  Meeting an ``IN_PROGRESS`` function again means the walk went
round a cycle: recursion is reported, never analysed.  Every function on
that cycle ends up ``DONE`` with :class:`~wcet_ipet.errors.RecursionDetected`;
functions merely calling into the cycle fail with
:class:`~wcet_ipet.errors.DependencyFailed`.  Unrelated functions are not
affected.

Typical usage::

    from wcet_ipet import Ipet, build_callgraph

    ipet = Ipet(build_callgraph(functions), costs, flow_facts)
    record = ipet.analyze(main)
    if record.ok:
        print(record.wcet, ipet.get_wc_exec_frequency(loop_header))
    else:
        print(record.error)
"""

from __future__ import annotations

import logging
import numbers
from collections import OrderedDict
from typing import Any, Dict, List, Mapping, Optional, Type

from .config import DEFAULT_CONFIG, IpetConfig
from .edges import Edge, EdgeSet, enumerate_edges
from .errors import (
    DependencyFailed,
    InfeasibleModel,
    IpetError,
    MalformedFlowFact,
    NoResultError,
    RecursionDetected,
    SolverFailure,
    SolverNumericalFailure,
    UnboundedModel,
    display_name,
)
from .ilp_model import ModelBuilder
from .interfaces import CallGraphLike, CostProvider, FlowFactProvider
from .results import AnalysisRecord, AnalysisStatus, ResultCache
from .solver import SolveResult, SolverAdapter, SolveStatus

logger = logging.getLogger(__name__)

_SOLVER_ERRORS: Dict[SolveStatus, Type[SolverFailure]] = {
    SolveStatus.INFEASIBLE: InfeasibleModel,
    SolveStatus.UNBOUNDED: UnboundedModel,
    SolveStatus.NUMERICAL_FAILURE: SolverNumericalFailure,
}


def _is_external(function: Any) -> bool:
    return bool(getattr(function, "is_declaration", False))


def _checked_cost(value: Any, what: str) -> int:
    """Provider costs must be non-negative integers."""
    if not isinstance(value, numbers.Integral) or isinstance(value, bool) or value < 0:
        raise ValueError(f"cost of {what} must be a non-negative integer, got {value!r}")
    return int(value)


class Ipet:
    """WCET analysis by implicit path enumeration.

    Parameters
    ----------
    callgraph:
        Resolves call sites to callees (``callees_of``,
        ``has_unknown_target``).  :meth:`analyze_all` additionally needs
        ``bottom_up_order`` (see :class:`wcet_ipet.callgraph.CallGraph`).
    cost_provider:
        Local block costs and costs of calls the engine cannot analyse.
    flow_fact_provider:
        Loop bounds and other linear facts per function.
    solver:
        Defaults to a :class:`SolverAdapter` configured from *config*.
    config:
        Engine settings; :data:`wcet_ipet.config.DEFAULT_CONFIG` if omitted.
    """

    def __init__(
        self,
        callgraph: CallGraphLike,
        cost_provider: CostProvider,
        flow_fact_provider: FlowFactProvider,
        solver: Optional[SolverAdapter] = None,
        config: Optional[IpetConfig] = None,
    ) -> None:
        self.callgraph = callgraph
        self.cost_provider = cost_provider
        self.flow_fact_provider = flow_fact_provider
        self.config = config or DEFAULT_CONFIG
        self.solver = solver if solver is not None else SolverAdapter(self.config)
        self._cache = ResultCache()
        self._stack: List[Any] = []
        # function -> first cycle through it found in the current walk
        self._cycles: Dict[Any, List[Any]] = {}

    # ═══════════════════════════════════════════════════════════════════════
    # Analysis
    # ═══════════════════════════════════════════════════════════════════════

    def analyze(self, function: Any) -> AnalysisRecord:
        """Run (or fetch) the IPET analysis of *function*.

        Returns the function's ``DONE`` record; check ``record.ok``.  The
        only exception is a cycle hit during the walk, which returns a
        transient failure record and leaves all stored records untouched.
        """
        record = self._cache.get(function)
        if record.done:
            logger.debug("Cache hit for %s", display_name(function))
            return record
        if record.status is AnalysisStatus.IN_PROGRESS:
            cycle = self._stack[self._stack.index(function):]
            for member in cycle:
                self._cycles.setdefault(member, cycle)
            error = RecursionDetected(function, cycle)
            logger.warning("%s", error)
            return AnalysisRecord.failure(function, error)

        self._cache.mark_in_progress(function)
        self._stack.append(function)
        try:
            record = self._analyze_function(function)
        except BaseException:
            # provider or programming error: forget the half-done state
            self._cache.clear(function)
            raise
        finally:
            self._stack.pop()
            if not self._stack:
                self._cycles.clear()

        self._cache.store(record)
        if record.ok:
            logger.info("WCET of %s: %d", display_name(function), record.wcet)
        else:
            logger.warning("Analysis of %s failed: %s", display_name(function), record.error)
        return record

    def analyze_all(self, root: Any = None) -> "OrderedDict[Any, AnalysisRecord]":
        """Analyse every function bottom-up over the call graph's SCCs.

        With *root*, only *root* and its transitive callees are analysed.
        Declarations are skipped.
        """
        results: "OrderedDict[Any, AnalysisRecord]" = OrderedDict()
        for function in self.callgraph.bottom_up_order(root):
            if _is_external(function):
                continue
            results[function] = self.analyze(function)
        return results

    def _analyze_function(self, function: Any) -> AnalysisRecord:
        edge_set = enumerate_edges(function)

        error = self._analyze_callees(function, edge_set)
        if error is not None:
            return AnalysisRecord.failure(function, error)

        if edge_set.is_empty:
            logger.debug("%s has no reachable code; WCET is 0", display_name(function))
            return AnalysisRecord.success(
                function, 0, {b: 0 for b in getattr(function, "blocks", ())}, {}, {}
            )

        block_costs = {b: self.get_cost(b) for b in edge_set.blocks}
        facts = list(self.flow_fact_provider.flow_facts(function))
        builder = ModelBuilder(function, edge_set, block_costs, facts)
        try:
            model = builder.build()
        except MalformedFlowFact as exc:
            return AnalysisRecord.failure(function, exc)

        if self.config.dump_problems:
            logger.debug("ILP for %s:\n%s", display_name(function), model.to_lp_format())

        result = self.solver.solve(model)
        if not result.ok:
            error_cls = _SOLVER_ERRORS[result.status]
            return AnalysisRecord.failure(function, error_cls(function, result.status, result.message))

        try:
            block_freq, edge_freq = self._read_results(function, builder, edge_set, result)
        except SolverNumericalFailure as exc:
            return AnalysisRecord.failure(function, exc)

        wcet = sum(block_costs[b] * block_freq[b] for b in edge_set.blocks)
        if result.objective is not None and abs(result.objective - wcet) > 0.5:
            logger.debug(
                "%s: solver objective %.3f differs from integral WCET %d",
                display_name(function), result.objective, wcet,
            )
        for block in getattr(function, "blocks", ()):
            block_freq.setdefault(block, 0)
        return AnalysisRecord.success(function, wcet, block_freq, edge_freq, block_costs)

    def _analyze_callees(self, function: Any, edge_set: EdgeSet) -> Optional[IpetError]:
        """Analyse the callees of all reachable call sites.

        Every callee is visited even after a failure, so that all members
        of a cycle get marked.  A recursion error involving *function*
        takes precedence over plain dependency failures.  A function lies
        on a cycle if any cycle found during this walk passed through it,
        not only the one reported by the failing callee.
        """
        recursion: Optional[RecursionDetected] = None
        dependency: Optional[DependencyFailed] = None
        visited = set()
        for block in edge_set.blocks:
            for call_site in block.call_sites:
                for callee in self.callgraph.callees_of(call_site):
                    if callee in visited or _is_external(callee):
                        continue
                    visited.add(callee)
                    record = self.analyze(callee)
                    if record.ok:
                        continue
                    cause = record.error
                    if isinstance(cause, RecursionDetected) and function in self._cycles:
                        recursion = recursion or RecursionDetected(function, self._cycles[function])
                    elif isinstance(cause, RecursionDetected) and cause.involves(function):
                        recursion = recursion or RecursionDetected(function, cause.cycle)
                    elif dependency is None:
                        dependency = DependencyFailed(function, callee, cause)
        return recursion or dependency

    def _read_results(
        self,
        function: Any,
        builder: ModelBuilder,
        edge_set: EdgeSet,
        result: SolveResult,
    ):
        tolerance = self.config.integrality_tolerance
        values: List[int] = []
        for x in result.assignment:
            rounded = round(x)
            if abs(x - rounded) > tolerance or rounded < 0:
                raise SolverNumericalFailure(
                    function, result.status, f"non-integral or negative value {x!r}"
                )
            values.append(int(rounded))

        edge_freq = {e: values[v] for e, v in builder.edge_vars.items()}
        block_freq = {b: values[v] for b, v in builder.block_vars.items()}
        if self.config.verify_solutions:
            self._verify_flow(function, edge_set, edge_freq, block_freq)
        return block_freq, edge_freq

    @staticmethod
    def _verify_flow(
        function: Any,
        edge_set: EdgeSet,
        edge_freq: Mapping[Edge, int],
        block_freq: Mapping[Any, int],
    ) -> None:
        if edge_freq[edge_set.entry_edge] != 1:
            raise SolverNumericalFailure(
                function, SolveStatus.NUMERICAL_FAILURE, "entry edge frequency is not 1"
            )
        for block in edge_set.blocks:
            inflow = sum(edge_freq[e] for e in edge_set.incoming(block))
            outflow = sum(edge_freq[e] for e in edge_set.outgoing(block))
            if not inflow == block_freq[block] == outflow:
                raise SolverNumericalFailure(
                    function,
                    SolveStatus.NUMERICAL_FAILURE,
                    f"flow conservation violated at {display_name(block)}: "
                    f"in={inflow} freq={block_freq[block]} out={outflow}",
                )

    # ═══════════════════════════════════════════════════════════════════════
    # Costs
    # ═══════════════════════════════════════════════════════════════════════

    def get_cost(self, block: Any) -> int:
        """Local cost of *block* including the non-local cost of its calls.

        Raises ``ValueError`` when the cost provider returns a negative or
        non-integral cost.
        """
        cost = _checked_cost(self.cost_provider.block_cost(block), display_name(block))
        for call_site in block.call_sites:
            cost += self.get_nonlocal_cost(call_site)
        return cost

    def get_nonlocal_cost(self, call_site: Any, callee: Any = None) -> int:
        """Cost of executing *call_site* once, callee time included.

        With *callee*, the cost of that one target.  Otherwise the maximum
        over all targets: cached WCETs of analysed callees, cost-provider
        costs of declarations, and the provider's unresolved-call cost when
        the call site may reach unknown code.  Analysed callees must be
        ``DONE`` successfully; otherwise ``NoResultError`` is raised.
        """
        if callee is not None:
            return self._callee_cost(call_site, callee)

        callees = list(self.callgraph.callees_of(call_site))
        candidates = [self._callee_cost(call_site, c) for c in callees]
        if not callees or self.callgraph.has_unknown_target(call_site):
            candidates.append(
                _checked_cost(
                    self.cost_provider.call_cost(call_site, None),
                    f"unresolved call {display_name(call_site)}",
                )
            )
        return max(candidates)

    def _callee_cost(self, call_site: Any, callee: Any) -> int:
        if _is_external(callee):
            return _checked_cost(
                self.cost_provider.call_cost(call_site, callee),
                f"call {display_name(call_site)} -> {display_name(callee)}",
            )
        record = self._cache.get(callee)
        if not record.ok:
            raise NoResultError(
                callee,
                f"callee WCET needed for call site {display_name(call_site)} "
                f"is not available ({record.status.value})",
            )
        return record.wcet

    # ═══════════════════════════════════════════════════════════════════════
    # Queries
    # ═══════════════════════════════════════════════════════════════════════

    def get_record(self, function: Any) -> AnalysisRecord:
        return self._cache.get(function)

    def records(self) -> Dict[Any, AnalysisRecord]:
        return self._cache.records()

    def has_wcet(self, function: Any) -> bool:
        return self._cache.get(function).ok

    def in_progress(self, function: Any) -> bool:
        return self._cache.status(function) is AnalysisStatus.IN_PROGRESS

    def get_wcet(self, function: Any) -> Optional[int]:
        """WCET of *function* including callees, or ``None`` without result."""
        record = self._cache.get(function)
        if not record.ok:
            logger.warning("No WCET available for %s (%r)", display_name(function), record)
            return None
        return record.wcet

    def get_wc_exec_frequency(self, block: Any) -> Optional[int]:
        """Execution count of *block* on the worst-case path.

        ``None`` if the block's function has no successful result.
        """
        function = getattr(block, "function", None)
        record = self._cache.get(function)
        if not record.ok:
            logger.warning(
                "No execution frequency available for %s (%r)", display_name(block), record
            )
            return None
        return record.block_frequencies.get(block, 0)

    def get_wc_edge_frequencies(self, function: Any) -> Optional[Mapping[Edge, int]]:
        record = self._cache.get(function)
        if not record.ok:
            logger.warning("No edge frequencies available for %s (%r)", display_name(function), record)
            return None
        return record.edge_frequencies

    # ═══════════════════════════════════════════════════════════════════════
    # Invalidation
    # ═══════════════════════════════════════════════════════════════════════

    def clear_results(self, function: Any) -> None:
        """Forget *function*'s result so the next ``analyze`` recomputes it.

        Callers that already used the old WCET keep theirs; clear them too
        if they have to pick up the change.
        """
        if self.in_progress(function):
            raise RuntimeError(f"cannot clear {display_name(function)} while it is being analysed")
        self._cache.clear(function)
        logger.debug("Cleared results of %s", display_name(function))

    def reset(self) -> None:
        """Forget all results."""
        if self._stack:
            raise RuntimeError("cannot reset while an analysis is running")
        self._cache.clear_all()

    def __repr__(self) -> str:
        done = sum(1 for r in self._cache.records().values() if r.done)
        return f"Ipet(analysed={done})"
