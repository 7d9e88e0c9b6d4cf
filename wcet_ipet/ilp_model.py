"""
wcet_ipet.ilp_model
===================

The IPET integer linear program of one function.

Variables
---------
* ``e<i>_<src>_<dst>``: traversal count of edge *i* (one per edge of the
  :class:`~wcet_ipet.edges.EdgeSet`, virtual edges included);
* ``f_<block>``: execution count of each reachable block.

All variables are integral with bounds ``[0, +inf)``.

Rows
----
``entry``          the virtual entry edge is taken exactly once;
``flow_<block>``   Σ incoming - Σ outgoing = 0;
``freq_<block>``   f_block - Σ incoming = 0;
``ff<k>``          flow fact *k*, verbatim.

Objective
---------
maximise Σ local_cost(block) · f_block, where the local cost already holds
the non-local cost of the block's call sites.

:class:`IlpModel` knows nothing about CFGs; :class:`ModelBuilder` fills it
in from an edge set, block costs and flow facts, and remembers which
variable belongs to which edge and block.
"""

from __future__ import annotations

import logging
import numbers
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence

from .edges import Edge, EdgeSet, VirtualNode
from .errors import MalformedFlowFact
from .providers import FlowFact, Relation

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic model
# ---------------------------------------------------------------------------

@dataclass
class Variable:
    name: str
    lower: int = 0
    upper: Optional[int] = None
    integer: bool = True


class Row(NamedTuple):
    name: str
    coeffs: Dict[int, int]
    relation: Relation
    bound: int


@dataclass
class IlpModel:
    """Solver-neutral ILP: variables, linear rows and a maximisation objective."""

    name: str
    variables: List[Variable] = field(default_factory=list)
    rows: List[Row] = field(default_factory=list)
    objective: Dict[int, int] = field(default_factory=dict)

    def add_variable(self, name: str, lower: int = 0, upper: Optional[int] = None) -> int:
        self.variables.append(Variable(name, lower, upper))
        return len(self.variables) - 1

    def add_row(self, name: str, coeffs: Mapping[int, int], relation: Relation, bound: int) -> None:
        for var in coeffs:
            if not 0 <= var < len(self.variables):
                raise IndexError(f"row {name!r} references unknown variable {var}")
        self.rows.append(Row(name, dict(coeffs), relation, bound))

    def set_objective(self, coeffs: Mapping[int, int]) -> None:
        self.objective = {v: c for v, c in coeffs.items() if c}

    @property
    def num_variables(self) -> int:
        return len(self.variables)

    @property
    def num_rows(self) -> int:
        return len(self.rows)

    def objective_value(self, assignment: Sequence[int]) -> int:
        return sum(c * assignment[v] for v, c in self.objective.items())

    def to_lp_format(self) -> str:
        """Render the model in lp_solve's LP text format (for debug dumps)."""
        names = [v.name for v in self.variables]

        def linear(coeffs: Mapping[int, int]) -> str:
            parts = [f"{c:+d} {names[v]}" for v, c in coeffs.items() if c]
            return " ".join(parts) if parts else "0"

        lines = [f"/* {self.name} */", "", "/* Objective function */"]
        lines.append(f"max: {linear(self.objective)};")
        lines.append("")
        lines.append("/* Constraints */")
        for row in self.rows:
            op = "=" if row.relation is Relation.EQ else row.relation.value
            lines.append(f"{row.name}: {linear(row.coeffs)} {op} {row.bound};")
        bounded = [v for v in self.variables if v.lower != 0 or v.upper is not None]
        if bounded:
            lines.append("")
            for v in bounded:
                upper = "1e30" if v.upper is None else str(v.upper)
                lines.append(f"{v.lower} <= {v.name} <= {upper};")
        ints = [v.name for v in self.variables if v.integer]
        if ints:
            lines.append("")
            lines.append(f"int {','.join(ints)};")
        return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# IPET model builder
# ---------------------------------------------------------------------------

_IDENT_RE = re.compile(r"[^A-Za-z0-9_]")


def _ident(obj: Any) -> str:
    if isinstance(obj, VirtualNode):
        return obj.value.upper()
    raw = str(getattr(obj, "name", None) or getattr(obj, "id", None) or id(obj))
    return _IDENT_RE.sub("_", raw)


def _is_int(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


class ModelBuilder:
    """Builds the IPET model of one function.

    Parameters
    ----------
    function:
        The function being modelled (used for ref checks and messages).
    edge_set:
        Its edge model (:func:`wcet_ipet.edges.enumerate_edges`).
    block_costs:
        Local cost per reachable block, call costs included.
    flow_facts:
        Extra rows from the flow-fact provider.

    After :meth:`build`, ``edge_vars`` and ``block_vars`` map edges and
    blocks to their variable indices.
    """

    def __init__(
        self,
        function: Any,
        edge_set: EdgeSet,
        block_costs: Mapping[Any, int],
        flow_facts: Sequence[FlowFact] = (),
    ) -> None:
        self.function = function
        self.edge_set = edge_set
        self.block_costs = block_costs
        self.flow_facts = list(flow_facts)
        self.edge_vars: Dict[Edge, int] = {}
        self.block_vars: Dict[Any, int] = {}
        self.dropped_terms = 0

    def build(self) -> IlpModel:
        if self.edge_set.is_empty:
            raise ValueError(f"{_ident(self.function)} has no edges to model")

        model = IlpModel(name=f"ipet_{_ident(self.function)}")
        for i, edge in enumerate(self.edge_set.edges):
            self.edge_vars[edge] = model.add_variable(
                f"e{i}_{_ident(edge.source)}_{_ident(edge.target)}"
            )
        for block in self.edge_set.blocks:
            self.block_vars[block] = model.add_variable(f"f_{_ident(block)}_{len(self.block_vars)}")

        model.set_objective(
            {self.block_vars[b]: self.block_costs[b] for b in self.edge_set.blocks}
        )
        self._add_structural_rows(model)
        self._add_flow_fact_rows(model)

        logger.debug(
            "Model %s: %d variables, %d rows (%d flow facts, %d unreachable terms dropped)",
            model.name, model.num_variables, model.num_rows,
            len(self.flow_facts), self.dropped_terms,
        )
        return model

    # ----- structure --------------------------------------------------------

    def _add_structural_rows(self, model: IlpModel) -> None:
        entry_edge = self.edge_set.entry_edge
        model.add_row("entry", {self.edge_vars[entry_edge]: 1}, Relation.EQ, 1)

        for block in self.edge_set.blocks:
            name = _ident(block)
            incoming = self.edge_set.incoming(block)
            outgoing = self.edge_set.outgoing(block)

            flow: Dict[int, int] = {}
            for e in incoming:
                var = self.edge_vars[e]
                flow[var] = flow.get(var, 0) + 1
            for e in outgoing:
                var = self.edge_vars[e]
                flow[var] = flow.get(var, 0) - 1
            model.add_row(f"flow_{name}", {v: c for v, c in flow.items() if c}, Relation.EQ, 0)

            freq = {self.block_vars[block]: 1}
            for e in incoming:
                freq[self.edge_vars[e]] = freq.get(self.edge_vars[e], 0) - 1
            model.add_row(f"freq_{name}", freq, Relation.EQ, 0)

    # ----- flow facts -------------------------------------------------------

    def _add_flow_fact_rows(self, model: IlpModel) -> None:
        for index, fact in enumerate(self.flow_facts):
            try:
                relation = Relation.coerce(fact.relation)
            except ValueError as exc:
                raise MalformedFlowFact(self.function, index, str(exc)) from exc
            if not _is_int(fact.bound):
                raise MalformedFlowFact(self.function, index, f"bound {fact.bound!r} is not an integer")

            coeffs: Dict[int, int] = {}
            for ref, coef in fact.terms:
                if not _is_int(coef):
                    raise MalformedFlowFact(
                        self.function, index, f"coefficient {coef!r} is not an integer"
                    )
                var = self._resolve_ref(index, ref)
                if var is None:
                    continue
                coeffs[var] = coeffs.get(var, 0) + int(coef)
            model.add_row(
                f"ff{index}",
                {v: c for v, c in coeffs.items() if c},
                relation,
                int(fact.bound),
            )

    def _resolve_ref(self, index: int, ref: Any) -> Optional[int]:
        """Variable of *ref*; ``None`` for parts of the CFG that never execute."""
        try:
            return self._lookup_ref(index, ref)
        except TypeError as exc:
            # unhashable ref, e.g. a list written for an edge
            raise MalformedFlowFact(
                self.function, index, f"unusable reference {ref!r}: {exc}"
            ) from exc

    def _lookup_ref(self, index: int, ref: Any) -> Optional[int]:
        if isinstance(ref, tuple):
            if len(ref) != 2:
                raise MalformedFlowFact(self.function, index, f"malformed edge reference {ref!r}")
            edge = Edge(*ref)
            if self.edge_set.contains(edge):
                return self.edge_vars[edge]
            if self._is_dead_edge(edge):
                self._drop(index, edge)
                return None
            raise MalformedFlowFact(self.function, index, f"unknown edge {edge.label}")

        if self.edge_set.has_block(ref):
            return self.block_vars[ref]
        if self._owns(ref):
            self._drop(index, ref)
            return None
        raise MalformedFlowFact(
            self.function, index, f"{_ident(ref)} is not a block of {_ident(self.function)}"
        )

    def _owns(self, block: Any) -> bool:
        return getattr(block, "function", None) is self.function

    def _is_dead_edge(self, edge: Edge) -> bool:
        """True for an edge that exists in the CFG but not in the model."""
        src, dst = edge
        if not self._owns(src) or self.edge_set.has_block(src):
            return False
        if dst is VirtualNode.EXIT:
            return not src.successors
        return dst in src.successors

    def _drop(self, index: int, ref: Any) -> None:
        self.dropped_terms += 1
        logger.debug(
            "%s: flow fact #%d references unreachable %r; term dropped",
            _ident(self.function), index, ref,
        )
