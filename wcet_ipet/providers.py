"""
wcet_ipet.providers
===================

Flow facts and ready-made implementations of the two provider contracts.

Flow facts
----------
A :class:`FlowFact` is one linear row ``Σ coef · freq(ref)  REL  bound``.
A *ref* is either a block (its execution count) or an edge (its traversal
count), written as :class:`wcet_ipet.edges.Edge` or a plain ``(src, dst)``
tuple; ``VirtualNode.ENTRY`` / ``VirtualNode.EXIT`` may appear in edges.

Typical facts::

    FlowFact.upper_bound((loop, loop), 9)                # back-edge taken <= 9 times
    loop_bound_fact(f, header, 10)                     # header <= 10 per loop entry
    FlowFact.of({then_blk: 1, else_blk: 1}, "<=", 1)   # mutual exclusion

Cost providers
--------------
``TableCostProvider``     dict lookups with optional defaults
``CallableCostProvider``  two plain callables

Flow-fact providers
-------------------
``StaticFlowFactProvider``  facts registered per function
``NullFlowFactProvider``    no facts at all
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from .edges import Edge, VirtualNode

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# FLOW FACTS
# ═══════════════════════════════════════════════════════════════════════════

class Relation(enum.Enum):
    """Comparison operator of a flow-fact row."""

    LE = "<="
    EQ = "=="
    GE = ">="

    @classmethod
    def coerce(cls, value: Union["Relation", str]) -> "Relation":
        """Accept a ``Relation`` or one of its common spellings."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            rel = _RELATION_SPELLINGS.get(value.strip().lower())
            if rel is not None:
                return rel
        raise ValueError(f"unknown relation {value!r}")


_RELATION_SPELLINGS: Dict[str, Relation] = {
    "<=": Relation.LE, "≤": Relation.LE, "le": Relation.LE,
    "=": Relation.EQ, "==": Relation.EQ, "eq": Relation.EQ,
    ">=": Relation.GE, "≥": Relation.GE, "ge": Relation.GE,
}

Ref = Any
Terms = Union[Mapping[Ref, int], Iterable[Tuple[Ref, int]]]


@dataclass(frozen=True)
class FlowFact:
    """A linear constraint over block / edge frequencies of one function.

    Attributes
    ----------
    terms : tuple[(ref, coefficient), ...]
        Left-hand side.  A ref appearing twice has its coefficients summed.
    relation : Relation
        ``<=``, ``==`` or ``>=``.  Strings are accepted and checked when
        the model is built.
    bound : int
        Right-hand side.
    origin : str
        Who supplied the fact (``"user"``, ``"llvm"``, ``"trace"``, …).
    description : str
        Free text shown in debug dumps.
    """

    terms: Tuple[Tuple[Ref, int], ...]
    relation: Union[Relation, str]
    bound: int
    origin: str = "user"
    description: str = ""

    @classmethod
    def of(
        cls,
        terms: Terms,
        relation: Union[Relation, str],
        bound: int,
        origin: str = "user",
        description: str = "",
    ) -> "FlowFact":
        items = terms.items() if isinstance(terms, Mapping) else terms
        return cls(tuple((_as_ref(r), c) for r, c in items), relation, bound, origin, description)

    # ----- common shapes ------------------------------------------------------

    @classmethod
    def upper_bound(cls, ref: Ref, bound: int, **meta: str) -> "FlowFact":
        """``freq(ref) <= bound``"""
        return cls.of([(ref, 1)], Relation.LE, bound, **meta)

    @classmethod
    def loop_bound(
        cls,
        header_refs: Sequence[Ref],
        entry_refs: Sequence[Ref],
        bound: int,
        **meta: str,
    ) -> "FlowFact":
        """Loop header bound relative to how often the loop is entered.

        ``Σ freq(header_refs) <= bound · Σ freq(entry_refs)``
        """
        terms: List[Tuple[Ref, int]] = [(r, 1) for r in header_refs]
        terms.extend((r, -bound) for r in entry_refs)
        return cls.of(terms, Relation.LE, 0, **meta)

    @classmethod
    def infeasible(cls, ref: Ref, **meta: str) -> "FlowFact":
        """``freq(ref) == 0``"""
        return cls.of([(ref, 1)], Relation.EQ, 0, **meta)

    @classmethod
    def exclusive(cls, refs: Sequence[Ref], **meta: str) -> "FlowFact":
        """At most one of *refs* executes, at most once."""
        return cls.of([(r, 1) for r in refs], Relation.LE, 1, **meta)

    def __str__(self) -> str:
        lhs = " + ".join(f"{c}*{_ref_label(r)}" for r, c in self.terms) or "0"
        rel = self.relation.value if isinstance(self.relation, Relation) else self.relation
        return f"{lhs} {rel} {self.bound}"


def _as_ref(ref: Ref) -> Ref:
    if isinstance(ref, tuple) and not isinstance(ref, Edge) and len(ref) == 2:
        return Edge(*ref)
    return ref


def _ref_label(ref: Ref) -> str:
    if isinstance(ref, Edge):
        return f"[{ref.label}]"
    return str(getattr(ref, "name", None) or ref)


def loop_bound_fact(function: Any, header: Any, bound: int, **meta: str) -> FlowFact:
    """Bound the natural loop headed by *header* to *bound* header executions
    per entry into the loop.

    Entry edges are the header's incoming edges from outside the loop, plus
    the virtual entry edge when *header* is the function entry.  Requires a
    host function providing ``natural_loops()`` (see
    :class:`wcet_ipet.ctrlflow_graph.Function`).
    """
    loops = function.natural_loops()
    if header not in loops:
        raise ValueError(f"{_ref_label(header)} is not a loop header in {_ref_label(function)}")
    body = loops[header]
    entries: List[Ref] = [
        Edge(pred, header) for pred in dict.fromkeys(header.predecessors) if pred not in body
    ]
    if header is function.entry:
        entries.append(Edge(VirtualNode.ENTRY, header))
    meta.setdefault("description", f"loop {_ref_label(header)} max {bound}")
    return FlowFact.loop_bound([header], entries, bound, **meta)


# ═══════════════════════════════════════════════════════════════════════════
# COST PROVIDERS
# ═══════════════════════════════════════════════════════════════════════════

class TableCostProvider:
    """Costs looked up in dictionaries.

    ``call_costs`` keys may be a ``(call_site, callee)`` pair, a call site
    or a callee function; the most specific match wins.  Unresolved calls
    are looked up with ``callee=None``.  A missing entry falls back to the
    matching default, or raises ``KeyError`` when that default is ``None``.
    """

    def __init__(
        self,
        block_costs: Optional[Mapping[Any, int]] = None,
        call_costs: Optional[Mapping[Any, int]] = None,
        default_block_cost: Optional[int] = 0,
        default_call_cost: Optional[int] = None,
    ) -> None:
        self.block_costs: Dict[Any, int] = dict(block_costs or {})
        self.call_costs: Dict[Any, int] = dict(call_costs or {})
        self.default_block_cost = default_block_cost
        self.default_call_cost = default_call_cost

    def block_cost(self, block: Any) -> int:
        if block in self.block_costs:
            return self.block_costs[block]
        if self.default_block_cost is None:
            raise KeyError(f"no cost for block {_ref_label(block)}")
        return self.default_block_cost

    def call_cost(self, call_site: Any, callee: Optional[Any]) -> int:
        for key in ((call_site, callee), call_site, callee):
            if key is not None and key in self.call_costs:
                return self.call_costs[key]
        if self.default_call_cost is None:
            raise KeyError(
                f"no cost for call {_ref_label(call_site)} -> "
                f"{_ref_label(callee) if callee is not None else '<unknown>'}"
            )
        return self.default_call_cost

    def set_block_cost(self, block: Any, cost: int) -> None:
        self.block_costs[block] = cost


class CallableCostProvider:
    """Costs computed by two callables ``block_fn(block)`` and
    ``call_fn(call_site, callee_or_None)``."""

    def __init__(
        self,
        block_fn: Callable[[Any], int],
        call_fn: Callable[[Any, Optional[Any]], int],
    ) -> None:
        self._block_fn = block_fn
        self._call_fn = call_fn

    def block_cost(self, block: Any) -> int:
        return self._block_fn(block)

    def call_cost(self, call_site: Any, callee: Optional[Any]) -> int:
        return self._call_fn(call_site, callee)


# ═══════════════════════════════════════════════════════════════════════════
# FLOW-FACT PROVIDERS
# ═══════════════════════════════════════════════════════════════════════════

class StaticFlowFactProvider:
    """Flow facts registered up front, per function."""

    def __init__(self, facts: Optional[Mapping[Any, Iterable[FlowFact]]] = None) -> None:
        self._facts: Dict[Any, List[FlowFact]] = {}
        for function, items in (facts or {}).items():
            self.add(function, *items)

    def add(self, function: Any, *facts: FlowFact) -> None:
        self._facts.setdefault(function, []).extend(facts)

    def clear(self, function: Any) -> None:
        self._facts.pop(function, None)

    def flow_facts(self, function: Any) -> Sequence[FlowFact]:
        return tuple(self._facts.get(function, ()))


class NullFlowFactProvider:
    """Supplies no flow facts.  Only loop-free functions stay bounded."""

    def flow_facts(self, function: Any) -> Sequence[FlowFact]:
        return ()
