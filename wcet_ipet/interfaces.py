"""
wcet_ipet.interfaces
====================

Structural contracts between the engine and the outside world.

The engine never owns the program it analyses.  It reads functions, blocks
and call sites through the small protocols below, asks a ``CostProvider``
what each block and external call costs, and asks a ``FlowFactProvider``
for extra linear constraints.  Anything that has the right attributes can
be analysed; :mod:`wcet_ipet.ctrlflow_graph` is merely one such host model.
"""

from __future__ import annotations

from typing import (
    Any,
    Hashable,
    Iterable,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)


# ═══════════════════════════════════════════════════════════════════════════
# HOST PROGRAM
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class BlockLike(Protocol):
    """A basic block.  Identity (hash/eq) is the block's identity."""

    @property
    def function(self) -> Any:
        """The function that owns this block."""
        ...

    @property
    def successors(self) -> Sequence[Any]:
        """Successor blocks, in branch order."""
        ...

    @property
    def call_sites(self) -> Sequence[Any]:
        """Call sites located in this block."""
        ...


@runtime_checkable
class FunctionLike(Protocol):
    """A function: a CFG with one entry, or a body-less declaration."""

    @property
    def entry(self) -> Optional[Any]:
        ...

    @property
    def blocks(self) -> Sequence[Any]:
        ...

    @property
    def is_declaration(self) -> bool:
        ...


@runtime_checkable
class CallSiteLike(Protocol):
    """A call instruction inside a block."""

    @property
    def block(self) -> Any:
        ...


@runtime_checkable
class CallGraphLike(Protocol):
    """Resolves call sites to callees."""

    def callees_of(self, call_site: Hashable) -> Iterable[Any]:
        """Functions the call site may invoke (empty when unknown)."""
        ...

    def has_unknown_target(self, call_site: Hashable) -> bool:
        """True when the call site may reach something not in the graph."""
        ...


# ═══════════════════════════════════════════════════════════════════════════
# PROVIDERS
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class CostProvider(Protocol):
    """Supplies non-negative execution costs.

    ``block_cost`` is the local cost of one execution of *block*, excluding
    anything spent inside callees.  ``call_cost`` is only consulted for
    calls the engine cannot analyse itself: declarations (``callee`` is the
    external function) and unresolved targets (``callee`` is ``None``).
    """

    def block_cost(self, block: Any) -> int:
        ...

    def call_cost(self, call_site: Any, callee: Optional[Any]) -> int:
        ...


@runtime_checkable
class FlowFactProvider(Protocol):
    """Supplies linear flow facts (``wcet_ipet.providers.FlowFact``)."""

    def flow_facts(self, function: Any) -> Sequence[Any]:
        ...
