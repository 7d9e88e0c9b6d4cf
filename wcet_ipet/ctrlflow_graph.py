"""
wcet_ipet.ctrlflow_graph
========================

A small in-memory program representation the engine can analyse directly.

Real deployments usually wrap a compiler's IR instead; anything satisfying
the protocols in :mod:`wcet_ipet.interfaces` works.  This module is what the
test-suite and quick experiments use.

Public API
----------
    Function         - a function: ordered basic blocks, first one is entry
    BasicBlock       - a basic block with successor blocks and call sites
    CallSite         - a call instruction inside a block
    reset_node_counter - reset id numbering (deterministic tests)

Typical usage::

    from wcet_ipet.ctrlflow_graph import Function

    f = Function("f")
    entry, loop, done = f.add_block("entry"), f.add_block("L"), f.add_block("exit")
    entry.add_successor(loop)
    loop.add_successor(loop, done)
    g = Function("g")                       # declaration: no blocks
    loop.add_call(g)

Implementation notes
--------------------
* Blocks and call sites hash by a per-process numeric id and compare by
  identity, so they can be used as dictionary keys in cost tables and
  flow facts.
* Successor lists keep insertion order; duplicates are kept here and
  collapsed by the edge model.
"""

from __future__ import annotations

import itertools
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

# ---------------------------------------------------------------------------
# Node ids
# ---------------------------------------------------------------------------

_id_counter = itertools.count()


def _fresh_node_id() -> int:
    return next(_id_counter)


def reset_node_counter() -> None:
    """Reset the global node-id counter (for deterministic test names).

    Ids only name and hash nodes; equality is identity, so nodes created
    before and after a reset never compare equal.
    """
    global _id_counter
    _id_counter = itertools.count()


# ---------------------------------------------------------------------------
# CallSite
# ---------------------------------------------------------------------------

class CallSite:
    """A call instruction inside a basic block.

    Attributes
    ----------
    id : int
        Unique (per-process) numeric identifier.
    name : str
        Label used in reports.
    block : BasicBlock
        The block containing the call.
    targets : tuple[Function, ...]
        Statically known callees.  Empty together with ``unresolved`` for
        calls the front end could not resolve.
    indirect : bool
        Call through a pointer; ``targets`` is a conservative candidate set.
    unresolved : bool
        The call may reach functions outside ``targets``.
    """

    __slots__ = ("id", "name", "block", "targets", "indirect", "unresolved")

    def __init__(
        self,
        block: "BasicBlock",
        targets: Sequence["Function"] = (),
        indirect: bool = False,
        unresolved: bool = False,
        name: Optional[str] = None,
    ) -> None:
        self.id: int = _fresh_node_id()
        self.block = block
        self.targets: Tuple["Function", ...] = tuple(targets)
        self.indirect = indirect or len(self.targets) > 1
        self.unresolved = unresolved or not self.targets
        self.name: str = name or f"{block.name}.call{len(block.call_sites)}"

    def __repr__(self) -> str:
        callees = ", ".join(t.name for t in self.targets) or "?"
        return f"CallSite({self.name!r} -> {callees})"

    def __hash__(self) -> int:
        return self.id

    def __eq__(self, other) -> bool:
        return self is other


# ---------------------------------------------------------------------------
# BasicBlock
# ---------------------------------------------------------------------------

class BasicBlock:
    """A basic block.

    Attributes
    ----------
    id : int
        Unique (per-process) numeric identifier.
    name : str
        Human-readable label.
    function : Function
        Owning function.
    successors : list[BasicBlock]
        Successor blocks in branch order.
    predecessors : list[BasicBlock]
        Blocks listing this one as successor.
    call_sites : list[CallSite]
        Calls made by this block, in instruction order.
    """

    __slots__ = ("id", "name", "function", "successors", "predecessors", "call_sites")

    def __init__(self, function: "Function", name: Optional[str] = None) -> None:
        self.id: int = _fresh_node_id()
        self.function = function
        self.name: str = name or f"BB{self.id}"
        self.successors: List[BasicBlock] = []
        self.predecessors: List[BasicBlock] = []
        self.call_sites: List[CallSite] = []

    def add_successor(self, *blocks: "BasicBlock") -> None:
        for block in blocks:
            if block.function is not self.function:
                raise ValueError(
                    f"cannot branch from {self.function.name}:{self.name} "
                    f"to {block.function.name}:{block.name}"
                )
            self.successors.append(block)
            block.predecessors.append(self)

    def add_call(
        self,
        *targets: "Function",
        indirect: bool = False,
        unresolved: bool = False,
        name: Optional[str] = None,
    ) -> CallSite:
        """Append a call site.  No targets means an unresolved call."""
        site = CallSite(self, targets, indirect=indirect, unresolved=unresolved, name=name)
        self.call_sites.append(site)
        return site

    @property
    def is_exit(self) -> bool:
        return not self.successors

    def __repr__(self) -> str:
        return f"BasicBlock({self.function.name}:{self.name})"

    def __hash__(self) -> int:
        return self.id

    def __eq__(self, other) -> bool:
        return self is other


# ---------------------------------------------------------------------------
# Function
# ---------------------------------------------------------------------------

class Function:
    """A function.  Without blocks it is a declaration (external function).

    Attributes
    ----------
    id : int
        Unique (per-process) numeric identifier.
    name : str
    blocks : list[BasicBlock]
        All blocks, reachable or not.
    entry : BasicBlock or None
        The entry block; defaults to the first block added.
    """

    def __init__(self, name: str) -> None:
        self.id: int = _fresh_node_id()
        self.name = name
        self.blocks: List[BasicBlock] = []
        self._entry: Optional[BasicBlock] = None

    # ----- construction -----------------------------------------------------

    def add_block(self, name: Optional[str] = None) -> BasicBlock:
        block = BasicBlock(self, name)
        self.blocks.append(block)
        if self._entry is None:
            self._entry = block
        return block

    def set_entry(self, block: BasicBlock) -> None:
        if block.function is not self:
            raise ValueError(f"{block!r} does not belong to {self.name}")
        self._entry = block

    # ----- queries ----------------------------------------------------------

    @property
    def entry(self) -> Optional[BasicBlock]:
        return self._entry

    @property
    def is_declaration(self) -> bool:
        return not self.blocks

    def block(self, name: str) -> BasicBlock:
        """Look a block up by name."""
        for b in self.blocks:
            if b.name == name:
                return b
        raise KeyError(f"{self.name} has no block named {name!r}")

    def call_sites(self) -> Iterator[CallSite]:
        for b in self.blocks:
            yield from b.call_sites

    def reachable_from(self, start: BasicBlock) -> Set[BasicBlock]:
        """Return the set of blocks reachable from *start*."""
        visited: Set[BasicBlock] = set()
        worklist = [start]
        while worklist:
            n = worklist.pop()
            if n in visited:
                continue
            visited.add(n)
            worklist.extend(n.successors)
        return visited

    def dominators(self) -> Dict[BasicBlock, Set[BasicBlock]]:
        """Dominator sets of the reachable blocks (iterative algorithm)."""
        if self.entry is None:
            return {}
        reachable = self.reachable_from(self.entry)
        nodes = [b for b in self.blocks if b in reachable]
        dom: Dict[BasicBlock, Set[BasicBlock]] = {}
        dom[self.entry] = {self.entry}
        for n in nodes:
            if n is not self.entry:
                dom[n] = set(reachable)
        changed = True
        while changed:
            changed = False
            for n in nodes:
                if n is self.entry:
                    continue
                preds = [p for p in n.predecessors if p in reachable]
                if not preds:
                    new_dom = {n}
                else:
                    new_dom = set.intersection(*(dom[p] for p in preds)) | {n}
                if new_dom != dom[n]:
                    dom[n] = new_dom
                    changed = True
        return dom

    def back_edges(self) -> List[Tuple[BasicBlock, BasicBlock]]:
        """Edges whose target dominates their source (loop back-edges)."""
        dom = self.dominators()
        result = []
        for src in dom:
            for dst in dict.fromkeys(src.successors):
                if dst in dom[src]:
                    result.append((src, dst))
        return result

    def natural_loops(self) -> Dict[BasicBlock, Set[BasicBlock]]:
        """Map each loop header to the blocks of its natural loop.

        Back-edges sharing a header are merged into one loop.
        """
        dom = self.dominators()
        loops: Dict[BasicBlock, Set[BasicBlock]] = {}
        for src, header in self.back_edges():
            body = loops.setdefault(header, {header})
            stack = [src]
            while stack:
                n = stack.pop()
                if n in body:
                    continue
                body.add(n)
                stack.extend(p for p in n.predecessors if p in dom)
        return loops

    def __repr__(self) -> str:
        kind = "declaration" if self.is_declaration else f"{len(self.blocks)} blocks"
        return f"Function({self.name!r}, {kind})"

    def __hash__(self) -> int:
        return self.id

    def __eq__(self, other) -> bool:
        return self is other
