"""
wcet_ipet.edges
===============

Edge model of one function: the set of CFG edges that become ILP variables.

Only blocks reachable from the entry take part.  A dead block would give the
solver a free cycle of flow unrelated to any real execution, so it must not
appear in the model at all.

Two kinds of virtual edge close the flow network:

* one ``ENTRY -> entry`` edge, fixed to frequency 1 by the model builder;
* one ``b -> EXIT`` edge for every reachable block ``b`` without successors.

With these, every execution path starts and ends on a virtual edge, and flow
conservation holds at every real block, including single-block functions and
functions with several return blocks.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Sequence

logger = logging.getLogger(__name__)


class VirtualNode(enum.Enum):
    """Endpoints of the virtual entry and exit edges."""

    ENTRY = "entry"
    EXIT = "exit"

    def __repr__(self) -> str:
        return f"<{self.value}>"


class Edge(NamedTuple):
    """A directed edge ``source -> target`` inside one function.

    Being a tuple, ``Edge(a, b) == (a, b)``; flow facts may reference edges
    either way.
    """

    source: Any
    target: Any

    @property
    def is_virtual(self) -> bool:
        return isinstance(self.source, VirtualNode) or isinstance(self.target, VirtualNode)

    @property
    def label(self) -> str:
        return f"{_node_label(self.source)}->{_node_label(self.target)}"

    def __repr__(self) -> str:
        return f"Edge({self.label})"


def _node_label(node: Any) -> str:
    if isinstance(node, VirtualNode):
        return node.value.upper()
    return str(getattr(node, "name", None) or node)


class EdgeSet:
    """Edges and reachable blocks of one function, with adjacency indices."""

    def __init__(self, function: Any, blocks: Sequence[Any], edges: Sequence[Edge]) -> None:
        self.function = function
        self.blocks: List[Any] = list(blocks)
        self.edges: List[Edge] = list(edges)
        self._index: Dict[Edge, int] = {e: i for i, e in enumerate(self.edges)}
        self._block_set = set(self.blocks)
        self._in: Dict[Any, List[Edge]] = {b: [] for b in self.blocks}
        self._out: Dict[Any, List[Edge]] = {b: [] for b in self.blocks}
        for e in self.edges:
            if e.source in self._out:
                self._out[e.source].append(e)
            if e.target in self._in:
                self._in[e.target].append(e)

    @property
    def entry_edge(self) -> Optional[Edge]:
        if not self.edges:
            return None
        return self.edges[0]

    @property
    def exit_edges(self) -> List[Edge]:
        return [e for e in self.edges if e.target is VirtualNode.EXIT]

    def incoming(self, block: Any) -> List[Edge]:
        return list(self._in.get(block, ()))

    def outgoing(self, block: Any) -> List[Edge]:
        return list(self._out.get(block, ()))

    def contains(self, edge: Any) -> bool:
        return edge in self._index

    def has_block(self, block: Any) -> bool:
        return block in self._block_set

    def index_of(self, edge: Any) -> int:
        return self._index[edge]

    @property
    def is_empty(self) -> bool:
        return not self.edges

    def __iter__(self) -> Iterator[Edge]:
        return iter(self.edges)

    def __len__(self) -> int:
        return len(self.edges)

    def __repr__(self) -> str:
        name = getattr(self.function, "name", self.function)
        return f"EdgeSet({name}, blocks={len(self.blocks)}, edges={len(self.edges)})"


def reachable_blocks(function: Any) -> List[Any]:
    """Blocks reachable from the entry, in depth-first discovery order."""
    entry = getattr(function, "entry", None)
    if entry is None:
        return []
    order: List[Any] = []
    visited = set()
    stack = [entry]
    while stack:
        block = stack.pop()
        if block in visited:
            continue
        visited.add(block)
        order.append(block)
        stack.extend(reversed(list(block.successors)))
    return order


def enumerate_edges(function: Any) -> EdgeSet:
    """Build the edge model of *function*.

    The entry edge always comes first.  Repeated successors (e.g. two switch
    cases jumping to the same block) collapse into one edge.
    """
    blocks = reachable_blocks(function)
    if not blocks:
        return EdgeSet(function, [], [])

    edges: List[Edge] = [Edge(VirtualNode.ENTRY, blocks[0])]
    for block in blocks:
        successors = list(dict.fromkeys(block.successors))
        if not successors:
            edges.append(Edge(block, VirtualNode.EXIT))
            continue
        for succ in successors:
            edges.append(Edge(block, succ))

    edge_set = EdgeSet(function, blocks, edges)
    logger.debug("%r", edge_set)
    return edge_set
