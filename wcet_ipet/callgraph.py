"""
wcet_ipet.callgraph
===================

Interprocedural call graph used to order and drive the IPET analysis.

The call graph is a directed graph where:
- **Nodes** are functions (plus a synthetic sink for unresolved calls).
- **Edges** represent call relationships, annotated with the call site and
  the resolution method.

Resolution methods
------------------
``DIRECT``
    The call site has exactly one statically known callee.
``INDIRECT``
    The call goes through a pointer; the callee is one of a conservative
    candidate set, each candidate gets its own edge.
``UNRESOLVED``
    Part of the target set is unknown.  An edge to the synthetic UNKNOWN
    node is created; the cost model has to bound such calls.

Public API
----------
    CallGraphNode       - a node in the call graph
    CallGraphEdge       - a directed edge (call site -> callee)
    CallGraph           - the whole-program call graph
    build_callgraph     - build from host functions
    CallResolutionKind  - enum of resolution methods

Typical usage::

    from wcet_ipet.callgraph import build_callgraph

    cg = build_callgraph(functions)
    for scc in cg.strongly_connected_components():
        if len(scc) > 1:
            print("mutual recursion:", [n.name for n in scc])
    order = cg.bottom_up_order()
"""

from __future__ import annotations

import enum
import logging
from collections import OrderedDict, defaultdict, deque
from typing import (
    Any,
    Deque,
    Dict,
    Hashable,
    Iterable,
    List,
    Optional,
    Set,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Resolution kinds
# ---------------------------------------------------------------------------

class CallResolutionKind(enum.Enum):
    """How a call edge was resolved."""

    DIRECT     = "direct"
    INDIRECT   = "indirect"
    UNRESOLVED = "unresolved"


# ---------------------------------------------------------------------------
# Node kinds
# ---------------------------------------------------------------------------

class NodeKind(enum.Enum):
    """Classification of a call-graph node."""

    FUNCTION = "function"      # has a body, analysed with IPET
    EXTERNAL = "external"      # declaration only, costed by the CostProvider
    UNKNOWN  = "unknown"       # synthetic sink for unresolved calls


# ---------------------------------------------------------------------------
# CallGraphNode
# ---------------------------------------------------------------------------

class CallGraphNode:
    """A node in the call graph.

    Attributes
    ----------
    function : object or None
        The host function (``None`` for the UNKNOWN sink).
    name : str
        Human-readable name of the function.
    kind : NodeKind
        What this node represents.
    out_edges : list[CallGraphEdge]
        Outgoing call edges (this function calls …).
    in_edges : list[CallGraphEdge]
        Incoming call edges (… calls this function).
    """

    __slots__ = ("function", "name", "kind", "out_edges", "in_edges")

    def __init__(self, function: Any, name: str, kind: NodeKind = NodeKind.FUNCTION) -> None:
        self.function = function
        self.name: str = name
        self.kind: NodeKind = kind
        self.out_edges: List[CallGraphEdge] = []
        self.in_edges: List[CallGraphEdge] = []

    @property
    def callees(self) -> List[CallGraphNode]:
        return [e.callee for e in self.out_edges]

    @property
    def callers(self) -> List[CallGraphNode]:
        return [e.caller for e in self.in_edges]

    @property
    def is_leaf(self) -> bool:
        return len(self.out_edges) == 0

    @property
    def is_root(self) -> bool:
        return len(self.in_edges) == 0

    @property
    def is_recursive(self) -> bool:
        """Does this function call itself (directly)?"""
        return any(e.callee is self for e in self.out_edges)

    def __repr__(self) -> str:
        return f"CallGraphNode({self.name!r}, kind={self.kind.value})"


# ---------------------------------------------------------------------------
# CallGraphEdge
# ---------------------------------------------------------------------------

class CallGraphEdge:
    """A directed edge in the call graph representing one call-site target."""

    __slots__ = ("caller", "callee", "call_site", "resolution")

    def __init__(
        self,
        caller: CallGraphNode,
        callee: CallGraphNode,
        call_site: Hashable,
        resolution: CallResolutionKind = CallResolutionKind.DIRECT,
    ) -> None:
        self.caller = caller
        self.callee = callee
        self.call_site = call_site
        self.resolution = resolution

    def __repr__(self) -> str:
        return (
            f"CallGraphEdge({self.caller.name} -> {self.callee.name}, "
            f"{self.resolution.value})"
        )


# ---------------------------------------------------------------------------
# CallGraph
# ---------------------------------------------------------------------------

class CallGraph:
    """Whole-program call graph.

    Attributes
    ----------
    nodes : OrderedDict[object, CallGraphNode]
        All function nodes, keyed by the host function.
    edges : list[CallGraphEdge]
        All edges.
    unknown : CallGraphNode
        The synthetic UNKNOWN sink node.
    """

    def __init__(self) -> None:
        self.nodes: "OrderedDict[Any, CallGraphNode]" = OrderedDict()
        self.edges: List[CallGraphEdge] = []
        self.unknown = CallGraphNode(None, "<unknown>", NodeKind.UNKNOWN)
        # call site -> edges leaving it
        self._site_index: Dict[Hashable, List[CallGraphEdge]] = defaultdict(list)

    # ----- node management --------------------------------------------------

    def get_or_create_node(self, function: Any) -> CallGraphNode:
        """Return existing node for *function*, or create one."""
        node = self.nodes.get(function)
        if node is not None:
            return node
        kind = NodeKind.EXTERNAL if getattr(function, "is_declaration", False) else NodeKind.FUNCTION
        name = getattr(function, "name", None) or repr(function)
        node = CallGraphNode(function, name, kind)
        self.nodes[function] = node
        return node

    def node_for_function(self, function: Any) -> Optional[CallGraphNode]:
        return self.nodes.get(function)

    # ----- edge management --------------------------------------------------

    def add_edge(
        self,
        caller: CallGraphNode,
        callee: CallGraphNode,
        call_site: Hashable,
        resolution: CallResolutionKind = CallResolutionKind.DIRECT,
    ) -> CallGraphEdge:
        """Create a call edge and wire it up."""
        edge = CallGraphEdge(caller, callee, call_site, resolution)
        self.edges.append(edge)
        caller.out_edges.append(edge)
        callee.in_edges.append(edge)
        self._site_index[call_site].append(edge)
        return edge

    def add_call(
        self,
        caller: Any,
        call_site: Hashable,
        targets: Iterable[Any],
        unresolved: bool = False,
    ) -> None:
        """Register *call_site* in *caller* with its (possibly empty) targets."""
        caller_node = self.get_or_create_node(caller)
        targets = list(dict.fromkeys(targets))
        kind = CallResolutionKind.DIRECT if len(targets) == 1 else CallResolutionKind.INDIRECT
        for target in targets:
            self.add_edge(caller_node, self.get_or_create_node(target), call_site, kind)
        if unresolved or not targets:
            self.add_edge(caller_node, self.unknown, call_site, CallResolutionKind.UNRESOLVED)

    # ----- call-site queries ------------------------------------------------

    def callees_of(self, call_site: Hashable) -> List[Any]:
        """Functions *call_site* may invoke, without the UNKNOWN sink."""
        return [
            e.callee.function
            for e in self._site_index.get(call_site, ())
            if e.callee.kind != NodeKind.UNKNOWN
        ]

    def has_unknown_target(self, call_site: Hashable) -> bool:
        edges = self._site_index.get(call_site)
        if not edges:
            return True
        return any(e.callee.kind == NodeKind.UNKNOWN for e in edges)

    def calls_from(self, function: Any) -> List[CallGraphEdge]:
        node = self.nodes.get(function)
        return list(node.out_edges) if node is not None else []

    # ----- whole-graph queries ----------------------------------------------

    @property
    def roots(self) -> List[CallGraphNode]:
        """Nodes with no callers."""
        return [n for n in self.nodes.values() if n.is_root]

    @property
    def leaves(self) -> List[CallGraphNode]:
        """Nodes with no callees."""
        return [n for n in self.nodes.values() if n.is_leaf]

    def transitive_callees(self, function: Any) -> Set[Any]:
        """Return all functions transitively reachable from *function*."""
        start = self.nodes.get(function)
        if start is None:
            return set()
        visited: Set[CallGraphNode] = set()
        worklist: Deque[CallGraphNode] = deque(start.callees)
        while worklist:
            n = worklist.popleft()
            if n in visited or n.kind == NodeKind.UNKNOWN:
                continue
            visited.add(n)
            worklist.extend(n.callees)
        return {n.function for n in visited}

    def is_recursive(self, function: Any) -> bool:
        """Is *function* part of a (possibly indirect) recursive cycle?"""
        return function in self.transitive_callees(function)

    def strongly_connected_components(self) -> List[List[Any]]:
        """Compute SCCs of the function nodes using Tarjan's algorithm.

        Returns a list of SCCs (lists of host functions) in reverse
        topological order: callees before callers.  Each SCC with more
        than one node represents mutual recursion.
        """
        index_counter = [0]
        stack: List[CallGraphNode] = []
        lowlink: Dict[int, int] = {}
        index: Dict[int, int] = {}
        on_stack: Set[int] = set()
        result: List[List[Any]] = []

        def strongconnect(v: CallGraphNode) -> None:
            index[id(v)] = index_counter[0]
            lowlink[id(v)] = index_counter[0]
            index_counter[0] += 1
            stack.append(v)
            on_stack.add(id(v))

            for e in v.out_edges:
                w = e.callee
                if w.kind == NodeKind.UNKNOWN:
                    continue
                if id(w) not in index:
                    strongconnect(w)
                    lowlink[id(v)] = min(lowlink[id(v)], lowlink[id(w)])
                elif id(w) in on_stack:
                    lowlink[id(v)] = min(lowlink[id(v)], index[id(w)])

            if lowlink[id(v)] == index[id(v)]:
                scc: List[Any] = []
                while True:
                    w = stack.pop()
                    on_stack.discard(id(w))
                    scc.append(w.function)
                    if w is v:
                        break
                result.append(scc)

        for v in self.nodes.values():
            if id(v) not in index:
                strongconnect(v)

        return result

    def bottom_up_order(self, root: Any = None) -> List[Any]:
        """Functions in callee-before-caller order.

        With *root*, only *root* and the functions it transitively calls
        are returned.
        """
        order = [f for scc in self.strongly_connected_components() for f in scc]
        if root is None:
            return order
        keep = self.transitive_callees(root) | {root}
        return [f for f in order if f in keep]

    def top_down_order(self, root: Any = None) -> List[Any]:
        """Callers before callees."""
        return list(reversed(self.bottom_up_order(root)))

    # ----- statistics -------------------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        """Return a dict with summary statistics."""
        n_func = sum(1 for n in self.nodes.values() if n.kind == NodeKind.FUNCTION)
        n_ext = sum(1 for n in self.nodes.values() if n.kind == NodeKind.EXTERNAL)
        n_direct = sum(1 for e in self.edges if e.resolution == CallResolutionKind.DIRECT)
        n_indirect = sum(1 for e in self.edges if e.resolution == CallResolutionKind.INDIRECT)
        n_unresolved = sum(1 for e in self.edges if e.resolution == CallResolutionKind.UNRESOLVED)
        sccs = self.strongly_connected_components()
        n_recursive = sum(1 for scc in sccs if len(scc) > 1)
        n_self_recursive = sum(1 for n in self.nodes.values() if n.is_recursive)
        return {
            "functions": n_func,
            "external_functions": n_ext,
            "total_edges": len(self.edges),
            "direct_calls": n_direct,
            "indirect_calls": n_indirect,
            "unresolved_calls": n_unresolved,
            "sccs": len(sccs),
            "recursive_sccs": n_recursive,
            "self_recursive_functions": n_self_recursive,
        }

    def __contains__(self, function: Any) -> bool:
        return function in self.nodes

    def __repr__(self) -> str:
        return f"CallGraph(nodes={len(self.nodes)}, edges={len(self.edges)})"


# ===========================================================================
# CONSTRUCTION
# ===========================================================================

def build_callgraph(functions: Iterable[Any]) -> CallGraph:
    """Build the call graph of *functions* from their blocks' call sites.

    Every function passed in gets a node, even if it neither calls nor is
    called.  Callees that were not passed in are pulled in transitively.
    Call sites are expected to expose ``targets`` and ``unresolved`` like
    :class:`wcet_ipet.ctrlflow_graph.CallSite`.
    """
    cg = CallGraph()
    worklist: Deque[Any] = deque(functions)
    seen: Set[Any] = set()
    while worklist:
        function = worklist.popleft()
        if function in seen:
            continue
        seen.add(function)
        cg.get_or_create_node(function)
        for block in getattr(function, "blocks", ()):
            for site in block.call_sites:
                targets = list(getattr(site, "targets", ()))
                cg.add_call(
                    function,
                    site,
                    targets,
                    unresolved=getattr(site, "unresolved", False),
                )
                worklist.extend(t for t in targets if t not in seen)
    logger.debug("Built %r", cg)
    return cg
