"""
wcet_ipet: Implicit Path Enumeration for Worst-Case Execution Time
===================================================================

This package turns a function's control-flow graph, a per-block/per-call
cost model and a set of linear flow facts into an integer linear program
whose optimum is the function's Worst-Case Execution Time (WCET).  Callees
are analysed bottom-up over the call graph; recursion is rejected.

Core modules
------------
errors
    ``IpetError`` hierarchy (recursion, dependency, solver and flow-fact
    failures).
config
    ``IpetConfig``: solver limits, debug dumps, solution verification.
interfaces
    Runtime-checkable protocols for host programs and external providers.
ctrlflow_graph
    Light in-memory host model: ``Function``, ``BasicBlock``, ``CallSite``.
callgraph
    Call graph with Tarjan SCC detection and bottom-up ordering.
edges
    CFG edge enumeration with virtual entry/exit edges.
providers
    ``FlowFact`` rows plus ready-made cost and flow-fact providers.
ilp_model
    Solver-neutral ILP model and the IPET model builder.
solver
    Adapter around ``scipy.optimize.milp`` (HiGHS).
results
    Analysis records and the per-function result cache.
ipet
    The ``Ipet`` engine: ``analyze``, ``get_wcet``, ``clear_results``, …
report
    Plain-text result report.

Quick start
-----------
>>> from wcet_ipet import Function, Ipet, TableCostProvider, NullFlowFactProvider
>>> from wcet_ipet import build_callgraph
>>> f = Function("f")
>>> a, b = f.add_block("a"), f.add_block("b")
>>> a.add_successor(b)
>>> ipet = Ipet(build_callgraph([f]),
...             TableCostProvider({a: 3, b: 4}),
...             NullFlowFactProvider())
>>> ipet.analyze(f).wcet
7

Package layout
--------------
::

    wcet_ipet/
    ├── __init__.py            ← this file
    ├── errors.py
    ├── config.py
    ├── interfaces.py
    ├── ctrlflow_graph.py
    ├── callgraph.py
    ├── edges.py
    ├── providers.py
    ├── ilp_model.py
    ├── solver.py
    ├── results.py
    ├── ipet.py
    └── report.py
"""

from __future__ import annotations

import importlib
import logging
import sys
import warnings
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.2.0"
__author__ = "wcet-ipet contributors"
__license__ = "MIT"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
#
#   CORE  : always imported; failure is fatal
#   ADDON : imported eagerly but failure only warns (package still usable)
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "IpetError",
        "RecursionDetected",
        "DependencyFailed",
        "MalformedFlowFact",
        "SolverFailure",
        "InfeasibleModel",
        "UnboundedModel",
        "SolverNumericalFailure",
        "NoResultError",
    ],
    "config": [
        "IpetConfig",
        "DEFAULT_CONFIG",
    ],
    "interfaces": [
        "BlockLike",
        "FunctionLike",
        "CallSiteLike",
        "CallGraphLike",
        "CostProvider",
        "FlowFactProvider",
    ],
    "ctrlflow_graph": [
        "Function",
        "BasicBlock",
        "CallSite",
    ],
    "callgraph": [
        "CallGraph",
        "CallGraphNode",
        "CallGraphEdge",
        "CallResolutionKind",
        "build_callgraph",
    ],
    "edges": [
        "Edge",
        "EdgeSet",
        "VirtualNode",
        "enumerate_edges",
        "reachable_blocks",
    ],
    "providers": [
        "FlowFact",
        "Relation",
        "TableCostProvider",
        "CallableCostProvider",
        "StaticFlowFactProvider",
        "NullFlowFactProvider",
        "loop_bound_fact",
    ],
    "ilp_model": [
        "IlpModel",
        "ModelBuilder",
    ],
    "solver": [
        "SolverAdapter",
        "SolveResult",
        "SolveStatus",
    ],
    "results": [
        "AnalysisRecord",
        "AnalysisStatus",
        "ResultCache",
    ],
    "ipet": [
        "Ipet",
    ],
}

_ADDON_MODULES = {
    "report": [
        "format_report",
        "write_report",
    ],
}

# ---------------------------------------------------------------------------
# Import helper
# ---------------------------------------------------------------------------

def _import_names(
    module_rel_name: str,
    names: List[str],
    *,
    fatal: bool = True,
) -> None:
    """Import *names* from a submodule and bind them in the package namespace.

    Parameters
    ----------
    module_rel_name:
        Module name relative to this package (e.g. ``"edges"``).
    names:
        Public symbols to re-export.
    fatal:
        If ``True``, an ``ImportError`` propagates.  If ``False``, a warning
        is issued and the names are skipped (addon tier).
    """
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        if fatal:
            raise ImportError(
                f"wcet_ipet: required submodule '{module_rel_name}' "
                f"failed to import: {exc}"
            ) from exc
        warnings.warn(
            f"wcet_ipet: optional submodule '{module_rel_name}' "
            f"could not be imported ({exc}); related symbols will be unavailable.",
            ImportWarning,
            stacklevel=2,
        )
        _log.debug("Skipped optional module %s: %s", module_rel_name, exc)
        return

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            msg = f"wcet_ipet.{module_rel_name} does not export '{name}'"
            if fatal:
                raise AttributeError(msg)
            _log.warning(msg)
            continue
        setattr(current_module, name, obj)
        __all__.append(name)

    # wcet_ipet.edges.Edge works as well as wcet_ipet.Edge
    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names, fatal=True)

for _mod, _names in _ADDON_MODULES.items():
    _import_names(_mod, _names, fatal=False)

del _mod, _names


# ---------------------------------------------------------------------------
# Package-level utilities
# ---------------------------------------------------------------------------

def list_submodules() -> List[str]:
    """Return the names of all submodules in the package (core + addon)."""
    return sorted(set(list(_CORE_MODULES.keys()) + list(_ADDON_MODULES.keys())))


def package_info() -> dict:
    """Return a dict of metadata about the installed engine.

    Handy for logging which solver stack an analysis ran with.
    """
    loaded = []
    missing = []
    for mod_name in list_submodules():
        if f"{__name__}.{mod_name}" in sys.modules:
            loaded.append(mod_name)
        else:
            missing.append(mod_name)

    import scipy
    import numpy

    return {
        "package": __name__,
        "version": __version__,
        "python": sys.version,
        "numpy": numpy.__version__,
        "scipy": scipy.__version__,
        "loaded_submodules": loaded,
        "missing_submodules": missing,
    }


__all__ += ["list_submodules", "package_info", "__version__"]


if TYPE_CHECKING:
    from .errors import (
        IpetError as IpetError,
        RecursionDetected as RecursionDetected,
        DependencyFailed as DependencyFailed,
        MalformedFlowFact as MalformedFlowFact,
        SolverFailure as SolverFailure,
        InfeasibleModel as InfeasibleModel,
        UnboundedModel as UnboundedModel,
        SolverNumericalFailure as SolverNumericalFailure,
        NoResultError as NoResultError,
    )
    from .config import IpetConfig as IpetConfig, DEFAULT_CONFIG as DEFAULT_CONFIG
    from .interfaces import (
        BlockLike as BlockLike,
        FunctionLike as FunctionLike,
        CallSiteLike as CallSiteLike,
        CallGraphLike as CallGraphLike,
        CostProvider as CostProvider,
        FlowFactProvider as FlowFactProvider,
    )
    from .ctrlflow_graph import (
        Function as Function,
        BasicBlock as BasicBlock,
        CallSite as CallSite,
    )
    from .callgraph import (
        CallGraph as CallGraph,
        CallGraphNode as CallGraphNode,
        CallGraphEdge as CallGraphEdge,
        CallResolutionKind as CallResolutionKind,
        build_callgraph as build_callgraph,
    )
    from .edges import (
        Edge as Edge,
        EdgeSet as EdgeSet,
        VirtualNode as VirtualNode,
        enumerate_edges as enumerate_edges,
        reachable_blocks as reachable_blocks,
    )
    from .providers import (
        FlowFact as FlowFact,
        Relation as Relation,
        TableCostProvider as TableCostProvider,
        CallableCostProvider as CallableCostProvider,
        StaticFlowFactProvider as StaticFlowFactProvider,
        NullFlowFactProvider as NullFlowFactProvider,
        loop_bound_fact as loop_bound_fact,
    )
    from .ilp_model import IlpModel as IlpModel, ModelBuilder as ModelBuilder
    from .solver import (
        SolverAdapter as SolverAdapter,
        SolveResult as SolveResult,
        SolveStatus as SolveStatus,
    )
    from .results import (
        AnalysisRecord as AnalysisRecord,
        AnalysisStatus as AnalysisStatus,
        ResultCache as ResultCache,
    )
    from .ipet import Ipet as Ipet
    from .report import format_report as format_report, write_report as write_report
