# wcet_ipet/errors.py
"""
IPET Error Types

Every failure the engine can report is scoped to a single function.  None of
them is fatal to the process: the engine stores the error in the function's
``DONE`` record and hands it back to whoever called ``Ipet.analyze``.

Error Hierarchy:
────────────────
┌─────────────────────────────────────────────────────────────────────────┐
│  IpetError (base)                                                       │
│  ├── RecursionDetected       - function lies on a call-graph cycle      │
│  ├── DependencyFailed        - a callee's analysis failed               │
│  ├── MalformedFlowFact       - flow fact references unknown CFG parts   │
│  ├── SolverFailure           - solver did not produce an optimum        │
│  │   ├── InfeasibleModel                                                │
│  │   ├── UnboundedModel                                                 │
│  │   └── SolverNumericalFailure                                         │
│  └── NoResultError           - query on a function without a result     │
└─────────────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
  - IPET-1xxx: call-graph walk
  - IPET-2xxx: model construction
  - IPET-3xxx: solver outcome
  - IPET-4xxx: result queries
"""

from __future__ import annotations

from typing import Any, ClassVar, List, Optional, Sequence


def display_name(obj: Any) -> str:
    """Best human-readable name for a function, block or call site."""
    if obj is None:
        return "<none>"
    name = getattr(obj, "name", None)
    if name:
        return str(name)
    return repr(obj)


# ═══════════════════════════════════════════════════════════════════════════
# BASE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class IpetError(Exception):
    """
    Base exception for all analysis errors.

    Carries the function whose analysis failed and a stable error code so
    that reports can be grepped and compared across runs.
    """

    code: ClassVar[str] = "IPET-0000"

    def __init__(self, function: Any, message: str) -> None:
        super().__init__(message)
        self.function = function
        self.message = message

    @property
    def function_name(self) -> str:
        return display_name(self.function)

    def __str__(self) -> str:
        return f"{self.code}: {self.function_name}: {self.message}"


# ───────────────────────────────────────────────────────────────────────────
# CALL-GRAPH WALK
# ───────────────────────────────────────────────────────────────────────────

class RecursionDetected(IpetError):
    """The function is part of a (direct or mutual) recursive cycle."""

    code = "IPET-1001"

    def __init__(self, function: Any, cycle: Sequence[Any]) -> None:
        self.cycle: List[Any] = list(cycle)
        chain = " -> ".join(display_name(f) for f in self.cycle + self.cycle[:1])
        super().__init__(function, f"recursion detected: {chain}")

    def involves(self, function: Any) -> bool:
        return any(f is function or f == function for f in self.cycle)


class DependencyFailed(IpetError):
    """A callee required for the model could not be analyzed."""

    code = "IPET-1002"

    def __init__(
        self,
        function: Any,
        callee: Any,
        cause: Optional[IpetError] = None,
    ) -> None:
        self.callee = callee
        self.cause = cause
        detail = f" ({cause.code})" if cause is not None else ""
        super().__init__(
            function,
            f"analysis of callee {display_name(callee)} failed{detail}",
        )


# ───────────────────────────────────────────────────────────────────────────
# MODEL CONSTRUCTION
# ───────────────────────────────────────────────────────────────────────────

class MalformedFlowFact(IpetError):
    """A flow fact cannot be translated into a constraint row."""

    code = "IPET-2001"

    def __init__(self, function: Any, fact_index: int, reason: str) -> None:
        self.fact_index = fact_index
        self.reason = reason
        super().__init__(function, f"flow fact #{fact_index}: {reason}")


# ───────────────────────────────────────────────────────────────────────────
# SOLVER OUTCOME
# ───────────────────────────────────────────────────────────────────────────

class SolverFailure(IpetError):
    """The solver finished without a usable optimum."""

    code = "IPET-3000"
    summary: ClassVar[str] = "solver failed"

    def __init__(self, function: Any, status: Any = None, solver_message: str = "") -> None:
        self.status = status
        self.solver_message = solver_message
        text = self.summary
        if solver_message:
            text = f"{text}: {solver_message}"
        super().__init__(function, text)


class InfeasibleModel(SolverFailure):
    code = "IPET-3001"
    summary = "ILP is infeasible (contradicting flow facts or no path to exit)"


class UnboundedModel(SolverFailure):
    code = "IPET-3002"
    summary = "ILP is unbounded (missing loop bound?)"


class SolverNumericalFailure(SolverFailure):
    code = "IPET-3003"
    summary = "solver did not reach a trustworthy optimum"


# ───────────────────────────────────────────────────────────────────────────
# QUERIES
# ───────────────────────────────────────────────────────────────────────────

class NoResultError(IpetError, LookupError):
    """A result was requested for a function that has none."""

    code = "IPET-4001"

    def __init__(self, function: Any, message: str = "no analysis result available") -> None:
        super().__init__(function, message)
