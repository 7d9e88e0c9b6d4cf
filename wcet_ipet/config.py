"""
wcet_ipet.config
================

Engine configuration.

The defaults below are module-level constants so that a caller can see (and
monkeypatch in tests) what an un-configured ``Ipet`` does.  ``IpetConfig``
bundles them into one immutable value passed to the engine and the solver
adapter.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Mapping, Optional

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

TIME_LIMIT: Optional[float] = None    # seconds per solve; None = unlimited
MIP_REL_GAP: float = 0.0              # anything > 0 may under-estimate the WCET
PRESOLVE: bool = True
DUMP_PROBLEMS: bool = False           # log every model in LP format at DEBUG
VERIFY_SOLUTIONS: bool = True         # re-check flow conservation after solving
INTEGRALITY_TOLERANCE: float = 1e-6


@dataclass(frozen=True)
class IpetConfig:
    """Immutable engine settings.

    Attributes
    ----------
    time_limit : float or None
        Wall-clock limit handed to the solver.  Hitting it is reported as
        a numerical failure, never as a partial result.
    mip_rel_gap : float
        Relative MIP gap at which the solver may stop.  Must stay ``0`` for
        a sound WCET; exposed for experiments only.
    presolve : bool
        Enable the solver's presolve phase.
    dump_problems : bool
        Log each ILP in LP text format at DEBUG level before solving.
    verify_solutions : bool
        Check integrality and flow conservation of every optimum.
    integrality_tolerance : float
        Maximum distance of a solver value from the nearest integer.
    """

    time_limit: Optional[float] = TIME_LIMIT
    mip_rel_gap: float = MIP_REL_GAP
    presolve: bool = PRESOLVE
    dump_problems: bool = DUMP_PROBLEMS
    verify_solutions: bool = VERIFY_SOLUTIONS
    integrality_tolerance: float = INTEGRALITY_TOLERANCE

    def __post_init__(self) -> None:
        if self.time_limit is not None and self.time_limit <= 0:
            raise ValueError(f"time_limit must be positive, got {self.time_limit!r}")
        if not 0.0 <= self.mip_rel_gap < 1.0:
            raise ValueError(f"mip_rel_gap must be in [0, 1), got {self.mip_rel_gap!r}")
        if not 0.0 < self.integrality_tolerance < 0.5:
            raise ValueError(
                f"integrality_tolerance must be in (0, 0.5), got {self.integrality_tolerance!r}"
            )

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "IpetConfig":
        """Build a config from a plain dict (e.g. a parsed JSON file)."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"unknown IPET config keys: {', '.join(unknown)}")
        return cls(**dict(values))

    def replace(self, **changes: Any) -> "IpetConfig":
        return dataclasses.replace(self, **changes)

    def solver_options(self) -> dict:
        """Options dict in the form ``scipy.optimize.milp`` expects."""
        options = {
            "disp": False,
            "presolve": self.presolve,
            "mip_rel_gap": self.mip_rel_gap,
        }
        if self.time_limit is not None:
            options["time_limit"] = self.time_limit
        return options


DEFAULT_CONFIG = IpetConfig()
