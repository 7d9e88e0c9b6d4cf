"""
wcet_ipet.results
=================

Per-function analysis records and the cache that holds them.

A record moves ``NOT_STARTED -> IN_PROGRESS -> DONE``.  ``DONE`` records
either carry a result (WCET, block/edge frequencies) or the error that made
the analysis fail; failures are cached just like successes so that a
deterministically failing solve is not repeated.  Records are immutable:
the cache swaps them on every transition.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

from .errors import IpetError, NoResultError


class AnalysisStatus(enum.Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    DONE = "done"


_EMPTY: Mapping[Any, int] = MappingProxyType({})


@dataclass(frozen=True, eq=False)
class AnalysisRecord:
    """Analysis state of one function.

    Attributes
    ----------
    function : object
        The analysed function.
    status : AnalysisStatus
    wcet : int or None
        Worst-case execution time, set on success.
    block_frequencies : Mapping[block, int]
        Worst-case execution count of every block of the function;
        unreachable blocks are 0.
    edge_frequencies : Mapping[Edge, int]
        Worst-case traversal count of every modelled edge.
    block_costs : Mapping[block, int]
        Local cost (call costs included) the model used per reachable block.
    error : IpetError or None
        Why the analysis failed.
    """

    function: Any
    status: AnalysisStatus = AnalysisStatus.NOT_STARTED
    wcet: Optional[int] = None
    block_frequencies: Mapping[Any, int] = field(default_factory=lambda: _EMPTY)
    edge_frequencies: Mapping[Any, int] = field(default_factory=lambda: _EMPTY)
    block_costs: Mapping[Any, int] = field(default_factory=lambda: _EMPTY)
    error: Optional[IpetError] = None

    # ----- constructors -----------------------------------------------------

    @classmethod
    def in_progress(cls, function: Any) -> "AnalysisRecord":
        return cls(function, AnalysisStatus.IN_PROGRESS)

    @classmethod
    def success(
        cls,
        function: Any,
        wcet: int,
        block_frequencies: Mapping[Any, int],
        edge_frequencies: Mapping[Any, int],
        block_costs: Mapping[Any, int],
    ) -> "AnalysisRecord":
        return cls(
            function,
            AnalysisStatus.DONE,
            wcet=wcet,
            block_frequencies=MappingProxyType(dict(block_frequencies)),
            edge_frequencies=MappingProxyType(dict(edge_frequencies)),
            block_costs=MappingProxyType(dict(block_costs)),
        )

    @classmethod
    def failure(cls, function: Any, error: IpetError) -> "AnalysisRecord":
        return cls(function, AnalysisStatus.DONE, error=error)

    # ----- queries ----------------------------------------------------------

    @property
    def done(self) -> bool:
        return self.status is AnalysisStatus.DONE

    @property
    def ok(self) -> bool:
        return self.done and self.error is None

    @property
    def failed(self) -> bool:
        return self.done and self.error is not None

    def raise_for_status(self) -> None:
        """Raise the stored error, or ``NoResultError`` if not done yet."""
        if self.error is not None:
            raise self.error
        if not self.done:
            raise NoResultError(self.function, f"analysis is {self.status.value}")

    def __repr__(self) -> str:
        name = getattr(self.function, "name", self.function)
        if self.ok:
            return f"AnalysisRecord({name}, wcet={self.wcet})"
        if self.failed:
            return f"AnalysisRecord({name}, error={self.error.code})"
        return f"AnalysisRecord({name}, {self.status.value})"


class ResultCache:
    """Records keyed by function identity."""

    def __init__(self) -> None:
        self._records: Dict[Any, AnalysisRecord] = {}

    def get(self, function: Any) -> AnalysisRecord:
        """The function's record; a fresh NOT_STARTED one if unknown."""
        record = self._records.get(function)
        if record is None:
            return AnalysisRecord(function)
        return record

    def status(self, function: Any) -> AnalysisStatus:
        return self.get(function).status

    def mark_in_progress(self, function: Any) -> AnalysisRecord:
        record = AnalysisRecord.in_progress(function)
        self._records[function] = record
        return record

    def store(self, record: AnalysisRecord) -> AnalysisRecord:
        if not record.done:
            raise ValueError(f"only finished records can be stored, got {record!r}")
        self._records[record.function] = record
        return record

    def clear(self, function: Any) -> None:
        self._records.pop(function, None)

    def clear_all(self) -> None:
        self._records.clear()

    def records(self) -> Dict[Any, AnalysisRecord]:
        return dict(self._records)

    def __contains__(self, function: Any) -> bool:
        return function in self._records

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)
