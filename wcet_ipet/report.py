"""
wcet_ipet/report.py
═══════════════════

Plain-text summary of an :class:`~wcet_ipet.ipet.Ipet` engine's results.

One section per function::

    main: WCET 52
        block        freq   cost
        entry           1      1
        L              10      5
        exit            1      1

    rec: failed [IPET-1001] recursion detected: rec -> rec

Usage
─────
    from wcet_ipet.report import write_report

    ipet.analyze_all()
    write_report(ipet, sys.stdout)
"""

from __future__ import annotations

import io
import sys
from typing import Any, Iterable, Optional, TextIO

from .errors import display_name
from .results import AnalysisRecord


def _format_record(record: AnalysisRecord, out: TextIO) -> None:
    name = display_name(record.function)
    if record.failed:
        out.write(f"{name}: failed [{record.error.code}] {record.error.message}\n")
        return
    if not record.done:
        out.write(f"{name}: {record.status.value}\n")
        return

    out.write(f"{name}: WCET {record.wcet}\n")
    blocks = list(getattr(record.function, "blocks", ())) or list(record.block_frequencies)
    if not blocks:
        return
    width = max(len("block"), *(len(display_name(b)) for b in blocks))
    out.write(f"    {'block':<{width}} {'freq':>6} {'cost':>6}\n")
    for block in blocks:
        freq = record.block_frequencies.get(block, 0)
        cost = record.block_costs.get(block)
        cost_str = "-" if cost is None else str(cost)
        out.write(f"    {display_name(block):<{width}} {freq:>6} {cost_str:>6}\n")


def format_report(ipet: Any, functions: Optional[Iterable[Any]] = None) -> str:
    """Render the records of *functions* (default: every function with a
    record) as text."""
    if functions is None:
        records = list(ipet.records().values())
    else:
        records = [ipet.get_record(f) for f in functions]

    out = io.StringIO()
    for i, record in enumerate(records):
        if i:
            out.write("\n")
        _format_record(record, out)
    return out.getvalue()


def write_report(ipet: Any, stream: TextIO = sys.stdout, functions: Optional[Iterable[Any]] = None) -> None:
    stream.write(format_report(ipet, functions))
    stream.flush()
