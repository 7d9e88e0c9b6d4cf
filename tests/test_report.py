# tests/test_report.py
"""Tests for the plain-text result report."""

import io

from wcet_ipet.report import format_report, write_report
from tests.conftest import costs_by_name, make_engine, make_function, make_loop_function


class TestReport:

    def test_success_section(self, loop_function, loop_costs, back_edge_fact):
        ipet = make_engine([loop_function], loop_costs, facts={loop_function: [back_edge_fact]})
        ipet.analyze(loop_function)
        text = format_report(ipet)
        assert text.splitlines()[0] == "f: WCET 52"
        rows = {line.split()[0]: line.split()[1:] for line in text.splitlines()[2:]}
        assert rows["L"] == ["10", "5"]
        assert rows["entry"] == ["1", "1"]

    def test_unreachable_block_has_no_cost(self):
        fn = make_function("f", ["entry", "dead"], [("dead", "entry")])
        ipet = make_engine([fn], costs_by_name(fn, {"entry": 2}))
        ipet.analyze(fn)
        dead_row = [l for l in format_report(ipet).splitlines() if l.split()[0] == "dead"][0]
        assert dead_row.split()[1:] == ["0", "-"]

    def test_failure_section(self):
        a = make_function("A", ["entry"])
        a.block("entry").add_call(a)
        ipet = make_engine([a])
        ipet.analyze(a)
        assert format_report(ipet) == "A: failed [IPET-1001] recursion detected: A -> A\n"

    def test_selected_functions(self, loop_function, loop_costs, back_edge_fact):
        other = make_loop_function("never")
        ipet = make_engine([loop_function], loop_costs, facts={loop_function: [back_edge_fact]})
        ipet.analyze(loop_function)
        text = format_report(ipet, [other, loop_function])
        assert text.startswith("never: not-started\n\nf: WCET 52")

    def test_write_report(self, loop_function, loop_costs, back_edge_fact):
        ipet = make_engine([loop_function], loop_costs, facts={loop_function: [back_edge_fact]})
        ipet.analyze(loop_function)
        out = io.StringIO()
        write_report(ipet, out)
        assert out.getvalue() == format_report(ipet)

    def test_empty_engine(self):
        assert format_report(make_engine([])) == ""
