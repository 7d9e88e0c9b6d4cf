# tests/test_results.py
"""Tests for analysis records and the result cache."""

import pytest

from wcet_ipet.errors import NoResultError, UnboundedModel
from wcet_ipet.results import AnalysisRecord, AnalysisStatus, ResultCache
from tests.conftest import make_loop_function


class TestAnalysisRecord:

    def test_default_is_not_started(self):
        fn = make_loop_function()
        record = AnalysisRecord(fn)
        assert record.status is AnalysisStatus.NOT_STARTED
        assert not record.done and not record.ok and not record.failed
        assert record.wcet is None
        assert dict(record.block_frequencies) == {}

    def test_success_is_read_only(self):
        fn = make_loop_function()
        freqs = {fn.block("L"): 10}
        record = AnalysisRecord.success(fn, 52, freqs, {}, {})
        freqs[fn.block("L")] = 0
        assert record.ok
        assert record.block_frequencies[fn.block("L")] == 10
        with pytest.raises(TypeError):
            record.block_frequencies[fn.block("L")] = 1
        with pytest.raises(AttributeError):
            record.wcet = 1

    def test_failure(self):
        fn = make_loop_function()
        err = UnboundedModel(fn)
        record = AnalysisRecord.failure(fn, err)
        assert record.done and record.failed and not record.ok
        with pytest.raises(UnboundedModel):
            record.raise_for_status()

    def test_raise_for_status_when_not_done(self):
        with pytest.raises(NoResultError):
            AnalysisRecord.in_progress(make_loop_function()).raise_for_status()

    def test_raise_for_status_on_success(self):
        fn = make_loop_function()
        AnalysisRecord.success(fn, 1, {}, {}, {}).raise_for_status()

    def test_repr(self):
        fn = make_loop_function()
        assert "wcet=3" in repr(AnalysisRecord.success(fn, 3, {}, {}, {}))
        assert "IPET-3002" in repr(AnalysisRecord.failure(fn, UnboundedModel(fn)))
        assert "in-progress" in repr(AnalysisRecord.in_progress(fn))


class TestResultCache:

    def test_unknown_function_not_stored(self):
        cache = ResultCache()
        fn = make_loop_function()
        assert cache.status(fn) is AnalysisStatus.NOT_STARTED
        assert fn not in cache
        assert len(cache) == 0

    def test_lifecycle(self):
        cache = ResultCache()
        fn = make_loop_function()
        cache.mark_in_progress(fn)
        assert cache.status(fn) is AnalysisStatus.IN_PROGRESS
        cache.store(AnalysisRecord.success(fn, 7, {}, {}, {}))
        assert cache.get(fn).wcet == 7
        cache.clear(fn)
        assert cache.status(fn) is AnalysisStatus.NOT_STARTED

    def test_store_requires_done(self):
        cache = ResultCache()
        with pytest.raises(ValueError):
            cache.store(AnalysisRecord.in_progress(make_loop_function()))

    def test_clear_all(self):
        cache = ResultCache()
        f, g = make_loop_function("f"), make_loop_function("g")
        cache.store(AnalysisRecord.success(f, 1, {}, {}, {}))
        cache.store(AnalysisRecord.success(g, 2, {}, {}, {}))
        assert set(cache) == {f, g}
        cache.clear_all()
        assert cache.records() == {}

    def test_clear_unknown_is_noop(self):
        ResultCache().clear(make_loop_function())
