"""
Tests for the batch scheduler: mode-dependent concurrency windows,
input-order results, per-file outcomes and progress reporting.
"""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "scripts"))

from batch_scheduler import BatchScheduler, concurrency_for, partition
from file_analyzer import FileAnalyzer
from models import AnalysisResult, OutcomeStatus, ScanMode, ScanTask


class RecordingAnalyzer:
    """Fake analyzer tracking how many analyses run at the same time."""

    def __init__(self, fail_on=(), warn_on=()):
        self.fail_on = set(fail_on)
        self.warn_on = set(warn_on)
        self.in_flight = 0
        self.window_sizes = []
        self.started = []

    async def analyze(self, file_name, content, mode):
        self.started.append(file_name)
        self.in_flight += 1
        self.window_sizes.append(self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        if file_name in self.fail_on:
            raise RuntimeError(f"boom in {file_name}")
        warnings = ("audit: fallback",) if file_name in self.warn_on else ()
        return AnalysisResult(file_name, content, content, (), mode, warnings=warnings)


def _tasks(count):
    return [ScanTask(name=f"file{n:02d}.lua", content=f"-- {n}") for n in range(1, count + 1)]


class TestPartition:
    def test_exact_and_remainder(self):
        assert partition(list(range(13)), 12) == [list(range(12)), [12]]

    def test_empty(self):
        assert partition([], 5) == []

    def test_window_larger_than_input(self):
        assert partition([1, 2], 5) == [[1, 2]]


class TestConcurrencyFor:
    @pytest.mark.parametrize(
        "mode, expected",
        [(ScanMode.TURBO, 12), (ScanMode.STANDARD, 5), (ScanMode.SUPER_PRO, 2)],
    )
    def test_defaults(self, mode, expected):
        assert concurrency_for(mode) == expected

    def test_config_override(self):
        assert concurrency_for(ScanMode.STANDARD, {"concurrency_standard": 3}) == 3

    def test_minimum_one(self):
        assert concurrency_for(ScanMode.TURBO, {"concurrency_turbo": 0}) == 1


class TestBatchScheduler:
    def test_turbo_windows(self):
        """13 files in TURBO mode run as a window of 12 then a window of 1."""
        analyzer = RecordingAnalyzer()
        scheduler = BatchScheduler(analyzer)

        results = asyncio.run(scheduler.scan_all(_tasks(13), ScanMode.TURBO))

        assert len(results) == 13
        assert max(analyzer.window_sizes) == 12
        assert analyzer.window_sizes[:12] == list(range(1, 13))
        assert analyzer.window_sizes[12] == 1

    @pytest.mark.parametrize("mode, size", [(ScanMode.STANDARD, 5), (ScanMode.SUPER_PRO, 2)])
    def test_window_ceiling_per_mode(self, mode, size):
        analyzer = RecordingAnalyzer()
        asyncio.run(BatchScheduler(analyzer).scan_all(_tasks(11), mode))
        assert max(analyzer.window_sizes) == size

    def test_results_in_input_order(self):
        tasks = _tasks(13)
        results = asyncio.run(BatchScheduler(RecordingAnalyzer()).scan_all(tasks, ScanMode.STANDARD))
        assert [r.file_name for r in results] == [t.name for t in tasks]

    def test_failing_file_dropped(self):
        """The 5th file fails: 12 results come back, in order, without it."""
        tasks = _tasks(13)
        analyzer = RecordingAnalyzer(fail_on={"file05.lua"})

        results = asyncio.run(BatchScheduler(analyzer).scan_all(tasks, ScanMode.TURBO))

        assert len(results) == 12
        assert [r.file_name for r in results] == [t.name for t in tasks if t.name != "file05.lua"]

    def test_outcomes_report_every_file(self):
        analyzer = RecordingAnalyzer(fail_on={"file05.lua"}, warn_on={"file02.lua"})

        report = asyncio.run(BatchScheduler(analyzer).run(_tasks(6), ScanMode.STANDARD))

        assert [o.name for o in report.outcomes] == [t.name for t in _tasks(6)]
        statuses = {o.name: o.status for o in report.outcomes}
        assert statuses["file05.lua"] is OutcomeStatus.DROPPED
        assert statuses["file02.lua"] is OutcomeStatus.DEGRADED
        assert statuses["file01.lua"] is OutcomeStatus.SUCCESS
        assert report.count(OutcomeStatus.SUCCESS) == 4
        dropped = report.dropped[0]
        assert dropped.result is None
        assert "boom in file05.lua" in dropped.reason
        assert report.mode is ScanMode.STANDARD

    def test_empty_input(self):
        events = []
        scheduler = BatchScheduler(RecordingAnalyzer(), on_progress=lambda p, s: events.append((p, s)))
        assert asyncio.run(scheduler.scan_all([], ScanMode.TURBO)) == []
        assert events == []

    def test_progress_events(self):
        events = []
        scheduler = BatchScheduler(RecordingAnalyzer(), on_progress=lambda p, s: events.append((p, s)))

        asyncio.run(scheduler.scan_all(_tasks(4), ScanMode.SUPER_PRO))

        assert events == [
            (0, "Auditing batch 1/2..."),
            (50, "Batch 1/2 complete"),
            (50, "Auditing batch 2/2..."),
            (100, "Batch 2/2 complete"),
        ]

    def test_accepts_dict_tasks(self):
        files = [{"name": "a.lua", "content": "x"}, {"name": "b.lua", "content": "y"}]
        results = asyncio.run(BatchScheduler(RecordingAnalyzer()).scan_all(files))
        assert [r.file_name for r in results] == ["a.lua", "b.lua"]
        assert results[0].mode is ScanMode.STANDARD

    def test_config_window_override(self):
        analyzer = RecordingAnalyzer()
        asyncio.run(BatchScheduler(analyzer, config={"concurrency_turbo": 3}).scan_all(_tasks(7), ScanMode.TURBO))
        assert max(analyzer.window_sizes) == 3


class TestWithRealAnalyzer:
    def test_heuristics_only_pipeline(self):
        tasks = [
            ScanTask("clean.lua", "print('hello')"),
            ScanTask("bad.lua", "os.execute('x')"),
        ]
        report = asyncio.run(BatchScheduler(FileAnalyzer()).run(tasks, ScanMode.TURBO))
        clean, bad = report.results
        assert clean.is_safe
        assert bad.critical_count == 1
        assert report.count(OutcomeStatus.SUCCESS) == 2
