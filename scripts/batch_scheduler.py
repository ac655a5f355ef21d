#!/usr/bin/env python3
"""
Batch Scheduler Module

Runs the file analyzer over many scripts in fixed-size concurrency windows.
The window size depends on the scan mode (TURBO=12, STANDARD=5,
SUPER_PRO=2).  Each window is analysed concurrently and fully awaited before
the next one starts, so results come back in input order.

Every input file gets a ``FileOutcome``: success, degraded (an AI fallback
was used) or dropped (the analysis raised).  ``scan_all`` keeps the plain
"surviving results in order" view.
"""

import asyncio
import logging
from typing import Any, Callable, Iterable, Optional, Sequence

from models import AnalysisResult, BatchReport, FileOutcome, OutcomeStatus, ScanMode, ScanTask

__all__ = ["BatchScheduler", "DEFAULT_CONCURRENCY", "concurrency_for", "partition"]

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = {
    ScanMode.TURBO: 12,
    ScanMode.STANDARD: 5,
    ScanMode.SUPER_PRO: 2,
}

ProgressCallback = Callable[[int, str], None]


def concurrency_for(mode: ScanMode, config: Optional[dict] = None) -> int:
    """Window size for *mode*, overridable with ``concurrency_<mode>``."""
    config = config or {}
    value = int(config.get(f"concurrency_{mode.value.lower()}", DEFAULT_CONCURRENCY[mode]))
    return max(1, value)


def partition(items: Sequence[Any], size: int) -> list[list[Any]]:
    """Consecutive windows of at most *size* items, in order."""
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _as_task(item: Any) -> ScanTask:
    if isinstance(item, ScanTask):
        return item
    if isinstance(item, dict):
        return ScanTask(name=item["name"], content=item["content"])
    return ScanTask(name=item.name, content=item.content)


class BatchScheduler:
    """Window-throttled batch analysis

    Args:
        analyzer: Object exposing ``async analyze(file_name, content, mode)``
        config: Flat configuration dict (concurrency overrides)
        on_progress: Optional ``(percent, status)`` callback
    """

    def __init__(self, analyzer, config: Optional[dict] = None, on_progress: Optional[ProgressCallback] = None):
        self.analyzer = analyzer
        self.config = config or {}
        self.on_progress = on_progress

    def _report_progress(self, percent: int, status: str) -> None:
        logger.info("[%3d%%] %s", percent, status)
        if self.on_progress is not None:
            self.on_progress(percent, status)

    async def _analyze_one(self, task: ScanTask, mode: ScanMode) -> FileOutcome:
        try:
            result = await self.analyzer.analyze(task.name, task.content, mode)
        except Exception as e:
            logger.error("Dropping %s: analysis failed: %s: %s", task.name, type(e).__name__, e)
            return FileOutcome(task.name, OutcomeStatus.DROPPED, reason=f"{type(e).__name__}: {e}")

        if result.warnings:
            return FileOutcome(task.name, OutcomeStatus.DEGRADED, result=result, reason="; ".join(result.warnings))
        return FileOutcome(task.name, OutcomeStatus.SUCCESS, result=result)

    async def run(self, files: Iterable[Any], mode: ScanMode = ScanMode.STANDARD) -> BatchReport:
        """Analyze every file, one window at a time

        Args:
            files: ScanTask objects (or ``{"name", "content"}`` dicts), in order
            mode: Scan mode; decides the window size

        Returns:
            BatchReport with one FileOutcome per input, in input order
        """
        tasks = [_as_task(item) for item in files]
        report = BatchReport(mode=mode)
        if not tasks:
            return report

        size = concurrency_for(mode, self.config)
        windows = partition(tasks, size)
        logger.info("Scanning %d file(s) in %d batch(es) of up to %d [%s]", len(tasks), len(windows), size, mode.value)

        done = 0
        for index, window in enumerate(windows, start=1):
            self._report_progress(round(done / len(tasks) * 100), f"Auditing batch {index}/{len(windows)}...")
            outcomes = await asyncio.gather(*(self._analyze_one(task, mode) for task in window))
            report.outcomes.extend(outcomes)
            done += len(window)
            self._report_progress(round(done / len(tasks) * 100), f"Batch {index}/{len(windows)} complete")

        dropped = report.count(OutcomeStatus.DROPPED)
        if dropped:
            logger.warning("%d of %d file(s) dropped from the results", dropped, len(tasks))
        return report

    async def scan_all(self, files: Iterable[Any], mode: ScanMode = ScanMode.STANDARD) -> list[AnalysisResult]:
        """Surviving results, in input order."""
        report = await self.run(files, mode)
        return report.results
