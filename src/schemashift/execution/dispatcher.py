"""Parallel Dispatcher - drains a work queue across a bounded worker pool.

Manifesto:
    Generating scripts is I/O bound and every object is independent once
    targets are unique, so the only coordination workers need is "who
    takes the next item". A ``queue.Queue`` answers that; results go into
    one lock-guarded list and completions into one lock-guarded counter.
    Nothing else is shared. Each worker opens its own provider session.

ARCHITECTURE
────────────
::

    ParallelDispatcher(session_factory, handler, settings)
      └── .dispatch(items) → DispatchReport

    coordinator                       worker-1 … worker-N
    ───────────                       ───────────────────
    fill queue.Queue                  session = session_factory()
    submit N workers                    └─ fails → 1 SetupFailure result, exit
    poll futures every interval       loop: get_nowait() → handler(session, item)
      └─ dispatcher.progress            ok   → WorkResult(success)
    re-raise worker loop errors         err  → WorkResult(error_kind_of(err))
    drain leftovers as SetupFailure     count += 1 (locked)

Per-item failures never escape a worker; they become WorkResult values.
An error in the worker loop itself is a bug and propagates to the caller
once the pool has drained.

Tags:
    schemashift, execution, thread-pool, work-queue

Doc-Types:
    api-reference
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any

from schemashift.core.config import MigrationSettings
from schemashift.core.errors import ErrorKind, error_kind_of
from schemashift.core.logging import get_logger
from schemashift.core.models import WorkItem, WorkResult
from schemashift.providers.protocol import ProviderSession

logger = get_logger(__name__)

SessionFactory = Callable[[], ProviderSession]
ItemHandler = Callable[[ProviderSession, WorkItem], int]
ProgressCallback = Callable[[int, int], None]


@dataclass
class DispatchReport:
    """Aggregated outcome of one dispatch."""

    total: int
    completed: int
    results: list[WorkResult] = field(default_factory=list)

    @property
    def item_results(self) -> list[WorkResult]:
        return [r for r in self.results if r.item_id is not None]

    @property
    def setup_failures(self) -> list[WorkResult]:
        return [r for r in self.results if r.item_id is None]

    @property
    def failures(self) -> list[WorkResult]:
        return [r for r in self.results if not r.success]

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.item_results if r.success)

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "succeeded": self.succeeded,
            "failed": len(self.failures),
            "results": [r.to_dict() for r in self.results],
        }


class _Collector:
    """Result list and completion counter, each behind its own lock."""

    def __init__(self) -> None:
        self._results: list[WorkResult] = []
        self._results_lock = threading.Lock()
        self._completed = 0
        self._counter_lock = threading.Lock()

    def record(self, result: WorkResult, *, counts: bool = True) -> None:
        with self._results_lock:
            self._results.append(result)
        if counts:
            with self._counter_lock:
                self._completed += 1

    @property
    def completed(self) -> int:
        with self._counter_lock:
            return self._completed

    def results(self) -> list[WorkResult]:
        with self._results_lock:
            return list(self._results)


class ParallelDispatcher:
    """
    Runs ``handler(session, item)`` for every work item on N threads.

    The handler returns the number of objects it processed and raises on
    failure.

    Example:
        dispatcher = ParallelDispatcher(provider.connect, writer, settings)
        report = dispatcher.dispatch(items)
        assert report.completed == len(items)
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        handler: ItemHandler,
        settings: MigrationSettings,
        progress_callback: ProgressCallback | None = None,
    ):
        self.session_factory = session_factory
        self.handler = handler
        self.workers = settings.workers
        self.progress_interval = settings.progress_interval
        self.progress_callback = progress_callback

    def dispatch(self, items: Sequence[WorkItem]) -> DispatchReport:
        total = len(items)
        if total == 0:
            return DispatchReport(total=0, completed=0)

        work: queue.Queue[WorkItem] = queue.Queue()
        for item in items:
            work.put(item)

        collector = _Collector()
        worker_count = min(self.workers, total)
        logger.info("dispatcher.start", items=total, workers=worker_count)

        with ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix="schemashift-worker"
        ) as pool:
            futures = [
                pool.submit(self._worker, f"worker-{n}", work, collector)
                for n in range(1, worker_count + 1)
            ]
            pending = set(futures)
            while pending:
                done, pending = wait(pending, timeout=self.progress_interval, return_when=FIRST_EXCEPTION)
                self._report_progress(collector.completed, total)
                if any(f.exception() is not None for f in done):
                    break

        # Re-raise errors from a worker loop itself, after the pool drained
        for future in futures:
            future.result()

        self._drain_unclaimed(work, collector)

        report = DispatchReport(total=total, completed=collector.completed, results=collector.results())
        logger.info(
            "dispatcher.complete",
            items=total,
            completed=report.completed,
            succeeded=report.succeeded,
            failed=len(report.failures),
        )
        return report

    def _worker(self, worker_id: str, work: queue.Queue[WorkItem], collector: _Collector) -> None:
        try:
            session = self.session_factory()
        except Exception as e:
            logger.error("dispatcher.worker_setup_failed", worker_id=worker_id, error=str(e))
            collector.record(
                WorkResult(
                    item_id=None,
                    success=False,
                    error_kind=ErrorKind.SETUP,
                    error=str(e),
                    worker_id=worker_id,
                ),
                counts=False,
            )
            return

        try:
            while True:
                try:
                    item = work.get_nowait()
                except queue.Empty:
                    return
                collector.record(self._run_item(session, item, worker_id))
        finally:
            session.close()

    def _run_item(self, session: ProviderSession, item: WorkItem, worker_id: str) -> WorkResult:
        try:
            count = self.handler(session, item)
        except Exception as e:
            kind = error_kind_of(e)
            logger.warning(
                "dispatcher.item_failed",
                item_id=item.id,
                target=item.target,
                error_kind=kind.value,
                error=str(e),
                worker_id=worker_id,
            )
            return WorkResult(
                item_id=item.id,
                success=False,
                error_kind=kind,
                error=str(e),
                target=item.target,
                worker_id=worker_id,
                copied=item.copy_from is not None,
            )
        return WorkResult(
            item_id=item.id,
            success=True,
            object_count=count,
            target=item.target,
            worker_id=worker_id,
            copied=item.copy_from is not None,
        )

    def _drain_unclaimed(self, work: queue.Queue[WorkItem], collector: _Collector) -> None:
        """Items left behind when every worker failed setup."""
        drained = 0
        while True:
            try:
                item = work.get_nowait()
            except queue.Empty:
                break
            drained += 1
            collector.record(
                WorkResult(
                    item_id=item.id,
                    success=False,
                    error_kind=ErrorKind.SETUP,
                    error="No worker available: every worker failed to open a provider session",
                    target=item.target,
                )
            )
        if drained:
            logger.error("dispatcher.unclaimed_items", count=drained)

    def _report_progress(self, completed: int, total: int) -> None:
        logger.info("dispatcher.progress", completed=completed, total=total)
        if self.progress_callback is not None:
            self.progress_callback(completed, total)


__all__ = ["ParallelDispatcher", "DispatchReport", "SessionFactory", "ItemHandler"]
