"""
Run orchestration: connect → execute each operation → publish → disconnect.

Sequential mode uses one handle for the whole run and publishes each result
before the next operation starts. Concurrent mode gives every operation its
own handle on a worker thread; results come back through futures and are
published in submission order.

A ``StoreConnectionError`` aborts the run (after every handle it opened is released)
and propagates to the caller. Operation failures and timeouts do not.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Set

from pydantic import BaseModel, Field

from .config import MAX_WORKERS
from .connection_manager import ConnectionManager, Handle
from .logger import logger
from .models import ConnectionTarget, Operation, OperationResult
from .operation_runner import OperationRunner
from .report_sink import MultiSink, ReportSink


class RunSummary(BaseModel):
    target: ConnectionTarget
    results: List[OperationResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def ok(self) -> bool:
        return self.failed == 0


class OperationHarness:
    def __init__(
        self,
        manager: ConnectionManager,
        runner: Optional[OperationRunner] = None,
        sinks: Optional[Sequence[ReportSink]] = None,
    ):
        self.manager = manager
        self.runner = runner or OperationRunner()
        self.sink = MultiSink(*(sinks or []))

    def run(
        self,
        target: ConnectionTarget,
        operations: Sequence[Operation],
        timeout_ms: Optional[int] = None,
        concurrent: bool = False,
        max_workers: Optional[int] = None,
    ) -> RunSummary:
        logger.info(
            "[RUN] Starting %d operation(s) against %s (%s)",
            len(operations), target.describe(), "concurrent" if concurrent else "sequential",
        )
        if concurrent:
            results = self._run_concurrent(target, operations, timeout_ms, max_workers or MAX_WORKERS)
        else:
            results = self._run_sequential(target, operations, timeout_ms)

        summary = RunSummary(target=target, results=results)
        logger.info(
            "[RUN] Finished %s: %d ok, %d failed", target.describe(), summary.succeeded, summary.failed,
        )
        return summary

    def _publish(self, result: OperationResult, results: List[OperationResult]) -> None:
        results.append(result)
        self.sink.publish(result)

    def _run_sequential(
        self,
        target: ConnectionTarget,
        operations: Sequence[Operation],
        timeout_ms: Optional[int],
    ) -> List[OperationResult]:
        results: List[OperationResult] = []
        with self.manager.session(target) as handle:
            for op in operations:
                self._publish(self.runner.execute(handle, op, timeout_ms), results)
        return results

    def _run_concurrent(
        self,
        target: ConnectionTarget,
        operations: Sequence[Operation],
        timeout_ms: Optional[int],
        max_workers: int,
    ) -> List[OperationResult]:
        # handles opened by this run only; other callers may share the manager
        acquired: Set[Handle] = set()
        acquired_lock = threading.Lock()

        def _task(op: Operation) -> OperationResult:
            handle = self.manager.acquire(target)
            with acquired_lock:
                acquired.add(handle)
            try:
                return self.runner.execute(handle, op, timeout_ms)
            finally:
                handle.release()

        results: List[OperationResult] = []
        executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="harness")
        futures = [executor.submit(_task, op) for op in operations]
        try:
            for future in futures:
                self._publish(future.result(), results)
        except BaseException as e:
            logger.warning("[RUN] Run aborted (%s); cancelling pending operations", type(e).__name__)
            for future in futures:
                future.cancel()
            executor.shutdown(wait=True, cancel_futures=True)
            with acquired_lock:
                outstanding = [h for h in acquired if not h.released]
            for handle in outstanding:
                handle.release()
            raise
        executor.shutdown(wait=True)
        return results
