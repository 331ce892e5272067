"""Polling worker that drives one comparison batch at a time."""

from __future__ import annotations

import logging
import queue
import signal
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

from crosscheck_worker.engine.base import AnalysisEngine
from crosscheck_worker.errors import CrossCheckError, TransientRPCError
from crosscheck_worker.models import Task, WorkerState
from crosscheck_worker.reconciler import TaskReconciler
from crosscheck_worker.rpc.base import OrchestratorClient
from crosscheck_worker.storage.quota import QuotaEnforcer

logger = logging.getLogger(__name__)

_STOP_SIGNALS = ("SIGINT", "SIGTERM", "SIGHUP", "SIGQUIT")


class WorkerEvent(str, Enum):
    """Events consumed at the top of the worker loop."""

    TICK = "tick"
    SHUTDOWN = "shutdown"


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    batches: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    reports_sent: int = 0
    report_failures: int = 0
    idle_polls: int = 0

    def add(self, other: WorkerRunSummary) -> None:
        self.batches += other.batches
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.skipped += other.skipped
        self.reports_sent += other.reports_sent
        self.report_failures += other.report_failures
        self.idle_polls += other.idle_polls


class CrossCheckWorker:
    """Event-queue state machine: poll, reconcile, analyze, report, close.

    A timer posts ``TICK`` events and signal handlers post ``SHUTDOWN``; both
    are only consumed between cycles, so a claimed batch always runs to its
    closing acknowledgement before the worker stops.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        client: OrchestratorClient,
        reconciler: TaskReconciler,
        engine: AnalysisEngine,
        quota: QuotaEnforcer | None = None,
        initial_delay_seconds: float = 5.0,
        busy_interval_seconds: float = 0.1,
        idle_interval_seconds: float = 5.0,
    ) -> None:
        self.client = client
        self.reconciler = reconciler
        self.engine = engine
        self.quota = quota
        self.initial_delay_seconds = initial_delay_seconds
        self.busy_interval_seconds = busy_interval_seconds
        self.idle_interval_seconds = idle_interval_seconds
        self.state = WorkerState.IDLE
        self._events: queue.SimpleQueue[WorkerEvent] = queue.SimpleQueue()
        self._timer: threading.Timer | None = None
        self._stop_reason: str | None = None

    def request_stop(self, *, reason: str = "requested") -> None:
        """Ask the loop to stop once the current cycle (if any) has finished."""

        if self._stop_reason is None:
            self._stop_reason = reason
        self._events.put(WorkerEvent.SHUTDOWN)

    def run_once(self) -> WorkerRunSummary:
        """Run one polling cycle, processing at most one batch."""

        summary = WorkerRunSummary()
        self._transition(WorkerState.POLLING)
        try:
            tasks = self.client.poll_tasks()
        except TransientRPCError as error:
            logger.error("Polling for tasks failed: %s", error)
            tasks = []
        if not tasks:
            logger.debug("No new tasks")
            summary.idle_polls = 1
            self._transition(WorkerState.IDLE)
            return summary

        summary.batches = 1
        task_ids = [task.task_id for task in tasks]
        logger.info(
            "Claimed tasks %s (group %s, works %s)",
            task_ids,
            tasks[0].group_id,
            [task.work_id for task in tasks],
        )

        succeeded = False
        try:
            succeeded = self._process_batch(tasks, summary)
        except CrossCheckError as error:
            logger.error("Batch %s failed: %s", task_ids, error)
        except Exception:  # noqa: BLE001
            logger.exception("Batch %s failed unexpectedly", task_ids)
        finally:
            self._close(task_ids, succeeded=succeeded)

        if succeeded:
            summary.succeeded = 1
            self._enforce_quota()
        else:
            summary.failed = 1
        self._transition(WorkerState.IDLE)
        return summary

    def run_loop(self, *, max_batches: int | None = None) -> WorkerRunSummary:
        """Run until a shutdown is requested or ``max_batches`` were processed."""

        aggregate = WorkerRunSummary()
        with self._signal_handlers():
            self._schedule(self.initial_delay_seconds)
            try:
                while True:
                    event = self._events.get()
                    if event is WorkerEvent.SHUTDOWN:
                        logger.info("Stopping worker (%s)", self._stop_reason or "shutdown")
                        return aggregate

                    summary = self.run_once()
                    aggregate.add(summary)
                    if max_batches is not None and aggregate.batches >= max_batches:
                        return aggregate
                    self._schedule(
                        self.busy_interval_seconds
                        if summary.batches
                        else self.idle_interval_seconds,
                    )
            finally:
                self._cancel_timer()

    def _process_batch(self, tasks: Sequence[Task], summary: WorkerRunSummary) -> bool:
        self._transition(WorkerState.RECONCILING)
        reconciliation = self.reconciler.reconcile(tasks)
        if not reconciliation.comparable:
            logger.info(
                "Group %s has %d resolved works, nothing to compare",
                reconciliation.group_id,
                len(reconciliation.members),
            )
            summary.skipped = 1
            return True

        self._transition(WorkerState.ANALYZING)
        reports = self.engine.run(reconciliation.new_paths, reconciliation.old_paths)

        self._transition(WorkerState.REPORTING)
        for report in reports:
            try:
                self.client.submit_report(report)
            except TransientRPCError as error:
                logger.error(
                    "Cannot send report for works %s/%s: %s",
                    report.work1_id,
                    report.work2_id,
                    error,
                )
                summary.report_failures += 1
                continue
            summary.reports_sent += 1
        logger.info("Sent %d of %d pair reports", summary.reports_sent, len(reports))
        return True

    def _close(self, task_ids: list[int], *, succeeded: bool) -> None:
        self._transition(WorkerState.CLOSING)
        try:
            self.client.close_tasks(task_ids, succeeded=succeeded)
        except TransientRPCError as error:
            logger.error("Cannot close tasks %s (succeeded=%s): %s", task_ids, succeeded, error)
            return
        logger.info("Closed tasks %s (succeeded=%s)", task_ids, succeeded)

    def _enforce_quota(self) -> None:
        if self.quota is None:
            return
        try:
            self.quota.check()
        except Exception:  # noqa: BLE001
            logger.exception("Quota enforcement failed")

    def _transition(self, state: WorkerState) -> None:
        logger.debug("Worker state %s -> %s", self.state.value, state.value)
        self.state = state

    def _schedule(self, delay_seconds: float) -> None:
        self._cancel_timer()
        timer = threading.Timer(
            max(0.0, delay_seconds),
            self._events.put,
            args=(WorkerEvent.TICK,),
        )
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        signums = [getattr(signal, name) for name in _STOP_SIGNALS if hasattr(signal, name)]
        if not signums:
            yield
            return

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            logger.info("Received %s, finishing current cycle before stopping", name)
            self.request_stop(reason=name)

        originals: dict[int, object] = {}
        try:
            for signum in signums:
                originals[signum] = signal.getsignal(signum)
                signal.signal(signum, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            originals.clear()
        try:
            yield
        finally:
            for signum, original in originals.items():
                try:
                    signal.signal(signum, original)  # type: ignore[arg-type]
                except ValueError:
                    pass
