"""Batch scheduler: admission, execution and debit for queued tasks."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from taskguard.errors import InsufficientCreditsError
from taskguard.orchestrator.containment import (
    ContainmentResult,
    FailureContainment,
    FailureContext,
)
from taskguard.orchestrator.ledger import CreditLedger
from taskguard.orchestrator.models import (
    FailureType,
    Reservation,
    TaskCreate,
    TaskStatus,
    TaskView,
)
from taskguard.orchestrator.notifications import LoggingNotifier, Notifier, notify_safely
from taskguard.orchestrator.pricing import TaskPricing
from taskguard.orchestrator.repository import TaskRepository
from taskguard.orchestrator.specialists.base import SpecialistRegistry

logger = logging.getLogger(__name__)

INSUFFICIENT_BALANCE_REASON = "insufficient balance"
DEFAULT_BATCH_SIZE = 5
DEFAULT_INTERVAL_SECONDS = 60.0
DEFAULT_MAX_ATTEMPTS = 3


@dataclass(slots=True)
class CycleSummary:
    """Aggregate cycle counters for CLI reporting."""

    fetched: int = 0
    completed: int = 0
    failed: int = 0
    rejected: int = 0
    skipped: int = 0
    retried: int = 0
    escalated: int = 0
    cycle_skipped: bool = False

    def add(self, other: CycleSummary) -> None:
        self.fetched += other.fetched
        self.completed += other.completed
        self.failed += other.failed
        self.rejected += other.rejected
        self.skipped += other.skipped
        self.retried += other.retried
        self.escalated += other.escalated


def debit_reason(task: TaskView) -> str:
    return f"Execution: {task.task_type.value} ({task.task_id})"


class TaskScheduler:
    """Owns the periodic cycle that drains pending scheduled tasks.

    Cycles never overlap: `run_cycle` returns immediately with
    ``cycle_skipped`` set while another cycle holds the in-flight lock.
    Tasks inside one cycle run sequentially.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: TaskRepository,
        ledger: CreditLedger,
        specialists: SpecialistRegistry,
        containment: FailureContainment,
        pricing: TaskPricing | None = None,
        notifier: Notifier | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.repository = repository
        self.ledger = ledger
        self.specialists = specialists
        self.containment = containment
        self.pricing = pricing or TaskPricing()
        self.notifier = notifier or LoggingNotifier()
        self.batch_size = batch_size
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self._cycle_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.totals = CycleSummary()

    def enqueue(self, payload: TaskCreate) -> TaskView:
        task = self.repository.create(payload)
        logger.info("Enqueued task %s (%s)", task.task_id, task.task_type.value)
        return task

    def start(self) -> None:
        """Run one cycle now, then every ``interval_seconds`` on a daemon thread."""

        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, daemon=True, name="taskguard-scheduler"
        )
        self._thread.start()
        logger.info(
            "Scheduler started (interval=%ss, batch=%d)", self.interval_seconds, self.batch_size
        )

    def stop(self, *, timeout: float = 15.0) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until `stop` is requested; ``True`` if it was."""

        return self._stop.wait(timeout=timeout)

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                summary = self.run_cycle()
                if not summary.cycle_skipped and summary.fetched:
                    logger.info("Cycle finished: %s", summary)
            except Exception:
                logger.exception("Scheduler cycle error")
            self._stop.wait(timeout=self.interval_seconds)

    def run_cycle(self) -> CycleSummary:
        """Process at most ``batch_size`` pending tasks."""

        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("Previous cycle still running, skipping")
            return CycleSummary(cycle_skipped=True)
        try:
            summary = CycleSummary()
            tasks = self.repository.find_pending(limit=self.batch_size)
            summary.fetched = len(tasks)
            for task in tasks:
                if self._stop.is_set() and self._thread is not None:
                    break
                self._process(task, summary)
            self.totals.add(summary)
            return summary
        finally:
            self._cycle_lock.release()

    def _process(self, task: TaskView, summary: CycleSummary) -> None:
        price = self.pricing.price_for(task.task_type)
        reservation: Reservation | None = None
        if price > 0:
            try:
                reservation = self.ledger.reserve(task.user_id, price, task_id=task.task_id)
            except InsufficientCreditsError as error:
                logger.warning(
                    "Task %s rejected: required %d, available %d",
                    task.task_id,
                    error.required,
                    error.available,
                )
                if self.repository.fail(
                    task_id=task.task_id,
                    error=INSUFFICIENT_BALANCE_REASON,
                    expected=TaskStatus.PENDING,
                    event_type="admission_rejected",
                ):
                    summary.rejected += 1
                else:
                    summary.skipped += 1
                return

        claimed = self.repository.claim(task.task_id)
        if claimed is None:
            self._release(reservation)
            summary.skipped += 1
            return

        if self._paused_concurrently(claimed.task_id):
            self._release(reservation)
            summary.skipped += 1
            return

        try:
            result = self.specialists.execute(
                claimed.agent_id, claimed.task_type.value, claimed.data
            )
        except Exception as error:  # noqa: BLE001
            self._release(reservation)
            self._handle_failure(claimed, error, summary)
            return

        if not self.repository.complete(task_id=claimed.task_id, result=result):
            # paused while the specialist was running
            self._release(reservation)
            self.repository.record_event(
                task_id=claimed.task_id,
                event_type="result_discarded",
                details={"reason": "task no longer in progress"},
            )
            summary.skipped += 1
            return

        if reservation is not None:
            self.ledger.commit(reservation, reason=debit_reason(claimed), agent_id=claimed.agent_id)
        summary.completed += 1

    def _paused_concurrently(self, task_id: str) -> bool:
        current = self.repository.get(task_id)
        return current is None or current.status == TaskStatus.PAUSED_EMERGENCY

    def _release(self, reservation: Reservation | None) -> None:
        if reservation is not None:
            self.ledger.release(reservation)

    def _handle_failure(self, task: TaskView, error: Exception, summary: CycleSummary) -> None:
        message = str(error) or type(error).__name__
        if not self.repository.fail(task_id=task.task_id, error=message):
            summary.skipped += 1
            return
        summary.failed += 1

        verdict = self.contain(task, message)
        if verdict.should_retry and task.allow_retry and task.attempt < task.max_attempts:
            retry = self.repository.create_retry(task_id=task.task_id)
            if retry is not None:
                summary.retried += 1
                logger.info("Task %s retried as %s", task.task_id, retry.task_id)
            return

        if verdict.requires_human_intervention:
            summary.escalated += 1
        notify_safely(
            self.notifier,
            task.user_id,
            verdict.safe_response or f"Task {task.task_type.value} could not be completed.",
        )

    def contain(self, task: TaskView, message: str) -> ContainmentResult:
        """Route one execution failure through containment and record the verdict.

        The first attempt is a local failure; later attempts are partial
        failures carrying ``attempt - 1`` as the retry count, so the third
        failing attempt escalates to critical.
        """

        failure_type = FailureType.LOCAL if task.attempt <= 1 else FailureType.PARTIAL
        verdict = self.containment.handle(
            failure_type,
            FailureContext(
                retry_count=task.attempt - 1,
                task_id=task.task_id,
                error=message,
            ),
        )
        self.repository.record_event(
            task_id=task.task_id,
            event_type="containment",
            details=verdict.to_event_details(),
        )
        return verdict
