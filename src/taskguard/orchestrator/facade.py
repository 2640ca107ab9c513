"""Synchronous request entry point: validate, route, bill and execute."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from taskguard.errors import InsufficientCreditsError, RequestValidationError
from taskguard.orchestrator.failure_classifier import classify_error
from taskguard.orchestrator.models import (
    Reservation,
    TaskChannel,
    TaskCreate,
    TaskPriority,
    TaskStatus,
    TaskView,
)
from taskguard.orchestrator.notifications import Notifier, notify_safely
from taskguard.orchestrator.routing import (
    resolve,
    specialized_agent_id,
    task_type_for_capability,
)
from taskguard.orchestrator.scheduler import (
    INSUFFICIENT_BALANCE_REASON,
    TaskScheduler,
    debit_reason,
)
from taskguard.orchestrator.specialists.output_adapter import SpecialistCommand
from taskguard.storage.common import utc_now

logger = logging.getLogger(__name__)

DEFAULT_BUDGET = "medium"
DEFAULT_PRIORITY = "normal"
SUCCESS_MESSAGE = "Task completed successfully."

_PRIORITY_ALIASES = {
    "normal": TaskPriority.MEDIUM,
    "high": TaskPriority.HIGH,
    "medium": TaskPriority.MEDIUM,
    "low": TaskPriority.LOW,
    "urgent": TaskPriority.HIGH,
}


@dataclass(slots=True)
class OrchestrationRequest:
    """Inbound request from an outer surface (HTTP, chat bot, CLI)."""

    type: str
    user_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None
    user_budget: int | None = None
    files: list[str] = field(default_factory=list)


def build_envelope(request: OrchestrationRequest) -> dict[str, Any]:
    """Task data for a request: payload plus normalized defaults."""

    payload = dict(request.payload)
    envelope: dict[str, Any] = {
        **payload,
        "type": request.type,
        "budget": payload.get("budget") or DEFAULT_BUDGET,
        "priority": payload.get("priority") or DEFAULT_PRIORITY,
        "allowRetry": payload.get("allowRetry") is not False,
        "created_at": utc_now().isoformat(),
    }
    if request.request_id:
        envelope["request_id"] = request.request_id
    if request.user_budget is not None:
        envelope["user_budget"] = request.user_budget
    if request.files:
        envelope["files"] = list(request.files)
    return envelope


def priority_from_envelope(raw: object) -> TaskPriority:
    return _PRIORITY_ALIASES.get(str(raw).strip().lower(), TaskPriority.MEDIUM)


class OrchestrationFacade:
    """Runs one request end to end on the direct channel.

    Money moves through the scheduler's ledger, so a request and a running
    cycle can never spend the same credits twice.
    """

    def __init__(self, *, scheduler: TaskScheduler, notifier: Notifier | None = None) -> None:
        self.scheduler = scheduler
        self.notifier = notifier or scheduler.notifier

    def process_request(self, request: OrchestrationRequest) -> dict[str, Any]:
        """Execute a request and return the response envelope.

        Raises `RequestValidationError` before anything is persisted when
        ``type`` or ``user_id`` is missing. Every later error is reported in
        the returned dict with ``success`` set to ``False``.
        """

        _validate(request)
        capability = resolve(request.type)
        task_type = task_type_for_capability(capability)
        envelope = build_envelope(request)
        price = self.scheduler.pricing.price_for(task_type)

        task = self.scheduler.repository.create(
            TaskCreate(
                user_id=request.user_id,
                agent_id=capability,
                task_type=task_type,
                data=envelope,
                priority=priority_from_envelope(envelope["priority"]),
                channel=TaskChannel.DIRECT,
                max_attempts=self.scheduler.max_attempts,
                allow_retry=envelope["allowRetry"],
            ),
        )
        logger.info(
            "Request %s routed to %s as task %s",
            request.request_id or "-",
            capability,
            task.task_id,
        )

        reservation: Reservation | None = None
        if price > 0:
            try:
                reservation = self.scheduler.ledger.reserve(
                    request.user_id,
                    price,
                    task_id=task.task_id,
                )
            except InsufficientCreditsError as error:
                logger.warning("Request task %s rejected: %s", task.task_id, error)
                self.scheduler.repository.fail(
                    task_id=task.task_id,
                    error=INSUFFICIENT_BALANCE_REASON,
                    expected=TaskStatus.PENDING,
                    event_type="admission_rejected",
                )
                return _error_response(str(error), task_id=task.task_id)

        claimed = self.scheduler.repository.claim(task.task_id)
        if claimed is None:
            self._release(reservation)
            return _error_response("Task was paused before execution", task_id=task.task_id)

        started = time.monotonic()
        try:
            result = self.scheduler.specialists.execute(
                claimed.agent_id,
                claimed.task_type.value,
                claimed.data,
            )
        except Exception as error:  # noqa: BLE001
            self._release(reservation)
            return self._handle_failure(claimed, error)
        execution_ms = int((time.monotonic() - started) * 1000)

        if not self.scheduler.repository.complete(task_id=claimed.task_id, result=result):
            self._release(reservation)
            self.scheduler.repository.record_event(
                task_id=claimed.task_id,
                event_type="result_discarded",
                details={"reason": "task no longer in progress"},
            )
            return _error_response("Task was paused during execution", task_id=claimed.task_id)

        cost = 0
        if reservation is not None:
            entry = self.scheduler.ledger.commit(
                reservation,
                reason=debit_reason(claimed),
                agent_id=claimed.agent_id,
            )
            cost = -entry.amount

        follow_ups = self._enqueue_follow_ups(claimed, result)
        notify_safely(
            self.notifier,
            request.user_id,
            f"{capability} finished {claimed.task_type.value} task. Cost: {cost} credits.",
        )
        return {
            "success": True,
            "data": result,
            "cost": cost,
            "validation": result.get("validation", {}),
            "metadata": {
                "agent": capability,
                "task_id": claimed.task_id,
                "task_type": claimed.task_type.value,
                "request_id": request.request_id,
                "execution_ms": execution_ms,
                "follow_up_task_ids": [item.task_id for item in follow_ups],
            },
            "timestamp": utc_now().isoformat(),
            "message": SUCCESS_MESSAGE,
        }

    def _handle_failure(self, task: TaskView, error: Exception) -> dict[str, Any]:
        message = str(error) or type(error).__name__
        logger.warning("Request task %s failed: %s", task.task_id, message)
        if not self.scheduler.repository.fail(task_id=task.task_id, error=message):
            return _error_response(message, task_id=task.task_id)

        verdict = self.scheduler.contain(task, message)
        response = _error_response(message, task_id=task.task_id)
        if verdict.should_retry and task.allow_retry and task.attempt < task.max_attempts:
            retry = self.scheduler.repository.create_retry(task_id=task.task_id)
            if retry is not None:
                response["retry_task_id"] = retry.task_id
        elif verdict.safe_response:
            notify_safely(self.notifier, task.user_id, verdict.safe_response)
        return response

    def _enqueue_follow_ups(self, task: TaskView, result: dict[str, Any]) -> list[TaskView]:
        raw_commands = result.get("commands")
        if not isinstance(raw_commands, list):
            return []

        created: list[TaskView] = []
        for item in raw_commands:
            if not isinstance(item, dict):
                continue
            command = SpecialistCommand.from_dict(item)
            if command is None:
                continue
            task_type = command.action.task_type
            created.append(
                self.scheduler.enqueue(
                    TaskCreate(
                        user_id=task.user_id,
                        agent_id=specialized_agent_id(
                            task_type,
                            content_format=command.content_format,
                        ),
                        task_type=task_type,
                        data={
                            "topic": command.topic,
                            "format": command.content_format,
                            "details": command.details,
                            "parent_task_id": task.task_id,
                        },
                        max_attempts=self.scheduler.max_attempts,
                    ),
                ),
            )
        return created

    def _release(self, reservation: Reservation | None) -> None:
        if reservation is not None:
            self.scheduler.ledger.release(reservation)


def _validate(request: OrchestrationRequest) -> None:
    if not (request.type or "").strip():
        raise RequestValidationError("Request type is required")
    if not (request.user_id or "").strip():
        raise RequestValidationError("User id is required")


def _error_response(message: str, *, task_id: str | None = None) -> dict[str, Any]:
    response: dict[str, Any] = {
        "success": False,
        "error": message,
        "suggestion": classify_error(message).suggestion,
    }
    if task_id is not None:
        response["task_id"] = task_id
    return response
