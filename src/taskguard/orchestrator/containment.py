"""Four-tier failure containment policy."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from taskguard.orchestrator.models import FailureType

logger = logging.getLogger(__name__)

PARTIAL_ESCALATION_RETRY_COUNT = 2

CRITICAL_SAFE_RESPONSE = (
    "We are reviewing this content to guarantee accuracy and safety. "
    "You will be notified shortly."
)
FINANCIAL_SAFE_RESPONSE = "Investment paused preventively to protect your capital."


@dataclass(slots=True)
class FailureContext:
    """Diagnostic context for one failure-handling call.

    ``retry_count`` is supplied by the caller; containment keeps no memory
    between calls.
    """

    retry_count: int = 0
    task_id: str | None = None
    error: str | None = None
    campaign_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ContainmentResult:
    """Uniform verdict shape for every tier."""

    failure_type: FailureType
    success: bool
    action_taken: str
    should_retry: bool
    requires_human_intervention: bool
    safe_response: str | None = None

    def to_event_details(self) -> dict[str, object]:
        return {
            "failure_type": self.failure_type.value,
            "success": self.success,
            "action_taken": self.action_taken,
            "should_retry": self.should_retry,
            "requires_human_intervention": self.requires_human_intervention,
        }


StopLossHook = Callable[[FailureContext], None]


class FailureContainment:
    """Dispatch a failure tier to its fixed remediation."""

    def __init__(self, *, stop_loss: StopLossHook | None = None) -> None:
        self._stop_loss = stop_loss

    def handle(self, failure_type: FailureType, context: FailureContext) -> ContainmentResult:
        if failure_type == FailureType.LOCAL:
            return self._handle_local(context)
        if failure_type == FailureType.PARTIAL:
            return self._handle_partial(context)
        if failure_type == FailureType.CRITICAL:
            return self._handle_critical(context)
        if failure_type == FailureType.FINANCIAL:
            return self._handle_financial(context)
        raise ValueError(f"Unsupported failure type: {failure_type!r}")

    def _handle_local(self, context: FailureContext) -> ContainmentResult:
        logger.info("Local failure on task %s, retrying specialist", context.task_id)
        return ContainmentResult(
            failure_type=FailureType.LOCAL,
            success=True,
            action_taken="Retrying specific agent execution",
            should_retry=True,
            requires_human_intervention=False,
        )

    def _handle_partial(self, context: FailureContext) -> ContainmentResult:
        if context.retry_count >= PARTIAL_ESCALATION_RETRY_COUNT:
            logger.warning(
                "Partial failure on task %s repeated %d times, escalating to critical",
                context.task_id,
                context.retry_count,
            )
            return self._handle_critical(context)
        logger.info("Partial failure on task %s, replanning", context.task_id)
        return ContainmentResult(
            failure_type=FailureType.PARTIAL,
            success=True,
            action_taken="Triggering simplified replanning",
            should_retry=True,
            requires_human_intervention=False,
        )

    def _handle_critical(self, context: FailureContext) -> ContainmentResult:
        logger.warning(
            "Critical failure on task %s, blocking output: %s",
            context.task_id,
            context.error,
        )
        return ContainmentResult(
            failure_type=FailureType.CRITICAL,
            success=False,
            action_taken="System rollback and block",
            should_retry=False,
            requires_human_intervention=True,
            safe_response=CRITICAL_SAFE_RESPONSE,
        )

    def _handle_financial(self, context: FailureContext) -> ContainmentResult:
        logger.warning("Financial limit breached for campaign %s, stop-loss", context.campaign_id)
        if self._stop_loss is not None:
            self._stop_loss(context)
        return ContainmentResult(
            failure_type=FailureType.FINANCIAL,
            success=False,
            action_taken="Immediate financial freeze (stop loss)",
            should_retry=False,
            requires_human_intervention=True,
            safe_response=FINANCIAL_SAFE_RESPONSE,
        )
