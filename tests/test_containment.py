from __future__ import annotations

import allure
import pytest

from taskguard.orchestrator.containment import (
    CRITICAL_SAFE_RESPONSE,
    FINANCIAL_SAFE_RESPONSE,
    FailureContainment,
    FailureContext,
)
from taskguard.orchestrator.models import FailureType

pytestmark = [
    allure.epic("Safety"),
    allure.feature("Failure Containment"),
]


def test_local_failure_retries() -> None:
    verdict = FailureContainment().handle(FailureType.LOCAL, FailureContext(task_id="t1"))

    assert verdict.failure_type == FailureType.LOCAL
    assert verdict.success is True
    assert verdict.should_retry is True
    assert verdict.requires_human_intervention is False
    assert verdict.safe_response is None


@pytest.mark.parametrize("retry_count", [0, 1])
def test_partial_failure_replans_before_escalation(retry_count: int) -> None:
    verdict = FailureContainment().handle(
        FailureType.PARTIAL,
        FailureContext(retry_count=retry_count),
    )

    assert verdict.failure_type == FailureType.PARTIAL
    assert verdict.action_taken == "Triggering simplified replanning"
    assert verdict.should_retry is True


@pytest.mark.parametrize("retry_count", [2, 5])
def test_repeated_partial_failure_is_critical(retry_count: int) -> None:
    containment = FailureContainment()

    escalated = containment.handle(FailureType.PARTIAL, FailureContext(retry_count=retry_count))
    critical = containment.handle(FailureType.CRITICAL, FailureContext())

    assert escalated == critical
    assert escalated.failure_type == FailureType.CRITICAL
    assert escalated.should_retry is False
    assert escalated.requires_human_intervention is True
    assert escalated.safe_response == CRITICAL_SAFE_RESPONSE


def test_financial_failure_invokes_stop_loss_hook() -> None:
    calls: list[FailureContext] = []
    containment = FailureContainment(stop_loss=calls.append)
    context = FailureContext(campaign_id="cmp-7", error="CPA too high")

    verdict = containment.handle(FailureType.FINANCIAL, context)

    assert calls == [context]
    assert verdict.failure_type == FailureType.FINANCIAL
    assert verdict.success is False
    assert verdict.requires_human_intervention is True
    assert verdict.safe_response == FINANCIAL_SAFE_RESPONSE


def test_financial_failure_without_hook_still_freezes() -> None:
    verdict = FailureContainment().handle(FailureType.FINANCIAL, FailureContext())

    assert verdict.action_taken == "Immediate financial freeze (stop loss)"
    assert verdict.should_retry is False


def test_verdict_event_details_are_serializable() -> None:
    details = FailureContainment().handle(FailureType.LOCAL, FailureContext()).to_event_details()

    assert details == {
        "failure_type": "A",
        "success": True,
        "action_taken": "Retrying specific agent execution",
        "should_retry": True,
        "requires_human_intervention": False,
    }
