from __future__ import annotations

import allure
import pytest

from taskguard.config import FinanceSettings
from taskguard.orchestrator.containment import FailureContainment, FailureContext
from taskguard.orchestrator.finance_guard import CampaignMetrics, FinanceGuard, GuardAction
from taskguard.orchestrator.models import FailureType

pytestmark = [
    allure.epic("Safety"),
    allure.feature("Finance Guard"),
]


@pytest.fixture()
def stop_losses() -> list[FailureContext]:
    return []


@pytest.fixture()
def guard(stop_losses: list[FailureContext]) -> FinanceGuard:
    return FinanceGuard(containment=FailureContainment(stop_loss=stop_losses.append))


def test_high_cpa_pauses_and_triggers_stop_loss(
    guard: FinanceGuard,
    stop_losses: list[FailureContext],
) -> None:
    verdict = guard.evaluate(
        CampaignMetrics(cpa=60, roas=5, ctr=1.5, spend=200, campaign_id="cmp-1"),
    )

    assert verdict.action == GuardAction.PAUSE
    assert verdict.approved is False
    assert verdict.adjustment_factor == 0.0
    assert verdict.reason == "CPA 60.00 exceeds limit 50.00"
    assert verdict.containment is not None
    assert verdict.containment.failure_type == FailureType.FINANCIAL
    assert [context.campaign_id for context in stop_losses] == ["cmp-1"]


def test_low_roas_after_min_spend_pauses(guard: FinanceGuard) -> None:
    verdict = guard.evaluate(CampaignMetrics(cpa=20, roas=1.2, ctr=1.5, spend=150))

    assert verdict.action == GuardAction.PAUSE
    assert "ROAS 1.20 below 2.00" in verdict.reason


def test_low_roas_below_min_spend_is_not_paused(guard: FinanceGuard) -> None:
    verdict = guard.evaluate(CampaignMetrics(cpa=20, roas=1.2, ctr=1.5, spend=100))

    assert verdict.action == GuardAction.APPROVE


def test_low_ctr_optimizes_bid(guard: FinanceGuard) -> None:
    verdict = guard.evaluate(CampaignMetrics(cpa=20, roas=2.5, ctr=0.5, frequency=6))

    assert verdict.action == GuardAction.OPTIMIZE
    assert verdict.approved is True
    assert verdict.adjustment_factor == 0.8


def test_high_frequency_optimizes_audience(guard: FinanceGuard) -> None:
    verdict = guard.evaluate(CampaignMetrics(cpa=20, roas=2.5, ctr=1.0, frequency=4.5))

    assert verdict.action == GuardAction.OPTIMIZE
    assert verdict.adjustment_factor == 0.7
    assert "audience saturation" in verdict.reason


def test_strong_metrics_scale(guard: FinanceGuard, stop_losses: list[FailureContext]) -> None:
    verdict = guard.evaluate(CampaignMetrics(cpa=30, roas=3.5, ctr=2.0, frequency=1.0))

    assert verdict.action == GuardAction.SCALE
    assert verdict.adjustment_factor == 1.2
    assert verdict.containment is None
    assert stop_losses == []


def test_stop_rules_win_over_scale_signal(guard: FinanceGuard) -> None:
    verdict = guard.evaluate(CampaignMetrics(cpa=55, roas=10, ctr=3.0, frequency=1.0))

    assert verdict.action == GuardAction.PAUSE


def test_metrics_within_limits_are_approved(guard: FinanceGuard) -> None:
    verdict = guard.evaluate(CampaignMetrics(cpa=40, roas=2.5, ctr=1.0, frequency=2.0))

    assert verdict.action == GuardAction.APPROVE
    assert verdict.approved is True
    assert verdict.adjustment_factor == 1.0


def test_custom_limits_are_respected() -> None:
    guard = FinanceGuard(
        containment=FailureContainment(),
        limits=FinanceSettings(max_cpa=10.0),
    )

    assert guard.evaluate(CampaignMetrics(cpa=12, roas=3, ctr=1.0)).action == GuardAction.PAUSE
