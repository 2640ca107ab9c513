"""Stop-loss and optimization rules for campaign spend metrics."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from taskguard.config import FinanceSettings
from taskguard.orchestrator.containment import (
    ContainmentResult,
    FailureContainment,
    FailureContext,
)
from taskguard.orchestrator.models import FailureType

SCALE_ROAS_MULTIPLIER = 1.5
SCALE_CPA_MULTIPLIER = 0.7


class GuardAction(str, Enum):
    APPROVE = "APPROVE"
    OPTIMIZE = "OPTIMIZE"
    SCALE = "SCALE"
    PAUSE = "PAUSE"


@dataclass(slots=True)
class CampaignMetrics:
    cpa: float = 0.0
    roas: float = 0.0
    ctr: float = 0.0
    cpm: float = 0.0
    frequency: float = 0.0
    spend: float = 0.0
    budget: float = 0.0
    campaign_id: str | None = None


@dataclass(slots=True)
class GuardVerdict:
    approved: bool
    action: GuardAction
    reason: str
    adjustment_factor: float
    containment: ContainmentResult | None = None


class FinanceGuard:
    """Classify metrics into approve, optimize, scale or pause.

    Rules are checked in a fixed order and the first match wins, so a hard
    stop always beats a scale signal.
    """

    def __init__(
        self,
        *,
        containment: FailureContainment,
        limits: FinanceSettings | None = None,
    ) -> None:
        self.containment = containment
        self.limits = limits or FinanceSettings()

    def evaluate(self, metrics: CampaignMetrics) -> GuardVerdict:
        limits = self.limits

        if metrics.cpa > limits.max_cpa:
            return self._pause(
                metrics,
                f"CPA {metrics.cpa:.2f} exceeds limit {limits.max_cpa:.2f}",
            )
        if metrics.spend > limits.stop_loss_min_spend and metrics.roas < limits.min_roas:
            return self._pause(
                metrics,
                f"ROAS {metrics.roas:.2f} below {limits.min_roas:.2f} "
                f"after spending {metrics.spend:.2f}",
            )

        if metrics.ctr < limits.min_ctr:
            return GuardVerdict(
                approved=True,
                action=GuardAction.OPTIMIZE,
                reason=f"CTR {metrics.ctr:.2f} below {limits.min_ctr:.2f}, reduce bid",
                adjustment_factor=0.8,
            )
        if metrics.frequency > limits.max_frequency:
            return GuardVerdict(
                approved=True,
                action=GuardAction.OPTIMIZE,
                reason=(
                    f"Frequency {metrics.frequency:.2f} above {limits.max_frequency:.2f}, "
                    "audience saturation"
                ),
                adjustment_factor=0.7,
            )

        if (
            metrics.roas > limits.min_roas * SCALE_ROAS_MULTIPLIER
            and metrics.cpa < limits.max_cpa * SCALE_CPA_MULTIPLIER
        ):
            return GuardVerdict(
                approved=True,
                action=GuardAction.SCALE,
                reason=f"ROAS {metrics.roas:.2f} with CPA {metrics.cpa:.2f}, scale budget",
                adjustment_factor=1.2,
            )

        return GuardVerdict(
            approved=True,
            action=GuardAction.APPROVE,
            reason="Metrics within limits",
            adjustment_factor=1.0,
        )

    def _pause(self, metrics: CampaignMetrics, reason: str) -> GuardVerdict:
        containment = self.containment.handle(
            FailureType.FINANCIAL,
            FailureContext(
                campaign_id=metrics.campaign_id,
                error=reason,
                extra={"cpa": metrics.cpa, "roas": metrics.roas, "spend": metrics.spend},
            ),
        )
        return GuardVerdict(
            approved=False,
            action=GuardAction.PAUSE,
            reason=reason,
            adjustment_factor=0.0,
            containment=containment,
        )
