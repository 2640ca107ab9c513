"""Feedback-driven agent health scores with snapshot and restore."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from taskguard.config import HealthSettings
from taskguard.orchestrator.health_repository import AgentHealthRepository
from taskguard.orchestrator.models import HealthAction, Sentiment, SnapshotReason
from taskguard.storage.common import utc_now

logger = logging.getLogger(__name__)

MAX_HEALTH = 100
MIN_HEALTH = 0
PAUSED_HEALTH = -1
POSITIVE_STEP = 5
NEGATIVE_STEP = 15


@dataclass(slots=True)
class FeedbackOutcome:
    health_score: int
    action: HealthAction
    snapshot_id: int | None = None


@dataclass(slots=True)
class RestoreOutcome:
    agent_id: str
    brand_id: str
    health_score: int
    snapshot_id: int | None
    records_reset: int


class AgentHealthMonitor:
    """Move agent health on explicit feedback; snapshot peaks, restore on demand.

    Feedback keeps the score inside ``[0, 100]``. The paused sentinel ``-1``
    is written only by `pause_agent` and cleared only by `resume_agent` or
    `restore`.
    """

    def __init__(
        self,
        *,
        repository: AgentHealthRepository,
        settings: HealthSettings | None = None,
    ) -> None:
        self.repository = repository
        self.settings = settings or HealthSettings()
        self._lock = threading.Lock()

    def apply_feedback(  # noqa: PLR0913
        self,
        agent_id: str,
        platform: str,
        brand_id: str,
        sentiment: Sentiment,
        *,
        context: dict[str, Any] | None = None,
    ) -> FeedbackOutcome:
        with self._lock:
            record = self.repository.get_or_create(agent_id, platform)
            current = record.health_score
            if current == PAUSED_HEALTH:
                logger.info("Ignoring %s feedback for paused agent %s", sentiment.value, agent_id)
                return FeedbackOutcome(health_score=current, action=HealthAction.IGNORED_PAUSED)

            if sentiment == Sentiment.POSITIVE:
                outcome = self._reward(agent_id, platform, brand_id, current, context or {})
                trend = "up"
            else:
                outcome = self._punish(agent_id, current)
                trend = "down"

            self.repository.update_score(
                agent_id,
                platform,
                health_score=outcome.health_score,
                trend=trend,
            )
            return outcome

    def _reward(  # noqa: PLR0913
        self,
        agent_id: str,
        platform: str,
        brand_id: str,
        current: int,
        context: dict[str, Any],
    ) -> FeedbackOutcome:
        new_score = min(MAX_HEALTH, current + POSITIVE_STEP)
        threshold = self.settings.snapshot_threshold
        if current <= threshold < new_score:
            snapshot = self.repository.add_snapshot(
                agent_id=agent_id,
                brand_id=brand_id,
                reason=SnapshotReason.DOPAMINE_PEAK,
                health_score=new_score,
                data={
                    "captured_at": utc_now().isoformat(),
                    "platform": platform,
                    "context_size": len(context),
                    "top_performers": list(context.get("top_performers", [])),
                },
            )
            logger.info(
                "Agent %s reached health peak %d, snapshot %d created",
                agent_id,
                new_score,
                snapshot.snapshot_id,
            )
            return FeedbackOutcome(
                health_score=new_score,
                action=HealthAction.SNAPSHOT_CREATED,
                snapshot_id=snapshot.snapshot_id,
            )
        return FeedbackOutcome(health_score=new_score, action=HealthAction.LOG_ONLY)

    def _punish(self, agent_id: str, current: int) -> FeedbackOutcome:
        new_score = max(MIN_HEALTH, current - NEGATIVE_STEP)
        if new_score < self.settings.reset_threshold:
            logger.warning("Agent %s health dropped to %d, reset suggested", agent_id, new_score)
            return FeedbackOutcome(health_score=new_score, action=HealthAction.SUGGEST_RESET)
        return FeedbackOutcome(health_score=new_score, action=HealthAction.LOG_ONLY)

    def create_snapshot(self, agent_id: str, brand_id: str) -> int:
        """Manual save point at the agent's current best platform score."""

        records = self.repository.list_records(agent_id=agent_id)
        score = max((record.health_score for record in records), default=MAX_HEALTH)
        snapshot = self.repository.add_snapshot(
            agent_id=agent_id,
            brand_id=brand_id,
            reason=SnapshotReason.MANUAL,
            health_score=score,
            data={"captured_at": utc_now().isoformat(), "platforms": len(records)},
        )
        return snapshot.snapshot_id

    def restore(self, agent_id: str, brand_id: str) -> RestoreOutcome:
        """Reset the trust signal to full health.

        The snapshot's data is not replayed into the specialist; only the
        health score and ``last_reset_at`` change.
        """

        with self._lock:
            snapshot = self.repository.latest_snapshot(agent_id, brand_id)
            if snapshot is None:
                logger.info(
                    "No snapshot for agent %s / brand %s, factory reset", agent_id, brand_id
                )
            records_reset = self.repository.set_agent_score(agent_id, MAX_HEALTH, reset=True)
        logger.info("Agent %s restored to full health", agent_id)
        return RestoreOutcome(
            agent_id=agent_id,
            brand_id=brand_id,
            health_score=MAX_HEALTH,
            snapshot_id=snapshot.snapshot_id if snapshot is not None else None,
            records_reset=records_reset,
        )

    def pause_agent(self, agent_id: str) -> int:
        with self._lock:
            updated = self.repository.set_agent_score(agent_id, PAUSED_HEALTH)
        logger.warning("Agent %s administratively paused", agent_id)
        return updated

    def resume_agent(self, agent_id: str) -> int:
        with self._lock:
            updated = self.repository.set_agent_score(agent_id, MAX_HEALTH, reset=True)
        logger.info("Agent %s resumed", agent_id)
        return updated

    def pause_all(self) -> int:
        with self._lock:
            return self.repository.set_all_scores(PAUSED_HEALTH)

    def set_all(self, health_score: int) -> int:
        """Bulk reset used by admin recovery; paused sentinel goes through `pause_all`."""

        if not MIN_HEALTH <= health_score <= MAX_HEALTH:
            raise ValueError(f"Health score out of range: {health_score}")
        with self._lock:
            return self.repository.set_all_scores(health_score, reset=True)

    def is_paused(self, agent_id: str) -> bool:
        records = self.repository.list_records(agent_id=agent_id)
        return any(record.health_score == PAUSED_HEALTH for record in records)
