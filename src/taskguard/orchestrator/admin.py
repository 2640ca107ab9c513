"""Administrative controls: emergency stop, circuit breakers and system metrics."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from taskguard.orchestrator.health import MAX_HEALTH, PAUSED_HEALTH, AgentHealthMonitor
from taskguard.orchestrator.models import TaskStatus
from taskguard.orchestrator.repository import TaskRepository
from taskguard.storage.common import utc_now

logger = logging.getLogger(__name__)

EMERGENCY_PROTOCOL_REASON = "Emergency protocol"
FORCE_RESET_REASON = "Admin force reset"
PROTOCOL_HEALTH = 80
CRITICAL_BELOW = 50
DEGRADED_BELOW = 80


class AgentStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    PAUSED = "paused"


class SystemStatus(str, Enum):
    OPERATIONAL = "operational"
    WARNING = "warning"
    PAUSED = "paused"


@dataclass(slots=True)
class AdminOutcome:
    """Counters reported by one administrative operation."""

    tasks_paused: int = 0
    tasks_failed: int = 0
    tasks_resumed: int = 0
    tasks_retried: int = 0
    agents_updated: int = 0


@dataclass(slots=True)
class AgentMetric:
    agent_id: str
    platform: str
    health_score: int
    status: AgentStatus


@dataclass(slots=True)
class SystemMetrics:
    status: SystemStatus
    agents: list[AgentMetric]
    tasks: dict[TaskStatus, int]
    generated_at: datetime = field(default_factory=utc_now)


def agent_status(health_score: int) -> AgentStatus:
    if health_score == PAUSED_HEALTH:
        return AgentStatus.PAUSED
    if health_score < CRITICAL_BELOW:
        return AgentStatus.CRITICAL
    if health_score < DEGRADED_BELOW:
        return AgentStatus.DEGRADED
    return AgentStatus.HEALTHY


class AdminOperations:
    """Operator actions over tasks and agent health.

    Task changes go through the repository's compare-and-set transitions,
    so a task that moves concurrently is simply not counted.
    """

    def __init__(self, *, repository: TaskRepository, health: AgentHealthMonitor) -> None:
        self.repository = repository
        self.health = health

    def emergency_stop(self) -> AdminOutcome:
        """Pause every agent and every running task."""

        outcome = AdminOutcome(agents_updated=self.health.pause_all())
        for task_id in self.repository.list_task_ids(status=TaskStatus.IN_PROGRESS):
            if self.repository.pause(task_id=task_id, expected=TaskStatus.IN_PROGRESS):
                outcome.tasks_paused += 1
        logger.warning("Emergency stop: %s", outcome)
        return outcome

    def emergency_protocol(self) -> AdminOutcome:
        """Fail running tasks, requeue paused ones that never started, degrade health."""

        outcome = AdminOutcome()
        for task_id in self.repository.list_task_ids(status=TaskStatus.IN_PROGRESS):
            if self.repository.fail(
                task_id=task_id,
                error=EMERGENCY_PROTOCOL_REASON,
                event_type="emergency_protocol",
            ):
                outcome.tasks_failed += 1
        for task_id in self.repository.list_task_ids(status=TaskStatus.PAUSED_EMERGENCY):
            if self.repository.unpause(task_id=task_id):
                outcome.tasks_resumed += 1
        outcome.agents_updated = self.health.set_all(PROTOCOL_HEALTH)
        logger.warning("Emergency protocol: %s", outcome)
        return outcome

    def resume_system(self) -> AdminOutcome:
        outcome = self._resume_tasks(agent_id=None)
        outcome.agents_updated = self.health.set_all(MAX_HEALTH)
        logger.info("System resumed: %s", outcome)
        return outcome

    def toggle_circuit(self, agent_id: str | None, *, active: bool) -> AdminOutcome:
        """Open (``active=False``) or close the circuit for one agent or all of them.

        Opening pauses the agent's pending tasks and sets its health to the
        paused sentinel. Closing restores full health and resumes what was
        paused.
        """

        if active:
            outcome = self._resume_tasks(agent_id=agent_id)
            if agent_id is None:
                outcome.agents_updated = self.health.set_all(MAX_HEALTH)
            else:
                outcome.agents_updated = self.health.resume_agent(agent_id)
            logger.info("Circuit closed for %s: %s", agent_id or "all agents", outcome)
            return outcome

        outcome = AdminOutcome()
        for task_id in self.repository.list_task_ids(
            status=TaskStatus.PENDING,
            agent_id=agent_id,
        ):
            if self.repository.pause(task_id=task_id, expected=TaskStatus.PENDING):
                outcome.tasks_paused += 1
        if agent_id is None:
            outcome.agents_updated = self.health.pause_all()
        else:
            outcome.agents_updated = self.health.pause_agent(agent_id)
        logger.warning("Circuit opened for %s: %s", agent_id or "all agents", outcome)
        return outcome

    def reset_agent(self, agent_id: str) -> AdminOutcome:
        """Fail the agent's running tasks and give it a fresh full-health record."""

        outcome = AdminOutcome()
        for task_id in self.repository.list_task_ids(
            status=TaskStatus.IN_PROGRESS,
            agent_id=agent_id,
        ):
            if self.repository.fail(
                task_id=task_id,
                error=FORCE_RESET_REASON,
                event_type="force_reset",
            ):
                outcome.tasks_failed += 1
        outcome.agents_updated = self.health.resume_agent(agent_id)
        logger.info("Agent %s force reset: %s", agent_id, outcome)
        return outcome

    def system_metrics(self) -> SystemMetrics:
        agents = [
            AgentMetric(
                agent_id=record.agent_id,
                platform=record.platform,
                health_score=record.health_score,
                status=agent_status(record.health_score),
            )
            for record in self.health.repository.list_records()
        ]
        statuses = {agent.status for agent in agents}
        if AgentStatus.PAUSED in statuses:
            status = SystemStatus.PAUSED
        elif AgentStatus.CRITICAL in statuses:
            status = SystemStatus.WARNING
        else:
            status = SystemStatus.OPERATIONAL
        return SystemMetrics(status=status, agents=agents, tasks=self.repository.count_by_status())

    def _resume_tasks(self, *, agent_id: str | None) -> AdminOutcome:
        outcome = AdminOutcome()
        for task_id in self.repository.list_task_ids(
            status=TaskStatus.PAUSED_EMERGENCY,
            agent_id=agent_id,
        ):
            if self.repository.unpause(task_id=task_id):
                outcome.tasks_resumed += 1
                continue
            # paused mid-run: the interrupted attempt stays paused, a retry picks it up
            task = self.repository.get(task_id)
            if task is None or task.paused_from != TaskStatus.IN_PROGRESS:
                continue
            if self.repository.create_retry(task_id=task_id) is not None:
                outcome.tasks_retried += 1
        return outcome
