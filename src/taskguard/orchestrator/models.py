"""Domain models for the task queue, credits and agent health."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class TaskType(str, Enum):
    """Billable work categories."""

    MONITOR = "monitor"
    DESIGN = "design"
    COPY = "copy"
    BRAND = "brand"
    PUBLISH = "publish"
    EMAIL = "email"
    PERFORMANCE = "performance"
    PROPOSED_OPPORTUNITY = "proposed_opportunity"
    STRATEGY = "strategy"
    CHAT = "chat"


class TaskPriority(str, Enum):
    """Queue priority; higher rank is dequeued first."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {TaskPriority.HIGH: 3, TaskPriority.MEDIUM: 2, TaskPriority.LOW: 1}


class TaskStatus(str, Enum):
    """Durable task lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED_EMERGENCY = "paused_emergency"


TERMINAL_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.PAUSED_EMERGENCY},
)


class TaskChannel(str, Enum):
    """Who executes the task: the batch scheduler or the request facade."""

    SCHEDULED = "scheduled"
    DIRECT = "direct"


class FailureType(str, Enum):
    """Containment tiers ordered by severity."""

    LOCAL = "A"
    PARTIAL = "B"
    CRITICAL = "C"
    FINANCIAL = "D"


class Sentiment(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"


class HealthAction(str, Enum):
    """Outcome reported by the health monitor for one feedback event."""

    LOG_ONLY = "LOG_ONLY"
    SNAPSHOT_CREATED = "SNAPSHOT_CREATED"
    SUGGEST_RESET = "SUGGEST_RESET"
    IGNORED_PAUSED = "IGNORED_PAUSED"


class SnapshotReason(str, Enum):
    DOPAMINE_PEAK = "DOPAMINE_PEAK"
    MANUAL = "MANUAL"


class CreditKind(str, Enum):
    """Ledger entry kinds. Only USAGE is negative."""

    USAGE = "usage"
    PURCHASE = "purchase"
    BONUS = "bonus"
    REFUND = "refund"


class ReservationStatus(str, Enum):
    HELD = "held"
    COMMITTED = "committed"
    RELEASED = "released"


@dataclass(slots=True)
class TaskCreate:
    """Input payload for creating a task."""

    user_id: str
    agent_id: str
    task_type: TaskType
    data: dict[str, Any] = field(default_factory=dict)
    priority: TaskPriority = TaskPriority.MEDIUM
    channel: TaskChannel = TaskChannel.SCHEDULED
    plan_id: str | None = None
    task_id: str | None = None
    max_attempts: int = 3
    allow_retry: bool = True


@dataclass(slots=True)
class TaskView:
    """Readable task view for scheduler, facade and CLI."""

    task_id: str
    plan_id: str | None
    user_id: str
    agent_id: str
    task_type: TaskType
    priority: TaskPriority
    status: TaskStatus
    channel: TaskChannel
    data: dict[str, Any]
    result: dict[str, Any] | None
    attempt: int
    max_attempts: int
    allow_retry: bool
    retry_of: str | None
    paused_from: TaskStatus | None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None
    completed_at: datetime | None


@dataclass(slots=True)
class TaskEventView:
    """Task event entry for audit trail."""

    event_id: int
    task_id: str
    event_type: str
    status_from: TaskStatus | None
    status_to: TaskStatus | None
    created_at: datetime
    details: dict[str, Any]


@dataclass(slots=True)
class TaskDetails:
    task: TaskView
    events: list[TaskEventView]


@dataclass(slots=True)
class CreditEntryView:
    entry_id: int
    user_id: str
    amount: int
    kind: CreditKind
    reason: str
    task_id: str | None
    agent_id: str | None
    created_at: datetime


@dataclass(slots=True)
class Reservation:
    """Credits held against a task until commit or release."""

    reservation_id: str
    user_id: str
    task_id: str | None
    amount: int
    status: ReservationStatus


@dataclass(slots=True)
class AgentHealthView:
    agent_id: str
    platform: str
    health_score: int
    trend: str
    last_reset_at: datetime | None
    last_updated: datetime


@dataclass(slots=True)
class AgentSnapshotView:
    snapshot_id: int
    agent_id: str
    brand_id: str
    reason: SnapshotReason
    health_score: int
    data: dict[str, Any]
    created_at: datetime
