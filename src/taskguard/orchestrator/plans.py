"""Content plans: cost-checked bundles of scheduled tasks."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from sqlmodel import Session, select

from taskguard.errors import InsufficientCreditsError, RequestValidationError
from taskguard.orchestrator.models import TaskCreate, TaskPriority, TaskStatus, TaskType, TaskView
from taskguard.orchestrator.routing import specialized_agent_id
from taskguard.orchestrator.scheduler import TaskScheduler
from taskguard.storage.base import SqliteStore
from taskguard.storage.common import to_utc_aware_datetime, utc_now
from taskguard.storage.sqlmodel_models import ContentPlan

logger = logging.getLogger(__name__)

PLATFORM_CONTENT_FORMATS: dict[str, str] = {
    "instagram": "post",
    "tiktok": "video",
    "linkedin": "article",
    "facebook": "post",
    "youtube": "thumbnail",
    "email": "newsletter",
}
DEFAULT_CONTENT_FORMAT = "post"


@dataclass(slots=True)
class PlanView:
    plan_id: str
    user_id: str
    brand_id: str
    platforms: list[str]
    estimated_cost: int
    created_at: datetime


@dataclass(slots=True)
class PlanStatus:
    plan: PlanView
    total: int
    counts: dict[TaskStatus, int]
    progress: int


class PlanRepository(SqliteStore):
    """Content plan rows; the plan's tasks live in the task store."""

    def create(
        self,
        *,
        user_id: str,
        brand_id: str,
        platforms: Sequence[str],
        estimated_cost: int,
    ) -> PlanView:
        with Session(self.engine) as session:
            self._ensure_user_in_session(session, user_id)
            row = ContentPlan(
                plan_id=str(uuid4()),
                user_id=user_id,
                brand_id=brand_id,
                platforms_json=json.dumps(list(platforms)),
                estimated_cost=estimated_cost,
                created_at=utc_now(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_plan_view(row)

    def get(self, plan_id: str) -> PlanView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(ContentPlan).where(ContentPlan.plan_id == plan_id),
            ).one_or_none()
            return _to_plan_view(row) if row is not None else None


class ContentPlanner:
    """Turns a brand and its platforms into monitor, design, copy and brand tasks."""

    def __init__(self, *, plans: PlanRepository, scheduler: TaskScheduler) -> None:
        self.plans = plans
        self.scheduler = scheduler

    def estimate(self, platforms: Sequence[str]) -> int:
        task_types = [TaskType.MONITOR, TaskType.BRAND]
        for _ in platforms:
            task_types.extend((TaskType.DESIGN, TaskType.COPY))
        return self.scheduler.pricing.estimate(task_types)

    def create_plan(
        self,
        user_id: str,
        brand_id: str,
        platforms: Sequence[str],
        formats: Mapping[str, str] | None = None,
    ) -> tuple[PlanView, list[TaskView]]:
        """Persist a plan and queue its tasks.

        Raises `InsufficientCreditsError` when the available balance does
        not cover the estimate; nothing is created in that case. The
        estimate is a gate only, each task is still billed when it runs.
        """

        normalized = _normalize_platforms(platforms)
        if not brand_id.strip():
            raise RequestValidationError("Brand id is required")
        if not normalized:
            raise RequestValidationError("At least one platform is required")

        estimated_cost = self.estimate(normalized)
        available = self.scheduler.ledger.available(user_id)
        if available < estimated_cost:
            raise InsufficientCreditsError(required=estimated_cost, available=available)

        plan = self.plans.create(
            user_id=user_id,
            brand_id=brand_id,
            platforms=normalized,
            estimated_cost=estimated_cost,
        )
        formats = {key.lower(): value for key, value in (formats or {}).items()}
        tasks = [
            self._enqueue(
                plan,
                TaskType.MONITOR,
                TaskPriority.HIGH,
                {"plan_id": plan.plan_id, "platforms": normalized},
            ),
        ]
        for platform in normalized:
            content_format = formats.get(
                platform,
                PLATFORM_CONTENT_FORMATS.get(platform, DEFAULT_CONTENT_FORMAT),
            )
            for task_type in (TaskType.DESIGN, TaskType.COPY):
                tasks.append(
                    self._enqueue(
                        plan,
                        task_type,
                        TaskPriority.HIGH,
                        {"platform": platform, "format": content_format},
                        platform=platform,
                        content_format=content_format,
                    ),
                )
        tasks.append(
            self._enqueue(
                plan,
                TaskType.BRAND,
                TaskPriority.MEDIUM,
                {"brand_id": brand_id, "action": "validate_consistency"},
            ),
        )
        logger.info(
            "Plan %s created with %d tasks (estimate %d credits)",
            plan.plan_id,
            len(tasks),
            estimated_cost,
        )
        return plan, tasks

    def plan_status(self, plan_id: str) -> PlanStatus | None:
        plan = self.plans.get(plan_id)
        if plan is None:
            return None
        counts = self.scheduler.repository.count_by_status(
            plan_id=plan_id,
            latest_attempts_only=True,
        )
        total = sum(counts.values())
        completed = counts[TaskStatus.COMPLETED]
        progress = round(completed * 100 / total) if total else 0
        return PlanStatus(plan=plan, total=total, counts=counts, progress=progress)

    def _enqueue(  # noqa: PLR0913
        self,
        plan: PlanView,
        task_type: TaskType,
        priority: TaskPriority,
        data: dict[str, object],
        *,
        platform: str = "",
        content_format: str = "",
    ) -> TaskView:
        return self.scheduler.enqueue(
            TaskCreate(
                user_id=plan.user_id,
                agent_id=specialized_agent_id(
                    task_type,
                    platform=platform,
                    content_format=content_format,
                ),
                task_type=task_type,
                data={**data, "brand_id": plan.brand_id},
                priority=priority,
                plan_id=plan.plan_id,
                max_attempts=self.scheduler.max_attempts,
            ),
        )


def _normalize_platforms(platforms: Sequence[str]) -> list[str]:
    seen: list[str] = []
    for platform in platforms:
        value = platform.strip().lower()
        if value and value not in seen:
            seen.append(value)
    return seen


def _to_plan_view(row: ContentPlan) -> PlanView:
    return PlanView(
        plan_id=row.plan_id,
        user_id=row.user_id,
        brand_id=row.brand_id,
        platforms=json.loads(row.platforms_json),
        estimated_cost=row.estimated_cost,
        created_at=to_utc_aware_datetime(row.created_at),
    )
