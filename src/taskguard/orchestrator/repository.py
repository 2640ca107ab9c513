"""Persistent task store with compare-and-set status transitions."""

from __future__ import annotations

import json
from typing import Any
from uuid import uuid4

from sqlalchemy import case, func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from taskguard.errors import TaskNotFoundError
from taskguard.orchestrator.models import (
    TaskChannel,
    TaskCreate,
    TaskDetails,
    TaskEventView,
    TaskPriority,
    TaskStatus,
    TaskType,
    TaskView,
)
from taskguard.storage.base import SqliteStore
from taskguard.storage.common import (
    to_db_datetime,
    to_optional_utc,
    to_utc_aware_datetime,
    utc_now,
)
from taskguard.storage.sqlmodel_models import Task, TaskEvent

_PRIORITY_ORDER = case(
    {priority.value: priority.rank for priority in TaskPriority},
    value=col(Task.priority),
    else_=0,
)


class TaskRepository(SqliteStore):
    """Task persistence facade backed by SQLModel + SQLite.

    Every status change is a conditional UPDATE on the expected current status,
    so a concurrent writer (an emergency pause, another executor) makes the
    transition return ``False`` instead of overwriting state.
    """

    def create(self, payload: TaskCreate) -> TaskView:
        """Create a pending task."""

        return self._insert(payload, attempt=1, retry_of=None)

    def create_retry(self, *, task_id: str) -> TaskView | None:
        """Create the next attempt of a finished task.

        Returns ``None`` when a retry for this task already exists.
        """

        with Session(self.engine) as session:
            existing = session.exec(select(Task.task_id).where(Task.retry_of == task_id)).first()
            if existing is not None:
                return None
            original = session.exec(select(Task).where(Task.task_id == task_id)).one_or_none()
            if original is None:
                raise TaskNotFoundError(f"Task not found: {task_id}")
            payload = TaskCreate(
                user_id=original.user_id,
                agent_id=original.agent_id,
                task_type=TaskType(original.task_type),
                data=_load_json(original.data_json) or {},
                priority=TaskPriority(original.priority),
                channel=TaskChannel.SCHEDULED,
                plan_id=original.plan_id,
                max_attempts=original.max_attempts,
                allow_retry=original.allow_retry,
            )
        return self._insert(payload, attempt=original.attempt + 1, retry_of=task_id)

    def _insert(self, payload: TaskCreate, *, attempt: int, retry_of: str | None) -> TaskView:
        now = utc_now()
        task_id = payload.task_id or str(uuid4())
        with Session(self.engine) as session:
            self._ensure_user_in_session(session, payload.user_id)
            row = Task(
                task_id=task_id,
                plan_id=payload.plan_id,
                user_id=payload.user_id,
                agent_id=payload.agent_id,
                task_type=payload.task_type.value,
                priority=payload.priority.value,
                status=TaskStatus.PENDING.value,
                channel=payload.channel.value,
                data_json=_dump_json(payload.data),
                attempt=attempt,
                max_attempts=payload.max_attempts,
                allow_retry=payload.allow_retry,
                retry_of=retry_of,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            self._add_event(
                session=session,
                task_id=task_id,
                event_type="retry_created" if retry_of else "created",
                status_from=None,
                status_to=TaskStatus.PENDING,
                details={
                    "task_type": payload.task_type.value,
                    "priority": payload.priority.value,
                    "channel": payload.channel.value,
                    "attempt": attempt,
                    "retry_of": retry_of,
                },
            )
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def get(self, task_id: str) -> TaskView | None:
        with Session(self.engine) as session:
            row = session.exec(select(Task).where(Task.task_id == task_id)).one_or_none()
            return _to_task_view(row) if row is not None else None

    def find_pending(
        self,
        *,
        limit: int,
        channel: TaskChannel = TaskChannel.SCHEDULED,
    ) -> list[TaskView]:
        """Pending tasks ordered by priority (high first), then creation order."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(Task)
                .where(
                    Task.status == TaskStatus.PENDING.value,
                    Task.channel == channel.value,
                )
                .order_by(
                    _PRIORITY_ORDER.desc(),
                    col(Task.created_at).asc(),
                    col(Task.id).asc(),
                )
                .limit(limit),
            ).all()
        return [_to_task_view(row) for row in rows]

    def claim(self, task_id: str) -> TaskView | None:
        """Move a pending task to in_progress. ``None`` if it was not pending."""

        now = utc_now()
        with Session(self.engine) as session:
            moved = self._transition(
                session,
                task_id=task_id,
                status_from=TaskStatus.PENDING,
                status_to=TaskStatus.IN_PROGRESS,
                values={"started_at": to_db_datetime(now)},
                event_type="started",
                details={},
            )
            if not moved:
                return None
            row = session.exec(select(Task).where(Task.task_id == task_id)).one()
            view = _to_task_view(row)
            session.commit()
            return view

    def complete(self, *, task_id: str, result: dict[str, Any]) -> bool:
        """Mark an in-progress task as completed with its result."""

        now = utc_now()
        with Session(self.engine) as session:
            moved = self._transition(
                session,
                task_id=task_id,
                status_from=TaskStatus.IN_PROGRESS,
                status_to=TaskStatus.COMPLETED,
                values={
                    "result_json": _dump_json(result),
                    "completed_at": to_db_datetime(now),
                },
                event_type="completed",
                details={},
            )
            if moved:
                session.commit()
            return moved

    def fail(
        self,
        *,
        task_id: str,
        error: str,
        expected: TaskStatus = TaskStatus.IN_PROGRESS,
        event_type: str = "failed",
    ) -> bool:
        """Mark a task failed, storing the error as its result."""

        if expected not in {TaskStatus.PENDING, TaskStatus.IN_PROGRESS}:
            raise ValueError(f"Cannot fail a task from status: {expected.value}")
        now = utc_now()
        with Session(self.engine) as session:
            moved = self._transition(
                session,
                task_id=task_id,
                status_from=expected,
                status_to=TaskStatus.FAILED,
                values={
                    "result_json": _dump_json({"error": error}),
                    "completed_at": to_db_datetime(now),
                },
                event_type=event_type,
                details={"error": error},
            )
            if moved:
                session.commit()
            return moved

    def pause(self, *, task_id: str, expected: TaskStatus) -> bool:
        """Emergency-pause one task, remembering where it was paused from."""

        if expected not in {TaskStatus.PENDING, TaskStatus.IN_PROGRESS}:
            raise ValueError(f"Cannot pause a task from status: {expected.value}")
        with Session(self.engine) as session:
            moved = self._transition(
                session,
                task_id=task_id,
                status_from=expected,
                status_to=TaskStatus.PAUSED_EMERGENCY,
                values={"paused_from": expected.value},
                event_type="paused",
                details={},
            )
            if moved:
                session.commit()
            return moved

    def unpause(self, *, task_id: str) -> bool:
        """Return a task that was paused before it ever started back to pending.

        A task already superseded by a retry stays paused; the retry carries the work.
        """

        with Session(self.engine) as session:
            superseded = session.exec(
                select(Task.task_id).where(Task.retry_of == task_id),
            ).first()
            if superseded is not None:
                return False
            result = session.exec(
                sa_update(Task)
                .where(
                    col(Task.task_id) == task_id,
                    col(Task.status) == TaskStatus.PAUSED_EMERGENCY.value,
                    col(Task.paused_from) == TaskStatus.PENDING.value,
                )
                .values(
                    status=TaskStatus.PENDING.value,
                    paused_from=None,
                    updated_at=to_db_datetime(utc_now()),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                task_id=task_id,
                event_type="unpaused",
                status_from=TaskStatus.PAUSED_EMERGENCY,
                status_to=TaskStatus.PENDING,
                details={},
            )
            session.commit()
            return True

    def list_task_ids(
        self,
        *,
        status: TaskStatus,
        agent_id: str | None = None,
    ) -> list[str]:
        with Session(self.engine) as session:
            statement = select(Task.task_id).where(Task.status == status.value)
            if agent_id is not None:
                statement = statement.where(Task.agent_id == agent_id)
            return list(session.exec(statement.order_by(col(Task.created_at).asc())).all())

    def list_tasks(
        self,
        *,
        status: TaskStatus | None = None,
        user_id: str | None = None,
        plan_id: str | None = None,
        limit: int = 50,
    ) -> list[TaskView]:
        """List recent tasks, optionally filtered."""

        with Session(self.engine) as session:
            statement = select(Task)
            if status is not None:
                statement = statement.where(Task.status == status.value)
            if user_id is not None:
                statement = statement.where(Task.user_id == user_id)
            if plan_id is not None:
                statement = statement.where(Task.plan_id == plan_id)
            rows = session.exec(
                statement.order_by(col(Task.created_at).desc()).limit(limit),
            ).all()
        return [_to_task_view(row) for row in rows]

    def count_by_status(
        self,
        *,
        plan_id: str | None = None,
        latest_attempts_only: bool = False,
    ) -> dict[TaskStatus, int]:
        """Count tasks per status.

        With ``latest_attempts_only`` a row replaced by a retry is left out, so
        each piece of work is counted once by its newest attempt.
        """

        with Session(self.engine) as session:
            statement = select(Task.status, func.count()).group_by(Task.status)
            if plan_id is not None:
                statement = statement.where(Task.plan_id == plan_id)
            if latest_attempts_only:
                retried_ids = select(Task.retry_of).where(col(Task.retry_of).is_not(None))
                statement = statement.where(col(Task.task_id).not_in(retried_ids))
            rows = session.exec(statement).all()
        counts = {status: 0 for status in TaskStatus}
        for status, count in rows:
            counts[TaskStatus(status)] = int(count)
        return counts

    def get_task_details(self, *, task_id: str) -> TaskDetails | None:
        """Return task details with event stream."""

        with Session(self.engine) as session:
            task = session.exec(select(Task).where(Task.task_id == task_id)).one_or_none()
            if task is None:
                return None
            event_rows = session.exec(
                select(TaskEvent)
                .where(TaskEvent.task_id == task_id)
                .order_by(col(TaskEvent.created_at).asc(), col(TaskEvent.id).asc()),
            ).all()

        events = [
            TaskEventView(
                event_id=row.id or 0,
                task_id=row.task_id,
                event_type=row.event_type,
                status_from=TaskStatus(row.status_from) if row.status_from is not None else None,
                status_to=TaskStatus(row.status_to) if row.status_to is not None else None,
                created_at=to_utc_aware_datetime(row.created_at),
                details=_load_json(row.details_json) or {},
            )
            for row in event_rows
        ]
        return TaskDetails(task=_to_task_view(task), events=events)

    def record_event(self, *, task_id: str, event_type: str, details: dict[str, Any]) -> None:
        """Append a non-transition audit event (containment verdicts, notes)."""

        with Session(self.engine) as session:
            self._add_event(
                session=session,
                task_id=task_id,
                event_type=event_type,
                status_from=None,
                status_to=None,
                details=details,
            )
            session.commit()

    def _transition(  # noqa: PLR0913
        self,
        session: Session,
        *,
        task_id: str,
        status_from: TaskStatus,
        status_to: TaskStatus,
        values: dict[str, Any],
        event_type: str,
        details: dict[str, Any],
    ) -> bool:
        result = session.exec(
            sa_update(Task)
            .where(
                col(Task.task_id) == task_id,
                col(Task.status) == status_from.value,
            )
            .values(
                status=status_to.value,
                updated_at=to_db_datetime(utc_now()),
                **values,
            ),
        )
        if result.rowcount != 1:
            session.rollback()
            return False
        self._add_event(
            session=session,
            task_id=task_id,
            event_type=event_type,
            status_from=status_from,
            status_to=status_to,
            details=details,
        )
        return True

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        task_id: str,
        event_type: str,
        status_from: TaskStatus | None,
        status_to: TaskStatus | None,
        details: dict[str, Any],
    ) -> None:
        session.add(
            TaskEvent(
                task_id=task_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=_dump_json(details) if details else None,
                created_at=utc_now(),
            ),
        )


def _dump_json(value: dict[str, Any]) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def _load_json(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        return {"value": parsed}
    return parsed


def _to_task_view(row: Task) -> TaskView:
    return TaskView(
        task_id=row.task_id,
        plan_id=row.plan_id,
        user_id=row.user_id,
        agent_id=row.agent_id,
        task_type=TaskType(row.task_type),
        priority=TaskPriority(row.priority),
        status=TaskStatus(row.status),
        channel=TaskChannel(row.channel),
        data=_load_json(row.data_json) or {},
        result=_load_json(row.result_json),
        attempt=row.attempt,
        max_attempts=row.max_attempts,
        allow_retry=row.allow_retry,
        retry_of=row.retry_of,
        paused_from=TaskStatus(row.paused_from) if row.paused_from is not None else None,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
        started_at=to_optional_utc(row.started_at),
        completed_at=to_optional_utc(row.completed_at),
    )
