"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from taskguard.config import Settings
from taskguard.orchestrator.models import TaskCreate, TaskPriority, TaskType
from taskguard.orchestrator.specialists import EchoSpecialist, SpecialistRegistry
from taskguard.runtime import Runtime, build_runtime

USER_ID = "user-1"


class RecordingNotifier:
    """Collects notifications instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def notify(self, user_id: str, summary: str) -> None:
        self.sent.append((user_id, summary))


class FailingSpecialist:
    """Raises on every call and counts the attempts."""

    def __init__(self, message: str = "model timed out") -> None:
        self.message = message
        self.calls = 0

    def execute(self, task_type: str, data: dict[str, Any]) -> dict[str, Any]:
        self.calls += 1
        raise RuntimeError(self.message)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "taskguard.db"


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def registry() -> SpecialistRegistry:
    return SpecialistRegistry(default=EchoSpecialist())


@pytest.fixture()
def runtime(
    db_path: Path,
    registry: SpecialistRegistry,
    notifier: RecordingNotifier,
) -> Iterator[Runtime]:
    built = build_runtime(Settings(db_path=db_path), specialists=registry, notifier=notifier)
    built.tasks.init_schema()
    try:
        yield built
    finally:
        built.close()


def make_task(
    task_type: TaskType = TaskType.COPY,
    *,
    user_id: str = USER_ID,
    agent_id: str = "copy-social-short",
    priority: TaskPriority = TaskPriority.MEDIUM,
    data: dict[str, Any] | None = None,
    max_attempts: int = 3,
) -> TaskCreate:
    return TaskCreate(
        user_id=user_id,
        agent_id=agent_id,
        task_type=task_type,
        data=data or {"topic": "spring launch"},
        priority=priority,
        max_attempts=max_attempts,
    )
