from __future__ import annotations

from typing import Any

import allure
import pytest

from conftest import USER_ID
from taskguard.errors import InsufficientCreditsError, RequestValidationError
from taskguard.orchestrator.models import TaskPriority, TaskStatus, TaskType
from taskguard.orchestrator.specialists import EchoSpecialist
from taskguard.runtime import Runtime

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Content Plans"),
]


def test_estimate_covers_every_generated_task(runtime: Runtime) -> None:
    assert runtime.planner.estimate(["instagram"]) == 25 + 2 + 12 + 5
    assert runtime.planner.estimate(["instagram", "tiktok"]) == 25 + 2 + 2 * (12 + 5)


def test_create_plan_queues_tasks_per_platform(runtime: Runtime) -> None:
    runtime.ledger.add_credits(USER_ID, 100)

    plan, tasks = runtime.planner.create_plan(
        USER_ID,
        "brand-1",
        ["Instagram", "linkedin", "instagram"],
        formats={"LinkedIn": "long_form"},
    )

    assert plan.platforms == ["instagram", "linkedin"]
    assert plan.estimated_cost == 61
    assert [task.task_type for task in tasks] == [
        TaskType.MONITOR,
        TaskType.DESIGN,
        TaskType.COPY,
        TaskType.DESIGN,
        TaskType.COPY,
        TaskType.BRAND,
    ]
    assert [task.agent_id for task in tasks] == [
        "monitor-agent",
        "design-social-static",
        "copy-social-short",
        "design-social-static",
        "copy-social-long",
        "brand-agent",
    ]
    assert tasks[-1].priority == TaskPriority.MEDIUM
    assert {task.priority for task in tasks[:-1]} == {TaskPriority.HIGH}
    assert tasks[1].data["format"] == "post"
    assert tasks[4].data["format"] == "long_form"
    assert tasks[-1].data["action"] == "validate_consistency"
    for task in tasks:
        assert task.plan_id == plan.plan_id
        assert task.data["brand_id"] == "brand-1"
        assert task.status == TaskStatus.PENDING
    # the estimate gates creation only, billing happens per task
    assert runtime.ledger.get_balance(USER_ID) == 100


def test_create_plan_rejects_underfunded_user(runtime: Runtime) -> None:
    runtime.ledger.add_credits(USER_ID, 40)

    with pytest.raises(InsufficientCreditsError) as raised:
        runtime.planner.create_plan(USER_ID, "brand-1", ["instagram"])

    assert raised.value.required == 44
    assert raised.value.available == 40
    assert runtime.tasks.list_tasks() == []


@pytest.mark.parametrize(
    ("brand_id", "platforms"),
    [("", ["instagram"]), ("brand-1", []), ("brand-1", ["  "])],
)
def test_create_plan_validates_input(
    runtime: Runtime,
    brand_id: str,
    platforms: list[str],
) -> None:
    runtime.ledger.add_credits(USER_ID, 100)

    with pytest.raises(RequestValidationError):
        runtime.planner.create_plan(USER_ID, brand_id, platforms)


def test_plan_status_tracks_progress(runtime: Runtime) -> None:
    runtime.ledger.add_credits(USER_ID, 100)
    plan, _ = runtime.planner.create_plan(USER_ID, "brand-1", ["instagram", "tiktok"])

    initial = runtime.planner.plan_status(plan.plan_id)
    assert initial is not None
    assert initial.total == 6
    assert initial.progress == 0

    runtime.scheduler.run_cycle()
    partial = runtime.planner.plan_status(plan.plan_id)
    assert partial is not None
    assert partial.counts[TaskStatus.COMPLETED] == 5
    assert partial.counts[TaskStatus.PENDING] == 1
    assert partial.progress == 83

    runtime.scheduler.run_cycle()
    finished = runtime.planner.plan_status(plan.plan_id)
    assert finished is not None
    assert finished.progress == 100
    assert runtime.ledger.get_balance(USER_ID) == 100 - 61


def test_plan_status_unknown_plan(runtime: Runtime) -> None:
    assert runtime.planner.plan_status("missing") is None


class FlakySpecialist(EchoSpecialist):
    """Fails the first call, then behaves like the echo specialist."""

    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def execute(self, task_type: str, data: dict[str, Any]) -> dict[str, Any]:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("model timed out")
        return super().execute(task_type, data)


def test_plan_status_counts_retried_task_once(runtime: Runtime) -> None:
    flaky = FlakySpecialist()
    runtime.specialists.register("design-social-static", flaky)
    runtime.ledger.add_credits(USER_ID, 100)
    plan, _ = runtime.planner.create_plan(USER_ID, "brand-1", ["instagram"])

    first = runtime.scheduler.run_cycle()
    assert first.failed == 1
    assert first.retried == 1
    midway = runtime.planner.plan_status(plan.plan_id)
    assert midway is not None
    assert midway.total == 4
    assert midway.counts[TaskStatus.FAILED] == 0
    assert midway.counts[TaskStatus.PENDING] == 1
    assert midway.progress == 75

    for _ in range(3):
        runtime.scheduler.run_cycle()

    finished = runtime.planner.plan_status(plan.plan_id)
    assert finished is not None
    assert flaky.calls == 2
    assert finished.total == 4
    assert finished.counts[TaskStatus.COMPLETED] == 4
    assert finished.counts[TaskStatus.FAILED] == 0
    assert finished.progress == 100
    assert runtime.ledger.get_balance(USER_ID) == 100 - 44
