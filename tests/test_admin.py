from __future__ import annotations

import allure
import pytest

from conftest import USER_ID, make_task
from taskguard.orchestrator.admin import AgentStatus, SystemStatus, agent_status
from taskguard.orchestrator.health import MAX_HEALTH, PAUSED_HEALTH
from taskguard.orchestrator.models import TaskStatus, TaskType
from taskguard.runtime import Runtime

pytestmark = [
    allure.epic("Safety"),
    allure.feature("Administrative Controls"),
]

COPY_AGENT = "copy-social-short"
DESIGN_AGENT = "design-social-static"


@pytest.fixture()
def seeded(runtime: Runtime) -> Runtime:
    runtime.health_repository.get_or_create(COPY_AGENT, "instagram")
    runtime.health_repository.get_or_create(DESIGN_AGENT, "instagram")
    return runtime


def _status(runtime: Runtime, task_id: str) -> TaskStatus:
    task = runtime.tasks.get(task_id)
    assert task is not None
    return task.status


def _scores(runtime: Runtime) -> set[int]:
    return {record.health_score for record in runtime.health_repository.list_records()}


def test_emergency_stop_pauses_running_work_and_agents(seeded: Runtime) -> None:
    waiting = seeded.tasks.create(make_task())
    running = seeded.tasks.create(make_task())
    seeded.tasks.claim(running.task_id)

    outcome = seeded.admin.emergency_stop()

    assert outcome.tasks_paused == 1
    assert outcome.agents_updated == 2
    assert _status(seeded, running.task_id) == TaskStatus.PAUSED_EMERGENCY
    assert _status(seeded, waiting.task_id) == TaskStatus.PENDING
    assert _scores(seeded) == {PAUSED_HEALTH}
    assert seeded.admin.system_metrics().status == SystemStatus.PAUSED


def test_emergency_protocol_fails_running_and_requeues_waiting(seeded: Runtime) -> None:
    running = seeded.tasks.create(make_task())
    seeded.tasks.claim(running.task_id)
    parked = seeded.tasks.create(make_task())
    seeded.tasks.pause(task_id=parked.task_id, expected=TaskStatus.PENDING)

    outcome = seeded.admin.emergency_protocol()

    assert outcome.tasks_failed == 1
    assert outcome.tasks_resumed == 1
    assert outcome.agents_updated == 2
    failed = seeded.tasks.get(running.task_id)
    assert failed is not None
    assert failed.status == TaskStatus.FAILED
    assert failed.result == {"error": "Emergency protocol"}
    assert _status(seeded, parked.task_id) == TaskStatus.PENDING
    assert _scores(seeded) == {80}


def test_resume_system_retries_interrupted_tasks(seeded: Runtime) -> None:
    parked = seeded.tasks.create(make_task())
    interrupted = seeded.tasks.create(make_task())
    seeded.tasks.claim(interrupted.task_id)
    seeded.admin.emergency_stop()
    seeded.tasks.pause(task_id=parked.task_id, expected=TaskStatus.PENDING)

    outcome = seeded.admin.resume_system()

    assert outcome.tasks_resumed == 1
    assert outcome.tasks_retried == 1
    assert _status(seeded, parked.task_id) == TaskStatus.PENDING
    assert _status(seeded, interrupted.task_id) == TaskStatus.PAUSED_EMERGENCY
    retries = [
        task for task in seeded.tasks.list_tasks(status=TaskStatus.PENDING)
        if task.retry_of == interrupted.task_id
    ]
    assert len(retries) == 1
    assert _scores(seeded) == {MAX_HEALTH}
    assert seeded.admin.system_metrics().status == SystemStatus.OPERATIONAL


def test_circuit_breaker_for_one_agent(seeded: Runtime) -> None:
    copy_task = seeded.tasks.create(make_task())
    design_task = seeded.tasks.create(make_task(TaskType.DESIGN, agent_id=DESIGN_AGENT))

    opened = seeded.admin.toggle_circuit(COPY_AGENT, active=False)

    assert opened.tasks_paused == 1
    assert _status(seeded, copy_task.task_id) == TaskStatus.PAUSED_EMERGENCY
    assert _status(seeded, design_task.task_id) == TaskStatus.PENDING
    assert seeded.health.is_paused(COPY_AGENT) is True
    assert seeded.health.is_paused(DESIGN_AGENT) is False

    closed = seeded.admin.toggle_circuit(COPY_AGENT, active=True)

    assert closed.tasks_resumed == 1
    assert _status(seeded, copy_task.task_id) == TaskStatus.PENDING
    assert seeded.health.is_paused(COPY_AGENT) is False


def test_circuit_breaker_for_all_agents(seeded: Runtime) -> None:
    seeded.tasks.create(make_task())
    seeded.tasks.create(make_task(TaskType.DESIGN, agent_id=DESIGN_AGENT))

    assert seeded.admin.toggle_circuit(None, active=False).tasks_paused == 2
    assert seeded.scheduler.run_cycle().fetched == 0
    assert seeded.admin.toggle_circuit(None, active=True).tasks_resumed == 2
    assert _scores(seeded) == {MAX_HEALTH}


def test_reset_agent_fails_only_its_running_tasks(seeded: Runtime) -> None:
    copy_task = seeded.tasks.create(make_task())
    design_task = seeded.tasks.create(make_task(TaskType.DESIGN, agent_id=DESIGN_AGENT))
    seeded.tasks.claim(copy_task.task_id)
    seeded.tasks.claim(design_task.task_id)
    seeded.health.pause_agent(COPY_AGENT)

    outcome = seeded.admin.reset_agent(COPY_AGENT)

    assert outcome.tasks_failed == 1
    assert _status(seeded, copy_task.task_id) == TaskStatus.FAILED
    assert _status(seeded, design_task.task_id) == TaskStatus.IN_PROGRESS
    assert seeded.health.is_paused(COPY_AGENT) is False


@pytest.mark.parametrize(
    ("score", "status"),
    [
        (PAUSED_HEALTH, AgentStatus.PAUSED),
        (0, AgentStatus.CRITICAL),
        (49, AgentStatus.CRITICAL),
        (50, AgentStatus.DEGRADED),
        (79, AgentStatus.DEGRADED),
        (80, AgentStatus.HEALTHY),
        (100, AgentStatus.HEALTHY),
    ],
)
def test_agent_status_bands(score: int, status: AgentStatus) -> None:
    assert agent_status(score) == status


def test_system_metrics_warns_on_critical_agent(seeded: Runtime) -> None:
    seeded.health_repository.update_score(
        COPY_AGENT, "instagram", health_score=30, trend="down"
    )
    seeded.tasks.create(make_task())

    metrics = seeded.admin.system_metrics()

    assert metrics.status == SystemStatus.WARNING
    assert {metric.agent_id: metric.status for metric in metrics.agents} == {
        COPY_AGENT: AgentStatus.CRITICAL,
        DESIGN_AGENT: AgentStatus.HEALTHY,
    }
    assert metrics.tasks[TaskStatus.PENDING] == 1


def test_resume_skips_task_already_superseded_by_retry(seeded: Runtime) -> None:
    seeded.ledger.add_credits(USER_ID, 20)
    task = seeded.tasks.create(make_task())
    seeded.admin.toggle_circuit(COPY_AGENT, active=False)
    retry = seeded.tasks.create_retry(task_id=task.task_id)
    assert retry is not None

    outcome = seeded.admin.resume_system()
    summary = seeded.scheduler.run_cycle()

    assert outcome.tasks_resumed == 0
    assert outcome.tasks_retried == 0
    assert summary.completed == 1
    assert _status(seeded, task.task_id) == TaskStatus.PAUSED_EMERGENCY
    assert _status(seeded, retry.task_id) == TaskStatus.COMPLETED
    assert seeded.ledger.usage_entries_for_task(task.task_id) == []
    assert len(seeded.ledger.usage_entries_for_task(retry.task_id)) == 1
    assert seeded.ledger.get_balance(USER_ID) == 15
