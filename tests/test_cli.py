from __future__ import annotations

import json
import re
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from taskguard.main import taskguard

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Operator Commands"),
]

USER = "cli-user"


@pytest.fixture()
def cli(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("TASKGUARD_USER_ID", USER)
    monkeypatch.delenv("TASKGUARD_NOTIFY_WEBHOOK_URL", raising=False)
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    def _invoke(*args: str):
        group, command, *rest = args
        return runner.invoke(taskguard, [group, command, "--db-path", str(db_path), *rest])

    return _invoke


def _extract(pattern: str, output: str) -> str:
    match = re.search(pattern, output)
    assert match is not None, output
    return match.group(1)


def test_enqueue_run_and_inspect(cli) -> None:
    added = cli("credits", "add", "20")
    assert added.exit_code == 0, added.output
    assert f"Credits added: user={USER} amount=20 balance=20" in added.output

    enqueued = cli("tasks", "enqueue", "--type", "copy", "--topic", "launch")
    assert enqueued.exit_code == 0, enqueued.output
    assert "type=copy priority=medium status=pending" in enqueued.output
    task_id = _extract(r"task_id=(\S+)", enqueued.output)

    ran = cli("scheduler", "run-once")
    assert ran.exit_code == 0, ran.output
    assert "Scheduler summary: fetched=1 completed=1 failed=0 rejected=0" in ran.output

    balance = cli("credits", "balance")
    assert f"Balance: user={USER} balance=15 available=15" in balance.output

    inspected = cli("tasks", "inspect", task_id)
    assert inspected.exit_code == 0, inspected.output
    assert "Status: completed" in inspected.output
    assert "Agent: copy-agent" in inspected.output
    assert "Charged: 5" in inspected.output

    listed = cli("tasks", "list", "--status", "completed")
    assert "Tasks: 1" in listed.output
    assert task_id in listed.output

    history = cli("credits", "history")
    assert "Entries: 2" in history.output
    assert f"usage -5 Execution: copy ({task_id})" in history.output


def test_retry_requires_failed_or_paused_task(cli) -> None:
    enqueued = cli("tasks", "enqueue", "--type", "proposed_opportunity")
    task_id = _extract(r"task_id=(\S+)", enqueued.output)
    cli("scheduler", "run-once")

    retried = cli("tasks", "retry", task_id)

    assert retried.exit_code != 0
    assert "Only failed or paused tasks can be retried" in retried.output


def test_retry_failed_task(cli) -> None:
    enqueued = cli("tasks", "enqueue", "--type", "design", "--topic", "banner")
    task_id = _extract(r"task_id=(\S+)", enqueued.output)
    ran = cli("scheduler", "run-once")
    assert "rejected=1" in ran.output

    retried = cli("tasks", "retry", task_id)

    assert retried.exit_code == 0, retried.output
    assert f"Task re-queued: {task_id} -> " in retried.output
    assert "attempt=2" in retried.output


def test_enqueue_rejects_unknown_type_and_bad_json(cli) -> None:
    unknown = cli("tasks", "enqueue", "--type", "podcast")
    assert unknown.exit_code != 0
    assert "Unsupported task type" in unknown.output

    bad_json = cli("tasks", "enqueue", "--type", "copy", "--data", "[1]")
    assert bad_json.exit_code != 0
    assert "--data must be a JSON object" in bad_json.output


def test_request_process_prints_envelope(cli) -> None:
    cli("credits", "add", "10")

    result = cli(
        "request",
        "process",
        "--type",
        "CREATE_EMAIL",
        "--payload",
        '{"topic": "welcome series"}',
        "--request-id",
        "req-9",
    )

    assert result.exit_code == 0, result.output
    response = json.loads(result.output[result.output.index("{") :])
    assert response["success"] is True
    assert response["cost"] == 5
    assert response["metadata"]["agent"] == "CopyCRMAgent"
    assert response["metadata"]["request_id"] == "req-9"


def test_request_process_reports_missing_credits(cli) -> None:
    result = cli("request", "process", "--type", "CREATE_SOCIAL_POST")

    assert result.exit_code == 0, result.output
    response = json.loads(result.output[result.output.index("{") :])
    assert response["success"] is False
    assert response["suggestion"] == "Top up your credits to continue."


def test_health_commands(cli) -> None:
    feedback = cli("health", "feedback", "copy-agent", "negative", "--platform", "instagram")
    assert feedback.exit_code == 0, feedback.output
    assert "Health: agent=copy-agent score=85 action=LOG_ONLY" in feedback.output

    paused = cli("health", "pause", "copy-agent")
    assert "Agent paused: copy-agent records=1" in paused.output
    ignored = cli("health", "feedback", "copy-agent", "POSITIVE", "--platform", "instagram")
    assert "action=IGNORED_PAUSED" in ignored.output

    metrics = cli("health", "metrics")
    assert "System: paused" in metrics.output
    assert "copy-agent/instagram score=-1 status=paused" in metrics.output

    restored = cli("health", "restore", "copy-agent")
    assert "Restored: agent=copy-agent score=100 records=1" in restored.output


def test_finance_evaluate_pause(cli) -> None:
    result = cli("finance", "evaluate", "--cpa", "60", "--roas", "5", "--spend", "200")

    assert result.exit_code == 0, result.output
    assert "Verdict: action=PAUSE approved=false adjustment=0.00" in result.output
    assert "Containment: tier=D" in result.output
    assert "Investment paused preventively" in result.output


def test_emergency_commands(cli) -> None:
    cli("tasks", "enqueue", "--type", "copy", "--agent-id", "copy-social-short")

    opened = cli("emergency", "toggle", "--agent-id", "copy-social-short", "--inactive")
    assert "Circuit open for copy-social-short: tasks_paused=1" in opened.output

    stopped = cli("emergency", "stop")
    assert stopped.exit_code == 0, stopped.output
    assert "Emergency stop: tasks_paused=0" in stopped.output

    resumed = cli("emergency", "resume")
    assert "System resumed: tasks_paused=0 tasks_failed=0 tasks_resumed=1" in resumed.output

    protocol = cli("emergency", "protocol")
    assert "Emergency protocol: tasks_paused=0" in protocol.output

    reset = cli("emergency", "reset-agent", "copy-social-short")
    assert "Agent reset: copy-social-short" in reset.output


def test_plan_create_and_status(cli) -> None:
    cli("credits", "add", "100")

    created = cli(
        "plan",
        "create",
        "--brand-id",
        "brand-1",
        "--platform",
        "instagram",
        "--format",
        "instagram=carousel",
    )

    assert created.exit_code == 0, created.output
    assert "platforms=instagram estimate=44" in created.output
    plan_id = _extract(r"plan_id=(\S+)", created.output)

    status = cli("plan", "status", plan_id)
    assert "Tasks: total=4 pending=4" in status.output
    assert "Progress: 0%" in status.output

    cli("scheduler", "run-once")
    done = cli("plan", "status", plan_id)
    assert "Progress: 100%" in done.output


def test_plan_create_rejects_bad_format_override(cli) -> None:
    result = cli(
        "plan", "create", "--brand-id", "b", "--platform", "instagram", "--format", "carousel"
    )

    assert result.exit_code != 0
    assert "expected platform=format" in result.output


def test_retry_rejects_task_paused_before_start(cli) -> None:
    enqueued = cli("tasks", "enqueue", "--type", "copy")
    task_id = _extract(r"task_id=(\S+)", enqueued.output)
    cli("emergency", "toggle", "--inactive")

    retried = cli("tasks", "retry", task_id)

    assert retried.exit_code != 0
    assert "resume it instead of retrying" in retried.output
    resumed = cli("emergency", "toggle", "--active")
    assert resumed.exit_code == 0, resumed.output
    shown = cli("tasks", "inspect", task_id)
    assert "Status: pending" in shown.output
