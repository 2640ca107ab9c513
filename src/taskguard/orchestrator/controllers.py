"""Controllers for taskguard CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from taskguard.config import Settings
from taskguard.errors import RequestValidationError, TaskNotFoundError
from taskguard.orchestrator.admin import AdminOutcome
from taskguard.orchestrator.facade import OrchestrationRequest
from taskguard.orchestrator.finance_guard import CampaignMetrics
from taskguard.orchestrator.models import (
    CreditKind,
    Sentiment,
    TaskCreate,
    TaskPriority,
    TaskStatus,
    TaskType,
)
from taskguard.orchestrator.scheduler import CycleSummary, TaskScheduler
from taskguard.runtime import open_runtime


@dataclass(slots=True)
class TaskEnqueueCommand:
    """CLI input for scheduled task enqueue."""

    db_path: Path | None
    task_type: str
    agent_id: str | None
    priority: str
    topic: str | None
    data_json: str | None
    user_id: str | None


@dataclass(slots=True)
class TaskListCommand:
    """CLI input for task listing."""

    db_path: Path | None
    status: str | None
    plan_id: str | None
    limit: int


@dataclass(slots=True)
class TaskRefCommand:
    """CLI input for single-task operations."""

    db_path: Path | None
    task_id: str


@dataclass(slots=True)
class SchedulerRunCommand:
    db_path: Path | None
    once: bool
    duration_seconds: float | None = None


@dataclass(slots=True)
class RequestProcessCommand:
    """CLI input for a synchronous orchestration request."""

    db_path: Path | None
    request_type: str
    payload_json: str | None
    user_id: str | None
    request_id: str | None
    user_budget: int | None
    files: tuple[str, ...]


@dataclass(slots=True)
class PlanCreateCommand:
    db_path: Path | None
    brand_id: str
    platforms: tuple[str, ...]
    formats: tuple[str, ...]
    user_id: str | None


@dataclass(slots=True)
class PlanStatusCommand:
    db_path: Path | None
    plan_id: str


@dataclass(slots=True)
class CreditsAddCommand:
    db_path: Path | None
    amount: int
    kind: str
    reason: str
    user_id: str | None


@dataclass(slots=True)
class CreditsQueryCommand:
    db_path: Path | None
    user_id: str | None
    limit: int = 20


@dataclass(slots=True)
class HealthFeedbackCommand:
    """CLI input for one feedback event."""

    db_path: Path | None
    agent_id: str
    platform: str
    brand_id: str
    sentiment: str


@dataclass(slots=True)
class AgentRefCommand:
    db_path: Path | None
    agent_id: str
    brand_id: str | None = None


@dataclass(slots=True)
class FinanceEvaluateCommand:
    """CLI input for a campaign metrics check."""

    db_path: Path | None
    cpa: float
    roas: float
    ctr: float
    cpm: float
    frequency: float
    spend: float
    budget: float
    campaign_id: str | None


@dataclass(slots=True)
class EmergencyCommand:
    db_path: Path | None
    agent_id: str | None = None
    active: bool = True


class OrchestratorCliController:
    """Coordinates queue, scheduler, request and plan CLI operations."""

    def enqueue(self, command: TaskEnqueueCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        task_type = _parse_enum(TaskType, command.task_type, "task type")
        data = _parse_json_object(command.data_json, "--data")
        if command.topic:
            data["topic"] = command.topic
        with open_runtime(settings) as runtime:
            task = runtime.scheduler.enqueue(
                TaskCreate(
                    user_id=command.user_id or settings.user_context.user_id,
                    agent_id=command.agent_id or f"{task_type.value}-agent",
                    task_type=task_type,
                    data=data,
                    priority=_parse_enum(TaskPriority, command.priority, "priority"),
                    max_attempts=settings.scheduler.max_attempts,
                ),
            )
        return [
            "Task enqueued: "
            f"task_id={task.task_id} type={task.task_type.value} "
            f"priority={task.priority.value} status={task.status.value}",
        ]

    def list_tasks(self, command: TaskListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status = _parse_enum(TaskStatus, command.status, "status") if command.status else None
        with open_runtime(settings) as runtime:
            tasks = runtime.tasks.list_tasks(
                status=status,
                plan_id=command.plan_id,
                limit=command.limit,
            )

        lines = [f"Tasks: {len(tasks)}"]
        for task in tasks:
            lines.append(
                f"  {task.task_id} type={task.task_type.value} status={task.status.value} "
                f"priority={task.priority.value} agent={task.agent_id} "
                f"attempt={task.attempt}/{task.max_attempts} channel={task.channel.value}",
            )
        return lines

    def inspect_task(self, command: TaskRefCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            details = runtime.tasks.get_task_details(task_id=command.task_id)
            debits = runtime.ledger.usage_entries_for_task(command.task_id)
        if details is None:
            return [f"Task not found: {command.task_id}"]

        task = details.task
        lines = [
            f"Task: {task.task_id}",
            f"Type: {task.task_type.value}",
            f"Agent: {task.agent_id}",
            f"Status: {task.status.value}",
            f"Priority: {task.priority.value}",
            f"Attempt: {task.attempt}/{task.max_attempts}",
            f"Retry of: {task.retry_of or '-'}",
            f"Plan: {task.plan_id or '-'}",
            f"Charged: {sum(-entry.amount for entry in debits)}",
            f"Result: {json.dumps(task.result, sort_keys=True) if task.result else '-'}",
            f"Events: {len(details.events)}",
        ]
        for event in details.events:
            transition = ""
            if event.status_to is not None:
                status_from = event.status_from.value if event.status_from else "-"
                transition = f" {status_from}->{event.status_to.value}"
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type}{transition} "
                f"{json.dumps(event.details, sort_keys=True) if event.details else ''}".rstrip(),
            )
        return lines

    def retry_task(self, command: TaskRefCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            task = runtime.tasks.get(command.task_id)
            if task is None:
                raise TaskNotFoundError(f"Task not found: {command.task_id}")
            if task.status not in {TaskStatus.FAILED, TaskStatus.PAUSED_EMERGENCY}:
                raise RequestValidationError(
                    f"Only failed or paused tasks can be retried, task is {task.status.value}",
                )
            if task.paused_from == TaskStatus.PENDING:
                raise RequestValidationError(
                    "Task was paused before it started, resume it instead of retrying",
                )
            retry = runtime.tasks.create_retry(task_id=command.task_id)
        if retry is None:
            return [f"Retry already exists for task: {command.task_id}"]
        return [f"Task re-queued: {command.task_id} -> {retry.task_id} attempt={retry.attempt}"]

    def run_scheduler(self, command: SchedulerRunCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            if command.once:
                summary = runtime.scheduler.run_cycle()
            else:
                summary = _run_until_stopped(runtime.scheduler, command.duration_seconds)
        return [_render_summary(summary)]

    def process_request(self, command: RequestProcessCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        payload = _parse_json_object(command.payload_json, "--payload")
        with open_runtime(settings) as runtime:
            response = runtime.facade.process_request(
                OrchestrationRequest(
                    type=command.request_type,
                    user_id=command.user_id or settings.user_context.user_id,
                    payload=payload,
                    request_id=command.request_id,
                    user_budget=command.user_budget,
                    files=list(command.files),
                ),
            )
        return json.dumps(response, indent=2, sort_keys=True, default=str).splitlines()

    def create_plan(self, command: PlanCreateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        formats = _parse_formats(command.formats)
        with open_runtime(settings) as runtime:
            plan, tasks = runtime.planner.create_plan(
                command.user_id or settings.user_context.user_id,
                command.brand_id,
                command.platforms,
                formats,
            )
        lines = [
            f"Plan created: plan_id={plan.plan_id} brand={plan.brand_id} "
            f"platforms={','.join(plan.platforms)} estimate={plan.estimated_cost}",
        ]
        for task in tasks:
            lines.append(
                f"  {task.task_id} type={task.task_type.value} "
                f"priority={task.priority.value} agent={task.agent_id}",
            )
        return lines

    def plan_status(self, command: PlanStatusCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            status = runtime.planner.plan_status(command.plan_id)
        if status is None:
            return [f"Plan not found: {command.plan_id}"]
        counts = " ".join(
            f"{key.value}={value}" for key, value in status.counts.items() if value
        )
        return [
            f"Plan: {status.plan.plan_id} brand={status.plan.brand_id}",
            f"Tasks: total={status.total} {counts}".rstrip(),
            f"Progress: {status.progress}%",
        ]


class OperationsCliController:
    """Credits, health, finance and emergency CLI operations."""

    def add_credits(self, command: CreditsAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        user_id = command.user_id or settings.user_context.user_id
        kind = _parse_enum(CreditKind, command.kind, "credit kind")
        with open_runtime(settings) as runtime:
            runtime.ledger.open_account(user_id, settings.user_context.user_name)
            balance = runtime.ledger.add_credits(
                user_id,
                command.amount,
                kind=kind,
                reason=command.reason,
            )
        return [f"Credits added: user={user_id} amount={command.amount} balance={balance}"]

    def balance(self, command: CreditsQueryCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        user_id = command.user_id or settings.user_context.user_id
        with open_runtime(settings) as runtime:
            balance = runtime.ledger.get_balance(user_id)
            available = runtime.ledger.available(user_id)
        return [f"Balance: user={user_id} balance={balance} available={available}"]

    def history(self, command: CreditsQueryCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        user_id = command.user_id or settings.user_context.user_id
        with open_runtime(settings) as runtime:
            entries = runtime.ledger.history(user_id, limit=command.limit)
        lines = [f"Entries: {len(entries)}"]
        for entry in entries:
            lines.append(
                f"  {entry.created_at.isoformat()} {entry.kind.value} {entry.amount:+d} "
                f"{entry.reason} task={entry.task_id or '-'}",
            )
        return lines

    def feedback(self, command: HealthFeedbackCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        sentiment = _parse_enum(Sentiment, command.sentiment.upper(), "sentiment")
        with open_runtime(settings) as runtime:
            outcome = runtime.health.apply_feedback(
                command.agent_id,
                command.platform,
                command.brand_id,
                sentiment,
            )
        line = f"Health: agent={command.agent_id} score={outcome.health_score} "
        line += f"action={outcome.action.value}"
        if outcome.snapshot_id is not None:
            line += f" snapshot={outcome.snapshot_id}"
        return [line]

    def restore(self, command: AgentRefCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            outcome = runtime.health.restore(command.agent_id, command.brand_id or "")
        snapshot = outcome.snapshot_id if outcome.snapshot_id is not None else "none"
        return [
            f"Restored: agent={outcome.agent_id} score={outcome.health_score} "
            f"records={outcome.records_reset} snapshot={snapshot}",
        ]

    def pause_agent(self, command: AgentRefCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            updated = runtime.health.pause_agent(command.agent_id)
        return [f"Agent paused: {command.agent_id} records={updated}"]

    def resume_agent(self, command: AgentRefCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            updated = runtime.health.resume_agent(command.agent_id)
        return [f"Agent resumed: {command.agent_id} records={updated}"]

    def metrics(self, command: EmergencyCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            metrics = runtime.admin.system_metrics()
        lines = [f"System: {metrics.status.value}", f"Agents: {len(metrics.agents)}"]
        for agent in metrics.agents:
            lines.append(
                f"  {agent.agent_id}/{agent.platform} score={agent.health_score} "
                f"status={agent.status.value}",
            )
        lines.append(
            "Tasks: " + " ".join(f"{key.value}={value}" for key, value in metrics.tasks.items()),
        )
        return lines

    def evaluate_finance(self, command: FinanceEvaluateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            verdict = runtime.finance_guard.evaluate(
                CampaignMetrics(
                    cpa=command.cpa,
                    roas=command.roas,
                    ctr=command.ctr,
                    cpm=command.cpm,
                    frequency=command.frequency,
                    spend=command.spend,
                    budget=command.budget,
                    campaign_id=command.campaign_id,
                ),
            )
        lines = [
            f"Verdict: action={verdict.action.value} approved={str(verdict.approved).lower()} "
            f"adjustment={verdict.adjustment_factor:.2f}",
            f"Reason: {verdict.reason}",
        ]
        if verdict.containment is not None:
            lines.append(
                f"Containment: tier={verdict.containment.failure_type.value} "
                f"action={verdict.containment.action_taken}",
            )
            if verdict.containment.safe_response:
                lines.append(f"Message: {verdict.containment.safe_response}")
        return lines

    def emergency_stop(self, command: EmergencyCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            outcome = runtime.admin.emergency_stop()
        return [_render_outcome("Emergency stop", outcome)]

    def emergency_protocol(self, command: EmergencyCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            outcome = runtime.admin.emergency_protocol()
        return [_render_outcome("Emergency protocol", outcome)]

    def resume_system(self, command: EmergencyCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            outcome = runtime.admin.resume_system()
        return [_render_outcome("System resumed", outcome)]

    def toggle_circuit(self, command: EmergencyCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            outcome = runtime.admin.toggle_circuit(command.agent_id, active=command.active)
        state = "closed" if command.active else "open"
        return [_render_outcome(f"Circuit {state} for {command.agent_id or 'all agents'}", outcome)]

    def reset_agent(self, command: AgentRefCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_runtime(settings) as runtime:
            outcome = runtime.admin.reset_agent(command.agent_id)
        return [_render_outcome(f"Agent reset: {command.agent_id}", outcome)]


def _run_until_stopped(
    scheduler: TaskScheduler,
    duration_seconds: float | None,
) -> CycleSummary:
    scheduler.start()
    try:
        scheduler.wait(timeout=duration_seconds)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
    return scheduler.totals


def _render_summary(summary: CycleSummary) -> str:
    if summary.cycle_skipped:
        return "Scheduler summary: skipped (previous cycle still running)"
    return (
        "Scheduler summary: "
        f"fetched={summary.fetched} completed={summary.completed} failed={summary.failed} "
        f"rejected={summary.rejected} skipped={summary.skipped} retried={summary.retried} "
        f"escalated={summary.escalated}"
    )


def _render_outcome(title: str, outcome: AdminOutcome) -> str:
    return (
        f"{title}: tasks_paused={outcome.tasks_paused} tasks_failed={outcome.tasks_failed} "
        f"tasks_resumed={outcome.tasks_resumed} tasks_retried={outcome.tasks_retried} "
        f"agents_updated={outcome.agents_updated}"
    )


def _parse_enum(enum_cls: Any, raw: str, label: str) -> Any:
    try:
        return enum_cls(raw.strip())
    except ValueError as error:
        allowed = ", ".join(item.value for item in enum_cls)
        raise ValueError(f"Unsupported {label}: {raw!r}. Allowed: {allowed}") from error


def _parse_json_object(raw: str | None, option: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as error:
        raise ValueError(f"{option} must be valid JSON: {error.msg}") from error
    if not isinstance(parsed, dict):
        raise ValueError(f"{option} must be a JSON object")
    return parsed


def _parse_formats(raw_formats: tuple[str, ...]) -> dict[str, str]:
    formats: dict[str, str] = {}
    for raw in raw_formats:
        platform, separator, content_format = raw.partition("=")
        if not separator or not platform.strip() or not content_format.strip():
            raise ValueError(f"Invalid --format value {raw!r}, expected platform=format")
        formats[platform.strip().lower()] = content_format.strip()
    return formats
