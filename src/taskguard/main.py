"""CLI entrypoint for taskguard."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from taskguard import __version__
from taskguard.errors import TaskguardError
from taskguard.orchestrator.controllers import (
    AgentRefCommand,
    CreditsAddCommand,
    CreditsQueryCommand,
    EmergencyCommand,
    FinanceEvaluateCommand,
    HealthFeedbackCommand,
    OperationsCliController,
    OrchestratorCliController,
    PlanCreateCommand,
    PlanStatusCommand,
    RequestProcessCommand,
    SchedulerRunCommand,
    TaskEnqueueCommand,
    TaskListCommand,
    TaskRefCommand,
)

click.rich_click.USE_MARKDOWN = True
ORCHESTRATOR_CONTROLLER = OrchestratorCliController()
OPERATIONS_CONTROLLER = OperationsCliController()

CommandT = TypeVar("CommandT")

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)
user_option = click.option(
    "--user-id",
    default=None,
    help="Acting user; defaults to TASKGUARD_USER_ID.",
)


@click.group()
@click.version_option(version=__version__, prog_name="taskguard")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for taskguard modules.",
)
def taskguard(log_level: str) -> None:
    """Credit-gated task orchestration with failure containment."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@taskguard.group()
def tasks() -> None:
    """Scheduled task queue."""


@tasks.command("enqueue")
@db_path_option
@click.option(
    "--type",
    "task_type",
    required=True,
    help="Task type, for example copy, design or monitor.",
)
@click.option("--agent-id", default=None, help="Specialist agent id; defaults to <type>-agent.")
@click.option(
    "--priority",
    type=click.Choice(["high", "medium", "low"], case_sensitive=False),
    default="medium",
    show_default=True,
)
@click.option("--topic", default=None, help="Topic passed to the specialist.")
@click.option("--data", "data_json", default=None, help="Extra task data as a JSON object.")
@user_option
def tasks_enqueue(  # noqa: PLR0913
    db_path: Path | None,
    task_type: str,
    agent_id: str | None,
    priority: str,
    topic: str | None,
    data_json: str | None,
    user_id: str | None,
) -> None:
    """Queue one task for the scheduler."""

    _run(
        ORCHESTRATOR_CONTROLLER.enqueue,
        TaskEnqueueCommand(
            db_path=db_path,
            task_type=task_type.lower(),
            agent_id=agent_id,
            priority=priority.lower(),
            topic=topic,
            data_json=data_json,
            user_id=user_id,
        ),
    )


@tasks.command("list")
@db_path_option
@click.option(
    "--status",
    type=click.Choice(
        ["pending", "in_progress", "completed", "failed", "paused_emergency"],
        case_sensitive=False,
    ),
    default=None,
    help="Optional status filter.",
)
@click.option("--plan-id", default=None, help="Only tasks of one content plan.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=20,
    show_default=True,
)
def tasks_list(db_path: Path | None, status: str | None, plan_id: str | None, limit: int) -> None:
    """List latest tasks."""

    _run(
        ORCHESTRATOR_CONTROLLER.list_tasks,
        TaskListCommand(
            db_path=db_path,
            status=status.lower() if status else None,
            plan_id=plan_id,
            limit=limit,
        ),
    )


@tasks.command("inspect")
@db_path_option
@click.argument("task_id")
def tasks_inspect(db_path: Path | None, task_id: str) -> None:
    """Show one task with its event trail and charges."""

    _run(ORCHESTRATOR_CONTROLLER.inspect_task, TaskRefCommand(db_path=db_path, task_id=task_id))


@tasks.command("retry")
@db_path_option
@click.argument("task_id")
def tasks_retry(db_path: Path | None, task_id: str) -> None:
    """Queue the next attempt of a failed or paused task."""

    _run(ORCHESTRATOR_CONTROLLER.retry_task, TaskRefCommand(db_path=db_path, task_id=task_id))


@taskguard.group()
def scheduler() -> None:
    """Batch scheduler."""


@scheduler.command("run-once")
@db_path_option
def scheduler_run_once(db_path: Path | None) -> None:
    """Process one batch of pending tasks."""

    _run(ORCHESTRATOR_CONTROLLER.run_scheduler, SchedulerRunCommand(db_path=db_path, once=True))


@scheduler.command("run")
@db_path_option
@click.option(
    "--duration-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Stop after this many seconds; runs until interrupted when omitted.",
)
def scheduler_run(db_path: Path | None, duration_seconds: float | None) -> None:
    """Run cycles on the configured interval."""

    _run(
        ORCHESTRATOR_CONTROLLER.run_scheduler,
        SchedulerRunCommand(db_path=db_path, once=False, duration_seconds=duration_seconds),
    )


@taskguard.group()
def request() -> None:
    """Synchronous requests."""


@request.command("process")
@db_path_option
@click.option("--type", "request_type", required=True, help="Request type, e.g. CREATE_EMAIL.")
@click.option("--payload", "payload_json", default=None, help="Request payload as JSON object.")
@click.option("--request-id", default=None, help="Caller correlation id.")
@click.option("--user-budget", type=click.IntRange(min=0), default=None)
@click.option("--file", "files", multiple=True, help="Attached file reference. Can be repeated.")
@user_option
def request_process(  # noqa: PLR0913
    db_path: Path | None,
    request_type: str,
    payload_json: str | None,
    request_id: str | None,
    user_budget: int | None,
    files: tuple[str, ...],
    user_id: str | None,
) -> None:
    """Route, bill and execute one request, printing the response envelope."""

    _run(
        ORCHESTRATOR_CONTROLLER.process_request,
        RequestProcessCommand(
            db_path=db_path,
            request_type=request_type,
            payload_json=payload_json,
            user_id=user_id,
            request_id=request_id,
            user_budget=user_budget,
            files=files,
        ),
    )


@taskguard.group()
def credits() -> None:
    """Credit ledger."""


@credits.command("add")
@db_path_option
@click.argument("amount", type=click.IntRange(min=1))
@click.option(
    "--kind",
    type=click.Choice(["purchase", "bonus", "refund"], case_sensitive=False),
    default="purchase",
    show_default=True,
)
@click.option("--reason", default="Manual top-up", show_default=True)
@user_option
def credits_add(
    db_path: Path | None,
    amount: int,
    kind: str,
    reason: str,
    user_id: str | None,
) -> None:
    """Add credits to a user's balance."""

    _run(
        OPERATIONS_CONTROLLER.add_credits,
        CreditsAddCommand(
            db_path=db_path,
            amount=amount,
            kind=kind.lower(),
            reason=reason,
            user_id=user_id,
        ),
    )


@credits.command("balance")
@db_path_option
@user_option
def credits_balance(db_path: Path | None, user_id: str | None) -> None:
    """Show balance and the part not held by reservations."""

    _run(OPERATIONS_CONTROLLER.balance, CreditsQueryCommand(db_path=db_path, user_id=user_id))


@credits.command("history")
@db_path_option
@user_option
@click.option("--limit", type=click.IntRange(min=1, max=500), default=20, show_default=True)
def credits_history(db_path: Path | None, user_id: str | None, limit: int) -> None:
    """Show ledger entries, newest first."""

    _run(
        OPERATIONS_CONTROLLER.history,
        CreditsQueryCommand(db_path=db_path, user_id=user_id, limit=limit),
    )


@taskguard.group()
def health() -> None:
    """Agent health scores."""


@health.command("feedback")
@db_path_option
@click.argument("agent_id")
@click.argument(
    "sentiment",
    type=click.Choice(["POSITIVE", "NEGATIVE"], case_sensitive=False),
)
@click.option("--platform", default="default", show_default=True)
@click.option("--brand-id", default="default", show_default=True)
def health_feedback(
    db_path: Path | None,
    agent_id: str,
    sentiment: str,
    platform: str,
    brand_id: str,
) -> None:
    """Apply one feedback event to an agent."""

    _run(
        OPERATIONS_CONTROLLER.feedback,
        HealthFeedbackCommand(
            db_path=db_path,
            agent_id=agent_id,
            platform=platform,
            brand_id=brand_id,
            sentiment=sentiment,
        ),
    )


@health.command("restore")
@db_path_option
@click.argument("agent_id")
@click.option("--brand-id", default="default", show_default=True)
def health_restore(db_path: Path | None, agent_id: str, brand_id: str) -> None:
    """Restore an agent to full health from its latest snapshot."""

    _run(
        OPERATIONS_CONTROLLER.restore,
        AgentRefCommand(db_path=db_path, agent_id=agent_id, brand_id=brand_id),
    )


@health.command("pause")
@db_path_option
@click.argument("agent_id")
def health_pause(db_path: Path | None, agent_id: str) -> None:
    """Pause one agent."""

    _run(OPERATIONS_CONTROLLER.pause_agent, AgentRefCommand(db_path=db_path, agent_id=agent_id))


@health.command("resume")
@db_path_option
@click.argument("agent_id")
def health_resume(db_path: Path | None, agent_id: str) -> None:
    """Resume one agent at full health."""

    _run(OPERATIONS_CONTROLLER.resume_agent, AgentRefCommand(db_path=db_path, agent_id=agent_id))


@health.command("metrics")
@db_path_option
def health_metrics(db_path: Path | None) -> None:
    """Show per-agent status, global status and task counts."""

    _run(OPERATIONS_CONTROLLER.metrics, EmergencyCommand(db_path=db_path))


@taskguard.group()
def finance() -> None:
    """Campaign spend guard."""


@finance.command("evaluate")
@db_path_option
@click.option("--cpa", type=float, required=True)
@click.option("--roas", type=float, required=True)
@click.option("--ctr", type=float, default=1.0, show_default=True)
@click.option("--cpm", type=float, default=0.0, show_default=True)
@click.option("--frequency", type=float, default=1.0, show_default=True)
@click.option("--spend", type=float, default=0.0, show_default=True)
@click.option("--budget", type=float, default=0.0, show_default=True)
@click.option("--campaign-id", default=None)
def finance_evaluate(  # noqa: PLR0913
    db_path: Path | None,
    cpa: float,
    roas: float,
    ctr: float,
    cpm: float,
    frequency: float,
    spend: float,
    budget: float,
    campaign_id: str | None,
) -> None:
    """Classify campaign metrics into approve, optimize, scale or pause."""

    _run(
        OPERATIONS_CONTROLLER.evaluate_finance,
        FinanceEvaluateCommand(
            db_path=db_path,
            cpa=cpa,
            roas=roas,
            ctr=ctr,
            cpm=cpm,
            frequency=frequency,
            spend=spend,
            budget=budget,
            campaign_id=campaign_id,
        ),
    )


@taskguard.group()
def emergency() -> None:
    """Emergency and circuit-breaker controls."""


@emergency.command("stop")
@db_path_option
def emergency_stop(db_path: Path | None) -> None:
    """Pause every agent and every running task."""

    _run(OPERATIONS_CONTROLLER.emergency_stop, EmergencyCommand(db_path=db_path))


@emergency.command("protocol")
@db_path_option
def emergency_protocol(db_path: Path | None) -> None:
    """Fail running tasks, requeue paused ones and degrade health to 80."""

    _run(OPERATIONS_CONTROLLER.emergency_protocol, EmergencyCommand(db_path=db_path))


@emergency.command("resume")
@db_path_option
def emergency_resume(db_path: Path | None) -> None:
    """Resume paused tasks and restore full health."""

    _run(OPERATIONS_CONTROLLER.resume_system, EmergencyCommand(db_path=db_path))


@emergency.command("toggle")
@db_path_option
@click.option("--agent-id", default=None, help="Agent to toggle; all agents when omitted.")
@click.option(
    "--active/--inactive",
    default=True,
    show_default=True,
    help="Close (active) or open (inactive) the circuit.",
)
def emergency_toggle(db_path: Path | None, agent_id: str | None, active: bool) -> None:
    """Open or close the circuit for one agent or all of them."""

    _run(
        OPERATIONS_CONTROLLER.toggle_circuit,
        EmergencyCommand(db_path=db_path, agent_id=agent_id, active=active),
    )


@emergency.command("reset-agent")
@db_path_option
@click.argument("agent_id")
def emergency_reset_agent(db_path: Path | None, agent_id: str) -> None:
    """Fail an agent's running tasks and reset its health."""

    _run(OPERATIONS_CONTROLLER.reset_agent, AgentRefCommand(db_path=db_path, agent_id=agent_id))


@taskguard.group()
def plan() -> None:
    """Content plans."""


@plan.command("create")
@db_path_option
@click.option("--brand-id", required=True)
@click.option(
    "--platform",
    "platforms",
    multiple=True,
    required=True,
    help="Target platform. Can be repeated.",
)
@click.option(
    "--format",
    "formats",
    multiple=True,
    help="Content format override as platform=format. Can be repeated.",
)
@user_option
def plan_create(
    db_path: Path | None,
    brand_id: str,
    platforms: tuple[str, ...],
    formats: tuple[str, ...],
    user_id: str | None,
) -> None:
    """Create a content plan and queue its tasks."""

    _run(
        ORCHESTRATOR_CONTROLLER.create_plan,
        PlanCreateCommand(
            db_path=db_path,
            brand_id=brand_id,
            platforms=platforms,
            formats=formats,
            user_id=user_id,
        ),
    )


@plan.command("status")
@db_path_option
@click.argument("plan_id")
def plan_status(db_path: Path | None, plan_id: str) -> None:
    """Show task counts and progress of a plan."""

    _run(ORCHESTRATOR_CONTROLLER.plan_status, PlanStatusCommand(db_path=db_path, plan_id=plan_id))


def _run(handler: Callable[[CommandT], list[str]], command: CommandT) -> None:
    try:
        lines = handler(command)
    except (TaskguardError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    taskguard()
