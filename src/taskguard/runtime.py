"""Object graph shared by the CLI and embedding hosts.

One `Runtime` wires every component against the same SQLite database and,
more importantly, the same `CreditLedger`, so scheduler cycles and direct
requests serialize money movement through one set of per-user locks.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from taskguard.config import Settings
from taskguard.orchestrator.admin import AdminOperations
from taskguard.orchestrator.containment import FailureContainment
from taskguard.orchestrator.facade import OrchestrationFacade
from taskguard.orchestrator.finance_guard import FinanceGuard
from taskguard.orchestrator.health import AgentHealthMonitor
from taskguard.orchestrator.health_repository import AgentHealthRepository
from taskguard.orchestrator.ledger import CreditLedger
from taskguard.orchestrator.notifications import (
    LoggingNotifier,
    Notifier,
    NullNotifier,
    WebhookNotifier,
)
from taskguard.orchestrator.plans import ContentPlanner, PlanRepository
from taskguard.orchestrator.pricing import TaskPricing
from taskguard.orchestrator.repository import TaskRepository
from taskguard.orchestrator.scheduler import TaskScheduler
from taskguard.orchestrator.specialists import EchoSpecialist, SpecialistRegistry


@dataclass(slots=True)
class Runtime:
    settings: Settings
    tasks: TaskRepository
    ledger: CreditLedger
    health_repository: AgentHealthRepository
    plan_repository: PlanRepository
    health: AgentHealthMonitor
    containment: FailureContainment
    finance_guard: FinanceGuard
    specialists: SpecialistRegistry
    notifier: Notifier
    scheduler: TaskScheduler
    facade: OrchestrationFacade
    planner: ContentPlanner
    admin: AdminOperations

    def close(self) -> None:
        if isinstance(self.notifier, WebhookNotifier):
            self.notifier.close()
        for store in (self.tasks, self.ledger, self.health_repository, self.plan_repository):
            store.close()


def build_notifier(settings: Settings) -> Notifier:
    if not settings.notifications.enabled:
        return NullNotifier()
    if settings.notifications.webhook_url:
        return WebhookNotifier(
            url=settings.notifications.webhook_url,
            timeout_seconds=settings.notifications.timeout_seconds,
        )
    return LoggingNotifier()


def build_runtime(
    settings: Settings,
    *,
    specialists: SpecialistRegistry | None = None,
    notifier: Notifier | None = None,
) -> Runtime:
    """Wire components for ``settings``; the schema is not touched."""

    settings.validate()
    store_kwargs = {"sqlite_busy_timeout_ms": settings.sqlite_busy_timeout_ms}
    tasks = TaskRepository(settings.db_path, **store_kwargs)
    ledger = CreditLedger(settings.db_path, **store_kwargs)
    health_repository = AgentHealthRepository(settings.db_path, **store_kwargs)
    plan_repository = PlanRepository(settings.db_path, **store_kwargs)

    registry = specialists or SpecialistRegistry(default=EchoSpecialist())
    resolved_notifier = notifier or build_notifier(settings)
    containment = FailureContainment()
    scheduler = TaskScheduler(
        repository=tasks,
        ledger=ledger,
        specialists=registry,
        containment=containment,
        pricing=TaskPricing.from_mapping(settings.pricing_overrides),
        notifier=resolved_notifier,
        batch_size=settings.scheduler.batch_size,
        interval_seconds=settings.scheduler.interval_seconds,
        max_attempts=settings.scheduler.max_attempts,
    )
    health = AgentHealthMonitor(repository=health_repository, settings=settings.health)
    return Runtime(
        settings=settings,
        tasks=tasks,
        ledger=ledger,
        health_repository=health_repository,
        plan_repository=plan_repository,
        health=health,
        containment=containment,
        finance_guard=FinanceGuard(containment=containment, limits=settings.finance),
        specialists=registry,
        notifier=resolved_notifier,
        scheduler=scheduler,
        facade=OrchestrationFacade(scheduler=scheduler),
        planner=ContentPlanner(plans=plan_repository, scheduler=scheduler),
        admin=AdminOperations(repository=tasks, health=health),
    )


@contextmanager
def open_runtime(settings: Settings) -> Iterator[Runtime]:
    """Migrate the database, yield a wired runtime and close it afterwards."""

    runtime = build_runtime(settings)
    runtime.tasks.init_schema()
    try:
        yield runtime
    finally:
        runtime.close()
