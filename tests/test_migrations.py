from pathlib import Path

import allure
from sqlalchemy import inspect, text

from taskguard.orchestrator.repository import TaskRepository

pytestmark = [
    allure.epic("Storage"),
    allure.feature("Schema Migrations"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = TaskRepository(tmp_path / "migrations.db")
    repository.init_schema()

    with repository.engine.connect() as connection:
        version = connection.execute(
            text("SELECT version_num FROM alembic_version LIMIT 1"),
        ).scalar_one()
    assert version == "20261019_0001"

    tables = set(inspect(repository.engine).get_table_names())
    assert {
        "users",
        "credit_accounts",
        "credit_entries",
        "credit_reservations",
        "content_plans",
        "tasks",
        "task_events",
        "agent_performance",
        "agent_snapshots",
    } <= tables
    repository.close()


def test_init_schema_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "twice.db"
    first = TaskRepository(db_path)
    first.init_schema()
    first.close()

    second = TaskRepository(db_path)
    second.init_schema()
    assert second.count_by_status() is not None
    second.close()
