"""Initial taskguard schema: users, credits, tasks, agent health."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "credit_accounts",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
        sa.CheckConstraint("balance >= 0", name="ck_credit_accounts_balance_non_negative"),
        sa.CheckConstraint(
            "reserved >= 0 AND reserved <= balance",
            name="ck_credit_accounts_reserved_within_balance",
        ),
    )

    op.create_table(
        "credit_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=True),
        sa.Column("agent_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "credit_reservations",
        sa.Column("reservation_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("reservation_id"),
    )

    op.create_table(
        "content_plans",
        sa.Column("plan_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("brand_id", sa.String(), nullable=False),
        sa.Column("platforms_json", sa.Text(), nullable=False),
        sa.Column("estimated_cost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("plan_id"),
    )

    op.create_table(
        "tasks",
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("plan_id", sa.String(), nullable=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("task_type", sa.String(), nullable=False),
        sa.Column("priority", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("channel", sa.String(), nullable=False, server_default="scheduled"),
        sa.Column("data_json", sa.Text(), nullable=False),
        sa.Column("result_json", sa.Text(), nullable=True),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("allow_retry", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("retry_of", sa.String(), nullable=True),
        sa.Column("paused_from", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["plan_id"], ["content_plans.plan_id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("task_id"),
    )

    op.create_table(
        "task_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.task_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "agent_performance",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("health_score", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("trend", sa.String(), nullable=False, server_default="neutral"),
        sa.Column("last_reset_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("agent_id", "platform", name="uq_agent_performance_agent_platform"),
    )

    op.create_table(
        "agent_snapshots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("brand_id", sa.String(), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("health_score", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("ix_credit_accounts_user_id", "credit_accounts", ["user_id"])
    op.create_index("ix_credit_entries_user_id", "credit_entries", ["user_id"])
    op.create_index("ix_credit_entries_kind", "credit_entries", ["kind"])
    op.create_index("ix_credit_entries_task_id", "credit_entries", ["task_id"])
    op.create_index("idx_credit_entries_user_time", "credit_entries", ["user_id", "created_at"])
    op.create_index(
        "uq_credit_entries_usage_per_task",
        "credit_entries",
        ["task_id"],
        unique=True,
        sqlite_where=sa.text("kind = 'usage' AND task_id IS NOT NULL"),
    )
    op.create_index(
        "idx_credit_reservations_user_status",
        "credit_reservations",
        ["user_id", "status"],
    )
    op.create_index("ix_credit_reservations_task_id", "credit_reservations", ["task_id"])
    op.create_index("ix_content_plans_user_id", "content_plans", ["user_id"])
    op.create_index("idx_tasks_queue", "tasks", ["channel", "status", "priority", "created_at"])
    op.create_index("idx_tasks_agent_status", "tasks", ["agent_id", "status"])
    op.create_index("ix_tasks_plan_id", "tasks", ["plan_id"])
    op.create_index("ix_tasks_user_id", "tasks", ["user_id"])
    op.create_index("ix_tasks_retry_of", "tasks", ["retry_of"])
    op.create_index("idx_task_events_task_time", "task_events", ["task_id", "created_at"])
    op.create_index("ix_agent_performance_agent_id", "agent_performance", ["agent_id"])
    op.create_index(
        "idx_agent_snapshots_agent_brand_time",
        "agent_snapshots",
        ["agent_id", "brand_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_agent_snapshots_agent_brand_time", table_name="agent_snapshots")
    op.drop_index("ix_agent_performance_agent_id", table_name="agent_performance")
    op.drop_index("idx_task_events_task_time", table_name="task_events")
    op.drop_index("ix_tasks_retry_of", table_name="tasks")
    op.drop_index("ix_tasks_user_id", table_name="tasks")
    op.drop_index("ix_tasks_plan_id", table_name="tasks")
    op.drop_index("idx_tasks_agent_status", table_name="tasks")
    op.drop_index("idx_tasks_queue", table_name="tasks")
    op.drop_index("ix_content_plans_user_id", table_name="content_plans")
    op.drop_index("ix_credit_reservations_task_id", table_name="credit_reservations")
    op.drop_index("idx_credit_reservations_user_status", table_name="credit_reservations")
    op.drop_index("uq_credit_entries_usage_per_task", table_name="credit_entries")
    op.drop_index("idx_credit_entries_user_time", table_name="credit_entries")
    op.drop_index("ix_credit_entries_task_id", table_name="credit_entries")
    op.drop_index("ix_credit_entries_kind", table_name="credit_entries")
    op.drop_index("ix_credit_entries_user_id", table_name="credit_entries")
    op.drop_index("ix_credit_accounts_user_id", table_name="credit_accounts")
    op.drop_table("agent_snapshots")
    op.drop_table("agent_performance")
    op.drop_table("task_events")
    op.drop_table("tasks")
    op.drop_table("content_plans")
    op.drop_table("credit_reservations")
    op.drop_table("credit_entries")
    op.drop_table("credit_accounts")
    op.drop_table("users")
