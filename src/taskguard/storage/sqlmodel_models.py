"""SQLModel ORM tables for taskguard storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint, text
from sqlmodel import Field, SQLModel

DEFAULT_USER_ID = "default_user"


class AppUser(SQLModel, table=True):
    __tablename__ = "users"  # type: ignore[bad-override]

    user_id: str = Field(primary_key=True, index=True)
    display_name: str = Field(index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class CreditAccount(SQLModel, table=True):
    __tablename__ = "credit_accounts"  # type: ignore[bad-override]

    user_id: str = Field(
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    balance: int = Field(default=0)
    reserved: int = Field(default=0)
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class CreditEntry(SQLModel, table=True):
    __tablename__ = "credit_entries"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_credit_entries_user_time", "user_id", "created_at"),
        Index(
            "uq_credit_entries_usage_per_task",
            "task_id",
            unique=True,
            sqlite_where=text("kind = 'usage' AND task_id IS NOT NULL"),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    amount: int
    kind: str = Field(index=True)
    reason: str = Field(sa_column=Column(Text, nullable=False))
    task_id: str | None = Field(default=None, index=True)
    agent_id: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class CreditReservation(SQLModel, table=True):
    __tablename__ = "credit_reservations"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_credit_reservations_user_status", "user_id", "status"),)

    reservation_id: str = Field(primary_key=True)
    user_id: str = Field(
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    task_id: str | None = Field(default=None, index=True)
    amount: int
    status: str = Field(index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    settled_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class ContentPlan(SQLModel, table=True):
    __tablename__ = "content_plans"  # type: ignore[bad-override]

    plan_id: str = Field(primary_key=True)
    user_id: str = Field(
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    brand_id: str = Field(index=True)
    platforms_json: str = Field(sa_column=Column(Text, nullable=False))
    estimated_cost: int = Field(default=0)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Task(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_tasks_queue", "channel", "status", "priority", "created_at"),
        Index("idx_tasks_agent_status", "agent_id", "status"),
    )

    task_id: str = Field(primary_key=True)
    plan_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("content_plans.plan_id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
    )
    user_id: str = Field(
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    agent_id: str = Field(index=True)
    task_type: str = Field(index=True)
    priority: str = Field(index=True)
    status: str = Field(index=True)
    channel: str = Field(default="scheduled")
    data_json: str = Field(sa_column=Column(Text, nullable=False))
    result_json: str | None = Field(default=None, sa_column=Column(Text))
    attempt: int = Field(default=1)
    max_attempts: int = Field(default=3)
    allow_retry: bool = Field(default=True)
    retry_of: str | None = Field(default=None, index=True)
    paused_from: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class TaskEvent(SQLModel, table=True):
    __tablename__ = "task_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_task_events_task_time", "task_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(
        sa_column=Column(
            ForeignKey("tasks.task_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = Field(default=None, index=True)
    status_to: str | None = Field(default=None, index=True)
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AgentPerformance(SQLModel, table=True):
    __tablename__ = "agent_performance"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("agent_id", "platform", name="uq_agent_performance_agent_platform"),
    )

    id: int | None = Field(default=None, primary_key=True)
    agent_id: str = Field(index=True)
    platform: str
    health_score: int = Field(default=100)
    trend: str = Field(default="neutral")
    last_reset_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    last_updated: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AgentSnapshot(SQLModel, table=True):
    __tablename__ = "agent_snapshots"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_agent_snapshots_agent_brand_time", "agent_id", "brand_id", "created_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    agent_id: str = Field(index=True)
    brand_id: str
    reason: str
    health_score: int
    data_json: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
