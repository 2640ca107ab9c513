"""Persistence for agent performance records and snapshots."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from taskguard.orchestrator.models import AgentHealthView, AgentSnapshotView, SnapshotReason
from taskguard.storage.base import SqliteStore
from taskguard.storage.common import (
    to_db_datetime,
    to_optional_utc,
    to_utc_aware_datetime,
    utc_now,
)
from taskguard.storage.sqlmodel_models import AgentPerformance, AgentSnapshot

DEFAULT_HEALTH_SCORE = 100
DEFAULT_PLATFORM = "default"


class AgentHealthRepository(SqliteStore):
    """Agent performance rows keyed by (agent_id, platform)."""

    def get(self, agent_id: str, platform: str) -> AgentHealthView | None:
        with Session(self.engine) as session:
            row = self._select(session, agent_id, platform)
            return _to_health_view(row) if row is not None else None

    def get_or_create(self, agent_id: str, platform: str) -> AgentHealthView:
        """Return the record, creating it at full health when absent."""

        with Session(self.engine) as session:
            row = self._select(session, agent_id, platform)
            if row is None:
                now = utc_now()
                row = AgentPerformance(
                    agent_id=agent_id,
                    platform=platform,
                    health_score=DEFAULT_HEALTH_SCORE,
                    trend="neutral",
                    last_reset_at=now,
                    last_updated=now,
                )
                session.add(row)
                session.commit()
                session.refresh(row)
            return _to_health_view(row)

    def update_score(
        self,
        agent_id: str,
        platform: str,
        *,
        health_score: int,
        trend: str,
    ) -> None:
        with Session(self.engine) as session:
            session.exec(
                sa_update(AgentPerformance)
                .where(
                    col(AgentPerformance.agent_id) == agent_id,
                    col(AgentPerformance.platform) == platform,
                )
                .values(
                    health_score=health_score,
                    trend=trend,
                    last_updated=to_db_datetime(utc_now()),
                ),
            )
            session.commit()

    def set_agent_score(self, agent_id: str, health_score: int, *, reset: bool = False) -> int:
        """Set the score on every platform record of one agent.

        An agent without records gets one on the default platform so that a
        pause is never lost.
        """

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(AgentPerformance)
                .where(col(AgentPerformance.agent_id) == agent_id)
                .values(**_score_values(health_score, reset=reset)),
            )
            updated = result.rowcount
            if updated == 0:
                now = utc_now()
                session.add(
                    AgentPerformance(
                        agent_id=agent_id,
                        platform=DEFAULT_PLATFORM,
                        health_score=health_score,
                        trend="neutral",
                        last_reset_at=now if reset else None,
                        last_updated=now,
                    ),
                )
                updated = 1
            session.commit()
            return updated

    def set_all_scores(self, health_score: int, *, reset: bool = False) -> int:
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(AgentPerformance).values(**_score_values(health_score, reset=reset)),
            )
            session.commit()
            return result.rowcount

    def list_records(self, *, agent_id: str | None = None) -> list[AgentHealthView]:
        with Session(self.engine) as session:
            statement = select(AgentPerformance)
            if agent_id is not None:
                statement = statement.where(AgentPerformance.agent_id == agent_id)
            rows = session.exec(
                statement.order_by(
                    col(AgentPerformance.agent_id).asc(),
                    col(AgentPerformance.platform).asc(),
                ),
            ).all()
        return [_to_health_view(row) for row in rows]

    def add_snapshot(
        self,
        *,
        agent_id: str,
        brand_id: str,
        reason: SnapshotReason,
        health_score: int,
        data: dict[str, Any],
    ) -> AgentSnapshotView:
        with Session(self.engine) as session:
            row = AgentSnapshot(
                agent_id=agent_id,
                brand_id=brand_id,
                reason=reason.value,
                health_score=health_score,
                data_json=json.dumps(data, ensure_ascii=False, sort_keys=True, default=str),
                created_at=utc_now(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_snapshot_view(row)

    def latest_snapshot(self, agent_id: str, brand_id: str) -> AgentSnapshotView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(AgentSnapshot)
                .where(AgentSnapshot.agent_id == agent_id, AgentSnapshot.brand_id == brand_id)
                .order_by(col(AgentSnapshot.created_at).desc(), col(AgentSnapshot.id).desc())
                .limit(1),
            ).one_or_none()
            return _to_snapshot_view(row) if row is not None else None

    def list_snapshots(self, agent_id: str, brand_id: str | None = None) -> list[AgentSnapshotView]:
        with Session(self.engine) as session:
            statement = select(AgentSnapshot).where(AgentSnapshot.agent_id == agent_id)
            if brand_id is not None:
                statement = statement.where(AgentSnapshot.brand_id == brand_id)
            rows = session.exec(statement.order_by(col(AgentSnapshot.created_at).asc())).all()
        return [_to_snapshot_view(row) for row in rows]

    @staticmethod
    def _select(session: Session, agent_id: str, platform: str) -> AgentPerformance | None:
        return session.exec(
            select(AgentPerformance).where(
                AgentPerformance.agent_id == agent_id,
                AgentPerformance.platform == platform,
            ),
        ).one_or_none()


def _score_values(health_score: int, *, reset: bool) -> dict[str, Any]:
    now = to_db_datetime(utc_now())
    values: dict[str, Any] = {"health_score": health_score, "last_updated": now}
    if reset:
        values["last_reset_at"] = now
        values["trend"] = "neutral"
    return values


def _to_health_view(row: AgentPerformance) -> AgentHealthView:
    return AgentHealthView(
        agent_id=row.agent_id,
        platform=row.platform,
        health_score=row.health_score,
        trend=row.trend,
        last_reset_at=to_optional_utc(row.last_reset_at),
        last_updated=to_utc_aware_datetime(row.last_updated),
    )


def _to_snapshot_view(row: AgentSnapshot) -> AgentSnapshotView:
    parsed = json.loads(row.data_json)
    return AgentSnapshotView(
        snapshot_id=row.id or 0,
        agent_id=row.agent_id,
        brand_id=row.brand_id,
        reason=SnapshotReason(row.reason),
        health_score=row.health_score,
        data=parsed if isinstance(parsed, dict) else {},
        created_at=to_utc_aware_datetime(row.created_at),
    )
