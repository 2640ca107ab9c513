"""Shared engine lifecycle for SQLite-backed repositories."""

from __future__ import annotations

from pathlib import Path

from sqlmodel import Session, select

from taskguard.storage.alembic_runner import upgrade_head
from taskguard.storage.common import build_sqlite_engine, utc_now
from taskguard.storage.sqlmodel_models import AppUser


class SqliteStore:
    """Owns one SQLAlchemy engine bound to a migrated SQLite database."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        upgrade_head(self.db_path)

    def ensure_user(self, user_id: str, display_name: str | None = None) -> None:
        """Create the user row when it does not exist yet."""

        with Session(self.engine) as session:
            self._ensure_user_in_session(session, user_id, display_name)
            session.commit()

    @staticmethod
    def _ensure_user_in_session(
        session: Session,
        user_id: str,
        display_name: str | None = None,
    ) -> None:
        user = session.exec(select(AppUser).where(AppUser.user_id == user_id)).one_or_none()
        if user is not None:
            return
        session.add(
            AppUser(
                user_id=user_id,
                display_name=display_name or user_id,
                created_at=utc_now(),
            ),
        )
        session.flush()
