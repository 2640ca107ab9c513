"""Per-user credit ledger with reserve, commit and release."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from uuid import uuid4

from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from taskguard.errors import InsufficientCreditsError, InvalidAmountError, ReservationStateError
from taskguard.orchestrator.models import (
    CreditEntryView,
    CreditKind,
    Reservation,
    ReservationStatus,
)
from taskguard.storage.base import SqliteStore
from taskguard.storage.common import to_db_datetime, to_utc_aware_datetime, utc_now
from taskguard.storage.sqlmodel_models import CreditAccount, CreditEntry, CreditReservation

logger = logging.getLogger(__name__)


class CreditLedger(SqliteStore):
    """Credit balances shared by the scheduler and the request facade.

    Money moves only through conditional UPDATEs that re-check
    ``balance - reserved`` in the same statement, and every mutation for one
    user runs under that user's lock. Both entry points share one instance.
    """

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        super().__init__(db_path, sqlite_busy_timeout_ms=sqlite_busy_timeout_ms)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _user_lock(self, user_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(user_id, threading.Lock())
        with lock:
            yield

    def open_account(self, user_id: str, display_name: str | None = None) -> None:
        """Create user and zero-balance account when missing."""

        with Session(self.engine) as session:
            self._ensure_account(session, user_id, display_name)
            session.commit()

    def get_balance(self, user_id: str) -> int:
        account = self._get_account(user_id)
        return account.balance if account is not None else 0

    def available(self, user_id: str) -> int:
        """Balance not held by open reservations."""

        account = self._get_account(user_id)
        if account is None:
            return 0
        return account.balance - account.reserved

    def add_credits(
        self,
        user_id: str,
        amount: int,
        *,
        kind: CreditKind = CreditKind.PURCHASE,
        reason: str = "Credit purchase",
    ) -> int:
        """Top up a balance and return the new balance."""

        _require_positive(amount)
        if kind == CreditKind.USAGE:
            raise InvalidAmountError("Usage entries are created by debits only.")

        with self._user_lock(user_id), Session(self.engine) as session:
            self._ensure_account(session, user_id)
            session.exec(
                sa_update(CreditAccount)
                .where(col(CreditAccount.user_id) == user_id)
                .values(
                    balance=col(CreditAccount.balance) + amount,
                    updated_at=to_db_datetime(utc_now()),
                ),
            )
            session.add(
                CreditEntry(
                    user_id=user_id,
                    amount=amount,
                    kind=kind.value,
                    reason=reason,
                    created_at=utc_now(),
                ),
            )
            session.commit()
        logger.info("Added %d credits (%s) to user %s", amount, kind.value, user_id)
        return self.get_balance(user_id)

    def deduct_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        agent_id: str | None = None,
        *,
        task_id: str | None = None,
    ) -> int:
        """Debit immediately; raise `InsufficientCreditsError` when not covered."""

        _require_positive(amount)
        with self._user_lock(user_id), Session(self.engine) as session:
            result = session.exec(
                sa_update(CreditAccount)
                .where(
                    col(CreditAccount.user_id) == user_id,
                    col(CreditAccount.balance) - col(CreditAccount.reserved) >= amount,
                )
                .values(
                    balance=col(CreditAccount.balance) - amount,
                    updated_at=to_db_datetime(utc_now()),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise InsufficientCreditsError(required=amount, available=self.available(user_id))
            session.add(
                CreditEntry(
                    user_id=user_id,
                    amount=-amount,
                    kind=CreditKind.USAGE.value,
                    reason=reason,
                    task_id=task_id,
                    agent_id=agent_id,
                    created_at=utc_now(),
                ),
            )
            session.commit()
        return self.get_balance(user_id)

    def reserve(self, user_id: str, amount: int, *, task_id: str | None = None) -> Reservation:
        """Hold credits for a task; raise `InsufficientCreditsError` when not covered."""

        _require_positive(amount)
        reservation_id = str(uuid4())
        with self._user_lock(user_id), Session(self.engine) as session:
            result = session.exec(
                sa_update(CreditAccount)
                .where(
                    col(CreditAccount.user_id) == user_id,
                    col(CreditAccount.balance) - col(CreditAccount.reserved) >= amount,
                )
                .values(
                    reserved=col(CreditAccount.reserved) + amount,
                    updated_at=to_db_datetime(utc_now()),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise InsufficientCreditsError(required=amount, available=self.available(user_id))
            session.add(
                CreditReservation(
                    reservation_id=reservation_id,
                    user_id=user_id,
                    task_id=task_id,
                    amount=amount,
                    status=ReservationStatus.HELD.value,
                    created_at=utc_now(),
                ),
            )
            session.commit()
        return Reservation(
            reservation_id=reservation_id,
            user_id=user_id,
            task_id=task_id,
            amount=amount,
            status=ReservationStatus.HELD,
        )

    def commit(
        self,
        reservation: Reservation,
        *,
        reason: str,
        agent_id: str | None = None,
    ) -> CreditEntryView:
        """Turn a held reservation into exactly one usage debit."""

        with self._user_lock(reservation.user_id), Session(self.engine) as session:
            self._settle(session, reservation, ReservationStatus.COMMITTED)
            session.exec(
                sa_update(CreditAccount)
                .where(col(CreditAccount.user_id) == reservation.user_id)
                .values(
                    balance=col(CreditAccount.balance) - reservation.amount,
                    reserved=col(CreditAccount.reserved) - reservation.amount,
                    updated_at=to_db_datetime(utc_now()),
                ),
            )
            entry = CreditEntry(
                user_id=reservation.user_id,
                amount=-reservation.amount,
                kind=CreditKind.USAGE.value,
                reason=reason,
                task_id=reservation.task_id,
                agent_id=agent_id,
                created_at=utc_now(),
            )
            session.add(entry)
            session.commit()
            session.refresh(entry)
            reservation.status = ReservationStatus.COMMITTED
            return _to_entry_view(entry)

    def release(self, reservation: Reservation) -> bool:
        """Return held credits. ``False`` when the reservation was already settled."""

        with self._user_lock(reservation.user_id), Session(self.engine) as session:
            try:
                self._settle(session, reservation, ReservationStatus.RELEASED)
            except ReservationStateError:
                return False
            session.exec(
                sa_update(CreditAccount)
                .where(col(CreditAccount.user_id) == reservation.user_id)
                .values(
                    reserved=col(CreditAccount.reserved) - reservation.amount,
                    updated_at=to_db_datetime(utc_now()),
                ),
            )
            session.commit()
        reservation.status = ReservationStatus.RELEASED
        return True

    def history(self, user_id: str, *, limit: int = 50) -> list[CreditEntryView]:
        """Newest ledger entries first."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(CreditEntry)
                .where(CreditEntry.user_id == user_id)
                .order_by(col(CreditEntry.created_at).desc(), col(CreditEntry.id).desc())
                .limit(limit),
            ).all()
        return [_to_entry_view(row) for row in rows]

    def usage_entries_for_task(self, task_id: str) -> list[CreditEntryView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(CreditEntry).where(
                    CreditEntry.task_id == task_id,
                    CreditEntry.kind == CreditKind.USAGE.value,
                ),
            ).all()
        return [_to_entry_view(row) for row in rows]

    def _settle(
        self,
        session: Session,
        reservation: Reservation,
        status_to: ReservationStatus,
    ) -> None:
        result = session.exec(
            sa_update(CreditReservation)
            .where(
                col(CreditReservation.reservation_id) == reservation.reservation_id,
                col(CreditReservation.status) == ReservationStatus.HELD.value,
            )
            .values(status=status_to.value, settled_at=to_db_datetime(utc_now())),
        )
        if result.rowcount != 1:
            session.rollback()
            raise ReservationStateError(
                f"Reservation is not held: {reservation.reservation_id}",
            )

    def _get_account(self, user_id: str) -> CreditAccount | None:
        with Session(self.engine) as session:
            return session.exec(
                select(CreditAccount).where(CreditAccount.user_id == user_id),
            ).one_or_none()

    def _ensure_account(
        self,
        session: Session,
        user_id: str,
        display_name: str | None = None,
    ) -> None:
        self._ensure_user_in_session(session, user_id, display_name)
        account = session.exec(
            select(CreditAccount).where(CreditAccount.user_id == user_id),
        ).one_or_none()
        if account is None:
            session.add(CreditAccount(user_id=user_id, balance=0, reserved=0, updated_at=utc_now()))
            session.flush()


def _require_positive(amount: int) -> None:
    if amount <= 0:
        raise InvalidAmountError(f"Amount must be positive, got {amount}.")


def _to_entry_view(row: CreditEntry) -> CreditEntryView:
    return CreditEntryView(
        entry_id=row.id or 0,
        user_id=row.user_id,
        amount=row.amount,
        kind=CreditKind(row.kind),
        reason=row.reason,
        task_id=row.task_id,
        agent_id=row.agent_id,
        created_at=to_utc_aware_datetime(row.created_at),
    )
