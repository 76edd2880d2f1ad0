"""Relational storage adapter (SQLAlchemy ORM)."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from darknova_core import models
from darknova_core.domain import (
    UNKNOWN_USER_LABEL,
    Absence,
    AbsenceStatus,
    CompletedItem,
    Order,
    OrderItem,
    OrderStatus,
    Progress,
    ProgressStatus,
    Role,
    Unit,
    User,
)
from darknova_core.errors import ConflictError, NotFoundError
from darknova_core.repositories.base import AbsenceRepository, OrderRepository, UserRepository

logger = logging.getLogger("darknova_core.repositories.sql")

SessionFactory = Callable[[], Session]


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _to_user(row: models.Profile) -> User:
    return User(
        id=row.id,
        username=row.username,
        role=Role(row.role),
        created_at=_aware(row.created_at),
        created_by=row.created_by,
    )


def _to_progress(row: models.UserOrderProgress) -> Progress:
    return Progress(
        id=row.id,
        user_id=row.user_id,
        status=ProgressStatus(row.status),
        completed_items=[CompletedItem(block_id=ci.block_id, amount=ci.amount) for ci in row.completed_items],
        submitted_at=_aware(row.submitted_at),
        confirmed_at=_aware(row.confirmed_at),
        confirmed_by=row.confirmed_by,
    )


def _to_order(row: models.FarmOrder) -> Order:
    return Order(
        id=row.id,
        items=[OrderItem(block_id=i.block_id, amount=i.amount, unit=Unit(i.unit)) for i in row.items],
        start_date=row.start_date,
        deadline=row.deadline,
        status=OrderStatus(row.status),
        auto_assign=bool(row.auto_assign),
        created_by=row.created_by,
        created_at=_aware(row.created_at),
        notes=row.notes,
        progress=[_to_progress(p) for p in row.progress],
    )


def _to_absence(row: models.AbsenceRequest, username: Optional[str]) -> Absence:
    return Absence(
        id=row.id,
        user_id=row.user_id,
        username=username or UNKNOWN_USER_LABEL,
        start_date=row.start_date,
        end_date=row.end_date,
        reason=row.reason or "",
        status=AbsenceStatus(row.status),
        requested_at=_aware(row.requested_at),
    )


class SqlUserRepository(UserRepository):
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def list_all(self) -> List[User]:
        with self._session_factory() as session:
            rows = session.query(models.Profile).order_by(models.Profile.created_at.asc()).all()
            return [_to_user(r) for r in rows]

    def get(self, user_id: str) -> Optional[User]:
        with self._session_factory() as session:
            row = session.get(models.Profile, user_id)
            return _to_user(row) if row else None

    def get_by_login(self, login: str) -> Optional[User]:
        creds = self.get_credentials(login)
        return creds[0] if creds else None

    def get_credentials(self, login: str) -> Optional[Tuple[User, str]]:
        with self._session_factory() as session:
            row = session.query(models.Profile).filter(models.Profile.email == login).first()
            if not row:
                return None
            return _to_user(row), row.password_hash

    def list_by_role(self, role: Role) -> List[User]:
        with self._session_factory() as session:
            rows = (
                session.query(models.Profile)
                .filter(models.Profile.role == role.value)
                .order_by(models.Profile.created_at.asc())
                .all()
            )
            return [_to_user(r) for r in rows]

    def add(self, user: User, login: str, password_hash: str) -> User:
        with self._session_factory() as session:
            row = models.Profile(
                id=user.id,
                username=user.username,
                email=login,
                password_hash=password_hash,
                role=user.role.value,
                created_at=user.created_at,
                created_by=user.created_by,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConflictError(f"login already exists: {login}") from e
            session.refresh(row)
            return _to_user(row)

    def delete(self, user_id: str) -> bool:
        with self._session_factory() as session:
            row = session.get(models.Profile, user_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def count(self) -> int:
        with self._session_factory() as session:
            return session.query(models.Profile).count()


class SqlOrderRepository(OrderRepository):
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    @staticmethod
    def _query(session: Session):
        return session.query(models.FarmOrder).options(
            selectinload(models.FarmOrder.items),
            selectinload(models.FarmOrder.progress).selectinload(models.UserOrderProgress.completed_items),
        )

    def list_all(self) -> List[Order]:
        with self._session_factory() as session:
            rows = self._query(session).order_by(models.FarmOrder.created_at.desc()).all()
            return [_to_order(r) for r in rows]

    def get(self, order_id: str) -> Optional[Order]:
        with self._session_factory() as session:
            row = self._query(session).filter(models.FarmOrder.id == order_id).first()
            return _to_order(row) if row else None

    def add(self, order: Order) -> Order:
        with self._session_factory() as session:
            row = models.FarmOrder(
                id=order.id,
                start_date=order.start_date,
                deadline=order.deadline,
                status=order.status.value,
                auto_assign=order.auto_assign,
                created_by=order.created_by,
                created_at=order.created_at,
                notes=order.notes,
                items=[
                    models.OrderItem(position=pos, block_id=i.block_id, amount=i.amount, unit=i.unit.value)
                    for pos, i in enumerate(order.items)
                ],
            )
            session.add(row)
            session.commit()
        return self.get(order.id)

    def delete(self, order_id: str) -> bool:
        with self._session_factory() as session:
            row = session.get(models.FarmOrder, order_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def set_status(self, order_id: str, status: OrderStatus) -> None:
        with self._session_factory() as session:
            row = session.get(models.FarmOrder, order_id)
            if not row:
                raise NotFoundError(f"order {order_id} not found")
            row.status = status.value
            session.commit()

    def add_progress(self, order_id: str, progress: Progress) -> Progress:
        with self._session_factory() as session:
            row = models.UserOrderProgress(
                id=progress.id,
                order_id=order_id,
                user_id=progress.user_id,
                status=progress.status.value,
                submitted_at=progress.submitted_at,
                confirmed_at=progress.confirmed_at,
                confirmed_by=progress.confirmed_by,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConflictError(f"progress already exists for order={order_id} user={progress.user_id}") from e
            session.refresh(row)
            return _to_progress(row)

    def save_progress(self, order_id: str, progress: Progress) -> Progress:
        with self._session_factory() as session:
            row = (
                session.query(models.UserOrderProgress)
                .filter(
                    models.UserOrderProgress.order_id == order_id,
                    models.UserOrderProgress.user_id == progress.user_id,
                )
                .first()
            )
            if not row:
                raise NotFoundError(f"no progress for order={order_id} user={progress.user_id}")
            row.status = progress.status.value
            row.submitted_at = progress.submitted_at
            row.confirmed_at = progress.confirmed_at
            row.confirmed_by = progress.confirmed_by
            existing = {ci.block_id: ci for ci in row.completed_items}
            for ci in progress.completed_items:
                if ci.block_id in existing:
                    existing[ci.block_id].amount = ci.amount
                else:
                    row.completed_items.append(models.CompletedItem(block_id=ci.block_id, amount=ci.amount))
            session.commit()
            session.refresh(row)
            return _to_progress(row)


class SqlAbsenceRepository(AbsenceRepository):
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    @staticmethod
    def _query(session: Session):
        return session.query(models.AbsenceRequest, models.Profile.username).outerjoin(
            models.Profile, models.Profile.id == models.AbsenceRequest.user_id
        )

    def list_all(self) -> List[Absence]:
        with self._session_factory() as session:
            rows = self._query(session).order_by(models.AbsenceRequest.requested_at.desc()).all()
            return [_to_absence(row, username) for row, username in rows]

    def get(self, absence_id: str) -> Optional[Absence]:
        with self._session_factory() as session:
            found = self._query(session).filter(models.AbsenceRequest.id == absence_id).first()
            if not found:
                return None
            row, username = found
            return _to_absence(row, username)

    def add(self, absence: Absence) -> Absence:
        with self._session_factory() as session:
            row = models.AbsenceRequest(
                id=absence.id,
                user_id=absence.user_id,
                start_date=absence.start_date,
                end_date=absence.end_date,
                reason=absence.reason or "",
                status=absence.status.value,
                requested_at=absence.requested_at,
            )
            session.add(row)
            session.commit()
        return self.get(absence.id)

    def set_status(self, absence_id: str, status: AbsenceStatus) -> Optional[Absence]:
        with self._session_factory() as session:
            row = session.get(models.AbsenceRequest, absence_id)
            if not row:
                return None
            row.status = status.value
            session.commit()
        return self.get(absence_id)


__all__ = ["SqlUserRepository", "SqlOrderRepository", "SqlAbsenceRepository"]
