"""Application service: the narrow mutation API over the repositories.

Each command checks the acting user's role, validates input, writes through the
storage port, logs the action and publishes one change event per write. Writes
are independent: an order and its auto-assigned progress records are stored by
separate calls with no rollback between them.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from darknova_core import auth
from darknova_core.catalog import is_known_block
from darknova_core.domain import (
    WORKING_STATUSES,
    Absence,
    AbsenceStatus,
    Order,
    OrderItem,
    OrderStatus,
    Progress,
    ProgressStatus,
    Role,
    Unit,
    User,
    available_orders,
    can_submit,
    derive_status,
    display_username,
    is_overdue,
    new_id,
    ordered_amount,
    orders_for_user,
    pending_confirmations,
    rollup_order_status,
    total_completed,
    total_ordered,
    upsert_completed,
)
from darknova_core.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from darknova_core.events import ChangeFeed
from darknova_core.repositories import Repositories

logger = logging.getLogger("darknova_core.services")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require(actor: Optional[User], *roles: Role) -> User:
    if actor is None:
        raise PermissionDeniedError("not signed in")
    if roles and actor.role not in roles:
        raise PermissionDeniedError(f"role {actor.role.value} may not perform this action")
    return actor


def _as_date(value, name: str) -> date:
    if value is None or value == "":
        raise ValidationError(f"{name} is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as e:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)") from e


def _as_amount(value, name: str = "amount") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


def _as_item(raw) -> OrderItem:
    if isinstance(raw, OrderItem):
        block_id, amount, unit = raw.block_id, raw.amount, raw.unit
    else:
        block_id, amount, unit = raw.get("block_id"), raw.get("amount"), raw.get("unit", Unit.DK)
    if not block_id:
        raise ValidationError("every item needs a block_id")
    if not is_known_block(block_id):
        raise ValidationError(f"unknown block: {block_id}")
    amount = _as_amount(amount)
    if amount <= 0:
        raise ValidationError("item amount must be a positive integer")
    try:
        unit = Unit(unit)
    except ValueError as e:
        raise ValidationError(f"unit must be one of {[u.value for u in Unit]}") from e
    return OrderItem(block_id=block_id, amount=amount, unit=unit)


class FarmService:
    def __init__(
        self,
        repos: Repositories,
        feed: Optional[ChangeFeed] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repos = repos
        self.feed = feed if feed is not None else ChangeFeed()
        self._clock = clock

    def today(self) -> date:
        return self._clock().date()

    def _publish(self, table: str, action: str, record_id: Optional[str]) -> None:
        self.feed.publish(table, action, record_id)

    # ---- orders ----

    def list_orders(self, actor: Optional[User]) -> List[Order]:
        _require(actor)
        return self.repos.orders.list_all()

    def get_order(self, actor: Optional[User], order_id: str) -> Order:
        _require(actor)
        order = self.repos.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"order {order_id} not found")
        return order

    def create_order(
        self,
        actor: Optional[User],
        items: Sequence,
        start_date,
        deadline,
        auto_assign: bool = False,
        notes: Optional[str] = None,
    ) -> Order:
        _require(actor, Role.ADMIN)
        if not items:
            raise ValidationError("an order needs at least one item")
        parsed = [_as_item(i) for i in items]
        start = _as_date(start_date, "start_date")
        end = _as_date(deadline, "deadline")
        if end < start:
            raise ValidationError("deadline must not be before start_date")
        order = Order(
            id=new_id(),
            items=parsed,
            start_date=start,
            deadline=end,
            created_by=actor.id,
            created_at=self._clock(),
            status=OrderStatus.OPEN,
            auto_assign=bool(auto_assign),
            notes=(notes or None),
        )
        self.repos.orders.add(order)
        logger.info("order.create id=%s items=%d auto_assign=%s actor=%s", order.id, len(parsed), order.auto_assign, actor.username)
        self._publish("farm_orders", "insert", order.id)

        if order.auto_assign:
            farmers = self.repos.users.list_by_role(Role.FARMER)
            for farmer in farmers:
                self.repos.orders.add_progress(order.id, Progress(user_id=farmer.id))
            if farmers:
                self._publish("user_order_progress", "insert", order.id)
            logger.info("order.auto_assign id=%s farmers=%d", order.id, len(farmers))
            self._rollup(order.id)
        return self.repos.orders.get(order.id)

    def delete_order(self, actor: Optional[User], order_id: str) -> None:
        _require(actor, Role.ADMIN)
        if not self.repos.orders.delete(order_id):
            logger.warning("order.delete not_found id=%s actor=%s", order_id, actor.username)
            raise NotFoundError(f"order {order_id} not found")
        logger.info("order.delete ok id=%s actor=%s", order_id, actor.username)
        self._publish("farm_orders", "delete", order_id)

    def _own_progress(self, actor: User, order_id: str, user_id: Optional[str]):
        if user_id is not None and user_id != actor.id:
            raise PermissionDeniedError("members can only act on their own progress")
        order = self.repos.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"order {order_id} not found")
        return order, order.progress_for(actor.id)

    def accept_order(self, actor: Optional[User], order_id: str, user_id: Optional[str] = None) -> Progress:
        """Claim an order. Accepting an order already claimed by the same member is a no-op."""
        _require(actor, Role.FARMER)
        order, progress = self._own_progress(actor, order_id, user_id)
        if progress is not None:
            return progress
        if order.status == OrderStatus.COMPLETED:
            raise InvalidTransitionError("order is already completed")
        progress = self.repos.orders.add_progress(order_id, Progress(user_id=actor.id))
        logger.info("order.accept id=%s actor=%s", order_id, actor.username)
        self._publish("user_order_progress", "insert", progress.id)
        self._rollup(order_id)
        return progress

    def update_progress(
        self,
        actor: Optional[User],
        order_id: str,
        block_id: str,
        amount: int,
        user_id: Optional[str] = None,
    ) -> Progress:
        """Set the cumulative completed amount for one block.

        Amounts are capped at the ordered amount for that block. The working
        status is re-derived from the totals, so setting everything back to zero
        returns the record to ``accepted``.
        """
        _require(actor, Role.FARMER)
        order, progress = self._own_progress(actor, order_id, user_id)
        if progress is None:
            raise NotFoundError("order has not been accepted by this member")
        if progress.status not in WORKING_STATUSES:
            raise InvalidTransitionError(f"progress is already {progress.status.value}")
        limit = ordered_amount(order, block_id)
        if limit <= 0:
            raise ValidationError(f"block {block_id} is not part of this order")
        amount = _as_amount(amount)
        if amount < 0:
            raise ValidationError("amount must not be negative")

        upsert_completed(progress, block_id, min(amount, limit))
        progress.status = derive_status(total_ordered(order), total_completed(progress))
        saved = self.repos.orders.save_progress(order_id, progress)
        logger.info(
            "order.progress id=%s block=%s amount=%d status=%s actor=%s",
            order_id, block_id, min(amount, limit), saved.status.value, actor.username,
        )
        self._publish("completed_items", "update", saved.id)
        return saved

    def submit_order(self, actor: Optional[User], order_id: str, user_id: Optional[str] = None) -> Progress:
        """Hand in a fully completed order for confirmation."""
        _require(actor, Role.FARMER)
        order, progress = self._own_progress(actor, order_id, user_id)
        if progress is None:
            raise NotFoundError("order has not been accepted by this member")
        if progress.status == ProgressStatus.SUBMITTED:
            return progress
        if progress.status == ProgressStatus.CONFIRMED:
            raise InvalidTransitionError("progress is already confirmed")
        if not can_submit(order, progress):
            raise InvalidTransitionError(
                f"completed {total_completed(progress)} of {total_ordered(order)}; finish the order before submitting"
            )
        progress.status = ProgressStatus.SUBMITTED
        progress.submitted_at = self._clock()
        saved = self.repos.orders.save_progress(order_id, progress)
        logger.info("order.submit id=%s actor=%s", order_id, actor.username)
        self._publish("user_order_progress", "update", saved.id)
        return saved

    def confirm_order(self, actor: Optional[User], order_id: str, user_id: str) -> Progress:
        """Confirm a member's submitted progress. Confirmed is terminal."""
        _require(actor, Role.ADMIN)
        order = self.repos.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"order {order_id} not found")
        progress = order.progress_for(user_id)
        if progress is None:
            raise NotFoundError(f"user {user_id} has no progress on order {order_id}")
        if progress.status == ProgressStatus.CONFIRMED:
            return progress
        if progress.status != ProgressStatus.SUBMITTED:
            raise InvalidTransitionError(f"only submitted progress can be confirmed (is {progress.status.value})")
        progress.status = ProgressStatus.CONFIRMED
        progress.confirmed_at = self._clock()
        progress.confirmed_by = actor.id
        saved = self.repos.orders.save_progress(order_id, progress)
        logger.info("order.confirm id=%s user=%s actor=%s", order_id, user_id, actor.username)
        self._publish("user_order_progress", "update", saved.id)
        self._rollup(order_id)
        return saved

    def _rollup(self, order_id: str) -> None:
        order = self.repos.orders.get(order_id)
        if order is None:
            return
        member_ids = [u.id for u in self.repos.users.list_all()]
        status = rollup_order_status(order, member_ids)
        if status != order.status:
            self.repos.orders.set_status(order_id, status)
            logger.info("order.status id=%s %s->%s", order_id, order.status.value, status.value)
            self._publish("farm_orders", "update", order_id)

    # ---- absences ----

    def list_absences(self, actor: Optional[User]) -> List[Absence]:
        """Administrators see every request; everyone else sees their own."""
        _require(actor)
        absences = self.repos.absences.list_all()
        if actor.role == Role.ADMIN:
            return absences
        return [a for a in absences if a.user_id == actor.id]

    def create_absence(self, actor: Optional[User], start_date, end_date, reason: Optional[str] = None) -> Absence:
        _require(actor)
        start = _as_date(start_date, "start_date")
        end = _as_date(end_date, "end_date")
        if end < start:
            raise ValidationError("end_date must not be before start_date")
        absence = Absence(
            id=new_id(),
            user_id=actor.id,
            username=actor.username,
            start_date=start,
            end_date=end,
            requested_at=self._clock(),
            reason=(reason or "").strip(),
        )
        saved = self.repos.absences.add(absence)
        logger.info("absence.create id=%s %s..%s actor=%s", saved.id, start, end, actor.username)
        self._publish("absence_requests", "insert", saved.id)
        return saved

    def _decide_absence(self, actor: Optional[User], absence_id: str, status: AbsenceStatus) -> Absence:
        _require(actor, Role.ADMIN)
        absence = self.repos.absences.get(absence_id)
        if absence is None:
            raise NotFoundError(f"absence {absence_id} not found")
        if absence.status != AbsenceStatus.PENDING:
            raise InvalidTransitionError(f"absence request is already {absence.status.value}")
        saved = self.repos.absences.set_status(absence_id, status)
        logger.info("absence.%s id=%s actor=%s", status.value, absence_id, actor.username)
        self._publish("absence_requests", "update", absence_id)
        return saved

    def approve_absence(self, actor: Optional[User], absence_id: str) -> Absence:
        return self._decide_absence(actor, absence_id, AbsenceStatus.APPROVED)

    def reject_absence(self, actor: Optional[User], absence_id: str) -> Absence:
        return self._decide_absence(actor, absence_id, AbsenceStatus.REJECTED)

    # ---- users ----

    def list_users(self, actor: Optional[User]) -> List[User]:
        _require(actor)
        return self.repos.users.list_all()

    def _add_user(self, username: str, password: str, role, created_by: Optional[str]) -> User:
        username = (username or "").strip()
        if not username:
            raise ValidationError("username is required")
        if not password:
            raise ValidationError("password is required")
        try:
            role = Role(role)
        except ValueError as e:
            raise ValidationError(f"role must be one of {[r.value for r in Role]}") from e
        login = auth.login_identifier(username)
        if self.repos.users.get_by_login(login) is not None:
            raise ConflictError("Username already exists")
        user = User(id=new_id(), username=username, role=role, created_at=self._clock(), created_by=created_by)
        saved = self.repos.users.add(user, login, auth.hash_password(password))
        self._publish("profiles", "insert", saved.id)
        return saved

    def create_user(self, actor: Optional[User], username: str, password: str, role=Role.FARMER) -> User:
        """Provision an account. The caller's own session is left untouched."""
        _require(actor, Role.ADMIN)
        user = self._add_user(username, password, role, created_by=actor.id)
        logger.info("user.create ok id=%s username=%s role=%s actor=%s", user.id, user.username, user.role.value, actor.username)
        return user

    def register_user(self, username: str, password: str) -> User:
        """Self-registration; new accounts get the read-only role."""
        user = self._add_user(username, password, Role.VIEWER, created_by=None)
        logger.info("user.register ok id=%s username=%s", user.id, user.username)
        return user

    def delete_user(self, actor: Optional[User], user_id: str) -> None:
        """Remove an account. Progress and absence records referencing it are kept."""
        _require(actor, Role.ADMIN)
        if user_id == actor.id:
            raise ValidationError("administrators cannot delete their own account")
        if not self.repos.users.delete(user_id):
            logger.warning("user.delete not_found id=%s actor=%s", user_id, actor.username)
            raise NotFoundError(f"user {user_id} not found")
        logger.info("user.delete ok id=%s actor=%s", user_id, actor.username)
        self._publish("profiles", "delete", user_id)
        # Their unfinished progress no longer holds orders open
        for order in self.repos.orders.list_all():
            if order.progress_for(user_id) is not None:
                self._rollup(order.id)

    def ensure_seed_admin(self, username: str, password: str) -> Optional[User]:
        """Create the seed administrator when no account exists yet."""
        if self.repos.users.count() > 0:
            return None
        user = self._add_user(username, password, Role.ADMIN, created_by=None)
        logger.info("user.seed_admin id=%s username=%s", user.id, user.username)
        return user

    # ---- read models ----

    def dashboard(self, actor: Optional[User]) -> Dict[str, int]:
        _require(actor)
        orders = self.repos.orders.list_all()
        today = self.today()
        summary = {
            "my_active": len(orders_for_user(orders, actor.id, WORKING_STATUSES)),
            "my_submitted": len(orders_for_user(orders, actor.id, (ProgressStatus.SUBMITTED,))),
            "my_confirmed": len(orders_for_user(orders, actor.id, (ProgressStatus.CONFIRMED,))),
            "available": len(available_orders(orders, actor.id)) if actor.role == Role.FARMER else 0,
            "overdue": sum(1 for o in orders if is_overdue(o, today)),
        }
        if actor.role == Role.ADMIN:
            summary.update(
                total_orders=len(orders),
                open_orders=sum(1 for o in orders if o.status == OrderStatus.OPEN),
                total_farmers=len(self.repos.users.list_by_role(Role.FARMER)),
                pending_absences=sum(1 for a in self.repos.absences.list_all() if a.status == AbsenceStatus.PENDING),
                pending_confirmations=len(pending_confirmations(orders)),
            )
        return summary

    def user_profile(self, actor: Optional[User], user_id: str) -> Dict[str, object]:
        _require(actor)
        if actor.role != Role.ADMIN and actor.id != user_id:
            raise PermissionDeniedError("profiles of other members are visible to administrators only")
        user = self.repos.users.get(user_id)
        if user is None:
            raise NotFoundError(f"user {user_id} not found")
        orders = self.repos.orders.list_all()
        return {
            "user": user,
            "active": orders_for_user(orders, user_id, WORKING_STATUSES),
            "submitted": orders_for_user(orders, user_id, (ProgressStatus.SUBMITTED,)),
            "confirmed": orders_for_user(orders, user_id, (ProgressStatus.CONFIRMED,)),
            "absences": [a for a in self.repos.absences.list_all() if a.user_id == user_id],
        }

    def username_for(self, user_id: Optional[str], users: Optional[Iterable[User]] = None) -> str:
        return display_username(users if users is not None else self.repos.users.list_all(), user_id)


__all__ = ["FarmService"]
