"""Domain model for farm orders, per-member progress and absence requests.

Everything in this module is pure: no storage, no clock, no logging. Services
pass ``today``/``now`` explicitly so the rules stay testable in isolation.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

UNKNOWN_USER_LABEL = "Unbekannt"


class Role(str, Enum):
    ADMIN = "admin"
    FARMER = "farmer"
    VIEWER = "viewer"


class OrderStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ProgressStatus(str, Enum):
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"


class AbsenceStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Unit(str, Enum):
    DK = "dk"
    KISTEN = "kisten"


# Presentation-only; never stored
OVERDUE = "overdue"

ORDER_STATUS_LABELS: Dict[str, str] = {
    OrderStatus.OPEN.value: "Offen",
    OrderStatus.IN_PROGRESS.value: "In Bearbeitung",
    OrderStatus.COMPLETED.value: "Abgeschlossen",
    OVERDUE: "Überfällig",
}

PROGRESS_STATUS_LABELS: Dict[str, str] = {
    ProgressStatus.ACCEPTED.value: "Angenommen",
    ProgressStatus.IN_PROGRESS.value: "In Bearbeitung",
    ProgressStatus.SUBMITTED.value: "Abgegeben",
    ProgressStatus.CONFIRMED.value: "Bestätigt",
}

ABSENCE_STATUS_LABELS: Dict[str, str] = {
    AbsenceStatus.PENDING.value: "Ausstehend",
    AbsenceStatus.APPROVED.value: "Genehmigt",
    AbsenceStatus.REJECTED.value: "Abgelehnt",
}

UNIT_LABELS: Dict[str, str] = {
    Unit.DK.value: "DK",
    Unit.KISTEN.value: "Kisten",
}

ROLE_LABELS: Dict[str, str] = {
    Role.ADMIN.value: "Admin",
    Role.FARMER.value: "Farmer",
    Role.VIEWER.value: "Viewer",
}


def status_label(status: str, table: Dict[str, str]) -> str:
    code = getattr(status, "value", status)
    return table.get(code, code)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class User:
    id: str
    username: str
    role: Role
    created_at: datetime
    created_by: Optional[str] = None


@dataclass
class OrderItem:
    block_id: str
    amount: int
    unit: Unit = Unit.DK


@dataclass
class CompletedItem:
    block_id: str
    amount: int


@dataclass
class Progress:
    """Per (order, user) assignment with the member's completed amounts."""

    user_id: str
    status: ProgressStatus = ProgressStatus.ACCEPTED
    completed_items: List[CompletedItem] = field(default_factory=list)
    submitted_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class Order:
    id: str
    items: List[OrderItem]
    start_date: date
    deadline: date
    created_by: str
    created_at: datetime
    status: OrderStatus = OrderStatus.OPEN
    auto_assign: bool = False
    notes: Optional[str] = None
    progress: List[Progress] = field(default_factory=list)

    def progress_for(self, user_id: str) -> Optional[Progress]:
        return next((p for p in self.progress if p.user_id == user_id), None)


@dataclass
class Absence:
    id: str
    user_id: str
    username: str
    start_date: date
    end_date: date
    requested_at: datetime
    reason: str = ""
    status: AbsenceStatus = AbsenceStatus.PENDING


# ---- Quantities ----

def total_ordered(order: Order) -> int:
    """Completion denominator: the plain sum of all line-item amounts, regardless of unit."""
    return sum(item.amount for item in order.items)


def ordered_amount(order: Order, block_id: str) -> int:
    return sum(item.amount for item in order.items if item.block_id == block_id)


def total_completed(progress: Optional[Progress]) -> int:
    if progress is None:
        return 0
    return sum(ci.amount for ci in progress.completed_items)


def completed_amount(progress: Optional[Progress], block_id: str) -> int:
    if progress is None:
        return 0
    entry = next((ci for ci in progress.completed_items if ci.block_id == block_id), None)
    return entry.amount if entry else 0


def completion_percent(order: Order, progress: Optional[Progress]) -> int:
    ordered = total_ordered(order)
    if ordered <= 0 or progress is None:
        return 0
    return int(round(total_completed(progress) / ordered * 100))


def upsert_completed(progress: Progress, block_id: str, amount: int) -> CompletedItem:
    """Set the cumulative amount for ``block_id``; at most one entry per block."""
    for entry in progress.completed_items:
        if entry.block_id == block_id:
            entry.amount = amount
            return entry
    entry = CompletedItem(block_id=block_id, amount=amount)
    progress.completed_items.append(entry)
    return entry


# ---- Status rules ----

# First matching rule wins. Only the working statuses are derived; submitted and
# confirmed are reached by explicit actions.
_PROGRESS_RULES: Tuple[Tuple[Callable[[int, int], bool], ProgressStatus], ...] = (
    (lambda ordered, completed: completed <= 0, ProgressStatus.ACCEPTED),
    (lambda ordered, completed: completed > 0, ProgressStatus.IN_PROGRESS),
)

WORKING_STATUSES = (ProgressStatus.ACCEPTED, ProgressStatus.IN_PROGRESS)


def derive_status(ordered: int, completed: int) -> ProgressStatus:
    for rule, status in _PROGRESS_RULES:
        if rule(ordered, completed):
            return status
    return ProgressStatus.ACCEPTED  # pragma: no cover - rules are exhaustive


def can_submit(order: Order, progress: Optional[Progress]) -> bool:
    if progress is None or progress.status not in WORKING_STATUSES:
        return False
    return total_completed(progress) >= total_ordered(order)


def rollup_order_status(order: Order, member_ids: Optional[Iterable[str]] = None) -> OrderStatus:
    """Shared order status from its progress records.

    With ``member_ids`` given, unfinished records of members that no longer
    exist are left out: nobody can submit them, so they must not hold the order
    open. Confirmed records always count.
    """
    records = order.progress
    if member_ids is not None:
        live = set(member_ids)
        records = [p for p in records if p.user_id in live or p.status == ProgressStatus.CONFIRMED]
    if not records:
        return OrderStatus.OPEN
    if all(p.status == ProgressStatus.CONFIRMED for p in records):
        return OrderStatus.COMPLETED
    return OrderStatus.IN_PROGRESS


def is_overdue(order: Order, today: date) -> bool:
    return order.deadline < today and order.status != OrderStatus.COMPLETED


def display_status(order: Order, today: date) -> str:
    return OVERDUE if is_overdue(order, today) else order.status.value


# ---- Filters ----

def available_orders(orders: Iterable[Order], user_id: str) -> List[Order]:
    """Orders the member can still accept."""
    return [
        o for o in orders
        if o.status != OrderStatus.COMPLETED and o.progress_for(user_id) is None
    ]


def orders_for_user(orders: Iterable[Order], user_id: str, statuses: Sequence[ProgressStatus]) -> List[Order]:
    result = []
    for o in orders:
        p = o.progress_for(user_id)
        if p is not None and p.status in statuses:
            result.append(o)
    return result


def pending_confirmations(orders: Iterable[Order]) -> List[Tuple[Order, Progress]]:
    return [(o, p) for o in orders for p in o.progress if p.status == ProgressStatus.SUBMITTED]


def display_username(users: Iterable[User], user_id: Optional[str]) -> str:
    """Resolve a user reference to a name; dangling references degrade to a fallback label."""
    if not user_id:
        return UNKNOWN_USER_LABEL
    for u in users:
        if u.id == user_id:
            return u.username
    return UNKNOWN_USER_LABEL


__all__ = [
    "Role",
    "OrderStatus",
    "ProgressStatus",
    "AbsenceStatus",
    "Unit",
    "OVERDUE",
    "UNKNOWN_USER_LABEL",
    "ORDER_STATUS_LABELS",
    "PROGRESS_STATUS_LABELS",
    "ABSENCE_STATUS_LABELS",
    "UNIT_LABELS",
    "ROLE_LABELS",
    "status_label",
    "new_id",
    "User",
    "OrderItem",
    "CompletedItem",
    "Progress",
    "Order",
    "Absence",
    "total_ordered",
    "ordered_amount",
    "total_completed",
    "completed_amount",
    "completion_percent",
    "upsert_completed",
    "derive_status",
    "WORKING_STATUSES",
    "can_submit",
    "rollup_order_status",
    "is_overdue",
    "display_status",
    "available_orders",
    "orders_for_user",
    "pending_confirmations",
    "display_username",
]
