"""JSON shapes returned by the API.

Adds the derived, presentation-side fields (labels, block names, percentages,
overdue flag, resolved usernames) on top of the stored entities.
"""
from datetime import date
from typing import Dict, Iterable, Optional

from darknova_core.catalog import block_name
from darknova_core.domain import (
    ABSENCE_STATUS_LABELS,
    ORDER_STATUS_LABELS,
    PROGRESS_STATUS_LABELS,
    ROLE_LABELS,
    UNIT_LABELS,
    Absence,
    Order,
    Progress,
    User,
    can_submit,
    completed_amount,
    completion_percent,
    display_status,
    display_username,
    is_overdue,
    status_label,
    total_completed,
    total_ordered,
)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def user_view(user: User) -> Dict:
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role.value,
        "role_label": status_label(user.role, ROLE_LABELS),
        "created_at": _iso(user.created_at),
        "created_by": user.created_by,
    }


def progress_view(order: Order, progress: Progress, users: Iterable[User]) -> Dict:
    return {
        "id": progress.id,
        "user_id": progress.user_id,
        "username": display_username(users, progress.user_id),
        "status": progress.status.value,
        "status_label": status_label(progress.status, PROGRESS_STATUS_LABELS),
        "completed_items": [
            {"block_id": ci.block_id, "block_name": block_name(ci.block_id), "amount": ci.amount}
            for ci in progress.completed_items
        ],
        "total_completed": total_completed(progress),
        "percent": completion_percent(order, progress),
        "can_submit": can_submit(order, progress),
        "submitted_at": _iso(progress.submitted_at),
        "confirmed_at": _iso(progress.confirmed_at),
        "confirmed_by": progress.confirmed_by,
    }


def order_view(order: Order, viewer: User, users: Iterable[User], today: date) -> Dict:
    users = list(users)
    mine = order.progress_for(viewer.id)
    shown = display_status(order, today)
    return {
        "id": order.id,
        "items": [
            {
                "block_id": i.block_id,
                "block_name": block_name(i.block_id),
                "amount": i.amount,
                "unit": i.unit.value,
                "unit_label": UNIT_LABELS.get(i.unit.value, i.unit.value),
                "completed": completed_amount(mine, i.block_id),
            }
            for i in order.items
        ],
        "start_date": _iso(order.start_date),
        "deadline": _iso(order.deadline),
        "status": order.status.value,
        "display_status": shown,
        "status_label": status_label(shown, ORDER_STATUS_LABELS),
        "overdue": is_overdue(order, today),
        "auto_assign": order.auto_assign,
        "created_by": order.created_by,
        "created_by_name": display_username(users, order.created_by),
        "created_at": _iso(order.created_at),
        "notes": order.notes,
        "total_ordered": total_ordered(order),
        "progress": [progress_view(order, p, users) for p in order.progress],
        "my_progress": progress_view(order, mine, users) if mine else None,
    }


def absence_view(absence: Absence) -> Dict:
    return {
        "id": absence.id,
        "user_id": absence.user_id,
        "username": absence.username,
        "start_date": _iso(absence.start_date),
        "end_date": _iso(absence.end_date),
        "reason": absence.reason,
        "status": absence.status.value,
        "status_label": status_label(absence.status, ABSENCE_STATUS_LABELS),
        "requested_at": _iso(absence.requested_at),
    }
