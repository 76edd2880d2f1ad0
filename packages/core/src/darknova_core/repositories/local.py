"""Local flat-file storage adapter.

All state lives in one JSON document holding whole-collection blobs under fixed
keys. Every change rewrites the affected collection in full; there is no schema
versioning and no conflict resolution between processes sharing a file.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

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

logger = logging.getLogger("darknova_core.repositories.local")

KEY_SESSION = "darknovaUser"
KEY_USERS = "darknovaUsers"
KEY_ORDERS = "darknovaOrders"
KEY_ABSENCES = "darknovaAbsences"


class LocalStore:
    """Key -> JSON value store backed by a single file."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.error("local.load corrupt file path=%s", self.path)
            raise

    def _dump(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".darknova_", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except OSError:
            logger.exception("local.write failed path=%s", self.path)
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def read(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def write(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._dump(data)

    def lock(self) -> threading.RLock:
        return self._lock


# ---- (de)serialization ----

def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _parse_date(value: str) -> date:
    return date.fromisoformat(value)


def _user_to_dict(user: User, login: str, password_hash: str) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "login": login,
        "password_hash": password_hash,
        "role": user.role.value,
        "created_at": _dt(user.created_at),
        "created_by": user.created_by,
    }


def _user_from_dict(d: Dict[str, Any]) -> User:
    return User(
        id=d["id"],
        username=d["username"],
        role=Role(d["role"]),
        created_at=_parse_dt(d.get("created_at")),
        created_by=d.get("created_by"),
    )


def _progress_to_dict(p: Progress) -> Dict[str, Any]:
    return {
        "id": p.id,
        "user_id": p.user_id,
        "status": p.status.value,
        "completed_items": [{"block_id": ci.block_id, "amount": ci.amount} for ci in p.completed_items],
        "submitted_at": _dt(p.submitted_at),
        "confirmed_at": _dt(p.confirmed_at),
        "confirmed_by": p.confirmed_by,
    }


def _progress_from_dict(d: Dict[str, Any]) -> Progress:
    return Progress(
        id=d["id"],
        user_id=d["user_id"],
        status=ProgressStatus(d["status"]),
        completed_items=[CompletedItem(block_id=ci["block_id"], amount=ci["amount"]) for ci in d.get("completed_items", [])],
        submitted_at=_parse_dt(d.get("submitted_at")),
        confirmed_at=_parse_dt(d.get("confirmed_at")),
        confirmed_by=d.get("confirmed_by"),
    )


def _order_to_dict(o: Order) -> Dict[str, Any]:
    return {
        "id": o.id,
        "items": [{"block_id": i.block_id, "amount": i.amount, "unit": i.unit.value} for i in o.items],
        "start_date": o.start_date.isoformat(),
        "deadline": o.deadline.isoformat(),
        "status": o.status.value,
        "auto_assign": o.auto_assign,
        "created_by": o.created_by,
        "created_at": _dt(o.created_at),
        "notes": o.notes,
        "progress": [_progress_to_dict(p) for p in o.progress],
    }


def _order_from_dict(d: Dict[str, Any]) -> Order:
    return Order(
        id=d["id"],
        items=[OrderItem(block_id=i["block_id"], amount=i["amount"], unit=Unit(i.get("unit", "dk"))) for i in d.get("items", [])],
        start_date=_parse_date(d["start_date"]),
        deadline=_parse_date(d["deadline"]),
        status=OrderStatus(d.get("status", "open")),
        auto_assign=bool(d.get("auto_assign", False)),
        created_by=d["created_by"],
        created_at=_parse_dt(d.get("created_at")),
        notes=d.get("notes"),
        progress=[_progress_from_dict(p) for p in d.get("progress", [])],
    )


def _absence_to_dict(a: Absence) -> Dict[str, Any]:
    return {
        "id": a.id,
        "user_id": a.user_id,
        "username": a.username,
        "start_date": a.start_date.isoformat(),
        "end_date": a.end_date.isoformat(),
        "reason": a.reason,
        "status": a.status.value,
        "requested_at": _dt(a.requested_at),
    }


def _absence_from_dict(d: Dict[str, Any]) -> Absence:
    return Absence(
        id=d["id"],
        user_id=d["user_id"],
        username=d.get("username") or "",
        start_date=_parse_date(d["start_date"]),
        end_date=_parse_date(d["end_date"]),
        reason=d.get("reason") or "",
        status=AbsenceStatus(d.get("status", "pending")),
        requested_at=_parse_dt(d.get("requested_at")),
    )


# ---- repositories ----

class LocalUserRepository(UserRepository):
    def __init__(self, store: LocalStore):
        self._store = store

    def _rows(self) -> List[Dict[str, Any]]:
        return list(self._store.read(KEY_USERS, []))

    def list_all(self) -> List[User]:
        return [_user_from_dict(d) for d in self._rows()]

    def get(self, user_id: str) -> Optional[User]:
        return next((_user_from_dict(d) for d in self._rows() if d["id"] == user_id), None)

    def get_by_login(self, login: str) -> Optional[User]:
        creds = self.get_credentials(login)
        return creds[0] if creds else None

    def get_credentials(self, login: str) -> Optional[Tuple[User, str]]:
        for d in self._rows():
            if d.get("login") == login:
                return _user_from_dict(d), d.get("password_hash", "")
        return None

    def list_by_role(self, role: Role) -> List[User]:
        return [u for u in self.list_all() if u.role == role]

    def add(self, user: User, login: str, password_hash: str) -> User:
        with self._store.lock():
            rows = self._rows()
            if any(d.get("login") == login for d in rows):
                raise ConflictError(f"login already exists: {login}")
            rows.append(_user_to_dict(user, login, password_hash))
            self._store.write(KEY_USERS, rows)
        return user

    def delete(self, user_id: str) -> bool:
        with self._store.lock():
            rows = self._rows()
            kept = [d for d in rows if d["id"] != user_id]
            if len(kept) == len(rows):
                return False
            self._store.write(KEY_USERS, kept)
            return True


class LocalOrderRepository(OrderRepository):
    def __init__(self, store: LocalStore):
        self._store = store

    def _orders(self) -> List[Order]:
        return [_order_from_dict(d) for d in self._store.read(KEY_ORDERS, [])]

    def _save(self, orders: List[Order]) -> None:
        self._store.write(KEY_ORDERS, [_order_to_dict(o) for o in orders])

    def list_all(self) -> List[Order]:
        return sorted(self._orders(), key=lambda o: o.created_at, reverse=True)

    def get(self, order_id: str) -> Optional[Order]:
        return next((o for o in self._orders() if o.id == order_id), None)

    def add(self, order: Order) -> Order:
        with self._store.lock():
            orders = self._orders()
            orders.append(order)
            self._save(orders)
        return order

    def delete(self, order_id: str) -> bool:
        with self._store.lock():
            orders = self._orders()
            kept = [o for o in orders if o.id != order_id]
            if len(kept) == len(orders):
                return False
            self._save(kept)
            return True

    def _mutate(self, order_id: str):
        orders = self._orders()
        for o in orders:
            if o.id == order_id:
                return orders, o
        raise NotFoundError(f"order {order_id} not found")

    def set_status(self, order_id: str, status: OrderStatus) -> None:
        with self._store.lock():
            orders, order = self._mutate(order_id)
            order.status = status
            self._save(orders)

    def add_progress(self, order_id: str, progress: Progress) -> Progress:
        with self._store.lock():
            orders, order = self._mutate(order_id)
            if order.progress_for(progress.user_id) is not None:
                raise ConflictError(f"progress already exists for order={order_id} user={progress.user_id}")
            order.progress.append(progress)
            self._save(orders)
        return progress

    def save_progress(self, order_id: str, progress: Progress) -> Progress:
        with self._store.lock():
            orders, order = self._mutate(order_id)
            current = order.progress_for(progress.user_id)
            if current is None:
                raise NotFoundError(f"no progress for order={order_id} user={progress.user_id}")
            current.status = progress.status
            current.submitted_at = progress.submitted_at
            current.confirmed_at = progress.confirmed_at
            current.confirmed_by = progress.confirmed_by
            existing = {ci.block_id: ci for ci in current.completed_items}
            for ci in progress.completed_items:
                if ci.block_id in existing:
                    existing[ci.block_id].amount = ci.amount
                else:
                    current.completed_items.append(CompletedItem(block_id=ci.block_id, amount=ci.amount))
            self._save(orders)
            return current


class LocalAbsenceRepository(AbsenceRepository):
    def __init__(self, store: LocalStore):
        self._store = store

    def _absences(self) -> List[Absence]:
        absences = [_absence_from_dict(d) for d in self._store.read(KEY_ABSENCES, [])]
        # Names resolve against current accounts, as the relational join does
        names = {row["id"]: row["username"] for row in self._store.read(KEY_USERS, [])}
        for a in absences:
            a.username = names.get(a.user_id, UNKNOWN_USER_LABEL)
        return absences

    def list_all(self) -> List[Absence]:
        return sorted(self._absences(), key=lambda a: a.requested_at, reverse=True)

    def get(self, absence_id: str) -> Optional[Absence]:
        return next((a for a in self._absences() if a.id == absence_id), None)

    def add(self, absence: Absence) -> Absence:
        with self._store.lock():
            absences = self._absences()
            absences.append(absence)
            self._store.write(KEY_ABSENCES, [_absence_to_dict(a) for a in absences])
        return absence

    def set_status(self, absence_id: str, status: AbsenceStatus) -> Optional[Absence]:
        with self._store.lock():
            absences = self._absences()
            found = next((a for a in absences if a.id == absence_id), None)
            if found is None:
                return None
            found.status = status
            self._store.write(KEY_ABSENCES, [_absence_to_dict(a) for a in absences])
            return found


__all__ = [
    "LocalStore",
    "LocalUserRepository",
    "LocalOrderRepository",
    "LocalAbsenceRepository",
    "KEY_SESSION",
    "KEY_USERS",
    "KEY_ORDERS",
    "KEY_ABSENCES",
]
