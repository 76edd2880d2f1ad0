"""Storage ports.

Services only talk to these interfaces; ``sql`` and ``local`` provide the two
interchangeable adapters. Every method is an independent write or read: there
is no transaction spanning several calls.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from darknova_core.domain import (
    Absence,
    AbsenceStatus,
    Order,
    OrderStatus,
    Progress,
    Role,
    User,
)


class UserRepository(ABC):
    @abstractmethod
    def list_all(self) -> List[User]:
        """All users, oldest first."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def get_by_login(self, login: str) -> Optional[User]: ...

    @abstractmethod
    def get_credentials(self, login: str) -> Optional[Tuple[User, str]]:
        """Return ``(user, password_hash)`` for a login identifier."""

    @abstractmethod
    def list_by_role(self, role: Role) -> List[User]: ...

    @abstractmethod
    def add(self, user: User, login: str, password_hash: str) -> User: ...

    @abstractmethod
    def delete(self, user_id: str) -> bool: ...

    def count(self) -> int:
        return len(self.list_all())


class OrderRepository(ABC):
    @abstractmethod
    def list_all(self) -> List[Order]:
        """All orders with items and progress, newest first."""

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]: ...

    @abstractmethod
    def add(self, order: Order) -> Order:
        """Persist an order together with its line items."""

    @abstractmethod
    def delete(self, order_id: str) -> bool:
        """Remove an order; its items and progress records go with it."""

    @abstractmethod
    def set_status(self, order_id: str, status: OrderStatus) -> None: ...

    @abstractmethod
    def add_progress(self, order_id: str, progress: Progress) -> Progress: ...

    @abstractmethod
    def save_progress(self, order_id: str, progress: Progress) -> Progress:
        """Update status and timestamps, upserting completed items by block."""


class AbsenceRepository(ABC):
    @abstractmethod
    def list_all(self) -> List[Absence]:
        """All absence requests, newest first."""

    @abstractmethod
    def get(self, absence_id: str) -> Optional[Absence]: ...

    @abstractmethod
    def add(self, absence: Absence) -> Absence: ...

    @abstractmethod
    def set_status(self, absence_id: str, status: AbsenceStatus) -> Optional[Absence]: ...


__all__ = ["UserRepository", "OrderRepository", "AbsenceRepository"]
