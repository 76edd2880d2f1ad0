"""ORM models for the relational storage adapter.

Table and column names follow the hosted schema (profiles, farm_orders,
order_items, user_order_progress, completed_items, absence_requests). User
references are plain columns without foreign keys: deleting a profile leaves
progress and absence rows pointing at it.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from darknova_core.db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(String(36), primary_key=True, default=_uuid)
    username = Column(String, nullable=False)
    # Synthetic login identifier (username@domain), lower-cased
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String(16), nullable=False, default="farmer")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    created_by = Column(String(36), nullable=True)


class FarmOrder(Base):
    __tablename__ = "farm_orders"
    id = Column(String(36), primary_key=True, default=_uuid)
    start_date = Column(Date, nullable=False)
    deadline = Column(Date, nullable=False)
    status = Column(String(16), nullable=False, default="open")
    auto_assign = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(36), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    notes = Column(Text, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    progress = relationship(
        "UserOrderProgress",
        back_populates="order",
        cascade="all, delete-orphan",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("farm_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    block_id = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    unit = Column(String(8), nullable=False, default="dk")

    order = relationship("FarmOrder", back_populates="items")


class UserOrderProgress(Base):
    __tablename__ = "user_order_progress"
    __table_args__ = (UniqueConstraint("order_id", "user_id", name="uq_progress_order_user"),)
    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("farm_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="accepted")
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_by = Column(String(36), nullable=True)

    order = relationship("FarmOrder", back_populates="progress")
    completed_items = relationship(
        "CompletedItem",
        back_populates="progress",
        cascade="all, delete-orphan",
    )


class CompletedItem(Base):
    __tablename__ = "completed_items"
    __table_args__ = (UniqueConstraint("progress_id", "block_id", name="uq_completed_progress_block"),)
    id = Column(String(36), primary_key=True, default=_uuid)
    progress_id = Column(String(36), ForeignKey("user_order_progress.id", ondelete="CASCADE"), nullable=False, index=True)
    block_id = Column(String, nullable=False)
    amount = Column(Integer, nullable=False, default=0)

    progress = relationship("UserOrderProgress", back_populates="completed_items")


class AbsenceRequest(Base):
    __tablename__ = "absence_requests"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=False, default="")
    status = Column(String(16), nullable=False, default="pending")
    requested_at = Column(DateTime(timezone=True), default=_utcnow)


__all__ = ["Profile", "FarmOrder", "OrderItem", "UserOrderProgress", "CompletedItem", "AbsenceRequest"]
