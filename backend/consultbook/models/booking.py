# backend/consultbook/models/booking.py
"""
Booking model and its status history.

A booking occupies ``group_size`` seats of one schedule slot and consumes one
session of the client's package. The two compensation flags record what was
given back when the booking left the active states, so a second cancellation
can never hand the same session or seats back twice.
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.enums import BookingType
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .base_enum import create_safe_enum


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # Waiting for payment / admin confirmation
    CONFIRMED = "confirmed"
    COMPLETED = "completed"  # Session took place
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"  # Client didn't attend

    @property
    def is_active(self) -> bool:
        return self in (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, default=generate_ulid)

    client_id = Column(String(26), ForeignKey("clients.id"), nullable=False)
    user_package_id = Column(String(26), ForeignKey("user_packages.id"), nullable=False)
    schedule_slot_id = Column(String(26), ForeignKey("schedule_slots.id"), nullable=False)

    booking_type = Column(
        create_safe_enum(BookingType, "booking_type_enum", native_enum=False), nullable=False
    )
    group_size = Column(Integer, nullable=False, default=1)
    status = Column(
        create_safe_enum(BookingStatus, "booking_status_enum", native_enum=False),
        nullable=False,
        default=BookingStatus.PENDING,
    )

    total_amount = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    final_amount = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)

    # Compensation applied when the booking left pending/confirmed
    session_restored = Column(Boolean, nullable=False, default=False)
    capacity_released = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    client = relationship("Client")
    user_package = relationship("UserPackage")
    schedule_slot = relationship("ScheduleSlot")
    status_changes = relationship(
        "BookingStatusChange",
        back_populates="booking",
        order_by="BookingStatusChange.occurred_at",
    )

    __table_args__ = (
        CheckConstraint("group_size >= 1", name="ck_bookings_group_size_positive"),
        CheckConstraint(
            "booking_type = 'group' OR group_size = 1", name="ck_bookings_individual_single_seat"
        ),
        CheckConstraint("total_amount >= 0", name="ck_bookings_total_non_negative"),
        CheckConstraint("discount_amount >= 0", name="ck_bookings_discount_non_negative"),
        CheckConstraint("final_amount >= 0", name="ck_bookings_final_non_negative"),
        Index("ix_bookings_client_status", "client_id", "status"),
        Index("ix_bookings_slot", "schedule_slot_id"),
        Index("ix_bookings_user_package", "user_package_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: client={self.client_id}, slot={self.schedule_slot_id}, "
            f"type={self.booking_type} x{self.group_size}, status={self.status}>"
        )


class BookingStatusChange(Base):
    """
    One row per booking status transition, creation included.

    ``from_status`` is NULL for the creation row.
    """

    __tablename__ = "booking_status_changes"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    actor_id = Column(String(64), nullable=True)
    reason = Column(Text, nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    booking = relationship("Booking", back_populates="status_changes")

    __table_args__ = (Index("ix_booking_status_changes_booking", "booking_id", "occurred_at"),)

    def __repr__(self) -> str:
        return (
            f"<BookingStatusChange {self.booking_id}: {self.from_status} -> {self.to_status} "
            f"by {self.actor_id}>"
        )
