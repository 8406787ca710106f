# backend/consultbook/models/schedule.py
"""
Schedule models: bookable slots and the recurrence series that produced them.

Slot times are naive wall-clock datetimes of the practice; the engine does
not convert between timezones.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from ..core.enums import RecurrenceType
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .base_enum import create_safe_enum


class RecurrenceSeries(Base):
    """
    The rule a sibling set of slots was generated from.

    Stored verbatim so the same expansion can be reproduced and audited later.
    The sibling set is immutable after generation; individual slots can only
    be flagged as exceptions.
    """

    __tablename__ = "recurrence_series"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    recurrence_type = Column(
        create_safe_enum(RecurrenceType, "recurrence_type_enum", native_enum=False),
        nullable=False,
    )
    interval = Column(Integer, nullable=False, default=1)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days_of_week = Column(JSON, nullable=False, default=list)
    exception_dates = Column(JSON, nullable=False, default=list)
    times_of_day = Column(JSON, nullable=False, default=list)
    session_duration_id = Column(String(26), ForeignKey("session_durations.id"), nullable=False)
    capacity = Column(Integer, nullable=False)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    slots = relationship("ScheduleSlot", back_populates="recurrence", order_by="ScheduleSlot.start_time")

    __table_args__ = (
        CheckConstraint("interval > 0", name="ck_recurrence_series_interval_positive"),
        CheckConstraint("capacity >= 1", name="ck_recurrence_series_capacity_positive"),
    )


class ScheduleSlot(Base):
    """
    A bookable time window with a seat capacity.

    ``booked_count`` counts seats, not bookings: a group booking of four
    occupies four seats. Only the booking allocator and lifecycle manager
    write it, always through guarded UPDATE statements.
    """

    __tablename__ = "schedule_slots"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    start_time = Column(DateTime, nullable=False, unique=True)
    end_time = Column(DateTime, nullable=False)
    session_duration_id = Column(String(26), ForeignKey("session_durations.id"), nullable=False)
    capacity = Column(Integer, nullable=False, default=1)
    booked_count = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)
    recurrence_id = Column(String(26), ForeignKey("recurrence_series.id"), nullable=True)
    is_recurrence_exception = Column(Boolean, nullable=False, default=False)
    # Bumped by every guarded counter or flag update
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    session_duration = relationship("SessionDuration", lazy="joined")
    recurrence = relationship("RecurrenceSeries", back_populates="slots")

    __table_args__ = (
        CheckConstraint("capacity >= 1", name="ck_schedule_slots_capacity_positive"),
        CheckConstraint("booked_count >= 0", name="ck_schedule_slots_booked_non_negative"),
        CheckConstraint("booked_count <= capacity", name="ck_schedule_slots_not_overbooked"),
        CheckConstraint("end_time > start_time", name="ck_schedule_slots_time_order"),
        Index("ix_schedule_slots_recurrence", "recurrence_id"),
        Index("ix_schedule_slots_duration_start", "session_duration_id", "start_time"),
    )

    @property
    def remaining_capacity(self) -> int:
        return int(self.capacity) - int(self.booked_count)

    @property
    def is_bookable(self) -> bool:
        """Open for new bookings, ignoring capacity."""
        return bool(self.is_available) and not bool(self.is_recurrence_exception)

    def __repr__(self) -> str:
        return (
            f"<ScheduleSlot {self.id}: {self.start_time:%Y-%m-%d %H:%M} "
            f"{self.booked_count}/{self.capacity} available={self.is_available}>"
        )
