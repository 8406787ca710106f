# backend/consultbook/repositories/slot_repository.py
"""
Slot repository: schedule slots, their seat counters and recurrence series.

Seat counters are only ever changed through guarded UPDATE statements so the
``0 <= booked_count <= capacity`` invariant is enforced by the database even
if two writers slip past the row lock.
"""

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking
from ..models.schedule import RecurrenceSeries, ScheduleSlot
from .base_repository import BaseRepository


class DuplicateSlotError(RepositoryException):
    """A concurrent writer inserted a slot at one of the same start times."""


class SlotRepository(BaseRepository[ScheduleSlot]):
    def __init__(self, db: Session):
        super().__init__(db, ScheduleSlot)

    def find_existing_start_times(self, start_times: Iterable[datetime]) -> Set[datetime]:
        wanted = list(start_times)
        if not wanted:
            return set()
        with self._db_errors("look up"):
            rows = (
                self.db.query(ScheduleSlot.start_time)
                .filter(ScheduleSlot.start_time.in_(wanted))
                .all()
            )
        return {row[0] for row in rows}

    def insert_slots(self, rows: List[Dict[str, Any]]) -> List[ScheduleSlot]:
        """
        Insert a batch of slots and flush.

        Raises:
            DuplicateSlotError: A start time was taken by another transaction
        """
        slots = [ScheduleSlot(**row) for row in rows]
        try:
            self.db.add_all(slots)
            self.db.flush()
        except IntegrityError as exc:
            self.logger.info("Slot insert lost a race on start_time: %s", exc)
            raise DuplicateSlotError(f"Duplicate slot start time: {exc}") from exc
        return slots

    def list_available(
        self,
        *,
        session_duration_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        has_capacity: Optional[bool] = None,
    ) -> List[ScheduleSlot]:
        """Open, non-exception slots ordered by start time. Date bounds are inclusive."""
        query = self._build_query().filter(
            ScheduleSlot.is_available.is_(True),
            ScheduleSlot.is_recurrence_exception.is_(False),
        )
        if session_duration_id is not None:
            query = query.filter(ScheduleSlot.session_duration_id == session_duration_id)
        if date_from is not None:
            query = query.filter(ScheduleSlot.start_time >= datetime.combine(date_from, time.min))
        if date_to is not None:
            next_day = datetime.combine(date_to + timedelta(days=1), time.min)
            query = query.filter(ScheduleSlot.start_time < next_day)
        if has_capacity is True:
            query = query.filter(ScheduleSlot.booked_count < ScheduleSlot.capacity)
        elif has_capacity is False:
            query = query.filter(ScheduleSlot.booked_count >= ScheduleSlot.capacity)
        return self._execute_query(query.order_by(ScheduleSlot.start_time))

    def list_series(self, recurrence_id: str) -> List[ScheduleSlot]:
        return self._execute_query(
            self._build_query()
            .filter(ScheduleSlot.recurrence_id == recurrence_id)
            .order_by(ScheduleSlot.start_time)
        )

    def has_bookings(self, slot_id: str) -> bool:
        """True if any booking, in any status, references the slot."""
        with self._db_errors("check bookings of"):
            return (
                self.db.query(Booking.id).filter(Booking.schedule_slot_id == slot_id).first()
                is not None
            )

    def occupy_seats(self, slot_id: str, seats: int) -> bool:
        """
        Add ``seats`` to booked_count if the slot is open and has room.

        Returns False when the guard matched no row; the caller re-reads the
        slot to report why.
        """
        with self._db_errors("occupy seats of"):
            result = self.db.execute(
                update(ScheduleSlot)
                .where(
                    ScheduleSlot.id == slot_id,
                    ScheduleSlot.is_available.is_(True),
                    ScheduleSlot.is_recurrence_exception.is_(False),
                    ScheduleSlot.booked_count + seats <= ScheduleSlot.capacity,
                )
                .values(
                    booked_count=ScheduleSlot.booked_count + seats,
                    version=ScheduleSlot.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def release_seats(self, slot_id: str, seats: int) -> bool:
        """Give ``seats`` back. Returns False if that would push booked_count below zero."""
        with self._db_errors("release seats of"):
            result = self.db.execute(
                update(ScheduleSlot)
                .where(ScheduleSlot.id == slot_id, ScheduleSlot.booked_count >= seats)
                .values(
                    booked_count=ScheduleSlot.booked_count - seats,
                    version=ScheduleSlot.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def set_flags(self, slot: ScheduleSlot, **flags: bool) -> ScheduleSlot:
        """Update availability/exception flags and bump the version."""
        flags["version"] = int(slot.version) + 1
        return self.update(slot, **flags)

    def reload(self, slot_id: str) -> Optional[ScheduleSlot]:
        """Re-read a slot, discarding any stale in-session state."""
        with self._db_errors("reload"):
            return (
                self.db.query(ScheduleSlot)
                .filter(ScheduleSlot.id == slot_id)
                .populate_existing()
                .first()
            )


class RecurrenceSeriesRepository(BaseRepository[RecurrenceSeries]):
    def __init__(self, db: Session):
        super().__init__(db, RecurrenceSeries)
