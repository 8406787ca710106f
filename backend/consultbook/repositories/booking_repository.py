# backend/consultbook/repositories/booking_repository.py
"""
Booking repository and status history.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.booking import Booking, BookingStatus, BookingStatusChange
from .base_repository import BaseRepository


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def list_for_client(
        self, client_id: str, status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        query = self._build_query().filter(Booking.client_id == client_id)
        if status is not None:
            query = query.filter(Booking.status == status)
        return self._execute_query(query.order_by(Booking.created_at.desc(), Booking.id.desc()))

    def list_for_slot(self, slot_id: str, active_only: bool = True) -> List[Booking]:
        query = self._build_query().filter(Booking.schedule_slot_id == slot_id)
        if active_only:
            query = query.filter(
                Booking.status.in_([BookingStatus.PENDING, BookingStatus.CONFIRMED])
            )
        return self._execute_query(query)


class BookingStatusChangeRepository(BaseRepository[BookingStatusChange]):
    def __init__(self, db: Session):
        super().__init__(db, BookingStatusChange)

    def record(
        self,
        booking_id: str,
        from_status: Optional[BookingStatus],
        to_status: BookingStatus,
        *,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> BookingStatusChange:
        return self.create(
            booking_id=booking_id,
            from_status=from_status.value if from_status is not None else None,
            to_status=to_status.value,
            actor_id=actor_id,
            reason=reason,
            occurred_at=datetime.now(timezone.utc),
        )

    def list_for_booking(self, booking_id: str) -> List[BookingStatusChange]:
        return self._execute_query(
            self._build_query()
            .filter(BookingStatusChange.booking_id == booking_id)
            .order_by(BookingStatusChange.occurred_at, BookingStatusChange.id)
        )
