# backend/consultbook/services/booking_lifecycle.py
"""
Booking Lifecycle Manager.

Moves bookings through their statuses and applies compensation when a
booking stops holding its seats or session:

    pending   -> confirmed | cancelled | no-show
    confirmed -> completed | cancelled | no-show

completed, cancelled and no-show are terminal. Cancelling releases the seats
and restores the session. A no-show does what ``NO_SHOW_RELEASES_CAPACITY``
and ``NO_SHOW_RESTORES_SESSION`` say. Each booking is compensated at most
once because terminal statuses accept no further transitions.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    CapacityInvariantViolation,
    DomainException,
    InvalidTransitionException,
    NotFoundException,
    ServiceException,
)
from ..core.results import Outcome
from ..database import with_busy_retry
from ..models.booking import Booking, BookingStatus, BookingStatusChange
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository, BookingStatusChangeRepository
from ..repositories.slot_repository import SlotRepository
from ..repositories.user_package_repository import UserPackageRepository
from .base import BaseService
from .package_ledger import PackageLedger

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}


@dataclass(frozen=True)
class Compensation:
    release_capacity: bool = False
    restore_session: bool = False


class BookingLifecycleManager(BaseService):
    def __init__(
        self,
        db: Session,
        ledger: Optional[PackageLedger] = None,
        *,
        no_show_restores_session: Optional[bool] = None,
        no_show_releases_capacity: Optional[bool] = None,
    ):
        super().__init__(db)
        self.ledger = ledger or PackageLedger(db)
        self.booking_repository = BookingRepository(db)
        self.status_repository = BookingStatusChangeRepository(db)
        self.slot_repository = SlotRepository(db)
        self.package_repository = UserPackageRepository(db)
        self.no_show_restores_session = (
            settings.no_show_restores_session
            if no_show_restores_session is None
            else no_show_restores_session
        )
        self.no_show_releases_capacity = (
            settings.no_show_releases_capacity
            if no_show_releases_capacity is None
            else no_show_releases_capacity
        )

    # Transitions

    @BaseService.measure_operation("confirm_booking")
    def confirm(
        self, booking_id: str, actor_id: Optional[str] = None, reason: Optional[str] = None
    ) -> Outcome[Booking]:
        return self._run(booking_id, BookingStatus.CONFIRMED, Compensation(), actor_id, reason)

    @BaseService.measure_operation("complete_booking")
    def complete(
        self, booking_id: str, actor_id: Optional[str] = None, reason: Optional[str] = None
    ) -> Outcome[Booking]:
        return self._run(booking_id, BookingStatus.COMPLETED, Compensation(), actor_id, reason)

    @BaseService.measure_operation("cancel_booking")
    def cancel(
        self, booking_id: str, actor_id: Optional[str] = None, reason: Optional[str] = None
    ) -> Outcome[Booking]:
        return self._run(
            booking_id,
            BookingStatus.CANCELLED,
            Compensation(release_capacity=True, restore_session=True),
            actor_id,
            reason,
        )

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(
        self, booking_id: str, actor_id: Optional[str] = None, reason: Optional[str] = None
    ) -> Outcome[Booking]:
        return self._run(
            booking_id,
            BookingStatus.NO_SHOW,
            Compensation(
                release_capacity=self.no_show_releases_capacity,
                restore_session=self.no_show_restores_session,
            ),
            actor_id,
            reason,
        )

    def transition(
        self,
        booking_id: str,
        target_status: BookingStatus,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Outcome[Booking]:
        """Dispatch to the operation that moves a booking into ``target_status``."""
        handlers: Dict[BookingStatus, Callable[..., Outcome[Booking]]] = {
            BookingStatus.CONFIRMED: self.confirm,
            BookingStatus.COMPLETED: self.complete,
            BookingStatus.CANCELLED: self.cancel,
            BookingStatus.NO_SHOW: self.mark_no_show,
        }
        handler = handlers.get(target_status)
        if handler is None:
            booking = self.booking_repository.get_by_id(booking_id)
            if booking is None:
                return Outcome.failure(NotFoundException("Booking", booking_id))
            return Outcome.failure(
                InvalidTransitionException(
                    booking_id, BookingStatus(booking.status).value, target_status.value
                )
            )
        return handler(booking_id, actor_id=actor_id, reason=reason)

    def _run(
        self,
        booking_id: str,
        target: BookingStatus,
        compensation: Compensation,
        actor_id: Optional[str],
        reason: Optional[str],
    ) -> Outcome[Booking]:
        operation = f"transition_{target.value}"
        try:
            booking, previous = with_busy_retry(
                operation,
                lambda: self._apply(booking_id, target, compensation, actor_id, reason),
            )
        except ServiceException:
            prometheus_metrics.record_booking_outcome(operation, "error")
            raise
        except DomainException as exc:
            prometheus_metrics.record_booking_outcome(operation, exc.code)
            return Outcome.failure(exc)

        prometheus_metrics.record_booking_outcome(operation, "ok")
        logger.info(
            "Booking %s moved from %s to %s",
            booking_id,
            previous.value,
            target.value,
            extra={
                "booking_id": booking_id,
                "from_status": previous.value,
                "to_status": target.value,
                "actor_id": actor_id,
                "session_restored": bool(booking.session_restored),
                "capacity_released": bool(booking.capacity_released),
            },
        )
        return Outcome.success(booking)

    def _apply(
        self,
        booking_id: str,
        target: BookingStatus,
        compensation: Compensation,
        actor_id: Optional[str],
        reason: Optional[str],
    ) -> Tuple[Booking, BookingStatus]:
        with self.transaction(lock_timeout=True):
            booking = self.booking_repository.get_for_update(booking_id)
            if booking is None:
                raise NotFoundException("Booking", booking_id)

            current = BookingStatus(booking.status)
            if target not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransitionException(booking_id, current.value, target.value)

            changes: Dict[str, object] = {"status": target}
            now = datetime.now(timezone.utc)

            # Same lock order as the allocator: slot, then package
            if compensation.release_capacity:
                self._release_capacity(booking)
                changes["capacity_released"] = True
            if compensation.restore_session:
                package = self.package_repository.get_for_update(booking.user_package_id)
                if package is None:
                    raise NotFoundException("UserPackage", booking.user_package_id)
                self.ledger.restore(package)
                changes["session_restored"] = True

            if target is BookingStatus.CONFIRMED:
                changes["confirmed_at"] = now
            elif target is BookingStatus.COMPLETED:
                changes["completed_at"] = now
            elif target is BookingStatus.CANCELLED:
                changes["cancelled_at"] = now
                changes["cancellation_reason"] = reason

            self.booking_repository.update(booking, **changes)
            self.status_repository.record(
                booking.id, current, target, actor_id=actor_id, reason=reason
            )
        return booking, current

    def _release_capacity(self, booking: Booking) -> None:
        slot = self.slot_repository.get_for_update(booking.schedule_slot_id)
        if slot is None:
            raise NotFoundException("ScheduleSlot", booking.schedule_slot_id)
        seats = int(booking.group_size)
        if not self.slot_repository.release_seats(slot.id, seats):
            logger.error(
                "Releasing %d seat(s) of slot %s would make booked_count negative",
                seats,
                slot.id,
                extra={"booking_id": booking.id, "booked_count": slot.booked_count},
            )
            raise CapacityInvariantViolation(
                slot.id,
                "Releasing seats would make booked_count negative",
                booking_id=booking.id,
                seats=seats,
            )

    # Reads

    def get(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking", booking_id)
        return booking

    def list_for_client(
        self, client_id: str, status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        return self.booking_repository.list_for_client(client_id, status=status)

    def history(self, booking_id: str) -> List[BookingStatusChange]:
        self.get(booking_id)
        return self.status_repository.list_for_booking(booking_id)
