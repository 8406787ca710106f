# backend/consultbook/services/booking_allocator.py
"""
Booking Allocator.

Creates a booking by taking seats on a slot and one session from the
client's package, all in a single transaction with the slot and package
rows locked. Either all three records change or none do.

Expected rejections (slot full, package exhausted, type mismatch, ...) are
returned as failed ``Outcome`` values. Ledger or capacity invariant
violations are raised.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.enums import BookingType, PackageType
from ..core.exceptions import (
    ClientInactiveException,
    DomainException,
    DurationMismatchException,
    GroupSizeExceededException,
    InvalidPricingException,
    NotFoundException,
    PackageExhaustedException,
    PackageInactiveException,
    PackageOwnershipException,
    PackageTypeMismatchException,
    ServiceException,
    SlotFullException,
    SlotUnavailableException,
    ValidationException,
)
from ..core.results import Outcome
from ..database import with_busy_retry
from ..models.booking import Booking, BookingStatus
from ..models.catalog import PackageDefinition
from ..models.schedule import ScheduleSlot
from ..models.user_package import UserPackage
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository, BookingStatusChangeRepository
from ..repositories.slot_repository import SlotRepository
from ..repositories.user_package_repository import UserPackageRepository
from .base import BaseService
from .client_registry import ClientRegistry, ClientRegistryService
from .package_ledger import PackageLedger

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class BookingPricing:
    """Amounts charged for one booking. ``total_amount`` defaults to the per-session price."""

    total_amount: Optional[Decimal] = None
    discount_amount: Decimal = Decimal("0")


def check_package_rules(
    definition: PackageDefinition, booking_type: BookingType, group_size: int
) -> None:
    """
    Validate a booking's type and group size against the package it draws from.

    Raises:
        PackageTypeMismatchException: booking type not allowed by the package
        GroupSizeExceededException: group size outside what the package allows
    """
    package_type = PackageType(definition.package_type)
    max_group_size = definition.max_group_size

    if package_type is PackageType.INDIVIDUAL:
        if booking_type is not BookingType.INDIVIDUAL or group_size != 1:
            raise PackageTypeMismatchException(package_type.value, booking_type.value)
    elif package_type is PackageType.GROUP:
        if booking_type is not BookingType.GROUP:
            raise PackageTypeMismatchException(package_type.value, booking_type.value)
        if group_size > max_group_size:
            raise GroupSizeExceededException(group_size, max_group_size)
    elif package_type is PackageType.MIXED:
        if booking_type is BookingType.GROUP:
            if group_size > max_group_size:
                raise GroupSizeExceededException(group_size, max_group_size)
        elif group_size != 1:
            raise GroupSizeExceededException(group_size, 1)
    else:
        raise ValueError(f"Unhandled package type: {package_type}")


class BookingAllocator(BaseService):
    """Sole creator of bookings and sole incrementer of slot and package counters."""

    def __init__(
        self,
        db: Session,
        client_registry: Optional[ClientRegistry] = None,
        ledger: Optional[PackageLedger] = None,
    ):
        super().__init__(db)
        self.client_registry = client_registry or ClientRegistryService(db)
        self.ledger = ledger or PackageLedger(db)
        self.slot_repository = SlotRepository(db)
        self.package_repository = UserPackageRepository(db)
        self.booking_repository = BookingRepository(db)
        self.status_repository = BookingStatusChangeRepository(db)

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        client_id: str,
        user_package_id: str,
        slot_id: str,
        booking_type: BookingType = BookingType.INDIVIDUAL,
        group_size: int = 1,
        pricing: Optional[BookingPricing] = None,
        pre_confirmed: bool = False,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Outcome[Booking]:
        """
        Book ``group_size`` seats of a slot against one session of a package.

        Checks run in this order: client, slot availability, slot capacity,
        package ownership and balance, booking type vs. package type, session
        duration. The booking starts ``pending`` unless ``pre_confirmed``.

        Returns:
            Outcome holding the booking, or the first failed check
        """
        pricing = pricing or BookingPricing()
        try:
            self._validate_request(group_size, pricing)
            booking = with_busy_retry(
                "create_booking",
                lambda: self._allocate(
                    client_id,
                    user_package_id,
                    slot_id,
                    booking_type,
                    group_size,
                    pricing,
                    pre_confirmed,
                    actor_id,
                    notes,
                ),
            )
        except ServiceException:
            prometheus_metrics.record_booking_outcome("create_booking", "error")
            raise
        except DomainException as exc:
            prometheus_metrics.record_booking_outcome("create_booking", exc.code)
            logger.info(
                "Booking rejected: %s",
                exc.code,
                extra={"client_id": client_id, "slot_id": slot_id, "code": exc.code},
            )
            return Outcome.failure(exc)

        prometheus_metrics.record_booking_outcome("create_booking", "ok")
        self.log_operation(
            "create_booking",
            booking_id=booking.id,
            client_id=client_id,
            slot_id=slot_id,
            group_size=group_size,
            status=booking.status.value,
        )
        return Outcome.success(booking)

    def _allocate(
        self,
        client_id: str,
        user_package_id: str,
        slot_id: str,
        booking_type: BookingType,
        group_size: int,
        pricing: BookingPricing,
        pre_confirmed: bool,
        actor_id: Optional[str],
        notes: Optional[str],
    ) -> Booking:
        with self.transaction(lock_timeout=True):
            client = self.client_registry.get_client(client_id)
            if client is None:
                raise NotFoundException("Client", client_id)
            if not client.is_active:
                raise ClientInactiveException(client_id)

            # Lock order: slot, then package (the lifecycle manager uses the same)
            slot = self._lock_slot(slot_id)
            if group_size > slot.remaining_capacity:
                raise SlotFullException(slot_id, group_size, slot.remaining_capacity)

            package = self._lock_package(user_package_id, client_id)
            definition = package.package_definition
            check_package_rules(definition, booking_type, group_size)

            slot_minutes = int(slot.session_duration.duration_minutes)
            package_minutes = int(definition.session_duration.duration_minutes)
            if slot_minutes != package_minutes:
                raise DurationMismatchException(slot_minutes, package_minutes)

            total = pricing.total_amount
            if total is None:
                total = (Decimal(package.price_paid) / int(definition.sessions_count)).quantize(
                    CENTS, rounding=ROUND_HALF_UP
                )
            discount = Decimal(pricing.discount_amount).quantize(CENTS, rounding=ROUND_HALF_UP)
            if discount > total:
                raise InvalidPricingException(
                    "Discount cannot exceed the booking total",
                    total_amount=str(total),
                    discount_amount=str(discount),
                )

            if not self.slot_repository.occupy_seats(slot_id, group_size):
                self._raise_slot_rejection(slot_id, group_size)
            self.ledger.reserve(package)

            status = BookingStatus.CONFIRMED if pre_confirmed else BookingStatus.PENDING
            booking = self.booking_repository.create(
                client_id=client_id,
                user_package_id=user_package_id,
                schedule_slot_id=slot_id,
                booking_type=booking_type,
                group_size=group_size,
                status=status,
                total_amount=total,
                discount_amount=discount,
                final_amount=total - discount,
                notes=notes,
                confirmed_at=datetime.now(timezone.utc) if pre_confirmed else None,
            )
            self.status_repository.record(
                booking.id,
                None,
                status,
                actor_id=actor_id,
                reason="pre-confirmed payment" if pre_confirmed else None,
            )
        return booking

    @staticmethod
    def _validate_request(group_size: int, pricing: BookingPricing) -> None:
        if group_size < 1:
            raise ValidationException(
                "group_size must be at least 1",
                code="InvalidBookingRequest",
                details={"group_size": group_size},
            )
        if pricing.discount_amount < 0:
            raise InvalidPricingException(
                "Discount cannot be negative", discount_amount=str(pricing.discount_amount)
            )
        if pricing.total_amount is not None and pricing.total_amount < 0:
            raise InvalidPricingException(
                "Total cannot be negative", total_amount=str(pricing.total_amount)
            )

    def _lock_slot(self, slot_id: str) -> ScheduleSlot:
        slot = self.slot_repository.get_for_update(slot_id)
        if slot is None:
            raise NotFoundException("ScheduleSlot", slot_id)
        if not slot.is_bookable:
            raise SlotUnavailableException(slot_id)
        return slot

    def _lock_package(self, user_package_id: str, client_id: str) -> UserPackage:
        package = self.package_repository.get_for_update(user_package_id)
        if package is None:
            raise NotFoundException("UserPackage", user_package_id)
        if package.client_id != client_id:
            raise PackageOwnershipException(user_package_id, client_id)
        if package.sessions_remaining < 1:
            raise PackageExhaustedException(user_package_id)
        if not package.is_active:
            raise PackageInactiveException(user_package_id)
        return package

    def _raise_slot_rejection(self, slot_id: str, group_size: int) -> None:
        """The guarded seat update matched nothing: report what changed under us."""
        slot = self.slot_repository.reload(slot_id)
        if slot is None:
            raise NotFoundException("ScheduleSlot", slot_id)
        if not slot.is_bookable:
            raise SlotUnavailableException(slot_id)
        raise SlotFullException(slot_id, group_size, slot.remaining_capacity)
