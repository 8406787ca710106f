# backend/consultbook/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.

Creation goes through BookingAllocator, status changes through
BookingLifecycleManager. Both answer with an Outcome; a failed outcome is
returned as a problem document carrying the error code.

Endpoints:
    POST /                         → Book seats of a slot against a package
    GET /{booking_id}              → Booking details
    GET /{booking_id}/history      → Status change audit trail
    PATCH /{booking_id}            → Move the booking to a new status
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, status

from ...api.dependencies import get_actor_id, get_booking_allocator, get_booking_lifecycle
from ...core.exceptions import DomainException
from ...models.booking import BookingStatus
from ...schemas.booking import (
    BookingCreate,
    BookingHistoryResponse,
    BookingResponse,
    BookingStatusChangeResponse,
    BookingStatusUpdate,
)
from ...services.booking_allocator import BookingAllocator, BookingPricing
from ...services.booking_lifecycle import BookingLifecycleManager
from .common import ULID_PATH_PATTERN, handle_domain_exception, unwrap_outcome

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    actor_id: Optional[str] = Depends(get_actor_id),
    allocator: BookingAllocator = Depends(get_booking_allocator),
) -> BookingResponse:
    """
    Create a booking.

    The slot's seats and one package session are taken together; on any
    failed check nothing changes and the error code explains why.
    """
    pricing = BookingPricing(
        total_amount=payload.total_amount,
        discount_amount=payload.discount_amount,
    )
    outcome = await asyncio.to_thread(
        allocator.create_booking,
        payload.client_id,
        payload.user_package_id,
        payload.schedule_slot_id,
        booking_type=payload.booking_type,
        group_size=payload.group_size,
        pricing=pricing,
        pre_confirmed=payload.pre_confirmed,
        actor_id=actor_id or payload.client_id,
        notes=payload.notes,
    )
    booking = unwrap_outcome(outcome)
    return BookingResponse.model_validate(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    lifecycle: BookingLifecycleManager = Depends(get_booking_lifecycle),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(lifecycle.get, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingResponse.model_validate(booking)


@router.get("/{booking_id}/history", response_model=BookingHistoryResponse)
async def get_booking_history(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    lifecycle: BookingLifecycleManager = Depends(get_booking_lifecycle),
) -> BookingHistoryResponse:
    """Every status change of the booking, oldest first."""
    try:
        changes = await asyncio.to_thread(lifecycle.history, booking_id)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingHistoryResponse(
        booking_id=booking_id,
        changes=[BookingStatusChangeResponse.model_validate(change) for change in changes],
    )


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking_status(
    payload: BookingStatusUpdate,
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    actor_id: Optional[str] = Depends(get_actor_id),
    lifecycle: BookingLifecycleManager = Depends(get_booking_lifecycle),
) -> BookingResponse:
    """
    Confirm, complete, cancel or mark a booking as no-show.

    Cancelling gives the seats back to the slot and the session back to the
    package; what a no-show gives back is configurable.
    """
    outcome = await asyncio.to_thread(
        lifecycle.transition,
        booking_id,
        BookingStatus(payload.status),
        actor_id,
        payload.reason,
    )
    booking = unwrap_outcome(outcome)
    return BookingResponse.model_validate(booking)
