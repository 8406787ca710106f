# backend/consultbook/routes/v1/slots.py
"""
Slot routes - API v1

Versioned schedule slot endpoints under /api/v1/slots.
All business logic delegated to SlotStore.

Endpoints:
    GET /                                  → List bookable slots
    POST /recurring                        → Create slots from a recurrence rule
    POST /bulk                             → Create slots for a date range
    GET /series/{recurrence_id}            → Recurrence series with its slots
    POST /series/{recurrence_id}/regenerate → Recreate missing slots of a series
    GET /{slot_id}                         → Slot details
    PATCH /{slot_id}/availability          → Open or close a slot
    PATCH /{slot_id}/exception             → Flag a series occurrence as exception
    DELETE /{slot_id}                      → Delete an unbooked slot
"""

import asyncio
from datetime import date
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status

from ...api.dependencies import get_actor_id, get_slot_store
from ...core.exceptions import DomainException
from ...schemas.slot import (
    AvailabilityUpdate,
    BulkSlotsCreate,
    RecurrenceExceptionUpdate,
    RecurrenceSeriesResponse,
    RecurringSlotsCreate,
    SlotCreationResponse,
    SlotResponse,
)
from ...services.slot_store import SlotCreationReport, SlotStore
from .common import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["slots-v1"])


def _creation_response(report: SlotCreationReport) -> SlotCreationResponse:
    return SlotCreationResponse(
        created_count=report.created_count,
        skipped_count=report.skipped_count,
        recurrence_id=report.recurrence_id,
        created=[SlotResponse.model_validate(slot) for slot in report.created],
        skipped=report.skipped,
    )


# ============================================================================
# SECTION 1: Static routes (no path parameters)
# ============================================================================


@router.get("", response_model=List[SlotResponse])
async def list_slots(
    duration_id: Optional[str] = Query(None, description="Only slots of this session duration"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    has_capacity: Optional[bool] = Query(None, description="Only slots with free seats"),
    slot_store: SlotStore = Depends(get_slot_store),
) -> List[SlotResponse]:
    """List slots that accept bookings, ordered by start time."""
    slots = await asyncio.to_thread(
        slot_store.list_available,
        session_duration_id=duration_id,
        date_from=date_from,
        date_to=date_to,
        has_capacity=has_capacity,
    )
    return [SlotResponse.model_validate(slot) for slot in slots]


@router.post("/recurring", response_model=SlotCreationResponse, status_code=status.HTTP_201_CREATED)
async def create_recurring_slots(
    payload: RecurringSlotsCreate,
    actor_id: Optional[str] = Depends(get_actor_id),
    slot_store: SlotStore = Depends(get_slot_store),
) -> SlotCreationResponse:
    """
    Expand a daily, weekly or monthly rule into slots.

    Candidates colliding with existing slots are skipped (or fail the
    request when the store runs with the ``fail`` duplicate policy).
    """
    try:
        report = await asyncio.to_thread(
            slot_store.create_recurring,
            payload.rule.to_rule(),
            payload.times_of_day,
            payload.session_duration_id,
            payload.capacity,
            actor_id,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _creation_response(report)


@router.post("/bulk", response_model=SlotCreationResponse, status_code=status.HTTP_201_CREATED)
async def create_bulk_slots(
    payload: BulkSlotsCreate,
    slot_store: SlotStore = Depends(get_slot_store),
) -> SlotCreationResponse:
    """Create slots for every day of a date range, optionally skipping weekends."""
    try:
        report = await asyncio.to_thread(
            slot_store.create_bulk,
            payload.start_date,
            payload.end_date,
            payload.times_of_day,
            payload.session_duration_id,
            payload.capacity,
            skip_weekends=payload.skip_weekends,
            exceptions=payload.exceptions,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _creation_response(report)


@router.get("/series/{recurrence_id}", response_model=RecurrenceSeriesResponse)
async def get_series(
    recurrence_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    slot_store: SlotStore = Depends(get_slot_store),
) -> RecurrenceSeriesResponse:
    try:
        series = await asyncio.to_thread(slot_store.get_series, recurrence_id)
    except DomainException as e:
        handle_domain_exception(e)
    return RecurrenceSeriesResponse.model_validate(series)


@router.post(
    "/series/{recurrence_id}/regenerate",
    response_model=SlotCreationResponse,
    status_code=status.HTTP_200_OK,
)
async def regenerate_series(
    recurrence_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    slot_store: SlotStore = Depends(get_slot_store),
) -> SlotCreationResponse:
    """Re-expand the stored rule; slots that still exist are reported as skipped."""
    try:
        report = await asyncio.to_thread(slot_store.regenerate_series, recurrence_id)
    except DomainException as e:
        handle_domain_exception(e)
    return _creation_response(report)


# ============================================================================
# SECTION 2: Dynamic routes (/{slot_id})
# ============================================================================


@router.get("/{slot_id}", response_model=SlotResponse)
async def get_slot(
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    slot_store: SlotStore = Depends(get_slot_store),
) -> SlotResponse:
    try:
        slot = await asyncio.to_thread(slot_store.get, slot_id)
    except DomainException as e:
        handle_domain_exception(e)
    return SlotResponse.model_validate(slot)


@router.patch("/{slot_id}/availability", response_model=SlotResponse)
async def update_availability(
    payload: AvailabilityUpdate,
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    slot_store: SlotStore = Depends(get_slot_store),
) -> SlotResponse:
    """Open or close a slot for new bookings. Existing bookings are kept."""
    try:
        slot = await asyncio.to_thread(slot_store.set_availability, slot_id, payload.is_available)
    except DomainException as e:
        handle_domain_exception(e)
    return SlotResponse.model_validate(slot)


@router.patch("/{slot_id}/exception", response_model=SlotResponse)
async def update_recurrence_exception(
    payload: RecurrenceExceptionUpdate,
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    slot_store: SlotStore = Depends(get_slot_store),
) -> SlotResponse:
    try:
        slot = await asyncio.to_thread(
            slot_store.set_recurrence_exception, slot_id, payload.is_recurrence_exception
        )
    except DomainException as e:
        handle_domain_exception(e)
    return SlotResponse.model_validate(slot)


@router.delete("/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot(
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    slot_store: SlotStore = Depends(get_slot_store),
) -> Response:
    """Delete a slot nobody has booked."""
    try:
        await asyncio.to_thread(slot_store.delete_slot, slot_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
