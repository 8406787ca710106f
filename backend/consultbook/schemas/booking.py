# backend/consultbook/schemas/booking.py
"""Booking request and response schemas."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from ..core.enums import BookingType
from ..models.booking import BookingStatus
from ._strict_base import StrictRequestModel
from .base import Money, StandardizedModel


class BookingCreate(StrictRequestModel):
    client_id: str
    user_package_id: str
    schedule_slot_id: str
    booking_type: BookingType = BookingType.INDIVIDUAL
    group_size: int = Field(1, ge=1, description="Seats taken on the slot")
    total_amount: Optional[Money] = Field(
        None, description="Defaults to the package price divided by its sessions"
    )
    discount_amount: Money = Field(default=Money("0"))
    pre_confirmed: bool = Field(False, description="Payment already confirmed by the caller")
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("notes")
    @classmethod
    def clean_notes(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class BookingStatusUpdate(StrictRequestModel):
    status: Literal["confirmed", "completed", "cancelled", "no-show"]
    reason: Optional[str] = Field(None, max_length=500)


class BookingResponse(StandardizedModel):
    id: str
    client_id: str
    user_package_id: str
    schedule_slot_id: str
    booking_type: BookingType
    group_size: int
    status: BookingStatus
    total_amount: Money
    discount_amount: Money
    final_amount: Money
    notes: Optional[str] = None
    session_restored: bool
    capacity_released: bool
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class BookingStatusChangeResponse(StandardizedModel):
    from_status: Optional[str] = None
    to_status: str
    actor_id: Optional[str] = None
    reason: Optional[str] = None
    occurred_at: datetime


class BookingHistoryResponse(StandardizedModel):
    booking_id: str
    changes: List[BookingStatusChangeResponse]
