# backend/consultbook/schemas/package.py
"""User package and payment event schemas."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from ..core.enums import DeactivationReason, PaymentStatus
from ._strict_base import StrictRequestModel
from .base import Money, StandardizedModel


class PaymentConfirmed(StrictRequestModel):
    """Payment confirmation event delivered by the payment collaborator."""

    client_id: str
    package_price_id: str
    status: PaymentStatus
    payment_reference: Optional[str] = Field(
        None, max_length=255, description="Idempotency key of the payment"
    )


class UserPackageResponse(StandardizedModel):
    id: str
    client_id: str
    package_price_id: str
    price_paid: Money
    sessions_remaining: int
    sessions_used: int
    is_active: bool
    deactivation_reason: Optional[DeactivationReason] = None
    payment_reference: Optional[str] = None
    purchased_at: Optional[datetime] = None


class PaymentEventResponse(StandardizedModel):
    processed: bool
    user_package: Optional[UserPackageResponse] = None
