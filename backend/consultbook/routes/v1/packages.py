# backend/consultbook/routes/v1/packages.py
"""
Package routes - API v1

Endpoints:
    POST /payments/confirmed               → Issue a user package for a completed payment
    POST /packages/{user_package_id}/deactivate → Stop a package from accepting bookings
    GET /packages/{user_package_id}        → User package details
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Path, status

from ...api.dependencies import get_package_ledger
from ...core.exceptions import DomainException
from ...schemas.package import PaymentConfirmed, PaymentEventResponse, UserPackageResponse
from ...services.package_ledger import PackageLedger, PaymentConfirmedEvent
from .common import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["packages-v1"])


@router.post(
    "/payments/confirmed",
    response_model=PaymentEventResponse,
    status_code=status.HTTP_200_OK,
)
async def payment_confirmed(
    payload: PaymentConfirmed,
    ledger: PackageLedger = Depends(get_package_ledger),
) -> PaymentEventResponse:
    """
    Handle a payment confirmation event.

    Completed payments create a user package. Delivering the same
    ``payment_reference`` twice returns the package created the first time.
    Pending and failed payments are acknowledged without side effects.
    """
    event = PaymentConfirmedEvent(
        client_id=payload.client_id,
        package_price_id=payload.package_price_id,
        status=payload.status,
        payment_reference=payload.payment_reference,
    )
    try:
        user_package = await asyncio.to_thread(ledger.handle_payment_confirmed, event)
    except DomainException as e:
        handle_domain_exception(e)
    if user_package is None:
        return PaymentEventResponse(processed=False)
    return PaymentEventResponse(
        processed=True, user_package=UserPackageResponse.model_validate(user_package)
    )


@router.get("/packages/{user_package_id}", response_model=UserPackageResponse)
async def get_user_package(
    user_package_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    ledger: PackageLedger = Depends(get_package_ledger),
) -> UserPackageResponse:
    try:
        user_package = await asyncio.to_thread(ledger.get, user_package_id)
    except DomainException as e:
        handle_domain_exception(e)
    return UserPackageResponse.model_validate(user_package)


@router.post("/packages/{user_package_id}/deactivate", response_model=UserPackageResponse)
async def deactivate_user_package(
    user_package_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    ledger: PackageLedger = Depends(get_package_ledger),
) -> UserPackageResponse:
    """Deactivate a package. Remaining sessions are kept but can no longer be booked."""
    try:
        user_package = await asyncio.to_thread(ledger.deactivate, user_package_id)
    except DomainException as e:
        handle_domain_exception(e)
    return UserPackageResponse.model_validate(user_package)
