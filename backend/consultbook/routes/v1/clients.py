# backend/consultbook/routes/v1/clients.py
"""
Client routes - API v1

Endpoints:
    POST /                             → Register a client
    GET /{client_id}                   → Client details
    PATCH /{client_id}/status          → Activate or deactivate a client
    GET /{client_id}/packages          → The client's user packages
    GET /{client_id}/bookings          → The client's bookings
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from ...api.dependencies import get_booking_lifecycle, get_client_registry, get_package_ledger
from ...core.exceptions import DomainException
from ...models.booking import BookingStatus
from ...schemas.booking import BookingResponse
from ...schemas.client import ClientCreate, ClientResponse, ClientStatusUpdate
from ...schemas.package import UserPackageResponse
from ...services.booking_lifecycle import BookingLifecycleManager
from ...services.client_registry import ClientRegistryService
from ...services.package_ledger import PackageLedger
from .common import ULID_PATH_PATTERN, handle_domain_exception

router = APIRouter(tags=["clients-v1"])


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def register_client(
    payload: ClientCreate,
    registry: ClientRegistryService = Depends(get_client_registry),
) -> ClientResponse:
    try:
        client = await asyncio.to_thread(registry.register, payload.email, payload.name)
    except DomainException as e:
        handle_domain_exception(e)
    return ClientResponse.model_validate(client)


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    registry: ClientRegistryService = Depends(get_client_registry),
) -> ClientResponse:
    try:
        client = await asyncio.to_thread(registry.get, client_id)
    except DomainException as e:
        handle_domain_exception(e)
    return ClientResponse.model_validate(client)


@router.patch("/{client_id}/status", response_model=ClientResponse)
async def update_client_status(
    payload: ClientStatusUpdate,
    client_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    registry: ClientRegistryService = Depends(get_client_registry),
) -> ClientResponse:
    """Inactive clients keep their bookings but cannot create new ones."""
    try:
        client = await asyncio.to_thread(registry.set_status, client_id, payload.status)
    except DomainException as e:
        handle_domain_exception(e)
    return ClientResponse.model_validate(client)


@router.get("/{client_id}/packages", response_model=List[UserPackageResponse])
async def list_client_packages(
    client_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    active_only: bool = Query(False, description="Only packages that still accept bookings"),
    ledger: PackageLedger = Depends(get_package_ledger),
) -> List[UserPackageResponse]:
    packages = await asyncio.to_thread(ledger.list_for_client, client_id, active_only)
    return [UserPackageResponse.model_validate(p) for p in packages]


@router.get("/{client_id}/bookings", response_model=List[BookingResponse])
async def list_client_bookings(
    client_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    lifecycle: BookingLifecycleManager = Depends(get_booking_lifecycle),
) -> List[BookingResponse]:
    bookings = await asyncio.to_thread(lifecycle.list_for_client, client_id, booking_status)
    return [BookingResponse.model_validate(b) for b in bookings]
