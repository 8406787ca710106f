# backend/consultbook/routes/v1/catalog.py
"""
Catalog routes - API v1

Administration of currencies, session durations, package definitions and
their prices, under /api/v1/catalog.

Endpoints:
    POST /currencies                          → Add a currency
    GET /currencies                           → List currencies
    POST /currencies/{currency_id}/default    → Make a currency the default
    PATCH /currencies/{currency_id}/rate      → Change an exchange rate
    POST /durations                           → Add a session duration
    GET /durations                            → List session durations
    PATCH /durations/{duration_id}            → Edit a session duration
    POST /packages                            → Add a package definition
    GET /packages                             → List package definitions
    GET /packages/{definition_id}             → Package definition details
    POST /packages/{definition_id}/prices     → Price a package in a currency
    GET /packages/{definition_id}/prices      → Prices of a package
    PATCH /prices/{price_id}                  → Change a custom price
    DELETE /prices/{price_id}                 → Remove a price nobody bought
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, Path, Query, Response, status

from ...api.dependencies import get_catalog_service
from ...core.exceptions import DomainException
from ...schemas.catalog import (
    CurrencyCreate,
    CurrencyResponse,
    ExchangeRateUpdate,
    PackageDefinitionCreate,
    PackageDefinitionResponse,
    PackagePriceCreate,
    PackagePriceResponse,
    PackagePriceUpdate,
    SessionDurationCreate,
    SessionDurationResponse,
    SessionDurationUpdate,
)
from ...services.catalog_service import CatalogService
from .common import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["catalog-v1"])


# ============================================================================
# Currencies
# ============================================================================


@router.post("/currencies", response_model=CurrencyResponse, status_code=status.HTTP_201_CREATED)
async def create_currency(
    payload: CurrencyCreate,
    catalog: CatalogService = Depends(get_catalog_service),
) -> CurrencyResponse:
    """The first currency created becomes the default one."""
    try:
        currency = await asyncio.to_thread(
            catalog.create_currency,
            payload.code,
            payload.name,
            payload.symbol,
            payload.exchange_rate,
            payload.is_default,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CurrencyResponse.model_validate(currency)


@router.get("/currencies", response_model=List[CurrencyResponse])
async def list_currencies(
    catalog: CatalogService = Depends(get_catalog_service),
) -> List[CurrencyResponse]:
    currencies = await asyncio.to_thread(catalog.list_currencies)
    return [CurrencyResponse.model_validate(c) for c in currencies]


@router.post("/currencies/{currency_id}/default", response_model=CurrencyResponse)
async def set_default_currency(
    currency_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    catalog: CatalogService = Depends(get_catalog_service),
) -> CurrencyResponse:
    """Switch the default currency and recalculate every calculated price."""
    try:
        currency = await asyncio.to_thread(catalog.set_default_currency, currency_id)
    except DomainException as e:
        handle_domain_exception(e)
    return CurrencyResponse.model_validate(currency)


@router.patch("/currencies/{currency_id}/rate", response_model=CurrencyResponse)
async def update_exchange_rate(
    payload: ExchangeRateUpdate,
    currency_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    catalog: CatalogService = Depends(get_catalog_service),
) -> CurrencyResponse:
    try:
        currency = await asyncio.to_thread(
            catalog.update_exchange_rate, currency_id, payload.exchange_rate
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CurrencyResponse.model_validate(currency)


# ============================================================================
# Session durations
# ============================================================================


@router.post(
    "/durations", response_model=SessionDurationResponse, status_code=status.HTTP_201_CREATED
)
async def create_duration(
    payload: SessionDurationCreate,
    catalog: CatalogService = Depends(get_catalog_service),
) -> SessionDurationResponse:
    try:
        duration = await asyncio.to_thread(
            catalog.create_duration, payload.name, payload.duration_minutes, payload.description
        )
    except DomainException as e:
        handle_domain_exception(e)
    return SessionDurationResponse.model_validate(duration)


@router.get("/durations", response_model=List[SessionDurationResponse])
async def list_durations(
    active_only: bool = Query(False),
    catalog: CatalogService = Depends(get_catalog_service),
) -> List[SessionDurationResponse]:
    durations = await asyncio.to_thread(catalog.list_durations, active_only)
    return [SessionDurationResponse.model_validate(d) for d in durations]


@router.patch("/durations/{duration_id}", response_model=SessionDurationResponse)
async def update_duration(
    payload: SessionDurationUpdate,
    duration_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    catalog: CatalogService = Depends(get_catalog_service),
) -> SessionDurationResponse:
    """Minutes can only change while no package or slot uses the duration."""
    try:
        duration = await asyncio.to_thread(
            catalog.update_duration, duration_id, **payload.model_dump(exclude_unset=True)
        )
    except DomainException as e:
        handle_domain_exception(e)
    return SessionDurationResponse.model_validate(duration)


# ============================================================================
# Package definitions and prices
# ============================================================================


@router.post(
    "/packages", response_model=PackageDefinitionResponse, status_code=status.HTTP_201_CREATED
)
async def create_package_definition(
    payload: PackageDefinitionCreate,
    catalog: CatalogService = Depends(get_catalog_service),
) -> PackageDefinitionResponse:
    try:
        definition = await asyncio.to_thread(
            catalog.create_package_definition,
            payload.name,
            payload.sessions_count,
            payload.session_duration_id,
            payload.package_type,
            payload.max_group_size,
            payload.description,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return PackageDefinitionResponse.model_validate(definition)


@router.get("/packages", response_model=List[PackageDefinitionResponse])
async def list_package_definitions(
    active_only: bool = Query(False),
    catalog: CatalogService = Depends(get_catalog_service),
) -> List[PackageDefinitionResponse]:
    definitions = await asyncio.to_thread(catalog.list_package_definitions, active_only)
    return [PackageDefinitionResponse.model_validate(d) for d in definitions]


@router.get("/packages/{definition_id}", response_model=PackageDefinitionResponse)
async def get_package_definition(
    definition_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    catalog: CatalogService = Depends(get_catalog_service),
) -> PackageDefinitionResponse:
    try:
        definition = await asyncio.to_thread(catalog.get_package_definition, definition_id)
    except DomainException as e:
        handle_domain_exception(e)
    return PackageDefinitionResponse.model_validate(definition)


@router.post(
    "/packages/{definition_id}/prices",
    response_model=PackagePriceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_price(
    payload: PackagePriceCreate,
    definition_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    catalog: CatalogService = Depends(get_catalog_service),
) -> PackagePriceResponse:
    """
    Price a package in one currency.

    Custom prices are taken as given. Calculated prices are derived from the
    default-currency price through the exchange rates and are kept in sync
    when rates or the base price change.
    """
    try:
        price = await asyncio.to_thread(
            catalog.create_price,
            definition_id,
            payload.currency_id,
            payload.pricing_mode,
            payload.price,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return PackagePriceResponse.model_validate(price)


@router.get("/packages/{definition_id}/prices", response_model=List[PackagePriceResponse])
async def list_prices(
    definition_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    catalog: CatalogService = Depends(get_catalog_service),
) -> List[PackagePriceResponse]:
    try:
        prices = await asyncio.to_thread(catalog.list_prices, definition_id)
    except DomainException as e:
        handle_domain_exception(e)
    return [PackagePriceResponse.model_validate(p) for p in prices]


@router.patch("/prices/{price_id}", response_model=PackagePriceResponse)
async def update_price(
    payload: PackagePriceUpdate,
    price_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    catalog: CatalogService = Depends(get_catalog_service),
) -> PackagePriceResponse:
    try:
        price = await asyncio.to_thread(catalog.update_price, price_id, payload.price)
    except DomainException as e:
        handle_domain_exception(e)
    return PackagePriceResponse.model_validate(price)


@router.delete("/prices/{price_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_price(
    price_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    catalog: CatalogService = Depends(get_catalog_service),
) -> Response:
    try:
        await asyncio.to_thread(catalog.delete_price, price_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
