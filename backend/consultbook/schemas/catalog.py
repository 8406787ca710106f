# backend/consultbook/schemas/catalog.py
"""Catalog schemas: currencies, session durations, package definitions, prices."""

from typing import Optional

from pydantic import Field

from ..core.enums import PackageType, PricingMode
from ._strict_base import StrictRequestModel
from .base import Money, StandardizedModel


class CurrencyCreate(StrictRequestModel):
    code: str = Field(..., min_length=3, max_length=3)
    name: str = Field(..., min_length=1, max_length=100)
    symbol: str = Field(..., min_length=1, max_length=8)
    exchange_rate: Money = Field(default=Money("1"))
    is_default: bool = False


class ExchangeRateUpdate(StrictRequestModel):
    exchange_rate: Money


class CurrencyResponse(StandardizedModel):
    id: str
    code: str
    name: str
    symbol: str
    exchange_rate: Money
    is_default: bool


class SessionDurationCreate(StrictRequestModel):
    name: str = Field(..., min_length=1, max_length=100)
    duration_minutes: int
    description: Optional[str] = None


class SessionDurationUpdate(StrictRequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    duration_minutes: Optional[int] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class SessionDurationResponse(StandardizedModel):
    id: str
    name: str
    duration_minutes: int
    description: Optional[str] = None
    is_active: bool


class PackageDefinitionCreate(StrictRequestModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    sessions_count: int
    session_duration_id: str
    package_type: PackageType = PackageType.INDIVIDUAL
    max_group_size: Optional[int] = None


class PackageDefinitionResponse(StandardizedModel):
    id: str
    name: str
    description: Optional[str] = None
    sessions_count: int
    session_duration_id: str
    package_type: PackageType
    max_group_size: Optional[int] = None
    is_active: bool


class PackagePriceCreate(StrictRequestModel):
    currency_id: str
    pricing_mode: PricingMode = PricingMode.CUSTOM
    price: Optional[Money] = Field(None, description="Required for custom prices")


class PackagePriceUpdate(StrictRequestModel):
    price: Money


class PackagePriceResponse(StandardizedModel):
    id: str
    package_definition_id: str
    currency_id: str
    price: Money
    pricing_mode: PricingMode
    is_active: bool
