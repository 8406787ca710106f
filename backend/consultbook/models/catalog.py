# backend/consultbook/models/catalog.py
"""
Catalog models: currencies, session durations, package definitions and prices.

These tables are read-mostly reference data. A user package pins a
PackagePrice at purchase time, which in turn pins the definition, currency
and price the client paid.
"""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.enums import PackageType, PricingMode
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .base_enum import create_safe_enum


class Currency(Base):
    """A currency prices can be expressed in, with a rate against the default currency."""

    __tablename__ = "currencies"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    code = Column(String(3), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    symbol = Column(String(8), nullable=False)
    exchange_rate = Column(Numeric(14, 6), nullable=False, default=Decimal("1"))
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (CheckConstraint("exchange_rate > 0", name="ck_currencies_rate_positive"),)

    def __repr__(self) -> str:
        return f"<Currency {self.code} rate={self.exchange_rate} default={self.is_default}>"


class SessionDuration(Base):
    """Length of a consultation session. Frozen once a package or slot refers to it."""

    __tablename__ = "session_durations"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    name = Column(String(100), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_session_durations_positive"),
    )

    def __repr__(self) -> str:
        return f"<SessionDuration {self.name} {self.duration_minutes}min>"


class PackageDefinition(Base):
    """Template for a purchasable bundle of sessions."""

    __tablename__ = "package_definitions"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    sessions_count = Column(Integer, nullable=False)
    session_duration_id = Column(String(26), ForeignKey("session_durations.id"), nullable=False)
    package_type = Column(
        create_safe_enum(PackageType, "package_type_enum", native_enum=False),
        nullable=False,
        default=PackageType.INDIVIDUAL,
    )
    max_group_size = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    session_duration = relationship("SessionDuration", lazy="joined")
    prices = relationship("PackagePrice", back_populates="package_definition")

    __table_args__ = (
        CheckConstraint("sessions_count > 0", name="ck_package_definitions_sessions_positive"),
        CheckConstraint(
            "(package_type = 'individual' AND max_group_size IS NULL) OR "
            "(package_type IN ('group', 'mixed') AND max_group_size > 1)",
            name="ck_package_definitions_group_size",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<PackageDefinition {self.id}: {self.name} x{self.sessions_count} "
            f"type={self.package_type}>"
        )


class PackagePrice(Base):
    """Price of a package definition in one currency."""

    __tablename__ = "package_prices"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    package_definition_id = Column(
        String(26), ForeignKey("package_definitions.id"), nullable=False, index=True
    )
    currency_id = Column(String(26), ForeignKey("currencies.id"), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    pricing_mode = Column(
        create_safe_enum(PricingMode, "pricing_mode_enum", native_enum=False),
        nullable=False,
        default=PricingMode.CUSTOM,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    package_definition = relationship(
        "PackageDefinition", back_populates="prices", lazy="joined"
    )
    currency = relationship("Currency", lazy="joined")

    __table_args__ = (
        CheckConstraint("price > 0", name="ck_package_prices_positive"),
        UniqueConstraint(
            "package_definition_id", "currency_id", name="uq_package_prices_definition_currency"
        ),
        Index("ix_package_prices_currency", "currency_id"),
    )

    def __repr__(self) -> str:
        return f"<PackagePrice {self.id}: {self.price} ({self.pricing_mode})>"
