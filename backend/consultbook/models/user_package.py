# backend/consultbook/models/user_package.py
"""
UserPackage model: a client's purchased bundle of prepaid sessions.

The two counters always satisfy
``sessions_remaining + sessions_used == sessions_count`` of the pinned
package definition. Rows are never deleted; an exhausted or withdrawn package
is deactivated instead.
"""

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
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.enums import DeactivationReason
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .base_enum import create_safe_enum


class UserPackage(Base):
    __tablename__ = "user_packages"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    client_id = Column(String(26), ForeignKey("clients.id"), nullable=False)
    package_price_id = Column(String(26), ForeignKey("package_prices.id"), nullable=False)
    # Snapshot of the price at purchase; later repricing does not touch it
    price_paid = Column(Numeric(10, 2), nullable=False)
    sessions_remaining = Column(Integer, nullable=False)
    sessions_used = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    deactivation_reason = Column(
        create_safe_enum(DeactivationReason, "deactivation_reason_enum", native_enum=False),
        nullable=True,
    )
    # Idempotency key of the payment confirmation that created the package
    payment_reference = Column(String(255), nullable=True, unique=True)
    purchased_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    client = relationship("Client")
    package_price = relationship("PackagePrice", lazy="joined")

    __table_args__ = (
        CheckConstraint("sessions_remaining >= 0", name="ck_user_packages_remaining_non_negative"),
        CheckConstraint("sessions_used >= 0", name="ck_user_packages_used_non_negative"),
        Index("ix_user_packages_client_active", "client_id", "is_active"),
    )

    @property
    def package_definition(self):
        return self.package_price.package_definition

    @property
    def sessions_count(self) -> int:
        return int(self.package_price.package_definition.sessions_count)

    def __repr__(self) -> str:
        return (
            f"<UserPackage {self.id}: client={self.client_id} "
            f"{self.sessions_remaining} left, {self.sessions_used} used, active={self.is_active}>"
        )
