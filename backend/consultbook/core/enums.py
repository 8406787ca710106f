# backend/consultbook/core/enums.py
"""
Core enums for the booking engine.

All enums inherit from (str, Enum) so they compare equal to the raw values
stored in the database and sent over the wire.
"""

from enum import Enum


class PackageType(str, Enum):
    """Which kinds of booking a package definition can be redeemed for."""

    INDIVIDUAL = "individual"
    GROUP = "group"
    MIXED = "mixed"

    @property
    def allows_groups(self) -> bool:
        return self in (PackageType.GROUP, PackageType.MIXED)


class BookingType(str, Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class PricingMode(str, Enum):
    """How a package price was obtained."""

    CUSTOM = "custom"  # entered by an admin
    CALCULATED = "calculated"  # derived from the default-currency price


class RecurrenceType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ClientStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class DeactivationReason(str, Enum):
    """Why a user package stopped accepting bookings."""

    EXHAUSTED = "exhausted"
    MANUAL = "manual"


class PaymentStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"
