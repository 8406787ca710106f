"""
Repository layer for the booking engine.

Repositories encapsulate data access; services own transactions.
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository, BookingStatusChangeRepository
from .catalog_repository import (
    CurrencyRepository,
    PackageDefinitionRepository,
    PackagePriceRepository,
    SessionDurationRepository,
)
from .client_repository import ClientRepository
from .slot_repository import DuplicateSlotError, RecurrenceSeriesRepository, SlotRepository
from .user_package_repository import UserPackageRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "BookingStatusChangeRepository",
    "ClientRepository",
    "CurrencyRepository",
    "DuplicateSlotError",
    "PackageDefinitionRepository",
    "PackagePriceRepository",
    "RecurrenceSeriesRepository",
    "SessionDurationRepository",
    "SlotRepository",
    "UserPackageRepository",
]
