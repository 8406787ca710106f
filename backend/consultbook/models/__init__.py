"""
Database models for the consultation booking engine.

The models are organized by functionality:
- Catalog: currencies, session durations, package definitions and prices
- Clients (registry record only)
- Schedule: recurrence series and bookable slots
- Ledger: purchased user packages
- Bookings and their status history
"""

from .booking import Booking, BookingStatus, BookingStatusChange
from .catalog import Currency, PackageDefinition, PackagePrice, SessionDuration
from .client import Client
from .schedule import RecurrenceSeries, ScheduleSlot
from .user_package import UserPackage

__all__ = [
    "Booking",
    "BookingStatus",
    "BookingStatusChange",
    "Client",
    "Currency",
    "PackageDefinition",
    "PackagePrice",
    "RecurrenceSeries",
    "ScheduleSlot",
    "SessionDuration",
    "UserPackage",
]
