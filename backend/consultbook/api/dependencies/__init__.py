# backend/consultbook/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .actor import get_actor_id
from .database import get_db
from .services import (
    get_booking_allocator,
    get_booking_lifecycle,
    get_catalog_service,
    get_client_registry,
    get_package_ledger,
    get_slot_store,
)

__all__ = [
    "get_actor_id",
    "get_db",
    "get_booking_allocator",
    "get_booking_lifecycle",
    "get_catalog_service",
    "get_client_registry",
    "get_package_ledger",
    "get_slot_store",
]
