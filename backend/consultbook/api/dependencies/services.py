# backend/consultbook/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected. Every service of one
request shares the request's database session.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.booking_allocator import BookingAllocator
from ...services.booking_lifecycle import BookingLifecycleManager
from ...services.catalog_service import CatalogService
from ...services.client_registry import ClientRegistryService
from ...services.package_ledger import PackageLedger
from ...services.slot_store import SlotStore
from .database import get_db


def get_catalog_service(db: Session = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


def get_client_registry(db: Session = Depends(get_db)) -> ClientRegistryService:
    return ClientRegistryService(db)


def get_slot_store(db: Session = Depends(get_db)) -> SlotStore:
    return SlotStore(db)


def get_package_ledger(db: Session = Depends(get_db)) -> PackageLedger:
    return PackageLedger(db)


def get_booking_allocator(
    db: Session = Depends(get_db),
    client_registry: ClientRegistryService = Depends(get_client_registry),
    ledger: PackageLedger = Depends(get_package_ledger),
) -> BookingAllocator:
    """
    Get booking allocator instance with all dependencies.

    Args:
        db: Database session
        client_registry: Registry answering whether a client may book
        ledger: Package ledger the allocator reserves sessions from

    Returns:
        BookingAllocator instance
    """
    return BookingAllocator(db, client_registry=client_registry, ledger=ledger)


def get_booking_lifecycle(
    db: Session = Depends(get_db),
    ledger: PackageLedger = Depends(get_package_ledger),
) -> BookingLifecycleManager:
    return BookingLifecycleManager(db, ledger=ledger)
