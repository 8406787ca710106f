# backend/tests/conftest.py
"""
Pytest configuration.

Every test gets a fresh in-memory SQLite database, so tests never share
state and never touch the development database file.
"""

import os

# Set test settings BEFORE any consultbook imports
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BOOKING_RETRY_BASE_DELAY_S"] = "0.01"

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from consultbook.api.dependencies import get_db
from consultbook.core.enums import PackageType, PricingMode
from consultbook.database import Base
from consultbook.database.engines import create_engine_for_url
from consultbook.main import app
from consultbook.models import (
    Client,
    Currency,
    PackageDefinition,
    PackagePrice,
    ScheduleSlot,
    SessionDuration,
    UserPackage,
)
from consultbook.services.catalog_service import CatalogService
from consultbook.services.client_registry import ClientRegistryService
from consultbook.services.package_ledger import PackageLedger
from consultbook.services.recurrence import SlotCandidate
from consultbook.services.slot_store import SlotStore

# Monday
BASE_DAY = datetime(2030, 1, 7, 9, 0)


@dataclass
class CatalogData:
    usd: Currency
    hour: SessionDuration
    half_hour: SessionDuration
    individual: PackageDefinition
    group: PackageDefinition
    mixed: PackageDefinition
    individual_price: PackagePrice
    group_price: PackagePrice
    mixed_price: PackagePrice


@pytest.fixture(scope="function")
def engine() -> Engine:
    engine = create_engine_for_url("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine: Engine) -> Session:
    """Create a new database session for each test."""
    SessionLocal = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def client(db: Session):
    """Create a test client bound to the test database."""

    def override_get_db():
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    # Don't use context manager - the lifespan would open the configured database
    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


@pytest.fixture
def catalog(db: Session) -> CatalogData:
    """USD default currency, 60 and 30 minute durations and three 5-session packages."""
    service = CatalogService(db)
    usd = service.create_currency("USD", "US Dollar", "$")
    hour = service.create_duration("Standard", 60)
    half_hour = service.create_duration("Short", 30)

    individual = service.create_package_definition("Five individual", 5, hour.id)
    group = service.create_package_definition(
        "Five group", 5, hour.id, package_type=PackageType.GROUP, max_group_size=4
    )
    mixed = service.create_package_definition(
        "Five mixed", 5, hour.id, package_type=PackageType.MIXED, max_group_size=3
    )

    return CatalogData(
        usd=usd,
        hour=hour,
        half_hour=half_hour,
        individual=individual,
        group=group,
        mixed=mixed,
        individual_price=service.create_price(
            individual.id, usd.id, PricingMode.CUSTOM, Decimal("500.00")
        ),
        group_price=service.create_price(group.id, usd.id, PricingMode.CUSTOM, Decimal("300.00")),
        mixed_price=service.create_price(mixed.id, usd.id, PricingMode.CUSTOM, Decimal("400.00")),
    )


@pytest.fixture
def active_client(db: Session) -> Client:
    return ClientRegistryService(db).register("ada@example.com", "Ada")


@pytest.fixture
def other_client(db: Session) -> Client:
    return ClientRegistryService(db).register("grace@example.com", "Grace")


@pytest.fixture
def buy_package(db: Session, active_client: Client) -> Callable[..., UserPackage]:
    """Purchase a package for ``active_client`` (or another client)."""

    def _buy(price: PackagePrice, client_id: Optional[str] = None) -> UserPackage:
        return PackageLedger(db).purchase(client_id or active_client.id, price.id)

    return _buy


@pytest.fixture
def make_slot(db: Session, catalog: CatalogData) -> Callable[..., ScheduleSlot]:
    """Create one slot; each call defaults to the next day at 09:00."""
    counter = {"n": 0}

    def _make(
        capacity: int = 1,
        start: Optional[datetime] = None,
        duration: Optional[SessionDuration] = None,
    ) -> ScheduleSlot:
        duration = duration or catalog.hour
        if start is None:
            start = BASE_DAY + timedelta(days=counter["n"])
            counter["n"] += 1
        minutes = int(duration.duration_minutes)
        candidate = SlotCandidate(
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            duration_minutes=minutes,
            capacity=capacity,
        )
        report = SlotStore(db).create_slots([candidate], duration.id)
        return report.created[0]

    return _make
