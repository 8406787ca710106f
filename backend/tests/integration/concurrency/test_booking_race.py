"""
Concurrency tests for the booking critical section.

Runs against a file-backed SQLite database so that every worker thread has
its own connection and the store's locking decides who wins.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time, timedelta
from decimal import Decimal
import threading

import pytest
from sqlalchemy.orm import sessionmaker

from consultbook.core.config import settings
from consultbook.core.enums import PricingMode
from consultbook.database import Base
from consultbook.database.engines import create_engine_for_url
from consultbook.models import Booking, ScheduleSlot, UserPackage
from consultbook.services.booking_allocator import BookingAllocator
from consultbook.services.booking_lifecycle import BookingLifecycleManager
from consultbook.services.catalog_service import CatalogService
from consultbook.services.client_registry import ClientRegistryService
from consultbook.services.package_ledger import PackageLedger
from consultbook.services.recurrence import DailyRule, SlotCandidate
from consultbook.services.slot_store import SlotStore

WORKERS = 8


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    engine.dispose()


def _seed(session_factory, capacity: int, clients: int, sessions: int = 5):
    session = session_factory()
    try:
        catalog = CatalogService(session)
        usd = catalog.create_currency("USD", "US Dollar", "$")
        hour = catalog.create_duration("Standard", 60)
        definition = catalog.create_package_definition("Pack", sessions, hour.id)
        price = catalog.create_price(definition.id, usd.id, PricingMode.CUSTOM, Decimal("100"))

        start = datetime(2030, 1, 7, 9, 0)
        slot = SlotStore(session).create_slots(
            [SlotCandidate(start, start + timedelta(minutes=60), 60, capacity)], hour.id
        ).created[0]

        registry = ClientRegistryService(session)
        ledger = PackageLedger(session)
        pairs = []
        for i in range(clients):
            client = registry.register(f"client{i}@example.com")
            package = ledger.purchase(client.id, price.id)
            pairs.append((client.id, package.id))
        return slot.id, hour.id, pairs
    finally:
        session.close()


def _run_concurrently(fn, args):
    barrier = threading.Barrier(len(args))

    def _worker(arg):
        barrier.wait(timeout=10)
        return fn(arg)

    with ThreadPoolExecutor(max_workers=len(args)) as executor:
        return list(executor.map(_worker, args))


def test_more_requests_than_seats_books_exactly_capacity(session_factory):
    capacity = 3
    slot_id, _, pairs = _seed(session_factory, capacity=capacity, clients=WORKERS)

    def _book(pair):
        client_id, package_id = pair
        session = session_factory()
        try:
            return BookingAllocator(session).create_booking(client_id, package_id, slot_id).code
        finally:
            session.close()

    codes = _run_concurrently(_book, pairs)

    assert codes.count(None) == capacity
    assert set(codes) - {None} <= {"SlotFull", "Busy"}

    session = session_factory()
    try:
        slot = session.get(ScheduleSlot, slot_id)
        assert slot.booked_count == capacity
        assert session.query(Booking).count() == capacity
        used = sorted(p.sessions_used for p in session.query(UserPackage).all())
        assert used == [0] * (WORKERS - capacity) + [1] * capacity
    finally:
        session.close()


def test_one_package_shared_by_concurrent_requests_never_overdraws(session_factory):
    sessions = 2
    start = datetime(2030, 2, 4, 9, 0)
    session = session_factory()
    try:
        _, hour_id, pairs = _seed(session_factory, capacity=1, clients=1, sessions=sessions)
        slots = SlotStore(session).create_slots(
            [
                SlotCandidate(start + timedelta(days=i), start + timedelta(days=i, minutes=60), 60, 1)
                for i in range(WORKERS)
            ],
            hour_id,
        ).created
        slot_ids = [s.id for s in slots]
    finally:
        session.close()
    client_id, package_id = pairs[0]

    def _book(slot_id):
        worker_session = session_factory()
        try:
            return BookingAllocator(worker_session).create_booking(client_id, package_id, slot_id).code
        finally:
            worker_session.close()

    codes = _run_concurrently(_book, slot_ids)

    assert codes.count(None) == sessions
    session = session_factory()
    try:
        package = session.get(UserPackage, package_id)
        assert package.sessions_remaining == 0
        assert package.sessions_used == sessions
        assert package.is_active is False
    finally:
        session.close()


def test_concurrent_cancellations_compensate_once(session_factory):
    slot_id, _, pairs = _seed(session_factory, capacity=1, clients=1)
    client_id, package_id = pairs[0]
    session = session_factory()
    try:
        booking_id = BookingAllocator(session).create_booking(client_id, package_id, slot_id).unwrap().id
    finally:
        session.close()

    def _cancel(_):
        worker_session = session_factory()
        try:
            return BookingLifecycleManager(worker_session).cancel(booking_id).code
        finally:
            worker_session.close()

    codes = _run_concurrently(_cancel, range(4))

    assert codes.count(None) == 1
    assert set(codes) - {None} <= {"InvalidTransition", "Busy"}
    session = session_factory()
    try:
        assert session.get(ScheduleSlot, slot_id).booked_count == 0
        assert session.get(UserPackage, package_id).sessions_remaining == 5
    finally:
        session.close()


@pytest.fixture
def short_wait_store(tmp_path, monkeypatch):
    """File-backed store whose connections give up on a held lock almost at once."""
    monkeypatch.setattr(settings, "sqlite_busy_timeout_s", 0.05)
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'locked.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine, sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    engine.dispose()


def test_held_write_lock_exhausts_retries_and_reports_busy(short_wait_store):
    engine, factory = short_wait_store
    slot_id, _, pairs = _seed(factory, capacity=2, clients=1)
    client_id, package_id = pairs[0]

    session = factory()
    try:
        with engine.connect() as holder:
            # BEGIN IMMEDIATE: nobody else can write until this exits
            with holder.begin():
                outcome = BookingAllocator(session).create_booking(client_id, package_id, slot_id)
    finally:
        session.close()

    assert outcome.code == "Busy"
    assert outcome.error.details["attempts"] == settings.booking_max_retries == 3

    session = factory()
    try:
        assert session.get(ScheduleSlot, slot_id).booked_count == 0
        assert session.get(UserPackage, package_id).sessions_remaining == 5
        assert session.query(Booking).count() == 0
    finally:
        session.close()


def test_overlapping_series_created_concurrently_never_duplicate(session_factory):
    session = session_factory()
    try:
        hour_id = CatalogService(session).create_duration("Standard", 60).id
    finally:
        session.close()

    rules = [
        DailyRule(start_date=date(2030, 3, 1), end_date=date(2030, 3, 10)),
        DailyRule(start_date=date(2030, 3, 6), end_date=date(2030, 3, 15)),
    ]

    def _create(rule):
        worker_session = session_factory()
        try:
            report = SlotStore(worker_session, duplicate_policy="skip").create_recurring(
                rule, [time(9, 0)], hour_id, capacity=2
            )
            return report.created_count, report.skipped_count
        finally:
            worker_session.close()

    results = _run_concurrently(_create, rules)

    # Whichever series lands second skips the five shared days
    assert sum(created for created, _ in results) == 15
    assert sum(skipped for _, skipped in results) == 5
    assert sorted(created for created, _ in results) == [5, 10]

    session = session_factory()
    try:
        starts = [row[0] for row in session.query(ScheduleSlot.start_time).all()]
        assert len(starts) == 15
        assert len(set(starts)) == 15
        assert min(starts) == datetime(2030, 3, 1, 9, 0)
        assert max(starts) == datetime(2030, 3, 15, 9, 0)
    finally:
        session.close()
