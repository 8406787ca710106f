"""
Integration tests for SlotStore: creation, duplicates, flags and deletion.
"""

from datetime import date, datetime, time, timedelta

import pytest
from sqlalchemy.orm import Session

from consultbook.core.enums import RecurrenceType
from consultbook.core.exceptions import (
    InvalidCatalogEntryException,
    InvalidRuleError,
    NotFoundException,
    SlotConflictException,
    SlotInUseException,
)
from consultbook.services.booking_allocator import BookingAllocator
from consultbook.services.catalog_service import CatalogService
from consultbook.services.recurrence import DailyRule, SlotCandidate, WeeklyRule
from consultbook.services.slot_store import SlotStore

MON, WED = 0, 2


@pytest.fixture
def store(db: Session) -> SlotStore:
    return SlotStore(db)


class TestRecurringCreation:
    def test_creates_series_and_tags_slots(self, store: SlotStore, catalog):
        rule = WeeklyRule(
            start_date=date(2030, 1, 7),
            end_date=date(2030, 1, 20),
            days_of_week=frozenset({MON, WED}),
        )

        report = store.create_recurring(
            rule, [time(10, 0), time(15, 0)], catalog.hour.id, capacity=2, actor_id="admin-1"
        )

        assert report.created_count == 8
        assert report.skipped_count == 0
        assert all(slot.recurrence_id == report.recurrence_id for slot in report.created)
        assert report.created[0].start_time == datetime(2030, 1, 7, 10, 0)
        assert report.created[0].end_time == datetime(2030, 1, 7, 11, 0)

        series = store.get_series(report.recurrence_id)
        assert series.recurrence_type == RecurrenceType.WEEKLY
        assert series.days_of_week == [MON, WED]
        assert series.times_of_day == ["10:00", "15:00"]
        assert series.created_by == "admin-1"
        assert len(store.list_series(report.recurrence_id)) == 8

    def test_overlapping_rules_skip_existing_start_times(self, store: SlotStore, catalog):
        first = DailyRule(start_date=date(2030, 1, 1), end_date=date(2030, 1, 5))
        second = DailyRule(start_date=date(2030, 1, 4), end_date=date(2030, 1, 8))

        store.create_recurring(first, [time(9, 0)], catalog.hour.id, capacity=1)
        report = store.create_recurring(second, [time(9, 0)], catalog.hour.id, capacity=1)

        assert report.created_count == 3
        assert report.skipped == [datetime(2030, 1, 4, 9, 0), datetime(2030, 1, 5, 9, 0)]

    def test_fail_policy_rejects_whole_batch(self, db: Session, catalog):
        rule = DailyRule(start_date=date(2030, 1, 1), end_date=date(2030, 1, 3))
        SlotStore(db).create_recurring(rule, [time(9, 0)], catalog.hour.id, capacity=1)
        strict = SlotStore(db, duplicate_policy="fail")

        wider = DailyRule(start_date=date(2030, 1, 1), end_date=date(2030, 1, 6))
        with pytest.raises(SlotConflictException):
            strict.create_recurring(wider, [time(9, 0)], catalog.hour.id, capacity=1)

        assert len(strict.list_available()) == 3

    def test_same_rule_twice_creates_nothing_new(self, store: SlotStore, catalog):
        rule = DailyRule(start_date=date(2030, 1, 1), end_date=date(2030, 1, 3))

        store.create_recurring(rule, [time(9, 0)], catalog.hour.id, capacity=1)
        again = store.create_recurring(rule, [time(9, 0)], catalog.hour.id, capacity=1)

        assert again.created_count == 0
        assert again.skipped_count == 3

    def test_invalid_rule_creates_nothing(self, store: SlotStore, catalog):
        rule = DailyRule(start_date=date(2030, 1, 1), end_date=date(2030, 1, 3), interval=0)

        with pytest.raises(InvalidRuleError):
            store.create_recurring(rule, [time(9, 0)], catalog.hour.id, capacity=1)
        assert store.list_available() == []

    def test_too_many_slots_rejected(self, store: SlotStore, catalog):
        rule = DailyRule(start_date=date(2030, 1, 1), end_date=date(2035, 12, 31))

        with pytest.raises(InvalidRuleError) as exc_info:
            store.create_recurring(rule, [time(9, 0), time(10, 0)], catalog.hour.id, capacity=1)
        assert exc_info.value.details["field"] == "end_date"

    def test_inactive_duration_rejected(self, store: SlotStore, catalog, db: Session):
        CatalogService(db).update_duration(catalog.half_hour.id, is_active=False)
        rule = DailyRule(start_date=date(2030, 1, 1), end_date=date(2030, 1, 2))

        with pytest.raises(InvalidCatalogEntryException):
            store.create_recurring(rule, [time(9, 0)], catalog.half_hour.id, capacity=1)

    def test_unknown_duration(self, store: SlotStore, catalog):
        rule = DailyRule(start_date=date(2030, 1, 1), end_date=date(2030, 1, 2))

        with pytest.raises(NotFoundException):
            store.create_recurring(rule, [time(9, 0)], "01ARZ3NDEKTSV4RRFFQ69G5FAV", capacity=1)


class TestSeriesRegeneration:
    @pytest.fixture
    def series_id(self, store: SlotStore, catalog) -> str:
        rule = DailyRule(
            start_date=date(2030, 1, 1),
            end_date=date(2030, 1, 5),
            exceptions=frozenset({date(2030, 1, 3)}),
        )
        return store.create_recurring(rule, [time(9, 0)], catalog.hour.id, capacity=2).recurrence_id

    def test_recreates_deleted_slots_only(self, store: SlotStore, series_id: str):
        slots = store.list_series(series_id)
        removed = slots[1]
        store.delete_slot(removed.id)

        report = store.regenerate_series(series_id)

        assert [s.start_time for s in report.created] == [removed.start_time]
        assert report.created[0].recurrence_id == series_id
        assert report.created[0].capacity == 2
        assert report.skipped_count == 3
        # The exception date stays out
        assert datetime(2030, 1, 3, 9, 0) not in {s.start_time for s in store.list_series(series_id)}
        assert len(store.list_series(series_id)) == 4

    def test_complete_series_is_all_skipped_even_under_fail_policy(
        self, db: Session, series_id: str
    ):
        strict = SlotStore(db, duplicate_policy="fail")

        report = strict.regenerate_series(series_id)

        assert report.created_count == 0
        assert report.skipped_count == 4
        assert report.recurrence_id == series_id

    def test_unknown_series(self, store: SlotStore):
        with pytest.raises(NotFoundException):
            store.regenerate_series("01ARZ3NDEKTSV4RRFFQ69G5FAV")


class TestBulkCreation:
    def test_skip_weekends(self, store: SlotStore, catalog):
        # Fri 2030-01-04 .. Tue 2030-01-08
        report = store.create_bulk(
            date(2030, 1, 4),
            date(2030, 1, 8),
            [time(9, 0)],
            catalog.hour.id,
            capacity=3,
            skip_weekends=True,
        )

        assert [s.start_time.date() for s in report.created] == [
            date(2030, 1, 4),
            date(2030, 1, 7),
            date(2030, 1, 8),
        ]
        assert report.recurrence_id is None
        assert all(s.capacity == 3 and s.booked_count == 0 for s in report.created)


class TestCreateSlots:
    def test_candidate_length_must_match_duration(self, store: SlotStore, catalog):
        start = datetime(2030, 1, 1, 9, 0)
        candidate = SlotCandidate(
            start_time=start,
            end_time=start + timedelta(minutes=45),
            duration_minutes=45,
            capacity=1,
        )

        with pytest.raises(InvalidRuleError):
            store.create_slots([candidate], catalog.hour.id)

    def test_batch_retried_after_losing_insert_race(
        self, store: SlotStore, catalog, monkeypatch
    ):
        start = datetime(2030, 1, 1, 9, 0)
        taken = SlotCandidate(start, start + timedelta(minutes=60), 60, 1)
        fresh = SlotCandidate(
            start + timedelta(days=1), start + timedelta(days=1, minutes=60), 60, 1
        )
        store.create_slots([taken], catalog.hour.id)

        real_lookup = store.slot_repository.find_existing_start_times
        calls = []

        def stale_then_real(start_times):
            calls.append(1)
            # First look misses the committed slot, as a concurrent writer would
            return set() if len(calls) == 1 else real_lookup(start_times)

        monkeypatch.setattr(store.slot_repository, "find_existing_start_times", stale_then_real)

        report = store.create_slots([taken, fresh], catalog.hour.id)

        assert len(calls) == 2
        assert [s.start_time for s in report.created] == [fresh.start_time]
        assert report.skipped == [start]


class TestListing:
    def test_filters(self, store: SlotStore, catalog, make_slot):
        full = make_slot(capacity=1)
        open_slot = make_slot(capacity=2)
        short = make_slot(duration=catalog.half_hour)
        closed = make_slot()
        store.set_availability(closed.id, False)
        exception = make_slot()
        store.set_recurrence_exception(exception.id, True)
        store.slot_repository.occupy_seats(full.id, 1)
        store.db.commit()

        listed = {s.id for s in store.list_available()}
        assert listed == {full.id, open_slot.id, short.id}

        with_room = {s.id for s in store.list_available(has_capacity=True)}
        assert with_room == {open_slot.id, short.id}

        by_duration = store.list_available(session_duration_id=catalog.half_hour.id)
        assert [s.id for s in by_duration] == [short.id]

        day = open_slot.start_time.date()
        assert [s.id for s in store.list_available(date_from=day, date_to=day)] == [open_slot.id]


class TestFlagsAndDeletion:
    def test_flags_bump_version(self, store: SlotStore, make_slot):
        slot = make_slot()

        updated = store.set_availability(slot.id, False)

        assert updated.is_available is False
        assert updated.version == 2
        assert updated.is_bookable is False

    def test_delete_unbooked_slot(self, store: SlotStore, make_slot):
        slot = make_slot()

        store.delete_slot(slot.id)

        with pytest.raises(NotFoundException):
            store.get(slot.id)

    def test_cannot_delete_booked_slot(
        self, store: SlotStore, db: Session, make_slot, catalog, active_client, buy_package
    ):
        slot = make_slot()
        package = buy_package(catalog.individual_price)
        BookingAllocator(db).create_booking(active_client.id, package.id, slot.id).unwrap()

        with pytest.raises(SlotInUseException):
            store.delete_slot(slot.id)
