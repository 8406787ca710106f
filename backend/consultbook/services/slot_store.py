# backend/consultbook/services/slot_store.py
"""
Slot Store service.

Persists slot candidates produced by recurrence expansion, keeps recurrence
series for auditing, and manages slot availability flags. Seat counters are
not written here: only the booking allocator and lifecycle manager move
``booked_count``.

Duplicate handling: a candidate whose start time already has a slot is
either skipped and reported (``SLOT_DUPLICATE_POLICY=skip``) or makes the
whole batch fail with ``SlotConflict`` (``fail``). Detection and insert run
in the same transaction; the unique constraint on start_time catches
concurrent batches, and the losing batch is retried so it reports those rows
as skipped.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    InvalidCatalogEntryException,
    InvalidRuleError,
    NotFoundException,
    SlotConflictException,
    SlotInUseException,
)
from ..database import with_busy_retry
from ..models.catalog import SessionDuration
from ..models.schedule import RecurrenceSeries, ScheduleSlot
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.catalog_repository import SessionDurationRepository
from ..repositories.slot_repository import (
    DuplicateSlotError,
    RecurrenceSeriesRepository,
    SlotRepository,
)
from .base import BaseService
from .recurrence import (
    RecurrenceRule,
    SlotCandidate,
    bulk_rule,
    expand,
    rule_from_series,
    rule_to_columns,
    times_from_series,
)

logger = logging.getLogger(__name__)

MAX_SLOTS_PER_BATCH = 2000


@dataclass
class SlotCreationReport:
    created: List[ScheduleSlot] = field(default_factory=list)
    skipped: List[datetime] = field(default_factory=list)
    recurrence_id: Optional[str] = None

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


class SlotStore(BaseService):
    """Creates, lists and flags schedule slots."""

    def __init__(self, db: Session, duplicate_policy: Optional[str] = None):
        super().__init__(db)
        self.slot_repository = SlotRepository(db)
        self.series_repository = RecurrenceSeriesRepository(db)
        self.duration_repository = SessionDurationRepository(db)
        self.duplicate_policy = duplicate_policy or settings.slot_duplicate_policy

    # Creation

    @BaseService.measure_operation("create_slots")
    def create_slots(
        self,
        candidates: Iterable[SlotCandidate],
        session_duration_id: str,
        recurrence_id: Optional[str] = None,
    ) -> SlotCreationReport:
        """
        Persist ``candidates`` as slots of the given session duration.

        Raises:
            SlotConflictException: policy is ``fail`` and a start time is taken
            InvalidRuleError: too many candidates, or a candidate's length
                does not match the session duration
        """
        return self._create_batch(list(candidates), session_duration_id, recurrence_id=recurrence_id)

    @BaseService.measure_operation("create_recurring")
    def create_recurring(
        self,
        rule: RecurrenceRule,
        times_of_day: Sequence[time],
        session_duration_id: str,
        capacity: int,
        actor_id: Optional[str] = None,
    ) -> SlotCreationReport:
        """Expand ``rule``, store it as a recurrence series and tag every created slot with it."""
        with self.transaction():
            duration = self._require_duration(session_duration_id)
        expansion = expand(rule, times_of_day, int(duration.duration_minutes), capacity)
        series_columns = {
            **rule_to_columns(rule),
            "times_of_day": [t.strftime("%H:%M") for t in expansion.times_of_day],
            "session_duration_id": session_duration_id,
            "capacity": capacity,
            "created_by": actor_id,
        }
        report = self._create_batch(
            list(expansion), session_duration_id, series_columns=series_columns
        )
        self.log_operation(
            "create_recurring",
            recurrence_id=report.recurrence_id,
            rule=rule.kind.value,
            created_count=report.created_count,
            skipped_count=report.skipped_count,
            actor_id=actor_id,
        )
        return report

    @BaseService.measure_operation("create_bulk")
    def create_bulk(
        self,
        start_date: date,
        end_date: date,
        times_of_day: Sequence[time],
        session_duration_id: str,
        capacity: int,
        *,
        skip_weekends: bool = False,
        exceptions: Iterable[date] = (),
    ) -> SlotCreationReport:
        """Create slots for every day (or weekday) in a date range, without a series."""
        with self.transaction():
            duration = self._require_duration(session_duration_id)
        rule = bulk_rule(start_date, end_date, skip_weekends=skip_weekends, exceptions=exceptions)
        expansion = expand(rule, times_of_day, int(duration.duration_minutes), capacity)
        report = self._create_batch(list(expansion), session_duration_id)
        self.log_operation(
            "create_bulk",
            created_count=report.created_count,
            skipped_count=report.skipped_count,
            skip_weekends=skip_weekends,
        )
        return report

    @BaseService.measure_operation("regenerate_series")
    def regenerate_series(self, recurrence_id: str) -> SlotCreationReport:
        """
        Re-expand a stored series and recreate the slots it is missing.

        Slots that still exist (including ones flagged as exceptions) are
        reported as skipped, whatever the duplicate policy.
        """
        with self.transaction():
            series = self.get_series(recurrence_id)
            rule = rule_from_series(series)
            times_of_day = times_from_series(series)
            session_duration_id = series.session_duration_id
            capacity = int(series.capacity)
            duration = self._require_duration(session_duration_id)
        expansion = expand(rule, times_of_day, int(duration.duration_minutes), capacity)
        report = self._create_batch(
            list(expansion),
            session_duration_id,
            recurrence_id=recurrence_id,
            duplicate_policy="skip",
        )
        self.log_operation(
            "regenerate_series",
            recurrence_id=recurrence_id,
            created_count=report.created_count,
            skipped_count=report.skipped_count,
        )
        return report

    def _create_batch(
        self,
        candidates: List[SlotCandidate],
        session_duration_id: str,
        *,
        recurrence_id: Optional[str] = None,
        series_columns: Optional[dict] = None,
        duplicate_policy: Optional[str] = None,
    ) -> SlotCreationReport:
        if len(candidates) > MAX_SLOTS_PER_BATCH:
            raise InvalidRuleError(
                f"Rule produces {len(candidates)} slots; at most {MAX_SLOTS_PER_BATCH} per request",
                field="end_date",
            )

        attempts = settings.booking_max_retries
        for attempt in range(1, attempts + 1):
            try:
                report = with_busy_retry(
                    "create_slots",
                    lambda: self._insert_once(
                        candidates,
                        session_duration_id,
                        recurrence_id,
                        series_columns,
                        duplicate_policy or self.duplicate_policy,
                    ),
                )
                break
            except DuplicateSlotError:
                if attempt >= attempts:
                    raise SlotConflictException([c.start_time.isoformat() for c in candidates])
                logger.info(
                    "Concurrent slot batch inserted overlapping start times, retrying",
                    extra={"event": "slot_batch_retry", "attempt": attempt},
                )

        prometheus_metrics.record_slots_created(report.created_count, report.skipped_count)
        if report.skipped:
            logger.info(
                "Skipped %d duplicate slot(s)",
                report.skipped_count,
                extra={"skipped": [s.isoformat() for s in report.skipped]},
            )
        return report

    def _insert_once(
        self,
        candidates: List[SlotCandidate],
        session_duration_id: str,
        recurrence_id: Optional[str],
        series_columns: Optional[dict],
        duplicate_policy: str,
    ) -> SlotCreationReport:
        with self.transaction():
            duration = self._require_duration(session_duration_id)
            for candidate in candidates:
                if candidate.duration_minutes != duration.duration_minutes:
                    raise InvalidRuleError(
                        f"Candidate at {candidate.start_time.isoformat()} lasts "
                        f"{candidate.duration_minutes} minutes, expected {duration.duration_minutes}",
                        field="duration_minutes",
                    )

            if series_columns is not None:
                series = self.series_repository.create(**series_columns)
                recurrence_id = series.id
            elif recurrence_id is not None and self.series_repository.get_by_id(recurrence_id) is None:
                raise NotFoundException("RecurrenceSeries", recurrence_id)

            existing = self.slot_repository.find_existing_start_times(
                c.start_time for c in candidates
            )
            fresh: List[SlotCandidate] = []
            skipped: List[datetime] = []
            seen = set()
            for candidate in candidates:
                if candidate.start_time in existing or candidate.start_time in seen:
                    skipped.append(candidate.start_time)
                    continue
                seen.add(candidate.start_time)
                fresh.append(candidate)

            if skipped and duplicate_policy == "fail":
                raise SlotConflictException([s.isoformat() for s in skipped])

            created = self.slot_repository.insert_slots(
                [
                    {
                        "start_time": c.start_time,
                        "end_time": c.end_time,
                        "session_duration_id": session_duration_id,
                        "capacity": c.capacity,
                        "booked_count": 0,
                        "is_available": True,
                        "recurrence_id": recurrence_id,
                    }
                    for c in fresh
                ]
            )

        return SlotCreationReport(created=created, skipped=skipped, recurrence_id=recurrence_id)

    # Flags

    @BaseService.measure_operation("set_availability")
    def set_availability(self, slot_id: str, available: bool) -> ScheduleSlot:
        """Open or close a slot for new bookings. Existing bookings are untouched."""

        def _apply() -> ScheduleSlot:
            with self.transaction(lock_timeout=True):
                slot = self._require_slot(slot_id, for_update=True)
                self.slot_repository.set_flags(slot, is_available=available)
            return slot

        slot = with_busy_retry("set_availability", _apply)
        self.log_operation("set_availability", slot_id=slot_id, available=available)
        return slot

    @BaseService.measure_operation("set_recurrence_exception")
    def set_recurrence_exception(self, slot_id: str, is_exception: bool) -> ScheduleSlot:
        """Flag one occurrence of a series as an exception; it then accepts no bookings."""

        def _apply() -> ScheduleSlot:
            with self.transaction(lock_timeout=True):
                slot = self._require_slot(slot_id, for_update=True)
                self.slot_repository.set_flags(slot, is_recurrence_exception=is_exception)
            return slot

        slot = with_busy_retry("set_recurrence_exception", _apply)
        self.log_operation("set_recurrence_exception", slot_id=slot_id, is_exception=is_exception)
        return slot

    # Reads

    def get(self, slot_id: str) -> ScheduleSlot:
        return self._require_slot(slot_id)

    def list_available(
        self,
        *,
        session_duration_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        has_capacity: Optional[bool] = None,
    ) -> List[ScheduleSlot]:
        return self.slot_repository.list_available(
            session_duration_id=session_duration_id,
            date_from=date_from,
            date_to=date_to,
            has_capacity=has_capacity,
        )

    def get_series(self, recurrence_id: str) -> RecurrenceSeries:
        series = self.series_repository.get_by_id(recurrence_id)
        if series is None:
            raise NotFoundException("RecurrenceSeries", recurrence_id)
        return series

    def list_series(self, recurrence_id: str) -> List[ScheduleSlot]:
        self.get_series(recurrence_id)
        return self.slot_repository.list_series(recurrence_id)

    # Deletion

    @BaseService.measure_operation("delete_slot")
    def delete_slot(self, slot_id: str) -> None:
        def _apply() -> None:
            with self.transaction(lock_timeout=True):
                slot = self._require_slot(slot_id, for_update=True)
                if slot.booked_count > 0 or self.slot_repository.has_bookings(slot_id):
                    raise SlotInUseException(slot_id, int(slot.booked_count))
                self.slot_repository.delete(slot)

        with_busy_retry("delete_slot", _apply)
        self.log_operation("delete_slot", slot_id=slot_id)

    # Helpers

    def _require_slot(self, slot_id: str, *, for_update: bool = False) -> ScheduleSlot:
        if for_update:
            slot = self.slot_repository.get_for_update(slot_id)
        else:
            slot = self.slot_repository.get_by_id(slot_id)
        if slot is None:
            raise NotFoundException("ScheduleSlot", slot_id)
        return slot

    def _require_duration(self, session_duration_id: str) -> SessionDuration:
        duration = self.duration_repository.get_by_id(session_duration_id)
        if duration is None:
            raise NotFoundException("SessionDuration", session_duration_id)
        if not duration.is_active:
            raise InvalidCatalogEntryException(
                "Session duration is inactive", session_duration_id=session_duration_id
            )
        return duration
