# backend/consultbook/services/recurrence.py
"""
Recurrence expansion.

Turns a recurrence rule plus a list of times of day into concrete slot
candidates. Rules are validated when ``expand`` is called; the returned
sequence is computed lazily, can be iterated any number of times and always
yields the same candidates for the same inputs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, Iterator, List, Sequence, Tuple, Union

from ..core.enums import RecurrenceType
from ..core.exceptions import InvalidRuleError

WEEKDAYS: FrozenSet[int] = frozenset(range(5))  # Monday..Friday


@dataclass(frozen=True)
class _Rule(ABC):
    start_date: date
    end_date: date
    interval: int = 1
    exceptions: FrozenSet[date] = field(default_factory=frozenset)

    kind: ClassVar[RecurrenceType]

    def validate(self) -> None:
        if not isinstance(self.interval, int) or isinstance(self.interval, bool) or self.interval <= 0:
            raise InvalidRuleError("interval must be a positive integer", field="interval")

    @abstractmethod
    def dates(self) -> Iterator[date]:
        """Matching dates in order, exceptions not yet removed."""


@dataclass(frozen=True)
class DailyRule(_Rule):
    """Every ``interval``-th day counted from start_date."""

    kind: ClassVar[RecurrenceType] = RecurrenceType.DAILY

    def dates(self) -> Iterator[date]:
        step = timedelta(days=self.interval)
        current = self.start_date
        while current <= self.end_date:
            yield current
            current += step


@dataclass(frozen=True)
class WeeklyRule(_Rule):
    """
    Listed weekdays (0 = Monday) in every ``interval``-th week.

    Weeks are counted from the Monday of start_date's week. An empty
    ``days_of_week`` means every day of a matching week.
    """

    days_of_week: FrozenSet[int] = field(default_factory=frozenset)

    kind: ClassVar[RecurrenceType] = RecurrenceType.WEEKLY

    def validate(self) -> None:
        super().validate()
        invalid = sorted(d for d in self.days_of_week if not isinstance(d, int) or not 0 <= d <= 6)
        if invalid:
            raise InvalidRuleError(
                f"days_of_week must be between 0 (Monday) and 6 (Sunday), got {invalid}",
                field="days_of_week",
            )

    def dates(self) -> Iterator[date]:
        anchor = self.start_date - timedelta(days=self.start_date.weekday())
        current = self.start_date
        while current <= self.end_date:
            week_index = (current - anchor).days // 7
            if week_index % self.interval == 0 and (
                not self.days_of_week or current.weekday() in self.days_of_week
            ):
                yield current
            current += timedelta(days=1)


@dataclass(frozen=True)
class MonthlyRule(_Rule):
    """
    start_date's day of month, every ``interval`` months.

    Months without that day (the 31st in April, the 30th in February) are
    skipped rather than rolled over.
    """

    kind: ClassVar[RecurrenceType] = RecurrenceType.MONTHLY

    def dates(self) -> Iterator[date]:
        day = self.start_date.day
        months_ahead = 0
        while True:
            year, month = _add_months(self.start_date.year, self.start_date.month, months_ahead)
            if date(year, month, 1) > self.end_date:
                return
            if day <= calendar.monthrange(year, month)[1]:
                candidate = date(year, month, day)
                if candidate > self.end_date:
                    return
                yield candidate
            months_ahead += self.interval


RecurrenceRule = Union[DailyRule, WeeklyRule, MonthlyRule]

_RULE_TYPES: Dict[RecurrenceType, type] = {
    RecurrenceType.DAILY: DailyRule,
    RecurrenceType.WEEKLY: WeeklyRule,
    RecurrenceType.MONTHLY: MonthlyRule,
}


def _add_months(year: int, month: int, months: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


@dataclass(frozen=True)
class SlotCandidate:
    """A slot that expansion proposes; not yet persisted."""

    start_time: datetime
    end_time: datetime
    duration_minutes: int
    capacity: int


class SlotExpansion:
    """Lazy, restartable sequence of slot candidates for one rule."""

    def __init__(
        self,
        rule: RecurrenceRule,
        times_of_day: Sequence[time],
        duration_minutes: int,
        capacity: int,
    ) -> None:
        self.rule = rule
        self.times_of_day: Tuple[time, ...] = tuple(sorted(set(times_of_day)))
        self.duration_minutes = duration_minutes
        self.capacity = capacity

    def __iter__(self) -> Iterator[SlotCandidate]:
        length = timedelta(minutes=self.duration_minutes)
        for day in self.rule.dates():
            if day in self.rule.exceptions:
                continue
            for time_of_day in self.times_of_day:
                start = datetime.combine(day, time_of_day)
                yield SlotCandidate(
                    start_time=start,
                    end_time=start + length,
                    duration_minutes=self.duration_minutes,
                    capacity=self.capacity,
                )

    def __repr__(self) -> str:
        return (
            f"<SlotExpansion {self.rule.kind.value} {self.rule.start_date}..{self.rule.end_date} "
            f"times={[t.isoformat() for t in self.times_of_day]}>"
        )


def expand(
    rule: RecurrenceRule,
    times_of_day: Iterable[time],
    duration_minutes: int,
    capacity: int,
) -> SlotExpansion:
    """
    Validate ``rule`` and return its slot candidates, ordered by date then time.

    Raises:
        InvalidRuleError: interval <= 0, weekday outside 0-6, non-positive
            duration or capacity, no times of day, or a time with seconds
    """
    rule.validate()
    times = list(times_of_day)
    if not times:
        raise InvalidRuleError("at least one time of day is required", field="times_of_day")
    if any(t.second or t.microsecond for t in times):
        raise InvalidRuleError("times of day must be whole minutes", field="times_of_day")
    if duration_minutes <= 0:
        raise InvalidRuleError("duration must be positive", field="duration_minutes")
    if capacity < 1:
        raise InvalidRuleError("capacity must be at least 1", field="capacity")
    return SlotExpansion(rule, times, duration_minutes, capacity)


def bulk_rule(
    start_date: date,
    end_date: date,
    *,
    skip_weekends: bool = False,
    exceptions: Iterable[date] = (),
) -> WeeklyRule:
    """Every day in the range, optionally Monday to Friday only."""
    return WeeklyRule(
        start_date=start_date,
        end_date=end_date,
        interval=1,
        exceptions=frozenset(exceptions),
        days_of_week=WEEKDAYS if skip_weekends else frozenset(),
    )


def rule_to_columns(rule: RecurrenceRule) -> Dict[str, Any]:
    """Columns of a ``RecurrenceSeries`` row describing ``rule``."""
    return {
        "recurrence_type": rule.kind,
        "interval": rule.interval,
        "start_date": rule.start_date,
        "end_date": rule.end_date,
        "days_of_week": sorted(getattr(rule, "days_of_week", ())),
        "exception_dates": sorted(d.isoformat() for d in rule.exceptions),
    }


def rule_from_series(series: Any) -> RecurrenceRule:
    """Rebuild the rule a persisted series was generated from."""
    rule_type = RecurrenceType(series.recurrence_type)
    kwargs: Dict[str, Any] = {
        "start_date": series.start_date,
        "end_date": series.end_date,
        "interval": int(series.interval),
        "exceptions": frozenset(date.fromisoformat(d) for d in series.exception_dates or []),
    }
    if rule_type is RecurrenceType.WEEKLY:
        kwargs["days_of_week"] = frozenset(series.days_of_week or [])
    return _RULE_TYPES[rule_type](**kwargs)


def times_from_series(series: Any) -> List[time]:
    return [time.fromisoformat(value) for value in series.times_of_day or []]
