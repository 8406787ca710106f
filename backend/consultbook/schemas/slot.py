# backend/consultbook/schemas/slot.py
"""
Schedule slot schemas.

Recurrence rules travel as a tagged union keyed by ``type`` so each variant
only accepts the fields it understands.
"""

from datetime import date, datetime, time
from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field

from ..core.enums import RecurrenceType
from ..services.recurrence import DailyRule, MonthlyRule, RecurrenceRule, WeeklyRule
from ._strict_base import StrictRequestModel
from .base import StandardizedModel


class _RuleIn(StrictRequestModel):
    start_date: date
    end_date: date
    interval: int = Field(1, description="Repeat every N days/weeks/months")
    exceptions: List[date] = Field(default_factory=list, description="Dates to leave out")


class DailyRuleIn(_RuleIn):
    type: Literal["daily"]

    def to_rule(self) -> RecurrenceRule:
        return DailyRule(
            start_date=self.start_date,
            end_date=self.end_date,
            interval=self.interval,
            exceptions=frozenset(self.exceptions),
        )


class WeeklyRuleIn(_RuleIn):
    type: Literal["weekly"]
    days_of_week: List[int] = Field(
        default_factory=list, description="0 = Monday ... 6 = Sunday; empty means every day"
    )

    def to_rule(self) -> RecurrenceRule:
        return WeeklyRule(
            start_date=self.start_date,
            end_date=self.end_date,
            interval=self.interval,
            exceptions=frozenset(self.exceptions),
            days_of_week=frozenset(self.days_of_week),
        )


class MonthlyRuleIn(_RuleIn):
    type: Literal["monthly"]

    def to_rule(self) -> RecurrenceRule:
        return MonthlyRule(
            start_date=self.start_date,
            end_date=self.end_date,
            interval=self.interval,
            exceptions=frozenset(self.exceptions),
        )


RuleIn = Annotated[Union[DailyRuleIn, WeeklyRuleIn, MonthlyRuleIn], Field(discriminator="type")]


class RecurringSlotsCreate(StrictRequestModel):
    rule: RuleIn
    times_of_day: List[time] = Field(..., description="Start times, HH:MM")
    session_duration_id: str
    capacity: int = Field(1, description="Seats per slot")


class BulkSlotsCreate(StrictRequestModel):
    start_date: date
    end_date: date
    times_of_day: List[time]
    session_duration_id: str
    capacity: int = 1
    skip_weekends: bool = False
    exceptions: List[date] = Field(default_factory=list)


class AvailabilityUpdate(StrictRequestModel):
    is_available: bool


class RecurrenceExceptionUpdate(StrictRequestModel):
    is_recurrence_exception: bool


class SlotResponse(StandardizedModel):
    id: str
    start_time: datetime
    end_time: datetime
    session_duration_id: str
    capacity: int
    booked_count: int
    remaining_capacity: int
    is_available: bool
    recurrence_id: Optional[str] = None
    is_recurrence_exception: bool
    version: int


class SlotCreationResponse(StandardizedModel):
    created_count: int
    skipped_count: int
    recurrence_id: Optional[str] = None
    created: List[SlotResponse]
    skipped: List[datetime]


class RecurrenceSeriesResponse(StandardizedModel):
    id: str
    recurrence_type: RecurrenceType
    interval: int
    start_date: date
    end_date: date
    days_of_week: List[int]
    exception_dates: List[date]
    times_of_day: List[str]
    session_duration_id: str
    capacity: int
    created_by: Optional[str] = None
    slots: List[SlotResponse]
