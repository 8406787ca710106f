"""
Unit tests for recurrence expansion.

Pure functions, no database.
"""

from datetime import date, datetime, time

import pytest

from consultbook.core.exceptions import InvalidRuleError
from consultbook.services.recurrence import (
    _Rule,
    DailyRule,
    MonthlyRule,
    WeeklyRule,
    bulk_rule,
    expand,
    rule_from_series,
    rule_to_columns,
    times_from_series,
)

MON, TUE, WED, THU, FRI, SAT, SUN = range(7)


def _dates(expansion) -> list:
    return [c.start_time.date() for c in expansion]


class TestWeeklyRule:
    def test_monday_wednesday_over_two_weeks(self):
        rule = WeeklyRule(
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 14),
            interval=1,
            days_of_week=frozenset({MON, WED}),
        )

        assert _dates(expand(rule, [time(10, 0)], 60, 1)) == [
            date(2024, 1, 1),
            date(2024, 1, 3),
            date(2024, 1, 8),
            date(2024, 1, 10),
        ]

    def test_interval_skips_weeks_counted_from_start_week(self):
        # Start on a Wednesday: its week (Jan 1-7) is week 0
        rule = WeeklyRule(
            start_date=date(2024, 1, 3),
            end_date=date(2024, 1, 31),
            interval=2,
            days_of_week=frozenset({MON, WED}),
        )

        assert _dates(expand(rule, [time(9, 0)], 60, 1)) == [
            date(2024, 1, 3),
            date(2024, 1, 15),
            date(2024, 1, 17),
            date(2024, 1, 29),
            date(2024, 1, 31),
        ]

    def test_empty_days_means_every_day(self):
        rule = WeeklyRule(start_date=date(2024, 1, 1), end_date=date(2024, 1, 7))

        assert len(_dates(expand(rule, [time(9, 0)], 60, 1))) == 7

    def test_rejects_weekday_outside_range(self):
        rule = WeeklyRule(
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 7),
            days_of_week=frozenset({MON, 7}),
        )

        with pytest.raises(InvalidRuleError) as exc_info:
            expand(rule, [time(9, 0)], 60, 1)
        assert exc_info.value.details["field"] == "days_of_week"


class TestMonthlyRule:
    def test_no_rollover_skips_short_months(self):
        rule = MonthlyRule(start_date=date(2024, 1, 31), end_date=date(2024, 4, 30))

        assert _dates(expand(rule, [time(9, 0)], 60, 1)) == [date(2024, 1, 31), date(2024, 3, 31)]

    def test_interval_two(self):
        rule = MonthlyRule(start_date=date(2024, 1, 15), end_date=date(2024, 12, 31), interval=2)

        assert _dates(expand(rule, [time(9, 0)], 60, 1)) == [
            date(2024, 1, 15),
            date(2024, 3, 15),
            date(2024, 5, 15),
            date(2024, 7, 15),
            date(2024, 9, 15),
            date(2024, 11, 15),
        ]

    def test_crosses_year_boundary(self):
        rule = MonthlyRule(start_date=date(2024, 11, 5), end_date=date(2025, 2, 5))

        assert _dates(expand(rule, [time(9, 0)], 60, 1)) == [
            date(2024, 11, 5),
            date(2024, 12, 5),
            date(2025, 1, 5),
            date(2025, 2, 5),
        ]


class TestDailyRule:
    def test_every_third_day_with_exception(self):
        rule = DailyRule(
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 10),
            interval=3,
            exceptions=frozenset({date(2024, 1, 4)}),
        )

        assert _dates(expand(rule, [time(9, 0)], 60, 1)) == [
            date(2024, 1, 1),
            date(2024, 1, 7),
            date(2024, 1, 10),
        ]

    @pytest.mark.parametrize("interval", [0, -1])
    def test_rejects_non_positive_interval(self, interval):
        rule = DailyRule(start_date=date(2024, 1, 1), end_date=date(2024, 1, 10), interval=interval)

        with pytest.raises(InvalidRuleError):
            expand(rule, [time(9, 0)], 60, 1)

    def test_end_before_start_is_empty_not_an_error(self):
        rule = DailyRule(start_date=date(2024, 2, 1), end_date=date(2024, 1, 1))

        assert list(expand(rule, [time(9, 0)], 60, 1)) == []


class TestExpansion:
    def test_one_candidate_per_time_of_day_in_order(self):
        rule = DailyRule(start_date=date(2024, 1, 1), end_date=date(2024, 1, 2))

        candidates = list(expand(rule, [time(14, 0), time(9, 30), time(14, 0)], 45, 3))

        assert [c.start_time for c in candidates] == [
            datetime(2024, 1, 1, 9, 30),
            datetime(2024, 1, 1, 14, 0),
            datetime(2024, 1, 2, 9, 30),
            datetime(2024, 1, 2, 14, 0),
        ]
        assert candidates[0].end_time == datetime(2024, 1, 1, 10, 15)
        assert all(c.capacity == 3 and c.duration_minutes == 45 for c in candidates)

    def test_restartable_and_deterministic(self):
        rule = WeeklyRule(
            start_date=date(2024, 1, 1),
            end_date=date(2024, 3, 1),
            days_of_week=frozenset({TUE, THU}),
        )
        expansion = expand(rule, [time(8, 0)], 60, 1)

        first = list(expansion)
        second = list(expansion)
        third = list(expand(rule, [time(8, 0)], 60, 1))

        assert first == second == third
        assert first

    @pytest.mark.parametrize(
        "times, minutes, capacity, field",
        [
            ([], 60, 1, "times_of_day"),
            ([time(9, 0)], 0, 1, "duration_minutes"),
            ([time(9, 0)], 60, 0, "capacity"),
            ([time(9, 0, 30)], 60, 1, "times_of_day"),
            ([time(9, 0), time(10, 0, 0, 500)], 60, 1, "times_of_day"),
        ],
    )
    def test_rejects_bad_arguments(self, times, minutes, capacity, field):
        rule = DailyRule(start_date=date(2024, 1, 1), end_date=date(2024, 1, 2))

        with pytest.raises(InvalidRuleError) as exc_info:
            expand(rule, times, minutes, capacity)
        assert exc_info.value.details["field"] == field


class TestBulkRule:
    def test_skip_weekends(self):
        # Fri Jan 5 .. Tue Jan 9
        rule = bulk_rule(date(2024, 1, 5), date(2024, 1, 9), skip_weekends=True)

        assert _dates(expand(rule, [time(9, 0)], 60, 1)) == [
            date(2024, 1, 5),
            date(2024, 1, 8),
            date(2024, 1, 9),
        ]

    def test_exceptions_are_left_out(self):
        rule = bulk_rule(date(2024, 1, 1), date(2024, 1, 3), exceptions=[date(2024, 1, 2)])

        assert _dates(expand(rule, [time(9, 0)], 60, 1)) == [date(2024, 1, 1), date(2024, 1, 3)]


def test_rule_survives_series_columns():
    class _Series:
        pass

    rule = WeeklyRule(
        start_date=date(2024, 1, 1),
        end_date=date(2024, 2, 1),
        interval=2,
        exceptions=frozenset({date(2024, 1, 15)}),
        days_of_week=frozenset({MON, FRI}),
    )
    series = _Series()
    for key, value in rule_to_columns(rule).items():
        setattr(series, key, value)

    assert rule_from_series(series) == rule


def test_times_survive_series_columns():
    class _Series:
        times_of_day = ["08:30", "17:05"]

    assert times_from_series(_Series()) == [time(8, 30), time(17, 5)]


def test_base_rule_cannot_be_instantiated():
    with pytest.raises(TypeError):
        _Rule(start_date=date(2024, 1, 1), end_date=date(2024, 1, 2))


def test_rule_without_dates_cannot_be_instantiated():
    class _Undated(_Rule):
        pass

    with pytest.raises(TypeError):
        _Undated(start_date=date(2024, 1, 1), end_date=date(2024, 1, 2))
