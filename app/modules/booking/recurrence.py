"""Recurrence rules and their expansion into concrete occurrences."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from dateutil.relativedelta import relativedelta

from app.core.enums import RecurrenceFrequencyEnum, WeekdayEnum
from app.modules.booking.intervals import Interval
from app.shared.exceptions import InvalidRecurrenceRuleError

# Consecutive months without a matching day before a monthly rule is considered barren.
MAX_EMPTY_MONTH_STEPS = 48


@dataclass(frozen=True, slots=True)
class RecurrenceRule:
    """Validated recurrence rule.

    Exactly one termination bound is set: ``occurrence_count`` or the inclusive
    ``end_date``. ``days_of_week`` is required for weekly rules and rejected for
    the other frequencies.
    """

    frequency: RecurrenceFrequencyEnum
    start_date: date
    interval: int = 1
    days_of_week: frozenset[WeekdayEnum] = field(default_factory=frozenset)
    occurrence_count: int | None = None
    end_date: date | None = None

    def __post_init__(self) -> None:
        try:
            frequency = RecurrenceFrequencyEnum(self.frequency)
            days = frozenset(WeekdayEnum(day) for day in self.days_of_week)
        except ValueError as exc:
            raise InvalidRecurrenceRuleError(str(exc)) from exc
        object.__setattr__(self, "frequency", frequency)
        object.__setattr__(self, "days_of_week", days)

        if (self.occurrence_count is None) == (self.end_date is None):
            raise InvalidRecurrenceRuleError(
                "Exactly one of occurrence_count or end_date must be set",
            )
        if self.interval < 1:
            raise InvalidRecurrenceRuleError("Recurrence interval must be at least 1")
        if self.occurrence_count is not None and self.occurrence_count < 1:
            raise InvalidRecurrenceRuleError("occurrence_count must be at least 1")
        if self.end_date is not None and self.end_date < self.start_date:
            raise InvalidRecurrenceRuleError("end_date must not be before start_date")

        if frequency == RecurrenceFrequencyEnum.WEEKLY and not days:
            raise InvalidRecurrenceRuleError("Weekly rules require at least one day of week")
        if frequency != RecurrenceFrequencyEnum.WEEKLY and days:
            raise InvalidRecurrenceRuleError("days_of_week is only valid for weekly rules")

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe snapshot stored on each occurrence."""
        return {
            "frequency": self.frequency.value,
            "interval": self.interval,
            "days_of_week": sorted(int(day) for day in self.days_of_week),
            "start_date": self.start_date.isoformat(),
            "occurrence_count": self.occurrence_count,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }


def _daily_dates(rule: RecurrenceRule) -> Iterator[date]:
    step = timedelta(days=rule.interval)
    current = rule.start_date
    while True:
        yield current
        current += step


def _weekly_dates(rule: RecurrenceRule) -> Iterator[date]:
    weekdays = sorted(rule.days_of_week)
    window_start = rule.start_date - timedelta(days=rule.start_date.weekday())
    step = timedelta(weeks=rule.interval)
    while True:
        for weekday in weekdays:
            current = window_start + timedelta(days=int(weekday))
            if current < rule.start_date:
                continue
            yield current
        window_start += step


def _monthly_dates(rule: RecurrenceRule) -> Iterator[date]:
    anchor_day = rule.start_date.day
    months = 0
    empty_steps = 0
    while empty_steps < MAX_EMPTY_MONTH_STEPS:
        current = rule.start_date + relativedelta(months=months)
        months += rule.interval
        # relativedelta clamps to the month end; a clamped day means the month is skipped.
        if current.day != anchor_day:
            empty_steps += 1
            if rule.end_date is not None and current > rule.end_date:
                return
            continue
        empty_steps = 0
        yield current


_DATE_GENERATORS = {
    RecurrenceFrequencyEnum.DAILY: _daily_dates,
    RecurrenceFrequencyEnum.WEEKLY: _weekly_dates,
    RecurrenceFrequencyEnum.MONTHLY: _monthly_dates,
}


def occurrence_dates(rule: RecurrenceRule, max_occurrences: int) -> list[date]:
    """Return the ordered occurrence dates of ``rule``.

    Raises ``InvalidRecurrenceRuleError`` when the rule would produce more than
    ``max_occurrences`` dates, or cannot produce the requested count.
    """
    if max_occurrences < 1:
        raise InvalidRecurrenceRuleError("max_occurrences must be at least 1")
    if rule.occurrence_count is not None and rule.occurrence_count > max_occurrences:
        raise InvalidRecurrenceRuleError(
            f"Recurrence produces {rule.occurrence_count} occurrences, limit is {max_occurrences}",
        )

    dates: list[date] = []
    for current in _DATE_GENERATORS[rule.frequency](rule):
        if rule.end_date is not None and current > rule.end_date:
            break
        if len(dates) == max_occurrences:
            raise InvalidRecurrenceRuleError(
                f"Recurrence produces more than {max_occurrences} occurrences",
            )
        dates.append(current)
        if rule.occurrence_count is not None and len(dates) == rule.occurrence_count:
            break

    if not dates:
        raise InvalidRecurrenceRuleError("Recurrence rule produces no occurrences")
    if rule.occurrence_count is not None and len(dates) < rule.occurrence_count:
        raise InvalidRecurrenceRuleError(
            f"Recurrence rule can only produce {len(dates)} of {rule.occurrence_count} occurrences",
        )
    return dates


def anchor_interval(base: Interval, on: date) -> Interval:
    """Move ``base`` to calendar date ``on`` keeping time of day and duration.

    Date and time of day are read in the zone ``base`` was given in, so a
    weekly "Monday 02:00 +05:00" stays on Monday for that caller.
    """
    start = datetime.combine(on, base.local_start.timetz())
    return Interval(start, start + base.duration, origin_tz=base.origin_tz)


def expand(rule: RecurrenceRule, base: Interval, max_occurrences: int) -> list[Interval]:
    """Expand ``rule`` into concrete intervals shaped like ``base``."""
    return [anchor_interval(base, current) for current in occurrence_dates(rule, max_occurrences)]


def weekdays_from(values: Iterable[int | str]) -> frozenset[WeekdayEnum]:
    """Parse weekday numbers (0=Monday) or names (``"monday"``)."""
    parsed: set[WeekdayEnum] = set()
    for value in values:
        try:
            if isinstance(value, str) and not value.isdigit():
                parsed.add(WeekdayEnum[value.strip().upper()])
            else:
                parsed.add(WeekdayEnum(int(value)))
        except (KeyError, ValueError) as exc:
            raise InvalidRecurrenceRuleError(f"Unknown day of week: {value!r}") from exc
    return frozenset(parsed)
