"""Half-open time intervals used for reservations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo

from app.shared.exceptions import InvalidIntervalError
from app.shared.utils import ensure_utc


@dataclass(frozen=True, slots=True, order=True)
class Interval:
    """Time range ``[start, end)`` normalized to UTC.

    Ordering is by ``start`` then ``end``, which is the chronological order the
    series orchestrator processes occurrences in. ``origin_tz`` keeps the zone
    the start was given in (UTC for naive input); it does not take part in
    equality or ordering.
    """

    start: datetime
    end: datetime
    origin_tz: tzinfo | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        origin_tz = self.origin_tz or self.start.tzinfo or timezone.utc
        start = ensure_utc(self.start)
        end = ensure_utc(self.end)
        if end <= start:
            raise InvalidIntervalError("Interval end must be after start")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)
        object.__setattr__(self, "origin_tz", origin_tz)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def local_start(self) -> datetime:
        """Start expressed in the zone it was given in."""
        return self.start.astimezone(self.origin_tz)

    def overlaps(self, other: Interval) -> bool:
        return overlaps(self, other)

    def contains(self, instant: datetime) -> bool:
        return contains(self, instant)


def overlaps(a: Interval, b: Interval) -> bool:
    """Return True when the intervals share at least one instant.

    Touching intervals (``a.end == b.start``) do not overlap.
    """
    return a.start < b.end and b.start < a.end


def contains(interval: Interval, instant: datetime) -> bool:
    """Return True when ``instant`` lies in ``[start, end)``."""
    moment = ensure_utc(instant)
    return interval.start <= moment < interval.end


def bounding_window(intervals: Iterable[Interval]) -> Interval:
    """Return the smallest interval covering every given interval."""
    items = list(intervals)
    if not items:
        raise InvalidIntervalError("Cannot build a window from zero intervals")
    return Interval(min(item.start for item in items), max(item.end for item in items))
