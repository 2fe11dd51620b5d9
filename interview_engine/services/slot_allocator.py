"""
Greedy forward-fill slot allocation.

Given a recruiter's busy intervals and an ordered batch of candidates, hand out
one non-overlapping slot per candidate inside the recruiter's business hours,
earliest first, in input order. Pure computation: callers take the busy
snapshot and persist the results.
"""

import bisect
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Iterable, Optional

from interview_engine.core.errors import SlotExhausted, ValidationError


@dataclass(frozen=True, order=True)
class TimeSlot:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeSlot") -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class SearchWindow:
    """Where slots may go: `days` consecutive days from `start`, each limited
    to business hours [day_start, day_end)."""

    start: datetime
    days: int = 1
    day_start: time = time(9, 0)
    day_end: time = time(17, 0)

    @property
    def end(self) -> datetime:
        last_day = self.start.date() + timedelta(days=self.days - 1)
        return datetime.combine(last_day, self.day_end)

    def validate(self):
        if self.days <= 0:
            raise ValidationError("Search window must cover at least one day")
        if self.day_start >= self.day_end:
            raise ValidationError(
                f"Daily window start {self.day_start} must be before end {self.day_end}"
            )
        if self.start > self.end:
            raise ValidationError(
                f"Search start {self.start.isoformat()} is after the horizon end "
                f"{self.end.isoformat()}"
            )

    def open_intervals(self) -> list[TimeSlot]:
        """Business-hour intervals of every day in the horizon, clipped to start."""
        intervals = []
        first_day = self.start.date()
        for offset in range(self.days):
            day = first_day + timedelta(days=offset)
            opens = max(datetime.combine(day, self.day_start), self.start)
            closes = datetime.combine(day, self.day_end)
            if opens < closes:
                intervals.append(TimeSlot(opens, closes))
        return intervals


@dataclass
class SlotAllocation:
    candidate: Any
    slot: Optional[TimeSlot] = None
    error: Optional[SlotExhausted] = None

    @property
    def ok(self) -> bool:
        return self.slot is not None


@dataclass
class _BusySet:
    slots: list = field(default_factory=list)

    def add(self, slot: TimeSlot):
        bisect.insort(self.slots, slot)

    def first_gap(self, lower: datetime, upper: datetime, length: timedelta) -> Optional[datetime]:
        """Earliest start >= lower with [start, start+length) free and inside upper."""
        candidate = lower
        # sorted by start; existing interviews may overlap each other
        for busy in self.slots:
            if busy.start >= upper:
                break
            if busy.end <= candidate:
                continue
            if busy.start >= candidate + length:
                break
            candidate = max(candidate, busy.end)
        if candidate + length <= upper:
            return candidate
        return None


def allocate_slots(
    candidates: Iterable[Any],
    duration_minutes: int,
    busy: Iterable[TimeSlot],
    window: SearchWindow,
) -> list[SlotAllocation]:
    if duration_minutes <= 0:
        raise ValidationError("Interview duration must be positive")
    window.validate()

    length = timedelta(minutes=duration_minutes)
    busy_set = _BusySet()
    for slot in busy:
        busy_set.add(slot)

    open_intervals = window.open_intervals()
    cursor = window.start
    allocations = []

    for candidate in candidates:
        found = None
        for interval in open_intervals:
            if interval.end <= cursor:
                continue
            gap_start = busy_set.first_gap(max(interval.start, cursor), interval.end, length)
            if gap_start is not None:
                found = TimeSlot(gap_start, gap_start + length)
                break

        if found is None:
            allocations.append(
                SlotAllocation(
                    candidate=candidate,
                    error=SlotExhausted(duration_minutes, window.start, window.end),
                )
            )
            continue

        busy_set.add(found)
        cursor = found.start
        allocations.append(SlotAllocation(candidate=candidate, slot=found))

    return allocations
