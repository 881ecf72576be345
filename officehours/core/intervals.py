"""Half-open time intervals and the set operations the slot engine needs."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional


@dataclass(frozen=True, order=True)
class TimeInterval:
    """Immutable half-open range ``[start, end)`` of absolute instants."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(
                f"Interval end {self.end.isoformat()} must be after start {self.start.isoformat()}"
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, other: "TimeInterval") -> bool:
        """True if ``other`` lies entirely inside this interval."""
        return self.start <= other.start and other.end <= self.end


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    """Touching endpoints do not overlap."""
    return a.start < b.end and b.start < a.end


def merge(intervals: Iterable[TimeInterval]) -> List[TimeInterval]:
    """Fuse overlapping or adjacent intervals into a sorted disjoint list."""
    merged: List[TimeInterval] = []
    for interval in sorted(intervals):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = TimeInterval(last.start, interval.end)
        else:
            merged.append(interval)
    return merged


def subtract(window: TimeInterval, busy: Iterable[TimeInterval]) -> List[TimeInterval]:
    """
    Remove busy time from a window.

    Args:
        window: The availability window
        busy: Busy intervals, in any order

    Returns:
        Sorted disjoint free sub-intervals of ``window``
    """
    free: List[TimeInterval] = []
    cursor = window.start

    for block in merge(busy):
        if block.end <= cursor:
            continue
        if block.start >= window.end:
            break
        if block.start > cursor:
            free.append(TimeInterval(cursor, block.start))
        cursor = max(cursor, block.end)
        if cursor >= window.end:
            break

    if cursor < window.end:
        free.append(TimeInterval(cursor, window.end))

    return free


def clip(interval: TimeInterval, window: TimeInterval) -> Optional[TimeInterval]:
    """Intersection of ``interval`` with ``window``, or None if they don't overlap."""
    start = max(interval.start, window.start)
    end = min(interval.end, window.end)
    if end <= start:
        return None
    return TimeInterval(start, end)


def expand(
    interval: TimeInterval,
    before: timedelta = timedelta(0),
    after: timedelta = timedelta(0),
) -> TimeInterval:
    """Pad an interval on either side."""
    return TimeInterval(interval.start - before, interval.end + after)


def intersect(a: Iterable[TimeInterval], b: Iterable[TimeInterval]) -> List[TimeInterval]:
    """Time covered by both interval sets, as a sorted disjoint list."""
    left = merge(a)
    right = merge(b)
    common: List[TimeInterval] = []
    i = j = 0

    while i < len(left) and j < len(right):
        part = clip(left[i], right[j])
        if part:
            common.append(part)
        if left[i].end <= right[j].end:
            i += 1
        else:
            j += 1

    return common
