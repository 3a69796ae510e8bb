# backend/appointments/services/slots/intervals.py
"""
Half-open time intervals over timezone-aware instants.

[start, end): an interval ending at 10:00 and one starting at 10:00
do not overlap.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("Interval bounds must be timezone-aware")
        if self.start >= self.end:
            raise ValueError(f"Start {self.start} must be before end {self.end}")


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def contains(interval: Interval, instant: datetime) -> bool:
    return interval.start <= instant < interval.end


def overlaps_any(candidate: Interval, intervals: Iterable[Interval]) -> bool:
    return any(overlaps(candidate, other) for other in intervals)


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort and coalesce overlapping or touching intervals."""
    merged: list[Interval] = []
    for interval in sorted(intervals, key=lambda i: (i.start, i.end)):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            if interval.end > last.end:
                merged[-1] = Interval(last.start, interval.end)
            continue
        merged.append(interval)
    return merged
