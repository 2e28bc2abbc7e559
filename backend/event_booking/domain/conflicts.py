"""Detect double-bookings across different events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional


@dataclass(frozen=True)
class BookedSpan:
    """The part of an event a user attends: from their arrival to the event end."""

    event_id: str
    label: str
    arrival_time: datetime
    end_time: datetime


def overlaps(a: BookedSpan, b: BookedSpan) -> bool:
    """Two spans are disjoint iff one ends before the other's arrival.

    Touching spans (``a.end_time == b.arrival_time``) do not overlap.
    """
    return not (a.end_time <= b.arrival_time or b.end_time <= a.arrival_time)


def find_conflict(candidate: BookedSpan, booked: Iterable[BookedSpan]) -> Optional[str]:
    """Label of the first booked span overlapping ``candidate``, or None."""
    for span in booked:
        if overlaps(candidate, span):
            return span.label
    return None
