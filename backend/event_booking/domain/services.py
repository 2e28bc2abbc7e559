"""
Pure validation for event and reservation mutations.

Every validator is an ordered list of ``(predicate, message)`` rules. The
first predicate that fails decides the outcome and the rest are never
evaluated, so the order below is the error precedence callers rely on.
Validators return the failing message or None; they do not raise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import cached_property
from typing import Any, Callable, Iterable, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from ..utils.time import parse_timestamp, timestamp_year
from .capacity import Occupancy
from .errors import ACCESS_DENIED, EVENT_NOT_FOUND, MISSING_PARAMETERS

MYRIAD_YEARS = 10000
MAX_EVENT_DURATION = timedelta(hours=24)

UNPARSEABLE_TIMES = "Unable to parse provided times"
START_BEYOND_MYRIAD = "Event must start in this myriad"
START_IN_PAST = "Event cannot start at a past date or time"
START_NOT_BEFORE_END = "Event start time must be earlier than the event end time"
DURATION_TOO_LONG = "Event duration must be less than 24 hours"
ARRIVAL_OUTSIDE_EVENT = "Arrival time must be within event times"
DUPLICATE_ARRIVALS = "Arrival times cannot be identical"
INVALID_CAPACITY = "Capacity must either be a positive integer or -1 for infinite capacity"

NOT_OWNER = "You do not have permission to delete this event. It belongs to another user"
DELETE_PAST_EVENT = "Unable to delete a past event"

ARRIVAL_NOT_FOUND = "Arrival time does not exist"
RESERVE_PAST_EVENT = "Unable to register for a past event"
ALREADY_REGISTERED = "Already registered for event"
FULLY_BOOKED = "Arrival time is fully booked"

NOT_REGISTERED = "Not registered for this event"
WITHDRAW_PAST_EVENT = "Unable to withdraw from a past event"

_CAPACITY_PATTERN = re.compile(r"-1|[1-9]\d*")

Rule = Tuple[Callable[[], bool], str]


def first_failure(rules: Iterable[Rule]) -> Optional[str]:
    for passes, message in rules:
        if not passes():
            return message
    return None


def missing(*values: Any) -> bool:
    """True if any value is absent: None, empty string, zero or an empty list."""
    return any(not value for value in values)


def conflict_message(label: str) -> str:
    return (
        f"You have already reserved '{label}' for this time. "
        "Please withdraw or update your arrival time before proceeding"
    )


def valid_capacity(value: Any) -> bool:
    """-1 (unlimited) or a positive integer written without leading zeros."""
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return False
    return _CAPACITY_PATTERN.fullmatch(str(value)) is not None


def session_rules(*, has_required: bool, authenticated: bool) -> list[Rule]:
    return [
        (lambda: has_required, MISSING_PARAMETERS),
        (lambda: authenticated, ACCESS_DENIED),
    ]


@dataclass(frozen=True)
class ArrivalDraft:
    arrival_time: Any
    capacity: Any


@dataclass(frozen=True)
class EventDraft:
    """Event creation input exactly as the caller sent it."""

    name: Any
    location: Any
    host: Any
    start_time: Any
    end_time: Any
    description: Any
    arrivals: Sequence[ArrivalDraft] = field(default_factory=tuple)

    def is_complete(self) -> bool:
        if missing(self.name, self.location, self.host, self.start_time, self.end_time, self.description):
            return False
        if not self.arrivals:
            return False
        return not any(
            arrival is None or missing(arrival.arrival_time, arrival.capacity) for arrival in self.arrivals
        )


class _DraftTimes:
    """Parsed draft times, computed on first use."""

    def __init__(self, draft: EventDraft, zone: ZoneInfo | None) -> None:
        self._draft = draft
        self._zone = zone

    @cached_property
    def start(self) -> datetime | None:
        return parse_timestamp(self._draft.start_time, self._zone)

    @cached_property
    def end(self) -> datetime | None:
        return parse_timestamp(self._draft.end_time, self._zone)

    @cached_property
    def arrivals(self) -> list[datetime | None]:
        return [parse_timestamp(a.arrival_time, self._zone) for a in self._draft.arrivals]

    def all_parsed(self) -> bool:
        return self.start is not None and self.end is not None and None not in self.arrivals


def validate_create_event(
    draft: EventDraft,
    *,
    has_credentials: bool,
    authenticated: bool,
    now: datetime,
    zone: ZoneInfo | None = None,
) -> Optional[str]:
    """Validate an event draft; ``now`` is naive UTC."""
    times = _DraftTimes(draft, zone)
    rules: list[Rule] = session_rules(
        has_required=has_credentials and draft.is_complete(),
        authenticated=authenticated,
    )
    rules += [
        (times.all_parsed, UNPARSEABLE_TIMES),
        (lambda: (timestamp_year(draft.start_time) or 0) < MYRIAD_YEARS, START_BEYOND_MYRIAD),
        (lambda: now < times.start, START_IN_PAST),
        (lambda: times.start < times.end, START_NOT_BEFORE_END),
        (lambda: times.end - times.start < MAX_EVENT_DURATION, DURATION_TOO_LONG),
        (lambda: all(times.start <= t < times.end for t in times.arrivals), ARRIVAL_OUTSIDE_EVENT),
        (lambda: len(set(times.arrivals)) == len(times.arrivals), DUPLICATE_ARRIVALS),
        (lambda: all(valid_capacity(a.capacity) for a in draft.arrivals), INVALID_CAPACITY),
    ]
    return first_failure(rules)


@dataclass(frozen=True)
class DeletionSnapshot:
    requester_id: str
    owner_id: Optional[str]
    event_ended: bool

    @property
    def event_exists(self) -> bool:
        return self.owner_id is not None


def validate_delete_event(snapshot: DeletionSnapshot) -> Optional[str]:
    return first_failure(
        [
            (lambda: snapshot.event_exists, EVENT_NOT_FOUND),
            (lambda: snapshot.owner_id == snapshot.requester_id, NOT_OWNER),
            (lambda: not snapshot.event_ended, DELETE_PAST_EVENT),
        ]
    )


@dataclass(frozen=True)
class ReservationSnapshot:
    arrival_exists: bool
    event_ended: bool = False
    already_registered: bool = False
    occupancy: Occupancy = Occupancy(filled=0, capacity=-1)
    conflicting_event: Optional[str] = None


def validate_reservation(snapshot: ReservationSnapshot) -> Optional[str]:
    """
    Duplicate and capacity checks run before the conflict scan, so a second
    slot of an already booked event reports the duplicate, not a conflict
    with itself.
    """
    return first_failure(
        [
            (lambda: snapshot.arrival_exists, ARRIVAL_NOT_FOUND),
            (lambda: not snapshot.event_ended, RESERVE_PAST_EVENT),
            (lambda: not snapshot.already_registered, ALREADY_REGISTERED),
            (lambda: not snapshot.occupancy.is_full, FULLY_BOOKED),
            (
                lambda: snapshot.conflicting_event is None,
                conflict_message(snapshot.conflicting_event or ""),
            ),
        ]
    )


@dataclass(frozen=True)
class WithdrawalSnapshot:
    event_exists: bool
    is_registered: bool = False
    event_ended: bool = False


def validate_withdrawal(snapshot: WithdrawalSnapshot) -> Optional[str]:
    return first_failure(
        [
            (lambda: snapshot.event_exists, EVENT_NOT_FOUND),
            (lambda: snapshot.is_registered, NOT_REGISTERED),
            (lambda: not snapshot.event_ended, WITHDRAW_PAST_EVENT),
        ]
    )
