"""Create and tear down an event together with its arrival options.

Callers validate first; nothing here re-checks ownership or timing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Tuple
from zoneinfo import ZoneInfo

from ..domain.repositories import ArrivalRepository, EventRepository, ReservationRepository
from ..domain.services import EventDraft
from ..models import Arrival, Event
from ..utils.ids import new_identifier
from ..utils.time import parse_timestamp


@dataclass(frozen=True)
class NewArrival:
    arrival_time: datetime
    capacity: int


@dataclass(frozen=True)
class NewEvent:
    name: str
    location: str
    host: str
    start_time: datetime
    end_time: datetime
    description: str
    arrivals: Tuple[NewArrival, ...]

    @classmethod
    def from_draft(cls, draft: EventDraft, zone: ZoneInfo | None = None) -> "NewEvent":
        """Convert an already validated draft into storable values."""

        def parse(value: str) -> datetime:
            parsed = parse_timestamp(value, zone)
            if parsed is None:
                raise ValueError(f"unparseable time {value!r}")
            return parsed

        return cls(
            name=str(draft.name),
            location=str(draft.location),
            host=str(draft.host),
            start_time=parse(draft.start_time),
            end_time=parse(draft.end_time),
            description=str(draft.description),
            arrivals=tuple(
                NewArrival(arrival_time=parse(a.arrival_time), capacity=int(a.capacity)) for a in draft.arrivals
            ),
        )


async def create_event(
    event_repo: EventRepository,
    arrival_repo: ArrivalRepository,
    *,
    owner_id: str,
    new_event: NewEvent,
) -> Tuple[Event, List[Arrival]]:
    event = await event_repo.create(
        event_id=new_identifier(),
        user_id=owner_id,
        name=new_event.name,
        location=new_event.location,
        host=new_event.host,
        start_time=new_event.start_time,
        end_time=new_event.end_time,
        description=new_event.description,
    )
    arrivals = [
        await arrival_repo.create(
            arrival_id=new_identifier(),
            event_id=event.id,
            arrival_time=option.arrival_time,
            capacity=option.capacity,
        )
        for option in new_event.arrivals
    ]
    return event, arrivals


async def delete_event(
    event_repo: EventRepository,
    arrival_repo: ArrivalRepository,
    res_repo: ReservationRepository,
    *,
    event_id: str,
) -> None:
    # Children first: reservations reference arrivals, arrivals reference the event.
    await res_repo.delete_for_event(event_id)
    await arrival_repo.delete_for_event(event_id)
    await event_repo.delete(event_id)
