from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from ..models import Arrival, Event, Reservation
from .capacity import Occupancy


class EventScope(StrEnum):
    ALL = "all"
    OPEN = "open"
    UNREGISTERED = "unregistered"


@dataclass(frozen=True)
class EventSummary:
    event: Event
    filled: int
    capacity: int
    is_registered: bool

    @property
    def occupancy(self) -> Occupancy:
        return Occupancy(filled=self.filled, capacity=self.capacity)


@dataclass(frozen=True)
class ArrivalSummary:
    arrival: Arrival
    filled: int

    @property
    def occupancy(self) -> Occupancy:
        return Occupancy(filled=self.filled, capacity=self.arrival.capacity)


@dataclass(frozen=True)
class Attendee:
    username: str
    picture: str
    arrival_time: datetime


@dataclass(frozen=True)
class ReservationHistoryEntry:
    reservation: Reservation
    event: Event
    filled: int
    capacity: int

    @property
    def is_registered(self) -> bool:
        return not self.reservation.is_canceled
