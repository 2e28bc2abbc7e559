from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_serializer

from .domain.services import ArrivalDraft, EventDraft
from .domain.views import ArrivalSummary, Attendee, EventSummary, ReservationHistoryEntry
from .models import Event, User
from .utils.ids import format_reservation_id
from .utils.time import utc_naive_to_local

# Fields stay optional so that absent values reach the validator, which owns the messages.
RawValue = Optional[Union[int, str]]


class MessageRead(BaseModel):
    message: str


class ArrivalCreate(BaseModel):
    arrival_time: Optional[str] = None
    capacity: RawValue = None


class EventCreate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    host: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    description: Optional[str] = None
    arrivals: List[Optional[ArrivalCreate]] = Field(default_factory=list)

    def to_draft(self) -> EventDraft:
        return EventDraft(
            name=self.name,
            location=self.location,
            host=self.host,
            start_time=self.start_time,
            end_time=self.end_time,
            description=self.description,
            arrivals=tuple(
                ArrivalDraft(arrival_time=a.arrival_time, capacity=a.capacity) if a is not None else None
                for a in self.arrivals
            ),
        )


class EventCreated(BaseModel):
    event_id: str
    arrival_ids: List[str]
    message: str = "Successfully created event!"


class EventSummaryRead(BaseModel):
    event_id: str
    name: str
    location: str
    host: str
    filled: int
    capacity: int
    start_time: datetime
    end_time: datetime
    description: str
    is_registered: bool

    @field_serializer("start_time", "end_time")
    def _ser_datetime(self, dt: datetime) -> str:
        return utc_naive_to_local(dt).isoformat()

    @classmethod
    def from_summary(cls, summary: EventSummary) -> "EventSummaryRead":
        return cls(**_event_fields(summary.event, summary.filled, summary.capacity, summary.is_registered))


def _event_fields(event: Event, filled: int, capacity: int, is_registered: bool) -> Dict[str, Any]:
    return {
        "event_id": event.id,
        "name": event.name,
        "location": event.location,
        "host": event.host,
        "filled": filled,
        "capacity": capacity,
        "start_time": event.start_time,
        "end_time": event.end_time,
        "description": event.description,
        "is_registered": is_registered,
    }


class AttendeeRead(BaseModel):
    username: str
    picture: str
    arrival_time: datetime

    @field_serializer("arrival_time")
    def _ser_datetime(self, dt: datetime) -> str:
        return utc_naive_to_local(dt).isoformat()

    @classmethod
    def from_attendee(cls, attendee: Attendee) -> "AttendeeRead":
        return cls(username=attendee.username, picture=attendee.picture, arrival_time=attendee.arrival_time)


class EventDetailRead(EventSummaryRead):
    attendees: List[AttendeeRead]

    @classmethod
    def from_detail(cls, summary: EventSummary, attendees: List[Attendee]) -> "EventDetailRead":
        return cls(
            **_event_fields(summary.event, summary.filled, summary.capacity, summary.is_registered),
            attendees=[AttendeeRead.from_attendee(a) for a in attendees],
        )


class ArrivalRead(BaseModel):
    arrival_id: str
    arrival_time: datetime
    filled: int
    capacity: int

    @field_serializer("arrival_time")
    def _ser_datetime(self, dt: datetime) -> str:
        return utc_naive_to_local(dt).isoformat()

    @classmethod
    def from_summary(cls, summary: ArrivalSummary) -> "ArrivalRead":
        return cls(
            arrival_id=summary.arrival.id,
            arrival_time=summary.arrival.arrival_time,
            filled=summary.filled,
            capacity=summary.arrival.capacity,
        )


class SearchResultRead(BaseModel):
    event_id: str
    name: str
    location: str

    @classmethod
    def from_event(cls, event: Event) -> "SearchResultRead":
        return cls(event_id=event.id, name=event.name, location=event.location)


class ReservationCreate(BaseModel):
    arrival_id: Optional[str] = None


class ReservationCreated(BaseModel):
    reservation_id: str
    message: str

    @classmethod
    def for_id(cls, reservation_id: str) -> "ReservationCreated":
        return cls(
            reservation_id=reservation_id,
            message=f"Your reservation ID is #{format_reservation_id(reservation_id)}",
        )


class WithdrawRequest(BaseModel):
    event_id: Optional[str] = None


class ReservationHistoryRead(EventSummaryRead):
    reservation_id: str

    @classmethod
    def from_entry(cls, entry: ReservationHistoryEntry) -> "ReservationHistoryRead":
        return cls(
            reservation_id=entry.reservation.id,
            **_event_fields(entry.event, entry.filled, entry.capacity, entry.is_registered),
        )


class SignUpRequest(BaseModel):
    username: Optional[str] = None
    picture: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SessionRead(BaseModel):
    user_id: str
    session_token: Optional[str]
    username: str
    picture: str

    @classmethod
    def from_user(cls, user: User) -> "SessionRead":
        return cls(
            user_id=user.id,
            session_token=user.session_token,
            username=user.username,
            picture=user.picture,
        )
