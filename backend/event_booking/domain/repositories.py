from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..models import Arrival, Event, Reservation, User
from .capacity import Occupancy
from .conflicts import BookedSpan
from .views import ArrivalSummary, Attendee, EventScope, EventSummary, ReservationHistoryEntry


class UserRepository(Protocol):
    async def get(self, user_id: str) -> User | None: ...

    async def get_for_update(self, user_id: str) -> User | None: ...

    async def get_by_email(self, email: str) -> User | None: ...

    async def create(
        self,
        *,
        user_id: str,
        username: str,
        picture: str,
        email: str,
        password: str,
    ) -> User: ...

    async def set_session_token(self, user: User, token: str | None) -> User: ...


class EventRepository(Protocol):
    async def get(self, event_id: str) -> Event | None: ...

    async def create(
        self,
        *,
        event_id: str,
        user_id: str,
        name: str,
        location: str,
        host: str,
        start_time: datetime,
        end_time: datetime,
        description: str,
    ) -> Event: ...

    async def delete(self, event_id: str) -> None: ...

    async def occupancy(self, event_id: str) -> Occupancy | None: ...

    async def list_summaries(self, user_id: str, *, now: datetime, scope: EventScope) -> list[EventSummary]: ...

    async def list_created_by(self, user_id: str) -> list[EventSummary]: ...

    async def get_summary(self, user_id: str, event_id: str) -> EventSummary | None: ...

    async def search(self, term: str, *, now: datetime, limit: int) -> list[Event]: ...

    async def list_attendees(self, event_id: str) -> list[Attendee]: ...


class ArrivalRepository(Protocol):
    async def get_for_update(self, arrival_id: str) -> Arrival | None: ...

    async def create(
        self,
        *,
        arrival_id: str,
        event_id: str,
        arrival_time: datetime,
        capacity: int,
    ) -> Arrival: ...

    async def occupancy(self, arrival_id: str) -> Occupancy | None: ...

    async def list_for_event(self, event_id: str) -> list[ArrivalSummary]: ...

    async def delete_for_event(self, event_id: str) -> int: ...


class ReservationRepository(Protocol):
    async def has_active_for_event(self, user_id: str, event_id: str) -> bool: ...

    async def list_active_spans(self, user_id: str) -> list[BookedSpan]: ...

    async def create(self, *, reservation_id: str, user_id: str, arrival_id: str) -> Reservation: ...

    async def cancel_for_event(self, user_id: str, event_id: str) -> int: ...

    async def delete_for_event(self, event_id: str) -> int: ...

    async def list_history(self, user_id: str) -> list[ReservationHistoryEntry]: ...
