from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest
from event_booking.config import Settings, get_settings
from event_booking.domain.capacity import Occupancy
from event_booking.domain.conflicts import BookedSpan
from event_booking.domain.views import ArrivalSummary, Attendee, EventScope, EventSummary, ReservationHistoryEntry
from event_booking.infrastructure.credential_gate import SessionCredentialGate
from event_booking.models import Arrival, Event, Reservation, User


TEST_SECRET = "test-secret-long-enough-for-hs256-signing"


class MemoryStore:
    """Tables kept in dicts. With ``interleave`` set, repository calls yield to the loop."""

    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.events: Dict[str, Event] = {}
        self.arrivals: Dict[str, Arrival] = {}
        self.reservations: Dict[str, Reservation] = {}
        self.interleave = False
        self._tick = 0

    async def pause(self) -> None:
        if self.interleave:
            await asyncio.sleep(0)

    def stamp(self) -> datetime:
        # Strictly increasing so "newest first" orderings are deterministic.
        self._tick += 1
        return datetime(2000, 1, 1) + timedelta(seconds=self._tick)

    def arrivals_of(self, event_id: str) -> List[Arrival]:
        return [a for a in self.arrivals.values() if a.event_id == event_id]

    def active(self) -> List[Reservation]:
        return [r for r in self.reservations.values() if not r.is_canceled]

    def event_of(self, reservation: Reservation) -> Event:
        return self.events[self.arrivals[reservation.arrival_id].event_id]

    def occupancy_of(self, event_id: str) -> Occupancy:
        filled = sum(1 for r in self.active() if self.event_of(r).id == event_id)
        return Occupancy.for_event(filled, [a.capacity for a in self.arrivals_of(event_id)])

    def is_registered(self, user_id: str, event_id: str) -> bool:
        return any(r.user_id == user_id and self.event_of(r).id == event_id for r in self.active())

    def summary(self, user_id: str, event: Event) -> EventSummary:
        occupancy = self.occupancy_of(event.id)
        capacity = occupancy.capacity if self.arrivals_of(event.id) else 0
        return EventSummary(
            event=event,
            filled=occupancy.filled,
            capacity=capacity,
            is_registered=self.is_registered(user_id, event.id),
        )


class FakeUserRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get(self, user_id: str) -> Optional[User]:
        return self.store.users.get(user_id)

    async def get_for_update(self, user_id: str) -> Optional[User]:
        await self.store.pause()
        return self.store.users.get(user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.store.users.values() if u.email == email), None)

    async def create(self, *, user_id: str, username: str, picture: str, email: str, password: str) -> User:
        user = User(id=user_id, username=username, picture=picture, email=email, password=password)
        self.store.users[user_id] = user
        return user

    async def set_session_token(self, user: User, token: Optional[str]) -> User:
        user.session_token = token
        return user


class FakeEventRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get(self, event_id: str) -> Optional[Event]:
        return self.store.events.get(event_id)

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
    ) -> Event:
        event = Event(
            id=event_id,
            user_id=user_id,
            name=name,
            location=location,
            host=host,
            start_time=start_time,
            end_time=end_time,
            description=description,
            created_at=self.store.stamp(),
        )
        self.store.events[event_id] = event
        return event

    async def delete(self, event_id: str) -> None:
        self.store.events.pop(event_id, None)

    async def occupancy(self, event_id: str) -> Optional[Occupancy]:
        if not self.store.arrivals_of(event_id):
            return None
        return self.store.occupancy_of(event_id)

    async def list_summaries(self, user_id: str, *, now: datetime, scope: EventScope) -> List[EventSummary]:
        events = sorted((e for e in self.store.events.values() if e.end_time > now), key=lambda e: e.start_time)
        summaries = [self.store.summary(user_id, e) for e in events]
        if scope == EventScope.OPEN:
            return [s for s in summaries if s.filled != s.capacity]
        if scope == EventScope.UNREGISTERED:
            return [s for s in summaries if not s.is_registered]
        return summaries

    async def list_created_by(self, user_id: str) -> List[EventSummary]:
        events = [e for e in self.store.events.values() if e.user_id == user_id]
        events.sort(key=lambda e: e.created_at, reverse=True)
        return [self.store.summary(user_id, e) for e in events]

    async def get_summary(self, user_id: str, event_id: str) -> Optional[EventSummary]:
        event = self.store.events.get(event_id)
        return self.store.summary(user_id, event) if event is not None else None

    async def search(self, term: str, *, now: datetime, limit: int) -> List[Event]:
        found = [e for e in self.store.events.values() if term in e.label and e.end_time > now]
        return sorted(found, key=lambda e: e.start_time)[:limit]

    async def list_attendees(self, event_id: str) -> List[Attendee]:
        attendees = [
            Attendee(
                username=self.store.users[r.user_id].username,
                picture=self.store.users[r.user_id].picture,
                arrival_time=self.store.arrivals[r.arrival_id].arrival_time,
            )
            for r in self.store.active()
            if self.store.event_of(r).id == event_id
        ]
        return sorted(attendees, key=lambda a: a.username)


class FakeArrivalRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get_for_update(self, arrival_id: str) -> Optional[Arrival]:
        await self.store.pause()
        return self.store.arrivals.get(arrival_id)

    async def create(self, *, arrival_id: str, event_id: str, arrival_time: datetime, capacity: int) -> Arrival:
        arrival = Arrival(id=arrival_id, event_id=event_id, arrival_time=arrival_time, capacity=capacity)
        arrival.event = self.store.events[event_id]
        self.store.arrivals[arrival_id] = arrival
        return arrival

    async def occupancy(self, arrival_id: str) -> Optional[Occupancy]:
        await self.store.pause()
        arrival = self.store.arrivals.get(arrival_id)
        if arrival is None:
            return None
        filled = sum(1 for r in self.store.active() if r.arrival_id == arrival_id)
        return Occupancy(filled=filled, capacity=arrival.capacity)

    async def list_for_event(self, event_id: str) -> List[ArrivalSummary]:
        arrivals = sorted(self.store.arrivals_of(event_id), key=lambda a: a.arrival_time)
        return [
            ArrivalSummary(arrival=a, filled=sum(1 for r in self.store.active() if r.arrival_id == a.id))
            for a in arrivals
        ]

    async def delete_for_event(self, event_id: str) -> int:
        doomed = [a.id for a in self.store.arrivals_of(event_id)]
        for arrival_id in doomed:
            del self.store.arrivals[arrival_id]
        return len(doomed)


class FakeReservationRepository:
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def has_active_for_event(self, user_id: str, event_id: str) -> bool:
        return self.store.is_registered(user_id, event_id)

    async def list_active_spans(self, user_id: str) -> List[BookedSpan]:
        spans = []
        for r in sorted(self.store.active(), key=lambda r: r.created_at):
            if r.user_id != user_id:
                continue
            event = self.store.event_of(r)
            spans.append(
                BookedSpan(
                    event_id=event.id,
                    label=event.label,
                    arrival_time=self.store.arrivals[r.arrival_id].arrival_time,
                    end_time=event.end_time,
                )
            )
        return spans

    async def create(self, *, reservation_id: str, user_id: str, arrival_id: str) -> Reservation:
        await self.store.pause()
        reservation = Reservation(
            id=reservation_id,
            user_id=user_id,
            arrival_id=arrival_id,
            is_canceled=False,
            created_at=self.store.stamp(),
        )
        self.store.reservations[reservation_id] = reservation
        return reservation

    async def cancel_for_event(self, user_id: str, event_id: str) -> int:
        canceled = 0
        for r in self.store.active():
            if r.user_id == user_id and self.store.event_of(r).id == event_id:
                r.is_canceled = True
                canceled += 1
        return canceled

    async def delete_for_event(self, event_id: str) -> int:
        doomed = [r.id for r in self.store.reservations.values() if self.store.event_of(r).id == event_id]
        for reservation_id in doomed:
            del self.store.reservations[reservation_id]
        return len(doomed)

    async def list_history(self, user_id: str) -> List[ReservationHistoryEntry]:
        mine = [r for r in self.store.reservations.values() if r.user_id == user_id]
        mine.sort(key=lambda r: r.created_at, reverse=True)
        entries = []
        for r in mine:
            event = self.store.event_of(r)
            summary = self.store.summary(user_id, event)
            entries.append(
                ReservationHistoryEntry(reservation=r, event=event, filled=summary.filled, capacity=summary.capacity)
            )
        return entries


@dataclass
class Repos:
    users: FakeUserRepository
    events: FakeEventRepository
    arrivals: FakeArrivalRepository
    reservations: FakeReservationRepository


@dataclass(frozen=True)
class SignedIn:
    user_id: str
    token: str


@dataclass
class Accounts:
    gate: SessionCredentialGate
    created: List[SignedIn] = field(default_factory=list)

    async def sign_in(self, username: str) -> SignedIn:
        user = await self.gate.register(
            username=username,
            picture=f"https://img.test/{username}.png",
            email=f"{username}@example.com",
            password="pw",
        )
        await self.gate.issue_session_token(user.email)
        signed_in = SignedIn(user_id=user.id, token=str(user.session_token))
        self.created.append(signed_in)
        return signed_in


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TIMEZONE", raising=False)
    monkeypatch.setenv("AUTH_SECRET", TEST_SECRET)
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(auth_secret=TEST_SECRET)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def repos(store: MemoryStore) -> Repos:
    return Repos(
        users=FakeUserRepository(store),
        events=FakeEventRepository(store),
        arrivals=FakeArrivalRepository(store),
        reservations=FakeReservationRepository(store),
    )


@pytest.fixture
def gate(repos: Repos, settings: Settings) -> SessionCredentialGate:
    return SessionCredentialGate(repos.users, settings)


@pytest.fixture
def accounts(gate: SessionCredentialGate) -> Accounts:
    return Accounts(gate=gate)
