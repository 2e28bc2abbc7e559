from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Tuple, cast

from sqlalchemy import Select, case, delete, false, func, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload
from sqlalchemy.sql.expression import Subquery

from ..domain.capacity import UNLIMITED, Occupancy
from ..domain.conflicts import BookedSpan
from ..domain.repositories import ArrivalRepository, EventRepository, ReservationRepository, UserRepository
from ..domain.views import ArrivalSummary, Attendee, EventScope, EventSummary, ReservationHistoryEntry
from ..models import Arrival, Event, Reservation, User
from ..utils.time import utc_now_naive

_ACTIVE = Reservation.is_canceled == false()


def _filled_by_event() -> Subquery:
    """Active reservation count per event."""
    return (
        select(Arrival.event_id.label("event_id"), func.count(Reservation.id).label("filled"))
        .join(Reservation, Reservation.arrival_id == Arrival.id)
        .where(_ACTIVE)
        .group_by(Arrival.event_id)
        .subquery("filled_by_event")
    )


def _capacity_by_event() -> Subquery:
    """Effective capacity per event: UNLIMITED if any slot is, else the sum."""
    unlimited_slots = func.sum(case((Arrival.capacity < 0, 1), else_=0))
    return (
        select(
            Arrival.event_id.label("event_id"),
            case((unlimited_slots > 0, UNLIMITED), else_=func.sum(Arrival.capacity)).label("capacity"),
        )
        .group_by(Arrival.event_id)
        .subquery("capacity_by_event")
    )


def _registered_events(user_id: str) -> Subquery:
    return (
        select(Arrival.event_id.label("event_id"))
        .join(Reservation, Reservation.arrival_id == Arrival.id)
        .where(Reservation.user_id == user_id, _ACTIVE)
        .distinct()
        .subquery("registered_events")
    )


def _as_int(value: Any) -> int:
    return int(value) if value is not None else 0


class SqlAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: str) -> User | None:
        return await self.session.scalar(select(User).where(User.id == user_id))

    async def get_for_update(self, user_id: str) -> User | None:
        return await self.session.scalar(select(User).where(User.id == user_id).with_for_update())

    async def get_by_email(self, email: str) -> User | None:
        return await self.session.scalar(select(User).where(User.email == email))

    async def create(
        self,
        *,
        user_id: str,
        username: str,
        picture: str,
        email: str,
        password: str,
    ) -> User:
        user = User(
            id=user_id,
            username=username,
            picture=picture,
            email=email,
            password=password,
            session_token=None,
        )
        self.session.add(user)
        await self.session.flush()
        return user

    async def set_session_token(self, user: User, token: str | None) -> User:
        user.session_token = token
        self.session.add(user)
        await self.session.flush()
        return user


class SqlAlchemyEventRepository(EventRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, event_id: str) -> Event | None:
        return await self.session.scalar(select(Event).where(Event.id == event_id))

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
            created_at=utc_now_naive(),
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def delete(self, event_id: str) -> None:
        await self.session.execute(
            delete(Event).where(Event.id == event_id).execution_options(synchronize_session=False)
        )

    async def occupancy(self, event_id: str) -> Occupancy | None:
        capacities = list(await self.session.scalars(select(Arrival.capacity).where(Arrival.event_id == event_id)))
        if not capacities:
            return None
        filled = await self.session.scalar(
            select(func.count(Reservation.id))
            .join(Arrival, Reservation.arrival_id == Arrival.id)
            .where(Arrival.event_id == event_id, _ACTIVE)
        )
        return Occupancy.for_event(_as_int(filled), capacities)

    def _summaries(self, user_id: str) -> Tuple[Select[Tuple[Event, Any, Any, Any]], Any, Any, Any]:
        filled = _filled_by_event()
        capacity = _capacity_by_event()
        registered = _registered_events(user_id)
        filled_col = func.coalesce(filled.c.filled, 0)
        stmt: Select[Tuple[Event, Any, Any, Any]] = (
            select(Event, filled_col.label("filled"), capacity.c.capacity, registered.c.event_id)
            .outerjoin(filled, filled.c.event_id == Event.id)
            .outerjoin(capacity, capacity.c.event_id == Event.id)
            .outerjoin(registered, registered.c.event_id == Event.id)
        )
        return stmt, filled_col, capacity.c.capacity, registered.c.event_id

    @staticmethod
    def _to_summary(row: Any) -> EventSummary:
        event, filled, capacity, registered_id = row
        return EventSummary(
            event=event,
            filled=_as_int(filled),
            capacity=_as_int(capacity),
            is_registered=registered_id is not None,
        )

    async def list_summaries(self, user_id: str, *, now: datetime, scope: EventScope) -> List[EventSummary]:
        stmt, filled_col, capacity_col, registered_col = self._summaries(user_id)
        stmt = stmt.where(Event.end_time > now)
        if scope == EventScope.OPEN:
            stmt = stmt.where(filled_col != capacity_col)
        elif scope == EventScope.UNREGISTERED:
            stmt = stmt.where(registered_col.is_(None))
        rows = await self.session.execute(stmt.order_by(Event.start_time))
        return [self._to_summary(row) for row in rows.all()]

    async def list_created_by(self, user_id: str) -> List[EventSummary]:
        stmt, _, _, _ = self._summaries(user_id)
        stmt = stmt.where(Event.user_id == user_id).order_by(Event.created_at.desc())
        rows = await self.session.execute(stmt)
        return [self._to_summary(row) for row in rows.all()]

    async def get_summary(self, user_id: str, event_id: str) -> Optional[EventSummary]:
        stmt, _, _, _ = self._summaries(user_id)
        row = (await self.session.execute(stmt.where(Event.id == event_id))).first()
        return self._to_summary(row) if row is not None else None

    async def search(self, term: str, *, now: datetime, limit: int) -> List[Event]:
        label = Event.name + " @ " + Event.location
        stmt = (
            select(Event)
            .where(label.contains(term, autoescape=True), Event.end_time > now)
            .order_by(Event.start_time)
            .limit(limit)
        )
        return list(await self.session.scalars(stmt))

    async def list_attendees(self, event_id: str) -> List[Attendee]:
        stmt = (
            select(User.username, User.picture, Arrival.arrival_time)
            .join(Reservation, Reservation.user_id == User.id)
            .join(Arrival, Reservation.arrival_id == Arrival.id)
            .where(Arrival.event_id == event_id, _ACTIVE)
            .order_by(User.username)
        )
        rows = await self.session.execute(stmt)
        return [Attendee(username=u, picture=p, arrival_time=t) for u, p, t in rows.all()]


class SqlAlchemyArrivalRepository(ArrivalRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_for_update(self, arrival_id: str) -> Arrival | None:
        stmt = (
            select(Arrival)
            .options(joinedload(Arrival.event, innerjoin=True))
            .where(Arrival.id == arrival_id)
            .with_for_update()
        )
        return await self.session.scalar(stmt)

    async def create(
        self,
        *,
        arrival_id: str,
        event_id: str,
        arrival_time: datetime,
        capacity: int,
    ) -> Arrival:
        arrival = Arrival(id=arrival_id, event_id=event_id, arrival_time=arrival_time, capacity=capacity)
        self.session.add(arrival)
        await self.session.flush()
        return arrival

    async def occupancy(self, arrival_id: str) -> Occupancy | None:
        stmt = (
            select(Arrival.capacity, func.count(Reservation.id))
            .outerjoin(Reservation, (Reservation.arrival_id == Arrival.id) & _ACTIVE)
            .where(Arrival.id == arrival_id)
            .group_by(Arrival.id, Arrival.capacity)
        )
        row = (await self.session.execute(stmt)).first()
        if row is None:
            return None
        capacity, filled = row
        return Occupancy(filled=_as_int(filled), capacity=int(capacity))

    async def list_for_event(self, event_id: str) -> List[ArrivalSummary]:
        stmt: Select[Tuple[Arrival, Any]] = (
            select(Arrival, func.count(Reservation.id).label("filled"))
            .outerjoin(Reservation, (Reservation.arrival_id == Arrival.id) & _ACTIVE)
            .where(Arrival.event_id == event_id)
            .group_by(Arrival.id)
            .order_by(Arrival.arrival_time)
        )
        rows = await self.session.execute(stmt)
        return [ArrivalSummary(arrival=arrival, filled=_as_int(filled)) for arrival, filled in rows.all()]

    async def delete_for_event(self, event_id: str) -> int:
        result = await self.session.execute(
            delete(Arrival).where(Arrival.event_id == event_id).execution_options(synchronize_session=False)
        )
        return cast("CursorResult[Any]", result).rowcount


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def has_active_for_event(self, user_id: str, event_id: str) -> bool:
        stmt = (
            select(Reservation.id)
            .join(Arrival, Reservation.arrival_id == Arrival.id)
            .where(Reservation.user_id == user_id, Arrival.event_id == event_id, _ACTIVE)
            .limit(1)
        )
        return await self.session.scalar(stmt) is not None

    async def list_active_spans(self, user_id: str) -> List[BookedSpan]:
        stmt: Select[Tuple[datetime, Event]] = (
            select(Arrival.arrival_time, Event)
            .select_from(Reservation)
            .join(Arrival, Reservation.arrival_id == Arrival.id)
            .join(Event, Arrival.event_id == Event.id)
            .where(Reservation.user_id == user_id, _ACTIVE)
            .order_by(Reservation.created_at)
        )
        rows = await self.session.execute(stmt)
        return [
            BookedSpan(event_id=event.id, label=event.label, arrival_time=arrival_time, end_time=event.end_time)
            for arrival_time, event in rows.all()
        ]

    async def create(self, *, reservation_id: str, user_id: str, arrival_id: str) -> Reservation:
        reservation = Reservation(
            id=reservation_id,
            user_id=user_id,
            arrival_id=arrival_id,
            is_canceled=False,
            created_at=utc_now_naive(),
        )
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def cancel_for_event(self, user_id: str, event_id: str) -> int:
        stmt = (
            update(Reservation)
            .where(
                Reservation.user_id == user_id,
                Reservation.arrival_id.in_(select(Arrival.id).where(Arrival.event_id == event_id)),
                _ACTIVE,
            )
            .values(is_canceled=True)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return cast("CursorResult[Any]", result).rowcount

    async def delete_for_event(self, event_id: str) -> int:
        stmt = (
            delete(Reservation)
            .where(Reservation.arrival_id.in_(select(Arrival.id).where(Arrival.event_id == event_id)))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return cast("CursorResult[Any]", result).rowcount

    async def list_history(self, user_id: str) -> List[ReservationHistoryEntry]:
        filled = _filled_by_event()
        capacity = _capacity_by_event()
        stmt: Select[Tuple[Reservation, Event, Any, Any]] = (
            select(Reservation, Event, func.coalesce(filled.c.filled, 0), capacity.c.capacity)
            .select_from(Reservation)
            .join(Arrival, Reservation.arrival_id == Arrival.id)
            .join(Event, Arrival.event_id == Event.id)
            .outerjoin(filled, filled.c.event_id == Event.id)
            .outerjoin(capacity, capacity.c.event_id == Event.id)
            .where(Reservation.user_id == user_id)
            .order_by(Reservation.created_at.desc())
        )
        rows = await self.session.execute(stmt)
        return [
            ReservationHistoryEntry(
                reservation=reservation,
                event=event,
                filled=_as_int(filled_count),
                capacity=_as_int(total),
            )
            for reservation, event, filled_count, total in rows.all()
        ]
