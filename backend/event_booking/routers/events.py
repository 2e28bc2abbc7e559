from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import Credentials, get_credential_gate, get_credentials, get_session, http_error_for
from ..domain.credentials import CredentialGate
from ..domain.errors import INTERNAL_ERROR, DomainError
from ..infrastructure.repositories import (
    SqlAlchemyArrivalRepository,
    SqlAlchemyEventRepository,
    SqlAlchemyReservationRepository,
)
from ..schemas import (
    ArrivalRead,
    EventCreate,
    EventCreated,
    EventDetailRead,
    EventSummaryRead,
    MessageRead,
    SearchResultRead,
)
from ..usecases import events as event_usecase
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=List[EventSummaryRead])
async def list_events(
    scope: Optional[str] = Query(default=None, alias="filter"),
    session: AsyncSession = Depends(get_session),
    credentials: Credentials = Depends(get_credentials),
    gate: CredentialGate = Depends(get_credential_gate),
) -> list[EventSummaryRead]:
    event_repo = SqlAlchemyEventRepository(session)
    try:
        summaries = await event_usecase.list_events(
            gate,
            event_repo,
            user_id=credentials.user_id,
            token=credentials.token,
            scope=scope,
        )
    except DomainError as exc:
        raise http_error_for(exc) from None
    return [EventSummaryRead.from_summary(s) for s in summaries]


@router.get("/search", response_model=List[SearchResultRead])
async def search_events(
    query: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> list[SearchResultRead]:
    event_repo = SqlAlchemyEventRepository(session)
    events = await event_usecase.search_events(event_repo, term=query)
    return [SearchResultRead.from_event(e) for e in events]


@router.get("/mine", response_model=List[EventSummaryRead])
async def list_created_events(
    session: AsyncSession = Depends(get_session),
    credentials: Credentials = Depends(get_credentials),
    gate: CredentialGate = Depends(get_credential_gate),
) -> list[EventSummaryRead]:
    event_repo = SqlAlchemyEventRepository(session)
    try:
        summaries = await event_usecase.list_created_events(
            gate,
            event_repo,
            user_id=credentials.user_id,
            token=credentials.token,
        )
    except DomainError as exc:
        raise http_error_for(exc) from None
    return [EventSummaryRead.from_summary(s) for s in summaries]


@router.get("/{event_id}", response_model=EventDetailRead)
async def get_event(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    credentials: Credentials = Depends(get_credentials),
    gate: CredentialGate = Depends(get_credential_gate),
) -> EventDetailRead:
    event_repo = SqlAlchemyEventRepository(session)
    try:
        summary, attendees = await event_usecase.get_event(
            gate,
            event_repo,
            user_id=credentials.user_id,
            token=credentials.token,
            event_id=event_id,
        )
    except DomainError as exc:
        raise http_error_for(exc) from None
    return EventDetailRead.from_detail(summary, attendees)


@router.get("/{event_id}/arrivals", response_model=List[ArrivalRead])
async def get_arrivals(
    event_id: str,
    session: AsyncSession = Depends(get_session),
) -> list[ArrivalRead]:
    event_repo = SqlAlchemyEventRepository(session)
    arrival_repo = SqlAlchemyArrivalRepository(session)
    try:
        arrivals = await event_usecase.get_arrivals(event_repo, arrival_repo, event_id=event_id)
    except DomainError as exc:
        raise http_error_for(exc) from None
    return [ArrivalRead.from_summary(a) for a in arrivals]


@router.post("", response_model=EventCreated, status_code=status.HTTP_201_CREATED)
async def create_event(
    payload: EventCreate,
    session: AsyncSession = Depends(get_session),
    credentials: Credentials = Depends(get_credentials),
    gate: CredentialGate = Depends(get_credential_gate),
) -> EventCreated:
    event_repo = SqlAlchemyEventRepository(session)
    arrival_repo = SqlAlchemyArrivalRepository(session)
    async with session.begin():
        try:
            event, arrivals = await event_usecase.create_event(
                gate,
                event_repo,
                arrival_repo,
                user_id=credentials.user_id,
                token=credentials.token,
                draft=payload.to_draft(),
            )
        except DomainError as exc:
            raise http_error_for(exc) from None

        try:
            emit_audit_log(
                action="event.created",
                initiator="user",
                user_id=event.user_id,
                event_id=event.id,
                extra={"arrival_ids": [a.id for a in arrivals]},
            )
        except RuntimeError:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=INTERNAL_ERROR)

    return EventCreated(event_id=event.id, arrival_ids=[a.id for a in arrivals])


@router.delete("/{event_id}", response_model=MessageRead)
async def delete_event(
    event_id: str,
    session: AsyncSession = Depends(get_session),
    credentials: Credentials = Depends(get_credentials),
    gate: CredentialGate = Depends(get_credential_gate),
) -> MessageRead:
    event_repo = SqlAlchemyEventRepository(session)
    arrival_repo = SqlAlchemyArrivalRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    async with session.begin():
        try:
            event = await event_usecase.delete_event(
                gate,
                event_repo,
                arrival_repo,
                res_repo,
                user_id=credentials.user_id,
                token=credentials.token,
                event_id=event_id,
            )
        except DomainError as exc:
            raise http_error_for(exc) from None

        try:
            emit_audit_log(action="event.deleted", initiator="user", user_id=event.user_id, event_id=event.id)
        except RuntimeError:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=INTERNAL_ERROR)

    return MessageRead(message="Successfully deleted event!")
