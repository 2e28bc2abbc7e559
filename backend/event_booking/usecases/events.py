from datetime import datetime
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from ..domain.credentials import CredentialGate
from ..domain.errors import EVENT_NOT_FOUND, InvalidRequestError, raise_for
from ..domain.repositories import ArrivalRepository, EventRepository, ReservationRepository
from ..domain.services import DeletionSnapshot, EventDraft, missing, validate_create_event, validate_delete_event
from ..domain.views import ArrivalSummary, Attendee, EventScope, EventSummary
from ..models import Arrival, Event
from ..utils.time import service_zone, utc_now_naive
from . import lifecycle
from .auth import require_session

SEARCH_LIMIT = 5
UNRECOGNIZED_FILTER = "Unrecognized filter"


def parse_scope(value: str | None) -> EventScope:
    if value is None or value == "":
        return EventScope.ALL
    try:
        return EventScope(value.lower())
    except ValueError:
        raise InvalidRequestError(UNRECOGNIZED_FILTER) from None


async def list_events(
    gate: CredentialGate,
    event_repo: EventRepository,
    *,
    user_id: str | None,
    token: str | None,
    scope: str | None = None,
) -> List[EventSummary]:
    """Upcoming events ordered by start time, narrowed by ``scope``."""
    user_id = await require_session(gate, user_id=user_id, token=token)
    resolved = parse_scope(scope)
    return await event_repo.list_summaries(user_id, now=utc_now_naive(), scope=resolved)


async def get_event(
    gate: CredentialGate,
    event_repo: EventRepository,
    *,
    user_id: str | None,
    token: str | None,
    event_id: str | None,
) -> Tuple[EventSummary, List[Attendee]]:
    user_id = await require_session(gate, user_id=user_id, token=token, required=(event_id,))
    summary = await event_repo.get_summary(user_id, str(event_id))
    if summary is None:
        raise InvalidRequestError(EVENT_NOT_FOUND)
    attendees = await event_repo.list_attendees(summary.event.id)
    return summary, attendees


async def get_arrivals(
    event_repo: EventRepository,
    arrival_repo: ArrivalRepository,
    *,
    event_id: str,
) -> List[ArrivalSummary]:
    if await event_repo.get(event_id) is None:
        raise InvalidRequestError(EVENT_NOT_FOUND)
    return await arrival_repo.list_for_event(event_id)


async def search_events(event_repo: EventRepository, *, term: str | None) -> List[Event]:
    if missing(term) or not str(term).strip():
        return []
    return await event_repo.search(str(term).strip(), now=utc_now_naive(), limit=SEARCH_LIMIT)


async def list_created_events(
    gate: CredentialGate,
    event_repo: EventRepository,
    *,
    user_id: str | None,
    token: str | None,
) -> List[EventSummary]:
    user_id = await require_session(gate, user_id=user_id, token=token)
    return await event_repo.list_created_by(user_id)


async def create_event(
    gate: CredentialGate,
    event_repo: EventRepository,
    arrival_repo: ArrivalRepository,
    *,
    user_id: str | None,
    token: str | None,
    draft: EventDraft,
    now: Optional[datetime] = None,
    zone: Optional[ZoneInfo] = None,
) -> Tuple[Event, List[Arrival]]:
    zone = zone or service_zone()
    has_credentials = not missing(user_id, token)
    authenticated = has_credentials and await gate.verify_session_token(str(user_id), str(token))
    raise_for(
        validate_create_event(
            draft,
            has_credentials=has_credentials,
            authenticated=authenticated,
            now=now or utc_now_naive(),
            zone=zone,
        )
    )
    return await lifecycle.create_event(
        event_repo,
        arrival_repo,
        owner_id=str(user_id),
        new_event=lifecycle.NewEvent.from_draft(draft, zone),
    )


async def delete_event(
    gate: CredentialGate,
    event_repo: EventRepository,
    arrival_repo: ArrivalRepository,
    res_repo: ReservationRepository,
    *,
    user_id: str | None,
    token: str | None,
    event_id: str | None,
    now: Optional[datetime] = None,
) -> Event:
    user_id = await require_session(gate, user_id=user_id, token=token, required=(event_id,))
    now = now or utc_now_naive()
    event = await event_repo.get(str(event_id))
    if event is None:
        raise InvalidRequestError(EVENT_NOT_FOUND)
    snapshot = DeletionSnapshot(requester_id=user_id, owner_id=event.user_id, event_ended=event.end_time < now)
    raise_for(validate_delete_event(snapshot))
    await lifecycle.delete_event(event_repo, arrival_repo, res_repo, event_id=event.id)
    return event
