from datetime import datetime
from typing import List, Optional

from ..domain.capacity import Occupancy
from ..domain.conflicts import BookedSpan, find_conflict
from ..domain.credentials import CredentialGate
from ..domain.errors import InvalidRequestError, raise_for
from ..domain.repositories import ArrivalRepository, EventRepository, ReservationRepository, UserRepository
from ..domain.services import (
    ARRIVAL_NOT_FOUND,
    ReservationSnapshot,
    WithdrawalSnapshot,
    missing,
    validate_reservation,
    validate_withdrawal,
)
from ..domain.views import ReservationHistoryEntry
from ..models import Arrival, Reservation
from ..utils.ids import new_identifier
from ..utils.time import utc_now_naive
from .auth import require_session


async def reserve(
    gate: CredentialGate,
    user_repo: UserRepository,
    arrival_repo: ArrivalRepository,
    res_repo: ReservationRepository,
    *,
    user_id: str | None,
    token: str | None,
    arrival_id: str | None,
    now: Optional[datetime] = None,
) -> Reservation:
    """
    Book one arrival option for the user.

    Must run inside a single transaction. The user row and the arrival row are
    locked by the first statements of that transaction, before the session
    check and before occupancy, duplicates and conflicts are read. Under
    REPEATABLE READ the first plain read fixes the snapshot, so every check
    then sees what earlier holders of those locks committed.
    """
    arrival: Optional[Arrival] = None
    if not missing(user_id, token, arrival_id):
        await user_repo.get_for_update(str(user_id))
        arrival = await arrival_repo.get_for_update(str(arrival_id))

    user_id = await require_session(gate, user_id=user_id, token=token, required=(arrival_id,))
    now = now or utc_now_naive()
    if arrival is None:
        raise InvalidRequestError(ARRIVAL_NOT_FOUND)

    snapshot = await _reservation_snapshot(arrival_repo, res_repo, user_id=user_id, arrival=arrival, now=now)
    raise_for(validate_reservation(snapshot))
    return await res_repo.create(reservation_id=new_identifier(), user_id=user_id, arrival_id=arrival.id)


async def _reservation_snapshot(
    arrival_repo: ArrivalRepository,
    res_repo: ReservationRepository,
    *,
    user_id: str,
    arrival: Arrival,
    now: datetime,
) -> ReservationSnapshot:
    event = arrival.event
    occupancy = await arrival_repo.occupancy(arrival.id) or Occupancy(filled=0, capacity=arrival.capacity)
    candidate = BookedSpan(
        event_id=event.id,
        label=event.label,
        arrival_time=arrival.arrival_time,
        end_time=event.end_time,
    )
    return ReservationSnapshot(
        arrival_exists=True,
        event_ended=event.end_time < now,
        already_registered=await res_repo.has_active_for_event(user_id, event.id),
        occupancy=occupancy,
        conflicting_event=find_conflict(candidate, await res_repo.list_active_spans(user_id)),
    )


async def withdraw(
    gate: CredentialGate,
    event_repo: EventRepository,
    res_repo: ReservationRepository,
    *,
    user_id: str | None,
    token: str | None,
    event_id: str | None,
    now: Optional[datetime] = None,
) -> int:
    """Cancel every active reservation the user holds for the event; return how many."""
    user_id = await require_session(gate, user_id=user_id, token=token, required=(event_id,))
    now = now or utc_now_naive()

    event = await event_repo.get(str(event_id))
    if event is None:
        snapshot = WithdrawalSnapshot(event_exists=False)
    else:
        snapshot = WithdrawalSnapshot(
            event_exists=True,
            is_registered=await res_repo.has_active_for_event(user_id, event.id),
            event_ended=event.end_time < now,
        )
    raise_for(validate_withdrawal(snapshot))
    return await res_repo.cancel_for_event(user_id, str(event_id))


async def list_user_reservations(
    gate: CredentialGate,
    res_repo: ReservationRepository,
    *,
    user_id: str | None,
    token: str | None,
) -> List[ReservationHistoryEntry]:
    user_id = await require_session(gate, user_id=user_id, token=token)
    return await res_repo.list_history(user_id)
