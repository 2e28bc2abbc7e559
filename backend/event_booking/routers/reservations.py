from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import Credentials, get_credential_gate, get_credentials, get_session, http_error_for
from ..domain.credentials import CredentialGate
from ..domain.errors import INTERNAL_ERROR, DomainError
from ..infrastructure.repositories import (
    SqlAlchemyArrivalRepository,
    SqlAlchemyEventRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemyUserRepository,
)
from ..schemas import MessageRead, ReservationCreate, ReservationCreated, ReservationHistoryRead, WithdrawRequest
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.locks import arrival_locks, user_locks

router = APIRouter(prefix="", tags=["reservations"])


@router.post("/reservations", response_model=ReservationCreated, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
    credentials: Credentials = Depends(get_credentials),
    gate: CredentialGate = Depends(get_credential_gate),
) -> ReservationCreated:
    user_repo = SqlAlchemyUserRepository(session)
    arrival_repo = SqlAlchemyArrivalRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    # The locks must outlive the commit, otherwise a waiter can read stale occupancy.
    async with user_locks.hold(credentials.user_id or ""), arrival_locks.hold(payload.arrival_id or ""):
        async with session.begin():
            try:
                reservation = await reservation_usecase.reserve(
                    gate,
                    user_repo,
                    arrival_repo,
                    res_repo,
                    user_id=credentials.user_id,
                    token=credentials.token,
                    arrival_id=payload.arrival_id,
                )
            except DomainError as exc:
                raise http_error_for(exc) from None

            try:
                emit_audit_log(
                    action="reservation.created",
                    initiator="user",
                    user_id=reservation.user_id,
                    arrival_id=reservation.arrival_id,
                    reservation_id=reservation.id,
                )
            except RuntimeError:
                raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=INTERNAL_ERROR)

    return ReservationCreated.for_id(reservation.id)


@router.post("/reservations/withdraw", response_model=MessageRead)
async def withdraw_reservation(
    payload: WithdrawRequest,
    session: AsyncSession = Depends(get_session),
    credentials: Credentials = Depends(get_credentials),
    gate: CredentialGate = Depends(get_credential_gate),
) -> MessageRead:
    event_repo = SqlAlchemyEventRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    async with session.begin():
        try:
            canceled = await reservation_usecase.withdraw(
                gate,
                event_repo,
                res_repo,
                user_id=credentials.user_id,
                token=credentials.token,
                event_id=payload.event_id,
            )
        except DomainError as exc:
            raise http_error_for(exc) from None

        try:
            emit_audit_log(
                action="reservation.withdrawn",
                initiator="user",
                user_id=credentials.user_id,
                event_id=payload.event_id,
                extra={"canceled": canceled},
            )
        except RuntimeError:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=INTERNAL_ERROR)

    return MessageRead(message="Successfully withdrawn from event!")


@router.get("/me/reservations", response_model=List[ReservationHistoryRead])
async def list_my_reservations(
    session: AsyncSession = Depends(get_session),
    credentials: Credentials = Depends(get_credentials),
    gate: CredentialGate = Depends(get_credential_gate),
) -> list[ReservationHistoryRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        entries = await reservation_usecase.list_user_reservations(
            gate,
            res_repo,
            user_id=credentials.user_id,
            token=credentials.token,
        )
    except DomainError as exc:
        raise http_error_for(exc) from None
    return [ReservationHistoryRead.from_entry(e) for e in entries]
