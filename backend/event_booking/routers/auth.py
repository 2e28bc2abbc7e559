from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import Credentials, get_credential_gate, get_credentials, get_session, http_error_for
from ..domain.credentials import CredentialGate
from ..domain.errors import DomainError
from ..schemas import LoginRequest, MessageRead, SessionRead, SignUpRequest
from ..usecases import auth as auth_usecase

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def sign_up(
    payload: SignUpRequest,
    session: AsyncSession = Depends(get_session),
    gate: CredentialGate = Depends(get_credential_gate),
) -> MessageRead:
    async with session.begin():
        try:
            user = await auth_usecase.sign_up(
                gate,
                username=payload.username,
                picture=payload.picture,
                email=payload.email,
                password=payload.password,
            )
        except DomainError as exc:
            raise http_error_for(exc) from None
    return MessageRead(message=f"Successfully created user '{user.username}'!")


@router.post("/login", response_model=SessionRead)
async def log_in(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_session),
    gate: CredentialGate = Depends(get_credential_gate),
) -> SessionRead:
    async with session.begin():
        try:
            user = await auth_usecase.log_in(gate, email=payload.email, password=payload.password)
        except DomainError as exc:
            raise http_error_for(exc) from None
    return SessionRead.from_user(user)


@router.post("/validate", response_model=SessionRead)
async def validate_session(
    credentials: Credentials = Depends(get_credentials),
    gate: CredentialGate = Depends(get_credential_gate),
) -> SessionRead:
    try:
        user = await auth_usecase.validate_session(gate, user_id=credentials.user_id, token=credentials.token)
    except DomainError as exc:
        raise http_error_for(exc) from None
    return SessionRead.from_user(user)


@router.post("/logout", response_model=MessageRead)
async def log_out(
    session: AsyncSession = Depends(get_session),
    credentials: Credentials = Depends(get_credentials),
    gate: CredentialGate = Depends(get_credential_gate),
) -> MessageRead:
    async with session.begin():
        try:
            await auth_usecase.log_out(gate, user_id=credentials.user_id, token=credentials.token)
        except DomainError as exc:
            raise http_error_for(exc) from None
    return MessageRead(message="Successfully logged out!")
