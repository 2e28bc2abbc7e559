from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import async_session
from .domain.errors import AccessDeniedError, DomainError
from .infrastructure.credential_gate import SessionCredentialGate
from .infrastructure.repositories import SqlAlchemyUserRepository


@dataclass(frozen=True)
class Credentials:
    """Identity as presented by the caller; checked later by the use case."""

    user_id: Optional[str]
    token: Optional[str]


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


async def get_credentials(
    x_user_id: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> Credentials:
    token: Optional[str] = None
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            token = value.strip()
    user_id = x_user_id.strip() if x_user_id else None
    return Credentials(user_id=user_id or None, token=token)


async def get_credential_gate(session: AsyncSession = Depends(get_session)) -> SessionCredentialGate:
    return SessionCredentialGate(SqlAlchemyUserRepository(session), get_settings())


def http_error_for(exc: DomainError) -> HTTPException:
    if isinstance(exc, AccessDeniedError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
