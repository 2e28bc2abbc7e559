from __future__ import annotations

from typing import Protocol

from ..models import User


class CredentialGate(Protocol):
    """Identity checks the engine relies on before mutating state."""

    async def verify_password(self, email: str, password: str) -> bool: ...

    async def verify_session_token(self, user_id: str, token: str) -> bool: ...

    async def session_user(self, user_id: str, token: str) -> User | None: ...

    async def email_in_use(self, email: str) -> bool: ...

    async def register(self, *, username: str, picture: str, email: str, password: str) -> User: ...

    async def issue_session_token(self, email: str) -> User: ...

    async def invalidate_session_token(self, user_id: str) -> None: ...
