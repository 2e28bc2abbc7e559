from __future__ import annotations

from datetime import timedelta

from ..config import Settings
from ..domain.credentials import CredentialGate
from ..domain.repositories import UserRepository
from ..models import User
from ..utils.auth import check_password, create_session_token, decode_session_token, hash_password, tokens_match
from ..utils.ids import new_identifier


class SessionCredentialGate(CredentialGate):
    """Password and session-token checks against the users table.

    A session is valid only while the presented token equals the stored one
    and still carries a valid signature for the same user.
    """

    def __init__(self, users: UserRepository, settings: Settings) -> None:
        self.users = users
        self.settings = settings

    async def verify_password(self, email: str, password: str) -> bool:
        user = await self.users.get_by_email(email)
        return user is not None and check_password(password, user.password)

    async def verify_session_token(self, user_id: str, token: str) -> bool:
        return await self.session_user(user_id, token) is not None

    async def session_user(self, user_id: str, token: str) -> User | None:
        """Return the user the session belongs to, or None when it is not valid."""
        user = await self.users.get(user_id)
        if user is None or not tokens_match(user.session_token, token):
            return None
        try:
            subject = decode_session_token(
                token,
                secret=self.settings.auth_secret,
                algorithms=[self.settings.auth_algorithm],
            )
        except ValueError:
            return None
        return user if subject == user.id else None

    async def email_in_use(self, email: str) -> bool:
        return await self.users.get_by_email(email) is not None

    async def register(self, *, username: str, picture: str, email: str, password: str) -> User:
        return await self.users.create(
            user_id=new_identifier(),
            username=username,
            picture=picture,
            email=email,
            password=hash_password(password),
        )

    async def issue_session_token(self, email: str) -> User:
        user = await self.users.get_by_email(email)
        if user is None:
            raise LookupError(f"no user with email {email!r}")
        token = create_session_token(
            user_id=user.id,
            secret=self.settings.auth_secret,
            algorithm=self.settings.auth_algorithm,
            expires_delta=timedelta(minutes=self.settings.session_ttl_minutes),
        )
        return await self.users.set_session_token(user, token)

    async def invalidate_session_token(self, user_id: str) -> None:
        user = await self.users.get(user_id)
        if user is not None:
            await self.users.set_session_token(user, None)
