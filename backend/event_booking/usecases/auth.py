from typing import Any, Iterable

from ..domain.credentials import CredentialGate
from ..domain.errors import INVALID_SESSION, MISSING_PARAMETERS, InvalidRequestError, raise_for
from ..domain.services import first_failure, missing, session_rules
from ..models import User


async def require_session(
    gate: CredentialGate,
    *,
    user_id: str | None,
    token: str | None,
    required: Iterable[Any] = (),
) -> str:
    """Check that the inputs are present and the session is valid; return the user id."""
    has_required = not missing(user_id, token, *required)
    authenticated = has_required and await gate.verify_session_token(str(user_id), str(token))
    raise_for(first_failure(session_rules(has_required=has_required, authenticated=authenticated)))
    return str(user_id)


async def sign_up(
    gate: CredentialGate,
    *,
    username: str | None,
    picture: str | None,
    email: str | None,
    password: str | None,
) -> User:
    if missing(username, picture, email, password):
        raise InvalidRequestError(MISSING_PARAMETERS)
    if await gate.email_in_use(str(email)):
        raise InvalidRequestError(f"'{email}' is already in use")
    return await gate.register(
        username=str(username),
        picture=str(picture),
        email=str(email),
        password=str(password),
    )


async def log_in(gate: CredentialGate, *, email: str | None, password: str | None) -> User:
    has_required = not missing(email, password)
    authenticated = has_required and await gate.verify_password(str(email), str(password))
    raise_for(first_failure(session_rules(has_required=has_required, authenticated=authenticated)))
    return await gate.issue_session_token(str(email))


async def validate_session(gate: CredentialGate, *, user_id: str | None, token: str | None) -> User:
    if missing(user_id, token):
        raise InvalidRequestError(MISSING_PARAMETERS)
    user = await gate.session_user(str(user_id), str(token))
    if user is None:
        raise InvalidRequestError(INVALID_SESSION)
    return user


async def log_out(gate: CredentialGate, *, user_id: str | None, token: str | None) -> None:
    """Invalidate the session if the token is valid; succeed quietly otherwise."""
    if missing(user_id):
        raise InvalidRequestError(MISSING_PARAMETERS)
    if token and await gate.verify_session_token(str(user_id), token):
        await gate.invalidate_session_token(str(user_id))
