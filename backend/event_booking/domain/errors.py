MISSING_PARAMETERS = "Missing required parameters"
ACCESS_DENIED = "Access denied. Please sign in again"
INVALID_SESSION = "Invalid session token"
EVENT_NOT_FOUND = "Event does not exist"
INTERNAL_ERROR = "Something went wrong. Please try again"


class DomainError(Exception):
    """Expected rejection carrying a message that is safe to show to the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(DomainError):
    """Malformed input, business-rule violation or unknown entity."""


class AccessDeniedError(DomainError):
    """Credential or session check failed."""

    def __init__(self, message: str = ACCESS_DENIED) -> None:
        super().__init__(message)


def raise_for(message: str | None) -> None:
    """Turn a validator outcome into the matching error; no-op on success."""
    if message is None:
        return
    if message == ACCESS_DENIED:
        raise AccessDeniedError(message)
    raise InvalidRequestError(message)
