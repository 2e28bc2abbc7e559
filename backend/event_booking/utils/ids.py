import secrets

from ..models import ID_LENGTH


def new_identifier() -> str:
    """Random decimal identifier of ``ID_LENGTH`` digits."""
    return "".join(str(secrets.randbelow(10)) for _ in range(ID_LENGTH))


def format_reservation_id(reservation_id: str) -> str:
    """Group an identifier in blocks of four: ``1234-5678-9012-3456``."""
    return "-".join(reservation_id[i : i + 4] for i in range(0, len(reservation_id), 4))
