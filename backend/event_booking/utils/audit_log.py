from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "event.created",
    "event.deleted",
    "reservation.created",
    "reservation.withdrawn",
]
AuditInitiator = Literal["user", "system"]


def _json_line_logger(name: str) -> logging.Logger:
    """A logger that writes bare messages to stderr and never reaches the root handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    return logger


_audit_logger = _json_line_logger("audit")


def audit_record(
    action: AuditAction,
    initiator: AuditInitiator,
    ids: dict[str, Optional[str]],
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "request_id": get_request_id(),
        "message": message,
        **ids,
        **(extra or {}),
    }
    return {key: value for key, value in record.items() if value is not None}


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    user_id: Optional[str],
    event_id: Optional[str] = None,
    arrival_id: Optional[str] = None,
    reservation_id: Optional[str] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Write one JSON line per mutation. Raises RuntimeError if logging fails."""
    ids = {
        "user_id": user_id,
        "event_id": event_id,
        "arrival_id": arrival_id,
        "reservation_id": reservation_id,
    }
    line = json.dumps(audit_record(action, initiator, ids, message, extra), ensure_ascii=True, default=str)
    try:
        _audit_logger.info(line)
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
