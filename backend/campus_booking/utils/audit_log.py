"""JSON audit trail of reservation state changes, one line per change."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "reservation.created",
    "reservation.approved",
    "reservation.rejected",
    "reservation.cancelled",
]
AuditInitiator = Literal["user", "staff", "system"]


def _build_audit_logger() -> logging.Logger:
    audit = logging.getLogger("campus_booking.audit")
    audit.setLevel(logging.INFO)
    audit.propagate = False
    if not audit.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        audit.addHandler(handler)
    return audit


_audit_logger = _build_audit_logger()


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    actor_id: Optional[str],
    reservation_id: str,
    space_id: Optional[str],
    user_id: Optional[str],
    reservation_date: Optional[str],
    status_from: Any,
    status_to: Any,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Write one audit line. Raises RuntimeError if it cannot be written."""
    entry: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "actor_id": actor_id,
        "request_id": get_request_id(),
        "reservation_id": reservation_id,
        "space_id": space_id,
        "user_id": user_id,
        "date": reservation_date,
        "status_from": _plain(status_from),
        "status_to": _plain(status_to),
        "message": message,
        **(extra or {}),
    }
    line = json.dumps({key: value for key, value in entry.items() if value is not None}, ensure_ascii=False)
    try:
        _audit_logger.info(line)
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc


def audit_reservation(
    action: AuditAction,
    *,
    initiator: AuditInitiator,
    actor_id: Optional[str],
    reservation: Any,
    status_from: Any,
    message: Optional[str] = None,
) -> None:
    emit_audit_log(
        action=action,
        initiator=initiator,
        actor_id=actor_id,
        reservation_id=reservation.id,
        space_id=reservation.space_id,
        user_id=reservation.user_id,
        reservation_date=reservation.date.isoformat(),
        status_from=status_from,
        status_to=reservation.status,
        message=message,
    )
