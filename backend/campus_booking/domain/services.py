import re

from ..models import ReservationStatus
from ..schemas import ReservationCreate
from .errors import InvalidReasonError, InvalidTimeRangeError, InvalidTransitionError, MissingDescriptionError

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset(
        {ReservationStatus.APPROVED, ReservationStatus.REJECTED, ReservationStatus.CANCELLED}
    ),
    ReservationStatus.APPROVED: frozenset({ReservationStatus.CANCELLED}),
    ReservationStatus.REJECTED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.COMPLETED: frozenset(),
}


def validate_reservation_request(request: ReservationCreate) -> None:
    """
    Pure validation of a reservation request, stopping at the first failure.
    Slot conflicts are not checked here.
    """
    if request.start_time >= request.end_time:
        raise InvalidTimeRangeError("start time must be earlier than end time")
    if not request.description.strip():
        raise MissingDescriptionError("a description is required")


def validate_rejection_reason(reason: str) -> str:
    if not reason or not reason.strip():
        raise InvalidReasonError("a rejection reason is required")
    return reason


def ensure_transition(current: ReservationStatus, target: ReservationStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(f"cannot move reservation from {current} to {target}")


def is_institutional_email(email: str, domain: str) -> bool:
    pattern = rf"[a-zA-Z0-9._%+-]+@{re.escape(domain)}"
    return re.fullmatch(pattern, email.strip(), flags=re.IGNORECASE) is not None
