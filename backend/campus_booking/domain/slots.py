"""
Slot occupancy derivation.

A slot's status is never set by users: it is recomputed from the reservations
of the same space and date whose intervals touch the slot. All intervals are
half-open ``[start, end)``.
"""
from __future__ import annotations

import datetime as dt
from typing import Iterable, Optional, Sequence

from ..models import ReservationStatus, SlotStatus
from ..schemas import ReservationRead, TimeSlotRead

DAY_START_HOUR = 7
DAY_END_HOUR = 21

OCCUPYING_STATUSES = frozenset({ReservationStatus.APPROVED, ReservationStatus.PENDING})


def overlaps(start_a: dt.time, end_a: dt.time, start_b: dt.time, end_b: dt.time) -> bool:
    return start_a < end_b and end_a > start_b


def matches_exactly(reservation: ReservationRead, start: dt.time, end: dt.time) -> bool:
    return reservation.start_time == start and reservation.end_time == end


def find_occupying(
    reservations: Iterable[ReservationRead],
    start: dt.time,
    end: dt.time,
    *,
    exact: bool = False,
) -> Optional[ReservationRead]:
    """Return the first occupying reservation touching ``[start, end)``.

    Several matches should not happen; when they do the first one in iteration
    order wins.
    """
    for reservation in reservations:
        if reservation.status not in OCCUPYING_STATUSES:
            continue
        if exact:
            hit = matches_exactly(reservation, start, end)
        else:
            hit = overlaps(reservation.start_time, reservation.end_time, start, end)
        if hit:
            return reservation
    return None


def slot_status_for(reservation: Optional[ReservationRead]) -> SlotStatus:
    if reservation is None:
        return SlotStatus.AVAILABLE
    if reservation.status == ReservationStatus.APPROVED:
        return SlotStatus.RESERVED
    return SlotStatus.PENDING_APPROVAL


def default_slot_id(space_id: str, on_date: dt.date, hour: int) -> str:
    return f"{space_id}-{on_date.isoformat()}-{hour}"


def _occupied(slot: TimeSlotRead, reservation: Optional[ReservationRead]) -> TimeSlotRead:
    if reservation is None:
        return slot.model_copy(
            update={
                "status": SlotStatus.AVAILABLE,
                "reserved_by": None,
                "reserved_by_name": None,
                "description": None,
            }
        )
    return slot.model_copy(
        update={
            "status": slot_status_for(reservation),
            "reserved_by": reservation.user_id,
            "reserved_by_name": reservation.user_name,
            "description": reservation.description,
        }
    )


def generate_default_slots(
    space_id: str,
    on_date: dt.date,
    reservations: Sequence[ReservationRead],
) -> list[TimeSlotRead]:
    """Hourly grid from 07:00 to 21:00 evaluated with the overlap rule."""
    slots: list[TimeSlotRead] = []
    for hour in range(DAY_START_HOUR, DAY_END_HOUR):
        start = dt.time(hour=hour)
        end = dt.time(hour=hour + 1)
        slot = TimeSlotRead(
            id=default_slot_id(space_id, on_date, hour),
            space_id=space_id,
            date=on_date,
            start_time=start,
            end_time=end,
        )
        slots.append(_occupied(slot, find_occupying(reservations, start, end)))
    return slots


def evaluate_configured_slots(
    slots: Sequence[TimeSlotRead],
    reservations: Sequence[ReservationRead],
) -> list[TimeSlotRead]:
    """Apply exact-interval matches to explicitly configured slots.

    Slots without a matching reservation are returned as configured, so an
    administratively blocked slot stays blocked.
    """
    evaluated: list[TimeSlotRead] = []
    for slot in slots:
        match = find_occupying(reservations, slot.start_time, slot.end_time, exact=True)
        evaluated.append(slot if match is None else _occupied(slot, match))
    return evaluated
