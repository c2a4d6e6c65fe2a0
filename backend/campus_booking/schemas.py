import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .models import ReservationStatus, SlotStatus, SpaceType, UserRole
from .utils.time import format_hhmm, parse_hhmm


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    def to_db_values(self) -> dict[str, Any]:
        """Column values in storage form (ISO dates, HH:mm times)."""
        return self.model_dump()


class UserRead(_Record):
    id: str
    name: str = ""
    email: str = ""
    role: UserRole = UserRole.STUDENT


class SpaceRead(_Record):
    id: str
    name: str
    type: SpaceType
    description: str = ""
    capacity: int = 0
    is_active: bool = True


class TimeSlotRead(_Record):
    id: str
    space_id: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    status: SlotStatus = SlotStatus.AVAILABLE
    reserved_by: Optional[str] = None
    reserved_by_name: Optional[str] = None
    description: Optional[str] = None

    @field_serializer("date")
    def _ser_date(self, value: dt.date) -> str:
        return value.isoformat()

    @field_serializer("start_time", "end_time")
    def _ser_time(self, value: dt.time) -> str:
        return format_hhmm(value)


class ReservationRead(_Record):
    id: str
    space_id: str
    space_name: str
    space_type: SpaceType
    user_id: str
    user_name: str
    user_email: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    description: str
    status: ReservationStatus
    created_at: dt.datetime
    approved_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    @field_serializer("date")
    def _ser_date(self, value: dt.date) -> str:
        return value.isoformat()

    @field_serializer("start_time", "end_time")
    def _ser_time(self, value: dt.time) -> str:
        return format_hhmm(value)


class ReservationCreate(BaseModel):
    space_id: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    description: str = ""

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_hhmm(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_hhmm(value)
        return value


class ReservationReject(BaseModel):
    reason: str = ""


class CalendarDayRead(BaseModel):
    date: dt.date
    reservations: list[ReservationRead] = Field(default_factory=list)
    has_reservations: bool = False
    is_available: bool = True
    is_today: bool = False
    is_selected: bool = False
