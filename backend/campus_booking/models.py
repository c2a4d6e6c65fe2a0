from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql.sqltypes import Boolean, DateTime, Integer, String, Text

from .utils.time import utc_now_naive


def _str_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda members: [e.value for e in members],
        native_enum=False,
    )


class Base(DeclarativeBase):
    pass


class SpaceType(StrEnum):
    COURT = "court"
    GARDEN = "garden"


class SlotStatus(StrEnum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    PENDING_APPROVAL = "pending_approval"
    BLOCKED = "blocked"


class ReservationStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class UserRole(StrEnum):
    STUDENT = "student"
    STAFF = "staff"
    ADMIN = "admin"


# The same schema backs the authoritative database and the local cache.
# Dates are ISO "YYYY-MM-DD" strings and times "HH:mm" strings.


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[UserRole] = mapped_column(_str_enum(UserRole), nullable=False, default=UserRole.STUDENT)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=utc_now_naive, onupdate=utc_now_naive
    )


class Space(Base):
    __tablename__ = "spaces"
    __table_args__ = (Index("idx_spaces_active", "is_active"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[SpaceType] = mapped_column(_str_enum(SpaceType), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=utc_now_naive, onupdate=utc_now_naive
    )


class TimeSlot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="chk_time_slots_time"),
        Index("idx_time_slots_space_date", "space_id", "date"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    space_id: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    status: Mapped[SlotStatus] = mapped_column(
        _str_enum(SlotStatus), nullable=False, default=SlotStatus.AVAILABLE
    )
    reserved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reserved_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=utc_now_naive, onupdate=utc_now_naive
    )


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="chk_res_time"),
        Index("idx_res_space_date", "space_id", "date"),
        Index("idx_res_user", "user_id"),
        Index("idx_res_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    space_id: Mapped[str] = mapped_column(String(64), nullable=False)
    space_name: Mapped[str] = mapped_column(String(255), nullable=False)
    space_type: Mapped[SpaceType] = mapped_column(_str_enum(SpaceType), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        _str_enum(ReservationStatus), nullable=False, default=ReservationStatus.PENDING
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=utc_now_naive, onupdate=utc_now_naive
    )
