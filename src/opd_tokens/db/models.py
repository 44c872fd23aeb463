from __future__ import annotations

import threading
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, validates
from sqlalchemy.orm import DeclarativeBase, mapped_column  # type: ignore[attr-defined]


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


_clock_lock = threading.Lock()
_last_issued: datetime | None = None


def monotonic_utcnow() -> datetime:
    """Return a UTC timestamp strictly greater than any previously issued one.

    Token ordering ties are broken on ``created_at``, so two tokens created
    within the clock's resolution must still compare unequal.

    The guarantee holds within one process only. Tokens created by separate
    API workers can share a timestamp; ordering then falls back to the token
    id, which is random. Victim and candidate choice among equal-priority
    tokens created in the same microsecond is therefore arbitrary across
    workers.
    """
    global _last_issued
    with _clock_lock:
        now = utcnow()
        if _last_issued is not None and now <= _last_issued:
            now = _last_issued + timedelta(microseconds=1)
        _last_issued = now
        return now


class Base(DeclarativeBase):
    """SQLAlchemy declarative base with common fields for all models."""

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


def generate_id() -> str:
    """Generate a short unique ID."""
    return str(uuid4())[:8]


# =============================================================================
# Enums
# =============================================================================


class TokenSource(str, Enum):
    """Channel a token arrived through. Determines its priority."""

    EMERGENCY = "EMERGENCY"
    PAID = "PAID"
    FOLLOW_UP = "FOLLOW_UP"
    ONLINE = "ONLINE"
    WALK_IN = "WALK_IN"


class TokenStatus(str, Enum):
    """Token lifecycle. ACTIVE is the only non-terminal state."""

    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"  # Reserved; nothing marks tokens as no-show yet


# =============================================================================
# SQLAlchemy Models (Database Tables)
# =============================================================================


class DoctorModel(Base):
    """Doctor database model (owner of a day's slots)."""

    __tablename__ = "doctors"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str] = mapped_column(String(255), nullable=False)


class SlotModel(Base):
    """Fixed-capacity time window in a doctor's day."""

    __tablename__ = "slots"
    __table_args__ = (
        CheckConstraint("max_capacity > 0", name="ck_slots_max_capacity_positive"),
        CheckConstraint("current_count >= 0", name="ck_slots_current_count_nonneg"),
        CheckConstraint(
            "current_count <= max_capacity", name="ck_slots_current_count_le_max"
        ),
        CheckConstraint("end_time > start_time", name="ck_slots_time_order"),
        UniqueConstraint("doctor_id", "start_time", name="uq_slots_doctor_start"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    doctor_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("doctors.id", ondelete="RESTRICT"), nullable=False
    )
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def has_capacity(self) -> bool:
        return self.current_count < self.max_capacity


class TokenModel(Base):
    """One request's admission record for a doctor's slot."""

    __tablename__ = "tokens"
    __table_args__ = (
        # Victim lookup: lowest priority active token in a slot
        Index("idx_tokens_slot_status_priority", "slot_id", "status", "priority"),
        # Reallocation sweep across a doctor's whole day
        Index("idx_tokens_doctor_status_priority", "doctor_id", "status", "priority"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    doctor_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("doctors.id", ondelete="RESTRICT"), nullable=False
    )
    slot_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("slots.id", ondelete="RESTRICT"), nullable=False
    )
    source: Mapped[TokenSource] = mapped_column(SQLEnum(TokenSource), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[TokenStatus] = mapped_column(
        SQLEnum(TokenStatus), default=TokenStatus.ACTIVE, nullable=False
    )
    # Override created_at: ordering ties must never happen
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=monotonic_utcnow, nullable=False
    )

    @property
    def is_active(self) -> bool:
        return self.status == TokenStatus.ACTIVE

    @validates("status")
    def _validate_status(self, key: str, value: TokenStatus) -> TokenStatus:
        current = self.__dict__.get("status")
        if current is None or current == value:
            return value
        if current != TokenStatus.ACTIVE:
            raise ValueError(
                f"Token {self.id} is {current.value}; cannot move to {value.value}"
            )
        return value

    @validates("source", "priority")
    def _validate_immutable(self, key: str, value):
        current = self.__dict__.get(key)
        if current is not None and current != value:
            raise ValueError(f"Token {self.id} {key} cannot change once issued")
        return value
