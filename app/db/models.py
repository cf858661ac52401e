from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.constants.statuses import BOOKING_CONFIRMED, DELIVERY_PENDING
from app.db.base import Base


class Service(Base):
    """Bookable service. Reference data managed outside the booking flow."""

    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    duration_min: Mapped[int] = mapped_column(Integer)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    slots: Mapped[list["Slot"]] = relationship("Slot", back_populates="service")


class Slot(Base):
    __tablename__ = "slots"
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_slots_capacity_positive"),
        CheckConstraint("booked_count >= 0", name="ck_slots_booked_count_non_negative"),
        CheckConstraint("booked_count <= capacity", name="ck_slots_booked_within_capacity"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    service_id: Mapped[str] = mapped_column(String(64), ForeignKey("services.id"), index=True)
    start_ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)  # UTC
    end_ts: Mapped[datetime] = mapped_column(DateTime(timezone=True))  # UTC
    capacity: Mapped[int] = mapped_column(Integer, default=1)
    # Only the reservation confirm step increments this
    booked_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    service: Mapped["Service"] = relationship("Service", back_populates="slots")


class Booking(Base):
    """One row per successful reservation. Immutable once written."""

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    chat_id: Mapped[str] = mapped_column(String(64), index=True)
    service_id: Mapped[str] = mapped_column(String(64), ForeignKey("services.id"))
    slot_id: Mapped[str] = mapped_column(String(64), ForeignKey("slots.id"), index=True)
    status: Mapped[str] = mapped_column(String(20), default=BOOKING_CONFIRMED)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ChatSession(Base):
    """State machine snapshot, at most one per conversation."""

    __tablename__ = "chat_sessions"

    chat_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    state: Mapped[str] = mapped_column(String(32))
    context: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class TelegramUser(Base):
    __tablename__ = "telegram_users"

    chat_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DeliveryRecord(Base):
    """Latest delivery outcome per (campaign, recipient). Written by upsert only."""

    __tablename__ = "delivery_records"
    __table_args__ = (
        UniqueConstraint("campaign_id", "recipient", name="uq_delivery_records_campaign_recipient"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(String(64), index=True)
    recipient: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(20), default=DELIVERY_PENDING)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DeliveryLog(Base):
    """Append-only audit of every delivery status transition."""

    __tablename__ = "delivery_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(String(64), index=True)
    recipient: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(20))
    detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # Queue message ID
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SystemEvent(Base):
    __tablename__ = "system_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    level: Mapped[str] = mapped_column(String(10), index=True)
    event_type: Mapped[str] = mapped_column(String(100), index=True)
    chat_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
