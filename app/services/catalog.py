"""
Read-only booking catalog queries (services, dates, slots, bookings).
"""

from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.constants.statuses import BOOKING_CONFIRMED
from app.db.models import Booking, Service, Slot
from app.utils.datetime_utils import DATE_FORMAT, day_bounds, dt_replace_utc, utcnow


@dataclass(frozen=True)
class BookingSummary:
    booking_id: str
    service_name: str
    start_ts: datetime


def list_active_services(db: Session) -> list[Service]:
    stmt = select(Service).where(Service.active.is_(True)).order_by(Service.name)
    return list(db.execute(stmt).scalars().all())


def get_service(db: Session, service_id: str) -> Service | None:
    return db.get(Service, service_id)


def list_available_dates(
    db: Session,
    service_id: str,
    limit: int,
    now: datetime | None = None,
) -> list[str]:
    """
    Distinct future dates (UTC, "YYYY-MM-DD") that still have a slot with
    capacity for the service, earliest first, at most `limit`.
    """
    stmt = (
        select(Slot.start_ts)
        .where(
            Slot.service_id == service_id,
            Slot.booked_count < Slot.capacity,
            Slot.start_ts > (now or utcnow()),
        )
        .order_by(Slot.start_ts)
    )
    dates: list[str] = []
    for start_ts in db.execute(stmt).scalars():
        day = dt_replace_utc(start_ts).strftime(DATE_FORMAT)
        if day not in dates:
            dates.append(day)
            if len(dates) >= limit:
                break
    return dates


def list_available_slots(db: Session, service_id: str, day: date) -> list[Slot]:
    """Slots of the service on the given UTC day with capacity left, by start time."""
    start, end = day_bounds(day)
    stmt = (
        select(Slot)
        .where(
            Slot.service_id == service_id,
            Slot.booked_count < Slot.capacity,
            Slot.start_ts >= start,
            Slot.start_ts < end,
        )
        .order_by(Slot.start_ts)
    )
    return list(db.execute(stmt).scalars().all())


def list_confirmed_bookings(db: Session, chat_id: str) -> list[BookingSummary]:
    stmt = (
        select(Booking.id, Service.name, Slot.start_ts)
        .join(Service, Service.id == Booking.service_id)
        .join(Slot, Slot.id == Booking.slot_id)
        .where(Booking.chat_id == chat_id, Booking.status == BOOKING_CONFIRMED)
        .order_by(Slot.start_ts)
    )
    return [
        BookingSummary(booking_id=row[0], service_name=row[1], start_ts=dt_replace_utc(row[2]))
        for row in db.execute(stmt).all()
    ]


def get_confirmed_booking_start(db: Session, booking_id: str) -> tuple[str, datetime] | None:
    """(service name, slot start) for a CONFIRMED booking, or None."""
    stmt = (
        select(Service.name, Slot.start_ts)
        .select_from(Booking)
        .join(Slot, Slot.id == Booking.slot_id)
        .join(Service, Service.id == Booking.service_id)
        .where(Booking.id == booking_id, Booking.status == BOOKING_CONFIRMED)
    )
    row = db.execute(stmt).first()
    if row is None:
        return None
    return row[0], dt_replace_utc(row[1])
