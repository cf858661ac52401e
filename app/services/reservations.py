"""
Reservation engine - turns a confirmed selection into a Booking.

The capacity check and the counter increment are one conditional UPDATE:

    UPDATE slots SET booked_count = booked_count + 1
    WHERE id = :slot_id AND service_id = :service_id AND booked_count < capacity

The booking insert and the session delete join that transaction, so either all
three effects commit together or none do. rowcount == 0 means the slot is full
or missing; a follow-up read tells which.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.constants.event_types import (
    EVENT_BOOKING_CAPACITY_CONFLICT,
    EVENT_REMINDER_ENQUEUE_FAILURE,
    EVENT_REMINDER_QUEUE_MISCONFIGURED,
)
from app.constants.statuses import BOOKING_CONFIRMED
from app.core.errors import CapacityExceeded, ConfigurationError, NotFound, TransportError
from app.db.models import Booking, Slot
from app.services.conversation.session_store import clear_session
from app.services.queue.client import QueueClient
from app.services.queue.jobs import reminder_payload

logger = logging.getLogger(__name__)


@dataclass
class ReservationResult:
    booking: Booking
    reminder_message_id: str | None = None


def confirm_booking(db: Session, service_id: str, slot_id: str, chat_id: str) -> Booking:
    """
    Atomically reserve one seat in the slot and clear the requester's session.

    Raises:
        NotFound: Slot does not exist or belongs to another service
        CapacityExceeded: Slot has no remaining capacity
    """
    stmt = (
        update(Slot)
        .where(Slot.id == slot_id)
        .where(Slot.service_id == service_id)
        .where(Slot.booked_count < Slot.capacity)
        .values(booked_count=Slot.booked_count + 1)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        if result.rowcount == 0:
            db.rollback()
            slot = db.get(Slot, slot_id)
            if slot is None or slot.service_id != service_id:
                logger.info(f"Confirm rejected: slot {slot_id} not found for service {service_id}")
                raise NotFound(f"Slot {slot_id} not found")
            logger.info(
                f"Confirm rejected: slot {slot_id} full ({slot.booked_count}/{slot.capacity})"
            )
            raise CapacityExceeded(f"Slot {slot_id} is full")

        booking = Booking(
            id=str(uuid.uuid4()),
            chat_id=chat_id,
            service_id=service_id,
            slot_id=slot_id,
            status=BOOKING_CONFIRMED,
        )
        db.add(booking)
        clear_session(db, chat_id, commit=False)
        db.commit()
    except (NotFound, CapacityExceeded):
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info(f"Booking {booking.id} confirmed: chat={chat_id} slot={slot_id}")
    return booking


async def reserve_and_schedule(
    db: Session,
    queue: QueueClient | None,
    service_id: str,
    slot_id: str,
    chat_id: str,
) -> ReservationResult:
    """
    Confirm the booking, then enqueue its reminder job best-effort.

    An enqueue failure never undoes the booking. A TransportError is recorded
    as a WARN SystemEvent; bad queue credentials are recorded at ERROR under
    their own event type. Anything else propagates after the booking commits.

    Raises:
        NotFound, CapacityExceeded: From confirm_booking (nothing was written)
    """
    from app.services.system_event_service import error, info, warn

    try:
        booking = confirm_booking(db, service_id, slot_id, chat_id)
    except CapacityExceeded:
        info(
            db,
            EVENT_BOOKING_CAPACITY_CONFLICT,
            chat_id=chat_id,
            payload={"service_id": service_id, "slot_id": slot_id},
        )
        raise

    reservation = ReservationResult(booking=booking)
    if queue is None:
        logger.info(f"Queue not configured; no reminder scheduled for booking {booking.id}")
        return reservation

    try:
        reservation.reminder_message_id = await queue.send(reminder_payload(booking.id, chat_id))
    except ConfigurationError as e:
        logger.error(f"Reminder not scheduled for booking {booking.id}: queue misconfigured: {e}")
        error(
            db,
            EVENT_REMINDER_QUEUE_MISCONFIGURED,
            chat_id=chat_id,
            payload={"booking_id": booking.id, "slot_id": slot_id},
            exc=e,
        )
    except TransportError as e:
        logger.warning(
            f"Reminder enqueue failed for booking {booking.id}: {type(e).__name__}: {e}"
        )
        warn(
            db,
            EVENT_REMINDER_ENQUEUE_FAILURE,
            chat_id=chat_id,
            payload={"booking_id": booking.id, "slot_id": slot_id},
            exc=e,
        )
    return reservation
