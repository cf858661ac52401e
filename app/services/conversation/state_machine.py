"""
Booking conversation state machine.

Every transition is a function of (stored snapshot, inbound event) and
produces one outbound prompt or one side effect:

    NONE            --/book-->     CHOOSE_SERVICE  (list active services)
    CHOOSE_SERVICE  --svc:id-->    CHOOSE_DATE     (list future dates with capacity)
    CHOOSE_DATE     --date:d-->    CHOOSE_SLOT     (list slots with capacity)
    CHOOSE_SLOT     --slot:id-->   CONFIRM         (confirm / cancel prompt)
    CONFIRM         --confirm-->   NONE            (reserve; session cleared)
    any             --abort-->     NONE            (session cleared)

/start and /mybookings are answered in any state without a state change.
Any other (state, event) pair replies "unknown" and leaves the session as is.

Selections are not checked against the choices last offered; the lookup at the
next step (or the reservation engine) is the validation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.constants.event_types import EVENT_TELEGRAM_SEND_FAILURE
from app.constants.statuses import (
    STATE_CHOOSE_DATE,
    STATE_CHOOSE_SERVICE,
    STATE_CHOOSE_SLOT,
    STATE_CONFIRM,
    STATE_NONE,
)
from app.core.config import Settings, settings
from app.core.errors import CapacityExceeded, NotFound, ValidationError
from app.db.models import Slot
from app.services import catalog
from app.services.conversation.events import (
    EVENT_BOOK,
    EVENT_CANCEL,
    EVENT_CONFIRM,
    EVENT_MY_BOOKINGS,
    EVENT_SELECT_DATE,
    EVENT_SELECT_SERVICE,
    EVENT_SELECT_SLOT,
    EVENT_START,
    EVENT_UNKNOWN,
    EVENT_UNKNOWN_COMMAND,
    InboundEvent,
    extract_chat_id,
    extract_sender,
    parse_update,
)
from app.services.conversation.session_store import (
    Snapshot,
    clear_session,
    get_session,
    set_session,
)
from app.services.messaging.message_composer import render_message
from app.services.messaging.notifier import Choice, Notifier
from app.services.queue.client import QueueClient
from app.services.reservations import reserve_and_schedule
from app.services.users import upsert_telegram_user
from app.utils.datetime_utils import format_local, parse_date

logger = logging.getLogger(__name__)


@dataclass
class Flow:
    """Everything a transition handler needs for one inbound event."""

    db: Session
    event: InboundEvent
    snapshot: Snapshot
    notifier: Notifier
    queue: QueueClient | None
    config: Settings

    @property
    def chat_id(self) -> str:
        return self.event.chat_id


Handler = Callable[[Flow], Awaitable[str]]


async def _reply(flow: Flow, text: str, choices: list[Choice] | None = None) -> None:
    """Send to the chat; failures are logged, never raised."""
    try:
        await flow.notifier.send(flow.chat_id, text, choices)
    except Exception as e:
        logger.error(f"Failed to send message to chat {flow.chat_id}: {type(e).__name__}: {e}")
        from app.services.system_event_service import warn

        warn(
            flow.db,
            EVENT_TELEGRAM_SEND_FAILURE,
            chat_id=flow.chat_id,
            payload={"event": flow.event.kind, "state": flow.snapshot.state},
            exc=e,
        )


def _cancel_choice() -> Choice:
    return Choice(label=render_message("cancel_button"), data="abort")


def _slot_choices(flow: Flow, slots: list[Slot]) -> list[Choice]:
    return [
        Choice(
            label=format_local(slot.start_ts, flow.config.display_timezone, with_date=False),
            data=f"slot:{slot.id}",
        )
        for slot in slots
    ]


def _available_slots(flow: Flow, service_id: str | None, day: str | None) -> list[Slot]:
    if not service_id or not day:
        return []
    try:
        parsed = parse_date(day)
    except ValueError:
        return []
    return catalog.list_available_slots(flow.db, service_id, parsed)


# ---- Any-state commands ----


async def _on_start(flow: Flow) -> str:
    await _reply(flow, render_message("welcome"))
    return flow.snapshot.state


async def _on_my_bookings(flow: Flow) -> str:
    bookings = catalog.list_confirmed_bookings(flow.db, flow.chat_id)
    if not bookings:
        await _reply(flow, render_message("no_bookings"))
    else:
        lines = [
            render_message(
                "booking_line",
                service_name=b.service_name,
                start_local=format_local(b.start_ts, flow.config.display_timezone),
                booking_id=b.booking_id,
            )
            for b in bookings
        ]
        await _reply(flow, "\n".join(lines))
    return flow.snapshot.state


async def _on_cancel(flow: Flow) -> str:
    clear_session(flow.db, flow.chat_id)
    await _reply(flow, render_message("cancelled"))
    return STATE_NONE


# ---- Flow transitions ----


async def _on_book(flow: Flow) -> str:
    set_session(flow.db, flow.chat_id, STATE_CHOOSE_SERVICE, {})
    services = catalog.list_active_services(flow.db)
    if not services:
        await _reply(flow, render_message("no_services"), [_cancel_choice()])
    else:
        choices = [Choice(label=s.name, data=f"svc:{s.id}") for s in services]
        await _reply(flow, render_message("choose_service"), choices)
    return STATE_CHOOSE_SERVICE


async def _on_select_service(flow: Flow) -> str:
    (service_id,) = flow.event.args
    context = {**flow.snapshot.context, "serviceId": service_id}
    set_session(flow.db, flow.chat_id, STATE_CHOOSE_DATE, context)

    dates = catalog.list_available_dates(flow.db, service_id, limit=flow.config.date_options_limit)
    if not dates:
        await _reply(flow, render_message("no_dates"), [_cancel_choice()])
    else:
        await _reply(
            flow, render_message("choose_date"), [Choice(label=d, data=f"date:{d}") for d in dates]
        )
    return STATE_CHOOSE_DATE


async def _on_select_date(flow: Flow) -> str:
    (day,) = flow.event.args
    context = {**flow.snapshot.context, "date": day}
    set_session(flow.db, flow.chat_id, STATE_CHOOSE_SLOT, context)

    slots = _available_slots(flow, context.get("serviceId"), day)
    if not slots:
        await _reply(flow, render_message("no_slots"), [_cancel_choice()])
    else:
        await _reply(flow, render_message("choose_slot"), _slot_choices(flow, slots))
    return STATE_CHOOSE_SLOT


async def _on_select_slot(flow: Flow) -> str:
    (slot_id,) = flow.event.args
    context = {**flow.snapshot.context, "slotId": slot_id}
    set_session(flow.db, flow.chat_id, STATE_CONFIRM, context)

    service_id = context.get("serviceId") or ""
    service = catalog.get_service(flow.db, service_id) if service_id else None
    slot = flow.db.get(Slot, slot_id)
    start_local = (
        format_local(slot.start_ts, flow.config.display_timezone) if slot is not None else slot_id
    )
    text = render_message(
        "confirm_prompt",
        service_name=service.name if service is not None else service_id,
        start_local=start_local,
    )
    choices = [
        Choice(label=render_message("confirm_button"), data=f"confirm:{service_id}:{slot_id}"),
        _cancel_choice(),
    ]
    await _reply(flow, text, choices)
    return STATE_CONFIRM


async def _on_confirm(flow: Flow) -> str:
    service_id, slot_id = flow.event.args
    try:
        await reserve_and_schedule(flow.db, flow.queue, service_id, slot_id, flow.chat_id)
    except (CapacityExceeded, NotFound) as e:
        # Back to slot selection: keep service + date, drop the rejected slot
        context = {k: v for k, v in flow.snapshot.context.items() if k != "slotId"}
        context.setdefault("serviceId", service_id)
        set_session(flow.db, flow.chat_id, STATE_CHOOSE_SLOT, context)

        key = "slot_full" if isinstance(e, CapacityExceeded) else "slot_not_found"
        slots = _available_slots(flow, context.get("serviceId"), context.get("date"))
        if slots:
            await _reply(flow, render_message(key), _slot_choices(flow, slots))
        else:
            await _reply(
                flow, f"{render_message(key)}\n{render_message('no_slots')}", [_cancel_choice()]
            )
        return STATE_CHOOSE_SLOT

    await _reply(flow, render_message("booked"))
    return STATE_NONE


ANY_STATE_HANDLERS: dict[str, Handler] = {
    EVENT_START: _on_start,
    EVENT_MY_BOOKINGS: _on_my_bookings,
    EVENT_CANCEL: _on_cancel,
}

TRANSITIONS: dict[tuple[str, str], Handler] = {
    (STATE_NONE, EVENT_BOOK): _on_book,
    (STATE_CHOOSE_SERVICE, EVENT_SELECT_SERVICE): _on_select_service,
    (STATE_CHOOSE_DATE, EVENT_SELECT_DATE): _on_select_date,
    (STATE_CHOOSE_SLOT, EVENT_SELECT_SLOT): _on_select_slot,
    (STATE_CONFIRM, EVENT_CONFIRM): _on_confirm,
}


def resolve_handler(state: str, kind: str) -> Handler | None:
    return ANY_STATE_HANDLERS.get(kind) or TRANSITIONS.get((state, kind))


async def _on_unrecognized(flow: Flow) -> str:
    if flow.event.kind == EVENT_UNKNOWN_COMMAND:
        key = "unknown_command"
    elif flow.event.kind == EVENT_BOOK:
        key = "flow_in_progress"
    else:
        key = "unknown"
    await _reply(flow, render_message(key))
    return flow.snapshot.state


async def handle_event(
    db: Session,
    event: InboundEvent,
    notifier: Notifier,
    queue: QueueClient | None = None,
    config: Settings = settings,
) -> str:
    """
    Apply one inbound event to the chat's session.

    Returns:
        The chat's state after the event (STATE_NONE when no session remains)
    """
    snapshot = get_session(db, event.chat_id) or Snapshot(state=STATE_NONE)
    flow = Flow(
        db=db, event=event, snapshot=snapshot, notifier=notifier, queue=queue, config=config
    )
    handler = resolve_handler(snapshot.state, event.kind) or _on_unrecognized
    new_state = await handler(flow)
    if new_state != snapshot.state:
        logger.info(f"Chat {event.chat_id}: {snapshot.state} --{event.kind}--> {new_state}")
    return new_state


async def handle_update(
    db: Session,
    update: dict[str, Any],
    notifier: Notifier,
    queue: QueueClient | None = None,
    config: Settings = settings,
) -> str | None:
    """
    Webhook entry point: refresh the user row, parse the update and run the
    state machine.

    Returns:
        The resulting state, or None if the update carried no chat.
        A malformed callback is reported to the chat and leaves the state unchanged.
    """
    chat_id = extract_chat_id(update)
    if chat_id is None:
        logger.debug(f"Ignoring update without chat: keys={sorted(update.keys())}")
        return None

    sender = extract_sender(update)
    upsert_telegram_user(
        db,
        chat_id,
        username=sender.username,
        first_name=sender.first_name,
        last_name=sender.last_name,
    )

    try:
        event = parse_update(update)
    except ValidationError as e:
        logger.info(f"Malformed event from chat {chat_id}: {e}")
        snapshot = get_session(db, chat_id) or Snapshot(state=STATE_NONE)
        flow = Flow(
            db=db,
            event=InboundEvent(chat_id=chat_id, kind=EVENT_UNKNOWN, sender=sender),
            snapshot=snapshot,
            notifier=notifier,
            queue=queue,
            config=config,
        )
        await _reply(flow, render_message("invalid_input", reason=str(e)))
        return snapshot.state

    return await handle_event(db, event, notifier, queue=queue, config=config)
