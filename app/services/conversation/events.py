"""
Inbound event parsing - Telegram update -> InboundEvent.

Commands come from message text ("/book"); selections come from inline
keyboard callback tokens of the form kind:arg1[:arg2]:

    svc:<serviceId>  date:<YYYY-MM-DD>  slot:<slotId>
    confirm:<serviceId>:<slotId>        abort
"""

from dataclasses import dataclass, field
from typing import Any

from app.core.errors import ValidationError
from app.utils.datetime_utils import parse_date

# Event kinds
EVENT_START = "start"
EVENT_BOOK = "book"
EVENT_MY_BOOKINGS = "my_bookings"
EVENT_SELECT_SERVICE = "select_service"
EVENT_SELECT_DATE = "select_date"
EVENT_SELECT_SLOT = "select_slot"
EVENT_CONFIRM = "confirm"
EVENT_CANCEL = "cancel"
EVENT_UNKNOWN_COMMAND = "unknown_command"
EVENT_UNKNOWN = "unknown"

COMMANDS = {
    "/start": EVENT_START,
    "/book": EVENT_BOOK,
    "/mybookings": EVENT_MY_BOOKINGS,
}

# Callback token prefix -> (event kind, number of arguments)
CALLBACKS = {
    "svc": (EVENT_SELECT_SERVICE, 1),
    "date": (EVENT_SELECT_DATE, 1),
    "slot": (EVENT_SELECT_SLOT, 1),
    "confirm": (EVENT_CONFIRM, 2),
    "abort": (EVENT_CANCEL, 0),
}


@dataclass(frozen=True)
class Sender:
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class InboundEvent:
    chat_id: str
    kind: str
    args: tuple[str, ...] = ()
    sender: Sender = field(default_factory=Sender)


def parse_command(text: str) -> tuple[str, tuple[str, ...]]:
    command = text.strip().split()[0]
    # "/book@SomeBot" is how commands arrive in group chats
    command = command.split("@", 1)[0].lower()
    return COMMANDS.get(command, EVENT_UNKNOWN_COMMAND), ()


def parse_callback(data: str) -> tuple[str, tuple[str, ...]]:
    """
    Parse a callback token.

    Raises:
        ValidationError: Known prefix with a missing/empty/malformed argument
    """
    prefix, _, rest = (data or "").strip().partition(":")
    if prefix not in CALLBACKS:
        return EVENT_UNKNOWN, ()

    kind, arity = CALLBACKS[prefix]
    if arity == 0:
        return kind, ()

    args = tuple(rest.split(":", arity - 1)) if rest else ()
    if len(args) != arity or any(not a.strip() for a in args):
        raise ValidationError(f"'{prefix}' expects {arity} argument(s)")
    args = tuple(a.strip() for a in args)

    if kind == EVENT_SELECT_DATE:
        try:
            parse_date(args[0])
        except ValueError as e:
            raise ValidationError(f"invalid date '{args[0]}'") from e
    return kind, args


def extract_chat_id(update: dict[str, Any]) -> str | None:
    """Chat id of a message or callback update, or None for anything else."""
    message = update.get("message") or (update.get("callback_query") or {}).get("message") or {}
    chat_id = (message.get("chat") or {}).get("id")
    return str(chat_id) if chat_id is not None else None


def extract_sender(update: dict[str, Any]) -> Sender:
    sender = (update.get("message") or {}).get("from") or (update.get("callback_query") or {}).get(
        "from"
    ) or {}
    return Sender(
        username=sender.get("username"),
        first_name=sender.get("first_name"),
        last_name=sender.get("last_name"),
    )


def parse_update(update: dict[str, Any]) -> InboundEvent | None:
    """
    Map a Telegram update onto an InboundEvent.

    Returns None for updates without a chat (edited messages, polls, ...).

    Raises:
        ValidationError: Malformed callback token
    """
    chat_id = extract_chat_id(update)
    if chat_id is None:
        return None
    sender = extract_sender(update)

    message = update.get("message")
    if message is not None:
        text = (message.get("text") or "").strip()
        if text.startswith("/"):
            kind, args = parse_command(text)
        else:
            kind, args = EVENT_UNKNOWN, ()
        return InboundEvent(chat_id=chat_id, kind=kind, args=args, sender=sender)

    callback = update.get("callback_query") or {}
    kind, args = parse_callback(callback.get("data") or "")
    return InboundEvent(chat_id=chat_id, kind=kind, args=args, sender=sender)
