"""
Conversation flow: inbound event parsing, session store, state machine.

Re-exports the leaf modules only; import the state machine from
app.services.conversation.state_machine (it depends on the reservation engine,
which itself uses the session store).
"""

from app.services.conversation.events import InboundEvent, parse_update
from app.services.conversation.session_store import (
    Snapshot,
    clear_session,
    get_session,
    set_session,
)

__all__ = [
    "InboundEvent",
    "Snapshot",
    "clear_session",
    "get_session",
    "parse_update",
    "set_session",
]
