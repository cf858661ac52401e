"""
Conversation session store - one state machine snapshot per chat.

Last write wins per chat_id. Events for one chat arrive serially, so no row
locking is done here; each write is committed before returning so a retried
event never observes a stale snapshot.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete
from sqlalchemy.orm import Session

from app.constants.statuses import ACTIVE_STATES
from app.db.models import ChatSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    state: str
    context: dict[str, Any] = field(default_factory=dict)


def get_session(db: Session, chat_id: str) -> Snapshot | None:
    """Return the current snapshot, or None when no flow is in progress."""
    row = db.get(ChatSession, chat_id, populate_existing=True)
    if row is None:
        return None
    return Snapshot(state=row.state, context=dict(row.context or {}))


def set_session(db: Session, chat_id: str, state: str, context: dict[str, Any] | None = None) -> Snapshot:
    """
    Replace the snapshot for chat_id (insert or overwrite) and commit.

    Raises:
        ValueError: If state is not an active flow state (NONE is stored as no row)
    """
    if state not in ACTIVE_STATES:
        raise ValueError(f"Not an active session state: {state}")
    ctx = dict(context or {})
    row = db.get(ChatSession, chat_id, populate_existing=True)
    if row is None:
        row = ChatSession(chat_id=chat_id, state=state, context=ctx)
        db.add(row)
    else:
        row.state = state
        # Assign a new dict so the JSON column is flagged dirty
        row.context = ctx
    db.commit()
    logger.debug(f"Session {chat_id} -> {state} context={ctx}")
    return Snapshot(state=state, context=ctx)


def clear_session(db: Session, chat_id: str, commit: bool = True) -> None:
    """
    Delete the snapshot for chat_id (no-op if absent).

    With commit=False the delete joins the caller's transaction (used by the
    reservation confirm step so booking + counter + clear commit together).
    """
    db.execute(delete(ChatSession).where(ChatSession.chat_id == chat_id))
    if commit:
        db.commit()
