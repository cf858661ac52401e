"""
Correlation ID middleware for request tracing.

Reads X-Correlation-ID from incoming request or generates a UUID.
Queue jobs use the provider message ID as their correlation ID (see
`correlation_scope`), so SystemEvents from a webhook or a job can be traced.
"""

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

HEADER_CORRELATION_ID = "X-Correlation-ID"
MAX_CORRELATION_ID_LENGTH = 128

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id(request: Request | None = None) -> str | None:
    """Prefer request.state, then the context var. None if neither is set."""
    if request is not None and getattr(request.state, "correlation_id", None):
        return request.state.correlation_id
    return _correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Bind a correlation ID for the duration of a block (used per queue job)."""
    token = _correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id_var.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        incoming = request.headers.get(HEADER_CORRELATION_ID)
        if incoming and incoming.strip() and len(incoming) <= MAX_CORRELATION_ID_LENGTH:
            cid = incoming.strip()
        else:
            cid = str(uuid.uuid4())
        request.state.correlation_id = cid
        with correlation_scope(cid):
            response = await call_next(request)
        response.headers[HEADER_CORRELATION_ID] = cid
        return response
