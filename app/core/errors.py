"""
Booking and queue error taxonomy.

Services raise these; the API layer and the queue consumer decide how each
one is reported (chat reply, HTTP status, ack vs. redelivery).
"""


class BookingError(Exception):
    """Base class for every domain error raised by the services."""


class ValidationError(BookingError):
    """Malformed inbound event. Reported to the sender, no state change."""


class NotFound(BookingError):
    """Reference to a service, slot or booking that does not exist (any more)."""


class CapacityExceeded(BookingError):
    """The slot has no remaining capacity."""


class ConfigurationError(BookingError):
    """Fatal configuration problem (e.g. malformed signing credentials). Never retried."""


class TransportError(BookingError):
    """Queue provider returned a non-2xx response or the request never completed."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PoisonMessage(BookingError):
    """Queue job body that cannot be parsed even after normalization."""
