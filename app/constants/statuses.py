"""
Status constants - centralized to avoid circular imports.
"""

# Conversation session states (absence of a session row means "no active flow")
STATE_NONE = "NONE"
STATE_CHOOSE_SERVICE = "CHOOSE_SERVICE"
STATE_CHOOSE_DATE = "CHOOSE_DATE"
STATE_CHOOSE_SLOT = "CHOOSE_SLOT"
STATE_CONFIRM = "CONFIRM"

# States that are persisted as a session row
ACTIVE_STATES = {
    STATE_CHOOSE_SERVICE,
    STATE_CHOOSE_DATE,
    STATE_CHOOSE_SLOT,
    STATE_CONFIRM,
}

# Booking statuses (CONFIRMED is the only one the flow produces)
BOOKING_CONFIRMED = "CONFIRMED"

# Bulk delivery statuses
DELIVERY_PENDING = "PENDING"
DELIVERY_DELIVERED = "DELIVERED"
DELIVERY_FAILED = "FAILED"

DELIVERY_STATUSES = {DELIVERY_PENDING, DELIVERY_DELIVERED, DELIVERY_FAILED}
