"""
Event type constants for SystemEvent.

Use these instead of string literals to ensure consistency.
"""

# ---- Reservations ----
EVENT_BOOKING_CAPACITY_CONFLICT = "booking.capacity_conflict"
EVENT_REMINDER_ENQUEUE_FAILURE = "reminder.enqueue_failure"
EVENT_REMINDER_QUEUE_MISCONFIGURED = "reminder.queue_misconfigured"

# ---- Queue consumer ----
EVENT_QUEUE_POISON_MESSAGE = "queue.poison_message"
EVENT_QUEUE_JOB_FAILURE = "queue.job_failure"
EVENT_QUEUE_DELETE_FAILURE = "queue.delete_failure"
EVENT_QUEUE_UNKNOWN_KIND = "queue.unknown_kind"

# ---- Telegram ----
EVENT_TELEGRAM_SECRET_MISMATCH = "telegram.secret_mismatch"
EVENT_TELEGRAM_SEND_FAILURE = "telegram.send_failure"
EVENT_TELEGRAM_UPDATE_FAILURE = "telegram.update_failure"

# ---- Bulk delivery ----
EVENT_CAMPAIGN_ENQUEUED = "campaign.enqueued"
