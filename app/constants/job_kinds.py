"""
Queue job kind constants.

Use these instead of string literals when building or dispatching job payloads.
"""

JOB_KIND_REMINDER = "REMINDER"
JOB_KIND_DELIVERY = "DELIVERY"

# Per-job consumer outcomes
OUTCOME_DONE = "done"
OUTCOME_NOT_APPLICABLE = "not_applicable"
OUTCOME_UNKNOWN_KIND = "unknown_kind"
OUTCOME_POISON = "poison"
OUTCOME_NOT_DUE = "not_due"
OUTCOME_FAILED = "failed"

# Outcomes that acknowledge (delete) the job; anything else waits for redelivery
ACK_OUTCOMES = {OUTCOME_DONE, OUTCOME_NOT_APPLICABLE, OUTCOME_UNKNOWN_KIND, OUTCOME_POISON}
