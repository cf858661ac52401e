"""
Queue job payloads and body normalization.

Bodies arrive in several shapes depending on who enqueued them and how the
provider escaped them: plain JSON, entity-escaped JSON, JSON wrapped in one
extra layer of quotes, or percent-encoded JSON. `normalize_body` undoes each
of these; anything still unparsable is a poison message.
"""

import json
from typing import Any
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from app.constants.job_kinds import JOB_KIND_DELIVERY, JOB_KIND_REMINDER
from app.core.errors import PoisonMessage
from app.services.queue.wire import unescape_entities


class ReminderJob(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    kind: str = JOB_KIND_REMINDER
    booking_id: str = Field(alias="bookingId", min_length=1)
    chat_id: str = Field(alias="chatId", min_length=1)


class DeliveryJob(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    kind: str = JOB_KIND_DELIVERY
    campaign_id: str = Field(alias="campaignId", min_length=1)
    recipient: str = Field(min_length=1)
    text: str | None = None


Job = ReminderJob | DeliveryJob


def reminder_payload(booking_id: str, chat_id: str) -> dict[str, Any]:
    return ReminderJob(booking_id=booking_id, chat_id=chat_id).model_dump(by_alias=True)


def delivery_payload(campaign_id: str, recipient: str, text: str | None) -> dict[str, Any]:
    return DeliveryJob(campaign_id=campaign_id, recipient=recipient, text=text).model_dump(
        by_alias=True, exclude_none=True
    )


def _strip_wrapping_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ('"', "'"):
        return text[1:-1]
    return text


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except ValueError:
        return None
    # A JSON string literal holding JSON ("{\"kind\":...}") decodes one level deeper
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    return value if isinstance(value, dict) else None


def normalize_body(body: str) -> dict[str, Any]:
    """
    Turn a raw job body into a JSON object.

    Raises:
        PoisonMessage: If no normalization step yields a JSON object.
    """
    text = unescape_entities(body or "").strip()
    if not text:
        raise PoisonMessage("Empty job body")

    candidates = [text, _strip_wrapping_quotes(text)]
    for candidate in list(candidates):
        decoded = unquote(candidate)
        if decoded != candidate:
            candidates.append(decoded)
            candidates.append(_strip_wrapping_quotes(decoded))

    for candidate in candidates:
        data = _loads_object(candidate)
        if data is not None:
            return data
    raise PoisonMessage(f"Job body is not a JSON object: {text[:200]!r}")


def decode_job(data: dict[str, Any]) -> Job | None:
    """
    Map a normalized body onto a job model.

    Bulk-delivery jobs may omit `kind`; they are recognized by their fields.
    Returns None for an unrecognized kind.

    Raises:
        PoisonMessage: If the kind is known but required fields are missing/invalid.
    """
    kind = data.get("kind")
    if kind is None and "campaignId" in data and "recipient" in data:
        kind = JOB_KIND_DELIVERY

    try:
        if kind == JOB_KIND_REMINDER:
            return ReminderJob.model_validate(data)
        if kind == JOB_KIND_DELIVERY:
            return DeliveryJob.model_validate(data)
    except PydanticValidationError as e:
        raise PoisonMessage(f"Invalid {kind} job: {e.error_count()} field error(s)") from e
    return None
