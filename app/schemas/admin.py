"""
Admin API request/response schemas.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.utils.datetime_utils import to_wire_ts


class EnqueueCampaignRequest(BaseModel):
    """Request schema for fanning a campaign out to recipients."""

    recipients: list[str] = Field(min_length=1)
    text: str | None = None


class EnqueueCampaignResponse(BaseModel):
    campaign_id: str
    enqueued: list[str]
    skipped: list[str]
    failed: dict[str, str]


class DeliveryRecordResponse(BaseModel):
    """Response schema for a single delivery record. Timestamps are UTC "YYYY-MM-DD HH:MM:SS"."""

    model_config = ConfigDict(from_attributes=True)

    campaign_id: str
    recipient: str
    status: str
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_serializer("created_at", "updated_at")
    def serialize_ts(self, value: datetime | None) -> str | None:
        return to_wire_ts(value) if value is not None else None


class ProcessOnceResponse(BaseModel):
    ok: bool = True
    received: int
    deleted: int
    delete_failures: int
    outcomes: dict[str, int]
    skipped: bool = False
