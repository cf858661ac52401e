"""
Pydantic schemas for API request/response validation.
"""

from app.schemas.admin import (
    DeliveryRecordResponse,
    EnqueueCampaignRequest,
    EnqueueCampaignResponse,
    ProcessOnceResponse,
)

__all__ = [
    "DeliveryRecordResponse",
    "EnqueueCampaignRequest",
    "EnqueueCampaignResponse",
    "ProcessOnceResponse",
]
