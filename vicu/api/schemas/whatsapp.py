"""Schemas for WhatsApp linkage and reminders."""
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class WhatsAppConfigRequest(BaseModel):
    phone_number: Optional[str] = None
    enabled: bool = True


class WhatsAppConfigResponse(BaseModel):
    phone_number: str
    is_active: bool
    message: str
    request_id: str


class SendReminderRequest(BaseModel):
    user_id: Optional[UUID] = None


class SendReminderResponse(BaseModel):
    status: str
    experiment_id: Optional[UUID] = None
    message: Optional[str] = None
    message_id: Optional[str] = None
    reason: Optional[str] = None
    request_id: str


class WebhookResponse(BaseModel):
    status: str
    action: Optional[str] = None
    reply_status: Optional[str] = None
    new_streak: Optional[int] = None


class DailyReminderResult(BaseModel):
    user_id: UUID
    status: str
    slot: Optional[str] = None
    message_id: Optional[str] = None


class DailyReminderRunResponse(BaseModel):
    forced_slot: Optional[str] = None
    processed: int
    sent: int
    results: List[DailyReminderResult]
    request_id: str


class SlotScheduleItem(BaseModel):
    slot: str
    starts_at: str


class DailyReminderPreviewResponse(BaseModel):
    timezone: str
    local_time: str
    current_slot: Optional[str] = None
    schedule: List[SlotScheduleItem]
