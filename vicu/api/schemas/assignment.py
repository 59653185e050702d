"""Schemas for step assignments."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class AssignmentCreateRequest(BaseModel):
    checkin_id: Optional[UUID] = None
    helper_name: Optional[str] = None
    helper_contact: Optional[str] = None
    contact_type: Optional[str] = None
    custom_message: Optional[str] = None


class AssignmentPayload(BaseModel):
    id: UUID
    checkin_id: UUID
    helper_name: str
    helper_contact: str
    contact_type: str
    custom_message: Optional[str]
    status: str
    token_expires_at: datetime
    response_message: Optional[str]
    responded_at: Optional[datetime]
    notification_sent_at: Optional[datetime]
    reminder_count: int


class AssignmentCreateResponse(BaseModel):
    assignment: AssignmentPayload
    public_url: str
    notification_sent: bool
    notification_error: Optional[str] = None
    request_id: str


class AssignmentListResponse(BaseModel):
    assignments: List[AssignmentPayload]
    request_id: str


class PublicAssignmentPayload(BaseModel):
    id: UUID
    helper_name: str
    owner_name: str
    status: str
    custom_message: Optional[str]
    responded_at: Optional[datetime]
    step_title: str
    step_description: Optional[str]
    experiment_title: str


class PublicAssignmentResponse(BaseModel):
    assignment: PublicAssignmentPayload


class AssignmentAnswerRequest(BaseModel):
    response: Optional[str] = None
    message: Optional[str] = None


class AssignmentAnswerResponse(BaseModel):
    status: str
    message: str


class AssignmentReminderRunResponse(BaseModel):
    first_reminders: int
    final_reminders: int
    expired: int
    owner_notices: int
    skipped: List[str]
    request_id: str
