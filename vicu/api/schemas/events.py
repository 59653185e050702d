"""Schemas for landing page tracking."""
from __future__ import annotations

from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field


class EventCreateRequest(BaseModel):
    experiment_id: UUID
    type: Literal["visit", "form_submit"]
    metadata: Optional[Dict[str, Any]] = None


class EventCreateResponse(BaseModel):
    id: UUID
    experiment_id: UUID
    type: str
    request_id: str


class LeadCreateRequest(BaseModel):
    experiment_id: UUID
    email: Optional[str] = None
    name: Optional[str] = Field(default=None, validation_alias=AliasChoices("name", "nombre"))
    message: Optional[str] = Field(default=None, validation_alias=AliasChoices("message", "mensaje"))


class LeadCreateResponse(BaseModel):
    id: UUID
    experiment_id: UUID
    request_id: str
