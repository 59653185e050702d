"""Schemas for next-step coaching and step chat."""
from __future__ import annotations

from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class NextStepRequest(BaseModel):
    experiment_id: Optional[UUID] = None
    goal_title: Optional[str] = None
    goal_description: Optional[str] = None
    current_state: Optional[str] = None
    previous_step_title: Optional[str] = None


class NextStepResponse(BaseModel):
    next_step_title: str
    next_step_description: str
    effort: str


class ChatHistoryTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class StepChatRequest(BaseModel):
    checkin_id: Optional[UUID] = None
    project_title: Optional[str] = None
    project_description: Optional[str] = None
    step_title: Optional[str] = None
    step_description: Optional[str] = None
    current_suggestion: Optional[str] = None
    user_notes: List[str] = Field(default_factory=list)
    messages: List[ChatHistoryTurn] = Field(default_factory=list, max_length=40)
    user_message: Optional[str] = None


class StepChatResponse(BaseModel):
    content: str
    fallback_used: bool
    request_id: str
