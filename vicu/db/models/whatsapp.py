"""WhatsApp linkage and reply-loop ORM models."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, ForeignKey, Index, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from vicu.db.base import Base
from vicu.db.types import UTCDateTime


class WhatsAppConfig(Base):
    __tablename__ = "whatsapp_config"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    phone_number = Column(Text, nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=sa_text("true"))
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class WhatsAppPendingAction(Base):
    __tablename__ = "whatsapp_pending_actions"
    __table_args__ = (Index("ix_whatsapp_pending_actions_user_status", "user_id", "status"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    experiment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("experiments.id", ondelete="CASCADE"),
        nullable=True,
    )
    checkin_id = Column(
        UUID(as_uuid=True),
        ForeignKey("experiment_checkins.id", ondelete="SET NULL"),
        nullable=True,
    )
    action_text = Column(Text, nullable=False)
    is_ai_generated = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    status = Column(Text, nullable=False, default="pending", server_default="pending")
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
