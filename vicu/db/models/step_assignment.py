"""Step assignment ORM model: a step delegated to an outside helper."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Index, Integer, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from vicu.db.base import Base
from vicu.db.types import UTCDateTime


class StepAssignment(Base):
    __tablename__ = "step_assignments"
    __table_args__ = (
        Index("ix_step_assignments_checkin_id", "checkin_id"),
        Index("ix_step_assignments_status", "status"),
        Index("ix_step_assignments_assigned_by", "assigned_by"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    checkin_id = Column(
        UUID(as_uuid=True),
        ForeignKey("experiment_checkins.id", ondelete="CASCADE"),
        nullable=False,
    )
    assigned_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    helper_name = Column(Text, nullable=False)
    helper_contact = Column(Text, nullable=False)
    contact_type = Column(Text, nullable=False)
    custom_message = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending", server_default="pending")
    access_token = Column(Text, nullable=False, unique=True)
    token_expires_at = Column(UTCDateTime, nullable=False)
    response_message = Column(Text, nullable=True)
    responded_at = Column(UTCDateTime, nullable=True)
    notification_sent_at = Column(UTCDateTime, nullable=True)
    notification_message_id = Column(Text, nullable=True)
    reminder_count = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    last_reminder_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())

    step = relationship("ExperimentCheckin")
