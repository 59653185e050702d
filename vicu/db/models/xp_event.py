"""XP audit trail."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Index, Integer, Text, func
from sqlalchemy.dialects.postgresql import UUID

from vicu.db.base import Base
from vicu.db.types import UTCDateTime


class XpEvent(Base):
    __tablename__ = "xp_events"
    __table_args__ = (Index("ix_xp_events_user_id", "user_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    experiment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("experiments.id", ondelete="SET NULL"),
        nullable=True,
    )
    amount = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
