"""Leads captured by a goal's landing form."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Index, Text, func
from sqlalchemy.dialects.postgresql import UUID

from vicu.db.base import Base
from vicu.db.types import UTCDateTime


class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (Index("ix_leads_experiment_id", "experiment_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    experiment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("experiments.id", ondelete="CASCADE"),
        nullable=False,
    )
    name = Column(Text, nullable=True)
    email = Column(Text, nullable=False)
    message = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
