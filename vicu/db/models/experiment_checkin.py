"""Step (check-in) ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Index, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from vicu.db.base import Base
from vicu.db.types import UTCDateTime


class ExperimentCheckin(Base):
    __tablename__ = "experiment_checkins"
    __table_args__ = (
        Index("ix_experiment_checkins_experiment_id", "experiment_id"),
        Index("ix_experiment_checkins_status", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    experiment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("experiments.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # Null marks rows created before steps were scoped to a stage.
    for_stage = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending", server_default="pending")
    step_title = Column(Text, nullable=False)
    step_description = Column(Text, nullable=True)
    effort = Column(Text, nullable=True)
    user_notes = Column(Text, nullable=True)
    source = Column(Text, nullable=False, default="app", server_default="app")
    done_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())

    experiment = relationship("Experiment", back_populates="checkins")
