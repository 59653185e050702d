"""Attack-plan action ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, Date, ForeignKey, Index, Integer, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from vicu.db.base import Base
from vicu.db.types import UTCDateTime


class ExperimentAction(Base):
    __tablename__ = "experiment_actions"
    __table_args__ = (Index("ix_experiment_actions_experiment_id", "experiment_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    experiment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("experiments.id", ondelete="CASCADE"),
        nullable=False,
    )
    channel = Column(Text, nullable=False)
    action_type = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False, default="")
    status = Column(Text, nullable=False, default="pending", server_default="pending")
    suggested_order = Column(Integer, nullable=False, default=0)
    suggested_due_date = Column(Date, nullable=True)
    done_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())

    experiment = relationship("Experiment", back_populates="actions")
