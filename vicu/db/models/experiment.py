"""Experiment (goal) ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, Date, ForeignKey, Index, Integer, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from vicu.db.base import Base
from vicu.db.types import JSONBCompat, UTCDateTime


class Experiment(Base):
    __tablename__ = "experiments"
    __table_args__ = (
        Index("ix_experiments_user_id", "user_id"),
        Index("ix_experiments_status", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    # Null for goals created without a session (anonymous mode).
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    experiment_type = Column(Text, nullable=False, default="clientes", server_default="clientes")
    surface_type = Column(Text, nullable=False, default="landing", server_default="landing")
    context = Column(Text, nullable=True)
    detected_category = Column(Text, nullable=True)
    target_audience = Column(Text, nullable=True)
    promise = Column(Text, nullable=True)
    desired_action = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="testing", server_default="testing")
    deadline = Column(Date, nullable=True)
    deadline_source = Column(Text, nullable=True)
    self_result = Column(Text, nullable=True)
    action_cadence = Column(Text, nullable=True)
    metrics_cadence = Column(Text, nullable=True)
    decision_cadence_days = Column(Integer, nullable=True)
    streak_days = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    checkins_count = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    last_checkin_at = Column(UTCDateTime, nullable=True)
    recommendation = Column(JSONBCompat, nullable=True)
    recommendation_history = Column(JSONBCompat, nullable=False, default=list)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    actions = relationship(
        "ExperimentAction",
        back_populates="experiment",
        cascade="all, delete-orphan",
        order_by="ExperimentAction.suggested_order",
    )
    checkins = relationship(
        "ExperimentCheckin",
        back_populates="experiment",
        cascade="all, delete-orphan",
        order_by="ExperimentCheckin.created_at",
    )
