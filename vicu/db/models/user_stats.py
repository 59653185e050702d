"""Per-user gamification counters."""
from __future__ import annotations

from sqlalchemy import Column, Date, ForeignKey, Integer, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from vicu.db.base import Base
from vicu.db.types import JSONBCompat, UTCDateTime


class UserStats(Base):
    __tablename__ = "user_stats"

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    xp = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    level = Column(Integer, nullable=False, default=1, server_default=sa_text("1"))
    streak_days = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    longest_streak = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    last_checkin_date = Column(Date, nullable=True)
    daily_checkins = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    daily_goal = Column(Integer, nullable=False, default=2, server_default=sa_text("2"))
    total_checkins = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    total_projects_completed = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    badges = Column(JSONBCompat, nullable=False, default=list)
    updated_at = Column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
