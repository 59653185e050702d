"""User ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, Text, func
from sqlalchemy.dialects.postgresql import UUID

from vicu.db.base import Base
from vicu.db.types import UTCDateTime


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    display_name = Column(Text, nullable=True)
    # IANA zone name; null means the configured default.
    timezone = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, server_default=func.now())
