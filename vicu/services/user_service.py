"""Helpers for working with users."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vicu.core.config import settings
from vicu.db.models.user import User

logger = logging.getLogger(__name__)


class InvalidTimezone(ValueError):
    """Raised when a timezone name is not a known IANA zone."""


def get_or_create_user(db: Session, user_id: UUID) -> User:
    """Fetch an existing user or create a new row safely."""
    user = db.get(User, user_id)
    if user:
        return user

    user = User(id=user_id)
    db.add(user)
    try:
        db.flush()
        return user
    except IntegrityError:
        db.rollback()
        existing = db.get(User, user_id)
        if existing:
            return existing
        raise


def parse_timezone(name: Optional[str]) -> ZoneInfo:
    if not name or not name.strip():
        raise InvalidTimezone("Zona horaria inválida")
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezone("Zona horaria inválida") from exc


def user_timezone(db: Session, user_id: Optional[UUID]) -> ZoneInfo:
    """The user's stored zone, or the configured default for unknown users and bad values."""
    name = settings.default_timezone
    if user_id is not None:
        user = db.get(User, user_id)
        if user is not None and user.timezone:
            name = user.timezone
    try:
        return parse_timezone(name)
    except InvalidTimezone:
        logger.warning("Unknown timezone %r; falling back to %s", name, settings.default_timezone)
        return ZoneInfo(settings.default_timezone)


def local_now(db: Session, user_id: Optional[UUID], now: Optional[datetime] = None) -> datetime:
    """Wall-clock time for the user: an aware datetime in their zone."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(user_timezone(db, user_id))


def set_timezone(db: Session, user_id: UUID, name: str) -> User:
    zone = parse_timezone(name)
    user = get_or_create_user(db, user_id)
    user.timezone = zone.key
    db.flush()
    return user
