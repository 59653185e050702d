"""Caller identity resolved from the auth gateway header."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from fastapi import Header, HTTPException, status

from vicu.core.config import settings


@dataclass(frozen=True)
class Authenticated:
    user_id: UUID


@dataclass(frozen=True)
class Anonymous:
    pass


Identity = Union[Authenticated, Anonymous]


def get_identity(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> Identity:
    """Resolve the caller; requests without the header run in anonymous mode."""
    if not x_user_id:
        return Anonymous()
    try:
        return Authenticated(user_id=UUID(x_user_id))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sesión inválida")


def identity_user_id(identity: Identity) -> Optional[UUID]:
    return identity.user_id if isinstance(identity, Authenticated) else None


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Batch endpoints accept only the scheduler's bearer token when one is configured."""
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No autorizado")
