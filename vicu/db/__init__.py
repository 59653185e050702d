"""Database utilities and models."""

from vicu.db.base import Base
from vicu.db import models  # noqa: F401  (imported for side effects)

__all__ = ["Base"]
