"""Utility helpers shared across ORM models."""
from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware client-side default; keeps sub-second ordering on SQLite."""

    return datetime.now(timezone.utc)


__all__ = ["utcnow"]
