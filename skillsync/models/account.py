"""SQLAlchemy ORM model for authentication identities."""
from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import expression, func

from skillsync.database import Base
from .base import utcnow


class Account(Base):
    """Credentials row; the public profile lives in ``users`` and may be missing."""

    __tablename__ = "accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    email_confirmed = Column(Boolean, nullable=False, server_default=expression.true(), default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


__all__ = ["Account"]
