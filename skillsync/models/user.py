"""SQLAlchemy ORM model for user profiles."""
from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from skillsync.database import Base
from .base import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(150), nullable=False, default="")
    country = Column(String(120), nullable=False, default="")
    profile_picture = Column(String(1024), nullable=False, default="")
    skills = Column(JSON, nullable=False, default=list)
    bio = Column(String(500), nullable=False, default="")
    about_me = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    posts = relationship("Post", back_populates="author", cascade="all, delete-orphan")
    follower_relations = relationship(
        "Follow",
        foreign_keys="Follow.following_id",
        back_populates="following",
        cascade="all, delete-orphan",
    )
    following_relations = relationship(
        "Follow",
        foreign_keys="Follow.follower_id",
        back_populates="follower",
        cascade="all, delete-orphan",
    )


__all__ = ["User"]
