"""Schemas for posts, comments and engagement toggles."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PostType(str, Enum):
    TEXT = "TEXT"
    PHOTO = "PHOTO"
    VIDEO = "VIDEO"
    ARTICLE = "ARTICLE"


_MEDIA_TYPES = frozenset({PostType.PHOTO, PostType.VIDEO})


class Comment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    author_id: str = Field(alias="authorId")
    content: str
    timestamp: datetime = Field(default_factory=_now)


class Post(BaseModel):
    """Feed entry with denormalised like actors and nested comments."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    author_id: str = Field(alias="authorId")
    type: PostType = PostType.TEXT
    content: str = ""
    title: str | None = None
    media_url: str | None = Field(default=None, alias="mediaUrl")
    likes: list[str] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)

    @field_validator("likes")
    @classmethod
    def _unique_likes(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class PostDraft(BaseModel):
    """User-supplied fields of a new post."""

    type: PostType = PostType.TEXT
    content: str = ""
    title: str | None = None
    media_url: str | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> "PostDraft":
        self.content = (self.content or "").strip()
        if not self.content and self.type not in _MEDIA_TYPES:
            raise ValueError("content is required for text and article posts")
        if self.type is not PostType.ARTICLE:
            self.title = None
        if self.type not in _MEDIA_TYPES:
            self.media_url = None
        return self


class LikeToggleResult(BaseModel):
    action: Literal["liked", "unliked"]
    like_count: int | None = None


class FollowToggleResult(BaseModel):
    action: Literal["followed", "unfollowed"]


__all__ = [
    "Comment",
    "FollowToggleResult",
    "LikeToggleResult",
    "Post",
    "PostDraft",
    "PostType",
]
