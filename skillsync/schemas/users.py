"""Schemas for identities and cached user profiles."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _unique_without(values: list[str], excluded: str) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value != excluded and value not in seen:
            seen.append(value)
    return seen


class UserIdentity(BaseModel):
    """Authenticated principal as reported by the identity store."""

    id: str
    email: str = ""


class SignUpResult(BaseModel):
    """Outcome of a sign-up call; no identity means confirmation is pending."""

    identity: UserIdentity | None = None
    pending_confirmation: bool = False


class User(BaseModel):
    """Client-side copy of a profile row, including the follow graph edges."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    email: str = ""
    country: str = ""
    profile_picture: str = Field(default="", alias="profilePicture")
    skills: list[str] = Field(default_factory=list)
    bio: str = ""
    about_me: str = Field(default="", alias="aboutMe")
    following: list[str] = Field(default_factory=list)
    followers: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _normalize_edges(self) -> "User":
        # A user never follows itself and each edge is listed once.
        self.following = _unique_without(self.following, self.id)
        self.followers = _unique_without(self.followers, self.id)
        return self


__all__ = ["SignUpResult", "User", "UserIdentity"]
