"""Session-scoped schemas for the AI-coached sync session.

These models double as the validation boundary for the AI text service: the
service answers in camelCase JSON, so every field carries its wire alias.
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _AiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UserProfile(_AiModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    skill_to_offer: str = Field(alias="skillToOffer", min_length=1)
    skill_to_learn: str = Field(alias="skillToLearn", min_length=1)


class MatchedUser(_AiModel):
    name: str
    country: str
    skill_to_offer: str = Field(alias="skillToOffer")
    skill_to_learn: str = Field(alias="skillToLearn")
    personality: str
    learning_style: str = Field(alias="learningStyle")
    profile_picture: str = Field(alias="profilePicture")


class MicroLesson(_AiModel):
    title: str
    content: str
    for_: Literal["user", "partner"] = Field(alias="for")


class Activity(_AiModel):
    title: str
    description: str


class CultureBridge(_AiModel):
    title: str
    content: str


class AiCoachResponse(_AiModel):
    micro_lesson: MicroLesson = Field(alias="microLesson")
    activity: Activity
    culture_bridge: CultureBridge = Field(alias="cultureBridge")


class SessionSummary(_AiModel):
    score: float
    summary: str
    takeaway: str


__all__ = [
    "Activity",
    "AiCoachResponse",
    "CultureBridge",
    "MatchedUser",
    "MicroLesson",
    "SessionSummary",
    "UserProfile",
]
